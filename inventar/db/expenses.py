"""Manual expense ledger."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING

from ..models import EXPENSE_MAX_CZK, ExpenseEntry
from ..normalize import clamp_number
from .schema import ensure_schema, from_db_time, to_db_time, utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from ..session import Session


class ExpenseDB:
    """Manages the expenses table."""

    def __init__(self, db_path: str | Path = "~/.config/inventar/inventar.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def add_expense(
        self,
        session: Session,
        label: str,
        amount_czk: float,
        created_at: datetime | None = None,
    ) -> int | None:
        """Record an expense.

        Returns:
            The new row id, or None when the label is empty or the amount is 0.
        """
        name = (label or "").strip()
        amount = clamp_number(amount_czk, 0, EXPENSE_MAX_CZK)
        if not name or not amount:
            return None
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                """INSERT INTO expenses (app_id, uid, label, amount_czk, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (session.app_id, session.uid, name, amount, to_db_time(created_at or utcnow())),
            )
        return cur.lastrowid

    def list_expenses(self, session: Session) -> list[ExpenseEntry]:
        """Return the session's expenses, newest first."""
        rows = self._get_conn().execute(
            """SELECT * FROM expenses WHERE app_id = ? AND uid = ?
               ORDER BY created_at DESC, id DESC""",
            (session.app_id, session.uid),
        ).fetchall()
        return [
            ExpenseEntry(
                id=r["id"],
                label=r["label"],
                amount_czk=r["amount_czk"],
                created_at=from_db_time(r["created_at"]),
            )
            for r in rows
        ]
