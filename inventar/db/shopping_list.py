"""Plain shopping-list entries that turn into inventory items once completed."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from ..models import STATUS_HOME, ShoppingListEntry
from .inventory import InventoryDB
from .schema import from_db_time, to_db_time, utcnow

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)


def _row_to_entry(row: sqlite3.Row) -> ShoppingListEntry:
    return ShoppingListEntry(
        id=row["id"],
        name=row["name"],
        completed=bool(row["completed"]),
        created_at=from_db_time(row["created_at"]),
    )


class ShoppingListDB:
    """Manages the shopping_list table.

    Shares the inventory connection so that completing an entry (insert item,
    delete entry) happens in one transaction.
    """

    def __init__(self, inventory: InventoryDB) -> None:
        self._inventory = inventory

    def add_entry(self, session: Session, name: str) -> int:
        name = (name or "").strip()
        if not name:
            raise ValueError("Název položky nesmí být prázdný")
        conn = self._inventory.connection
        with conn:
            cur = conn.execute(
                """INSERT INTO shopping_list (app_id, uid, name, completed, created_at)
                   VALUES (?, ?, ?, 0, ?)""",
                (session.app_id, session.uid, name, to_db_time(utcnow())),
            )
        return cur.lastrowid

    def list_entries(self, session: Session) -> list[ShoppingListEntry]:
        rows = self._inventory.connection.execute(
            """SELECT * FROM shopping_list
               WHERE app_id = ? AND uid = ?
               ORDER BY created_at DESC, id DESC""",
            (session.app_id, session.uid),
        ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def complete_entry(
        self, session: Session, entry_id: int, location: str | None = None
    ) -> int:
        """Convert an entry into a home inventory item and delete the entry.

        Returns:
            The id of the created inventory item.

        Raises:
            LookupError: If the entry doesn't exist in the session's partition.
        """
        conn = self._inventory.connection
        with conn:
            row = conn.execute(
                "SELECT * FROM shopping_list WHERE id = ? AND app_id = ? AND uid = ?",
                (entry_id, session.app_id, session.uid),
            ).fetchone()
            if row is None:
                raise LookupError(f"Položka seznamu {entry_id} neexistuje")
            item_id = self._inventory.insert_item(
                conn,
                session,
                name=row["name"],
                status=STATUS_HOME,
                location=location,
            )
            conn.execute("DELETE FROM shopping_list WHERE id = ?", (entry_id,))
        logger.info("Shopping entry %d completed as item %d", entry_id, item_id)
        self._inventory.notify(session)
        return item_id

    def delete_entry(self, session: Session, entry_id: int) -> None:
        conn = self._inventory.connection
        with conn:
            cur = conn.execute(
                "DELETE FROM shopping_list WHERE id = ? AND app_id = ? AND uid = ?",
                (entry_id, session.app_id, session.uid),
            )
        if cur.rowcount == 0:
            raise LookupError(f"Položka seznamu {entry_id} neexistuje")
