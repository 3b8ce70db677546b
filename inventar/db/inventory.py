"""Inventory item CRUD operations and live queries."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..config import CatalogConfig
from ..models import (
    DEFAULT_ITEM_NAME,
    STATUS_HOME,
    STATUS_SHOPPING,
    InventoryItem,
)
from ..normalize import guess_emoji, normalize_amount, pick, sanitize_emoji
from .schema import ensure_schema, from_db_time, to_db_time, utcnow

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)

Listener = Callable[[list[InventoryItem]], None]

_UPDATABLE_FIELDS = frozenset({
    "name",
    "amount",
    "unit",
    "category",
    "status",
    "location",
    "is_bought",
    "emoji",
    "expiry_date",
})


def row_to_item(row: sqlite3.Row) -> InventoryItem:
    return InventoryItem(
        id=row["id"],
        name=row["name"],
        amount=row["amount"],
        unit=row["unit"],
        category=row["category"],
        status=row["status"],
        location=row["location"],
        is_bought=bool(row["is_bought"]),
        emoji=row["emoji"],
        expiry_date=from_db_time(row["expiry_date"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
    )


class Subscription:
    """A live query registration. Close it (or use it as a context manager)
    when the owning user session ends."""

    def __init__(self, db: InventoryDB, session: Session, listener: Listener) -> None:
        self._db = db
        self.session = session
        self.listener = listener
        self.active = True

    def close(self) -> None:
        if self.active:
            self._db._unsubscribe(self)
            self.active = False

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class InventoryDB:
    """Manages the items collection, partitioned by app id and user id."""

    def __init__(
        self,
        db_path: str | Path = "~/.config/inventar/inventar.db",
        catalog: CatalogConfig | None = None,
    ) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self.catalog = catalog or CatalogConfig()
        self._listeners: dict[Session, list[Subscription]] = {}

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    @property
    def connection(self) -> sqlite3.Connection:
        return self._get_conn()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ── live queries ──

    def subscribe(self, session: Session, listener: Listener) -> Subscription:
        """Register *listener* for snapshots of the session's items.

        The current snapshot is delivered immediately, then again after
        every write to the same partition.
        """
        sub = Subscription(self, session, listener)
        self._listeners.setdefault(session, []).append(sub)
        self._deliver(sub, self.list_items(session))
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        subs = self._listeners.get(sub.session, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._listeners.pop(sub.session, None)

    def notify(self, session: Session) -> None:
        subs = list(self._listeners.get(session, []))
        if not subs:
            return
        snapshot = self.list_items(session)
        for sub in subs:
            self._deliver(sub, list(snapshot))

    @staticmethod
    def _deliver(sub: Subscription, snapshot: list[InventoryItem]) -> None:
        try:
            sub.listener(snapshot)
        except Exception:
            logger.exception("Live query listener failed for uid=%s", sub.session.uid)

    # ── writes ──

    def insert_item(
        self,
        conn: sqlite3.Connection,
        session: Session,
        *,
        name: str | None,
        amount: Any = 1,
        unit: str | None = None,
        category: str | None = None,
        status: str = STATUS_SHOPPING,
        location: str | None = None,
        is_bought: bool = False,
        emoji: str = "",
        expiry_date: datetime | None = None,
    ) -> int:
        """Insert one normalized row on *conn* without committing."""
        cat = self.catalog
        safe_name = (name or "").strip() or DEFAULT_ITEM_NAME
        safe_category = pick(category, cat.categories, cat.default_category)
        now = to_db_time(utcnow())
        cur = conn.execute(
            """INSERT INTO items
               (app_id, uid, name, amount, unit, category, status, location,
                is_bought, emoji, expiry_date, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session.app_id,
                session.uid,
                safe_name,
                normalize_amount(amount),
                pick(unit, cat.units, cat.default_unit),
                safe_category,
                STATUS_HOME if status == STATUS_HOME else STATUS_SHOPPING,
                pick(location, cat.locations, cat.default_location),
                int(bool(is_bought)),
                sanitize_emoji(emoji) or guess_emoji(safe_name, safe_category),
                to_db_time(expiry_date),
                now,
                now,
            ),
        )
        return cur.lastrowid

    def add_item(self, session: Session, **fields: Any) -> int:
        """Create a new item. Invalid enumerations fall back to catalog defaults.

        Returns:
            The new row id.
        """
        conn = self._get_conn()
        with conn:
            item_id = self.insert_item(conn, session, **fields)
        self.notify(session)
        return item_id

    def update_item(self, session: Session, item_id: int, **updates: Any) -> None:
        """Field-level update; the last writer wins on every field.

        Raises:
            ValueError: If an unknown field is given.
            LookupError: If the item doesn't exist in the session's partition.
        """
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Neznámá pole: {', '.join(sorted(unknown))}")

        cat = self.catalog
        values: dict[str, Any] = {}
        for key, value in updates.items():
            match key:
                case "name":
                    values[key] = (str(value or "")).strip() or DEFAULT_ITEM_NAME
                case "amount":
                    values[key] = normalize_amount(value)
                case "unit":
                    values[key] = pick(value, cat.units, cat.default_unit)
                case "category":
                    values[key] = pick(value, cat.categories, cat.default_category)
                case "status":
                    values[key] = STATUS_HOME if value == STATUS_HOME else STATUS_SHOPPING
                case "location":
                    values[key] = pick(value, cat.locations, cat.default_location)
                case "is_bought":
                    values[key] = int(bool(value))
                case "emoji":
                    values[key] = sanitize_emoji(value)
                case "expiry_date":
                    values[key] = to_db_time(value)
        values["updated_at"] = to_db_time(utcnow())

        assignments = ", ".join(f"{k} = ?" for k in values)
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                f"UPDATE items SET {assignments} WHERE id = ? AND app_id = ? AND uid = ?",
                (*values.values(), item_id, session.app_id, session.uid),
            )
        if cur.rowcount == 0:
            raise LookupError(f"Položka {item_id} neexistuje")
        self.notify(session)

    def delete_item(self, session: Session, item_id: int) -> None:
        """Delete an item by ID.

        Raises:
            LookupError: If the item doesn't exist in the session's partition.
        """
        conn = self._get_conn()
        with conn:
            cur = conn.execute(
                "DELETE FROM items WHERE id = ? AND app_id = ? AND uid = ?",
                (item_id, session.app_id, session.uid),
            )
        if cur.rowcount == 0:
            raise LookupError(f"Položka {item_id} neexistuje")
        self.notify(session)

    def toggle_bought(self, session: Session, item_id: int, value: bool) -> None:
        self.update_item(session, item_id, is_bought=bool(value))

    def add_to_cart(self, session: Session, item_id: int) -> None:
        """Put a home item back on the shopping list."""
        self.update_item(session, item_id, status=STATUS_SHOPPING, is_bought=False)

    def adjust_amount(self, session: Session, item_id: int, delta: float) -> float:
        """Add *delta* to the item's amount, saturating at the allowed bounds.

        Returns:
            The new amount.
        """
        item = self.get_item(session, item_id)
        if item is None:
            raise LookupError(f"Položka {item_id} neexistuje")
        new_amount = normalize_amount(item.amount + delta)
        self.update_item(session, item_id, amount=new_amount)
        return new_amount

    def move_bought_home(self, session: Session, location: str | None) -> int:
        """Move every bought shopping item home in a single transaction.

        Either all bought items get ``status='home'``, the chosen location and
        ``is_bought=False``, or (on any failure) none of them change.

        Returns:
            Number of items moved.
        """
        loc = pick(location, self.catalog.locations, self.catalog.default_location)
        conn = self._get_conn()
        now = to_db_time(utcnow())
        with conn:
            rows = conn.execute(
                """SELECT id FROM items
                   WHERE app_id = ? AND uid = ? AND status = ? AND is_bought = 1
                   ORDER BY created_at, id""",
                (session.app_id, session.uid, STATUS_SHOPPING),
            ).fetchall()
            for row in rows:
                conn.execute(
                    """UPDATE items
                       SET status = ?, location = ?, is_bought = 0, updated_at = ?
                       WHERE id = ?""",
                    (STATUS_HOME, loc, now, row["id"]),
                )
        if rows:
            logger.info("Moved %d bought items to %s", len(rows), loc)
            self.notify(session)
        return len(rows)

    # ── reads ──

    def get_item(self, session: Session, item_id: int) -> InventoryItem | None:
        row = self._get_conn().execute(
            "SELECT * FROM items WHERE id = ? AND app_id = ? AND uid = ?",
            (item_id, session.app_id, session.uid),
        ).fetchone()
        return row_to_item(row) if row is not None else None

    def list_items(self, session: Session, status: str | None = None) -> list[InventoryItem]:
        """Return the session's items, newest first, optionally filtered by status."""
        sql = "SELECT * FROM items WHERE app_id = ? AND uid = ?"
        params: list[Any] = [session.app_id, session.uid]
        if status is not None:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC, id DESC"
        rows = self._get_conn().execute(sql, params).fetchall()
        return [row_to_item(r) for r in rows]
