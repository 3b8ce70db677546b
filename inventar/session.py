"""Anonymous sign-in and the per-user session that scopes every store query."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass

from .db.schema import to_db_time, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Logical partition of the store: tenant id plus anonymous user id."""

    app_id: str
    uid: str


class AnonymousAuth:
    """Creates and resumes anonymous users for one application id."""

    def __init__(self, conn: sqlite3.Connection, app_id: str) -> None:
        self._conn = conn
        self._app_id = app_id

    def sign_in(self) -> Session:
        """Register a fresh anonymous user.

        Raises:
            RuntimeError: If the user row cannot be written.
        """
        uid = uuid.uuid4().hex
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO users (uid, app_id, created_at) VALUES (?, ?, ?)",
                    (uid, self._app_id, to_db_time(utcnow())),
                )
        except sqlite3.Error as e:
            logger.exception("Anonymous sign-in failed")
            raise RuntimeError("Nepodařilo se přihlásit. Zkuste to prosím znovu.") from e
        logger.info("New anonymous user %s", uid)
        return Session(app_id=self._app_id, uid=uid)

    def resume(self, uid: str | None) -> Session | None:
        """Return the session for a known *uid*, or None."""
        if not uid:
            return None
        row = self._conn.execute(
            "SELECT uid FROM users WHERE app_id = ? AND uid = ?",
            (self._app_id, uid),
        ).fetchone()
        if row is None:
            return None
        return Session(app_id=self._app_id, uid=row["uid"])
