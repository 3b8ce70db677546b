"""Review of AI-extracted candidates before they become inventory items.

A ReviewSession walks through::

    idle → capturing → analyzing → reviewing → committing → idle
                                             ↘ cancelled  → idle

Edits and deletions touch only the in-memory buffer. Nothing is written
until ``commit``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from .config import CatalogConfig
from .db.schema import utcnow
from .models import STATUS_HOME, ReviewCandidate
from .normalize import (
    normalize_amount,
    normalize_expiry_days,
    pick,
    sanitize_emoji,
)
from .vision import AIRequestError, ImagePayload, VisionBackend

if TYPE_CHECKING:
    from .db.inventory import InventoryDB
    from .session import Session

logger = logging.getLogger(__name__)

QUOTA_ALERT = "AI je teď přetížená nebo je vyčerpaná kvóta. Zkuste to za chvíli."
ANALYSIS_ALERT = "Analýza fotky selhala: {}"
SAVE_ALERT = "Nepodařilo se uložit položky."


class ReviewState(enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    REVIEWING = "reviewing"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


class InvalidTransition(RuntimeError):
    """An operation was attempted in a state that doesn't allow it."""


class CommitError(RuntimeError):
    """Some candidates could not be written.

    Commits are not atomic: ``saved_ids`` holds the items written before
    the failure, and they stay in the store.
    """

    def __init__(self, message: str, saved_ids: list[int]) -> None:
        super().__init__(message)
        self.saved_ids = saved_ids


def expiry_from_days(days: Any, now: datetime) -> datetime | None:
    """Absolute expiry for an estimated number of days; 0 means unknown."""
    n = normalize_expiry_days(days)
    return now + timedelta(days=n) if n else None


def write_candidates(
    store: InventoryDB,
    session: Session,
    candidates: list[ReviewCandidate],
    location: str | None,
    now: datetime | None = None,
) -> list[int]:
    """Persist candidates as home items, one independent write each.

    Raises:
        CommitError: On the first failing write; earlier writes are kept.
    """
    now = now or utcnow()
    locations = store.catalog.locations
    default_location = store.catalog.review_location
    saved: list[int] = []
    for c in candidates:
        try:
            item_id = store.add_item(
                session,
                name=c.name,
                amount=c.amount,
                unit=c.unit,
                category=c.category,
                status=STATUS_HOME,
                location=pick(location or c.location, locations, default_location),
                is_bought=False,
                emoji=c.emoji,
                expiry_date=expiry_from_days(c.expiry_estimate_days, now),
            )
        except Exception as e:
            logger.exception(
                "Commit failed after %d of %d items", len(saved), len(candidates)
            )
            raise CommitError(SAVE_ALERT, saved) from e
        saved.append(item_id)
    return saved


@dataclass
class ReviewSession:
    """Client-side review buffer for one user."""

    state: ReviewState = ReviewState.IDLE
    candidates: list[ReviewCandidate] = field(default_factory=list)
    image: ImagePayload | None = None
    mode: str = "fridge"
    alert: str | None = None
    catalog: CatalogConfig = field(default_factory=CatalogConfig)

    def _expect(self, *states: ReviewState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransition(f"Stav {self.state.value}, očekáváno: {allowed}")

    def select_file(self, image: ImagePayload, mode: str = "fridge") -> None:
        self._expect(ReviewState.IDLE)
        self.image = image
        self.mode = mode
        self.alert = None
        self.state = ReviewState.CAPTURING

    async def analyze(self, backend: VisionBackend) -> bool:
        """Run the AI request for the selected photo.

        Returns:
            True when candidates are ready for review; False when the request
            failed, in which case ``alert`` holds the user-facing message and
            the session is back in idle.
        """
        self._expect(ReviewState.CAPTURING)
        assert self.image is not None
        self.state = ReviewState.ANALYZING
        try:
            candidates = await backend.analyze_image(self.image, self.mode)
        except AIRequestError as e:
            logger.error("Photo analysis failed: %s", e)
            self.alert = QUOTA_ALERT if e.is_quota else ANALYSIS_ALERT.format(e)
            self._reset()
            return False
        except ValueError as e:
            logger.error("Photo analysis failed: %s", e)
            self.alert = ANALYSIS_ALERT.format(e)
            self._reset()
            return False
        except Exception as e:
            logger.exception("Photo analysis failed unexpectedly")
            self.alert = ANALYSIS_ALERT.format(e)
            self._reset()
            return False
        self.image = None
        self.candidates = candidates
        self.state = ReviewState.REVIEWING
        return True

    def edit(self, index: int, **fields: Any) -> ReviewCandidate:
        """Change one buffered row. Enumerations are coerced, never rejected.

        Raises:
            IndexError: If there is no such row.
            ValueError: If an unknown field is given.
        """
        self._expect(ReviewState.REVIEWING)
        current = self.candidates[index]
        catalog_fields = {"name", "amount", "unit", "category", "location", "emoji", "expiry_estimate_days"}
        unknown = set(fields) - catalog_fields
        if unknown:
            raise ValueError(f"Neznámá pole: {', '.join(sorted(unknown))}")
        self.candidates[index] = replace(current, **self._coerce(fields))
        return self.candidates[index]

    def _coerce(self, fields: dict[str, Any]) -> dict[str, Any]:
        cat = self.catalog
        out: dict[str, Any] = {}
        for key, value in fields.items():
            match key:
                case "name":
                    out[key] = str(value or "")
                case "amount":
                    out[key] = normalize_amount(value or 0)
                case "unit":
                    out[key] = pick(value, cat.units, cat.default_unit)
                case "category":
                    out[key] = pick(value, cat.categories, cat.default_category)
                case "location":
                    out[key] = pick(value, cat.locations, cat.default_location) if value else None
                case "emoji":
                    out[key] = sanitize_emoji(value)
                case "expiry_estimate_days":
                    out[key] = normalize_expiry_days(value or 0)
        return out

    def remove(self, index: int) -> None:
        """Drop one row. An empty buffer is a valid state."""
        self._expect(ReviewState.REVIEWING)
        del self.candidates[index]

    def cancel(self) -> None:
        """Discard the buffer without persisting anything."""
        self._expect(ReviewState.IDLE, ReviewState.CAPTURING, ReviewState.REVIEWING)
        self.state = ReviewState.CANCELLED
        self._reset()

    def commit(
        self,
        store: InventoryDB,
        session: Session,
        location: str | None = None,
        now: datetime | None = None,
    ) -> list[int]:
        """Write every buffered row as a home item and clear the buffer.

        On failure the buffer is kept (state back to reviewing) so the user
        can retry; rows written before the failure are not rolled back.

        Raises:
            CommitError: If a write fails mid-way.
        """
        self._expect(ReviewState.REVIEWING)
        self.state = ReviewState.COMMITTING
        try:
            ids = write_candidates(store, session, self.candidates, location, now)
        except CommitError as e:
            self.alert = SAVE_ALERT
            # saved rows leave the buffer so a retry doesn't duplicate them
            del self.candidates[: len(e.saved_ids)]
            self.state = ReviewState.REVIEWING
            raise
        self._reset()
        return ids

    def _reset(self) -> None:
        self.candidates = []
        self.image = None
        self.state = ReviewState.IDLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "mode": self.mode,
            "alert": self.alert,
            "candidates": [c.to_dict() for c in self.candidates],
        }
