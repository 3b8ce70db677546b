"""Data models for inventory items, shopping entries, expenses and AI candidates."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

STATUS_SHOPPING = "shopping"
STATUS_HOME = "home"
STATUSES = (STATUS_SHOPPING, STATUS_HOME)

AMOUNT_MAX = 9999
EXPIRY_DAYS_MAX = 60
EXPENSE_MAX_CZK = 1_000_000

DEFAULT_ITEM_NAME = "Položka"
PLACEHOLDER_NAME = "Neznámá položka"
PLACEHOLDER_EMOJI = "🧺"


@dataclass
class InventoryItem:
    """A stored inventory or shopping row."""

    id: int
    name: str
    amount: float
    unit: str
    category: str
    status: str  # shopping | home
    location: str
    is_bought: bool = False
    emoji: str = ""
    expiry_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("expiry_date", "created_at", "updated_at"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        return data


@dataclass
class ShoppingListEntry:
    id: int
    name: str
    completed: bool = False
    created_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "completed": self.completed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ExpenseEntry:
    id: int
    label: str
    amount_czk: float
    created_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "amount_czk": self.amount_czk,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ReviewCandidate:
    """An AI-extracted row awaiting user confirmation. Never persisted as-is."""

    name: str
    amount: float = 1
    unit: str = "ks"
    category: str = "Ostatní"
    location: str | None = None
    emoji: str = ""
    expiry_estimate_days: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Recipe:
    title: str
    why: str = ""
    ingredients_used: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def placeholder_candidate(unit: str = "ks", category: str = "Ostatní") -> ReviewCandidate:
    """The single row shown when nothing could be recovered from the model."""
    return ReviewCandidate(
        name=PLACEHOLDER_NAME,
        amount=1,
        unit=unit,
        category=category,
        emoji=PLACEHOLDER_EMOJI,
        expiry_estimate_days=0,
    )
