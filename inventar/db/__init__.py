"""SQLite document store for inventory items, shopping entries and expenses."""

from .expenses import ExpenseDB
from .inventory import InventoryDB, Subscription
from .schema import ensure_schema
from .shopping_list import ShoppingListDB

__all__ = [
    "ExpenseDB",
    "InventoryDB",
    "ShoppingListDB",
    "Subscription",
    "ensure_schema",
]
