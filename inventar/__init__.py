"""Household inventory and shopping list with AI receipt/fridge scanning."""

from .config import (
    AIConfig,
    AppConfig,
    CatalogConfig,
    InventarConfig,
    ServerConfig,
    load_config,
)
from .db import ExpenseDB, InventoryDB, ShoppingListDB
from .models import ExpenseEntry, InventoryItem, Recipe, ReviewCandidate, ShoppingListEntry
from .review import CommitError, ReviewSession, ReviewState
from .session import AnonymousAuth, Session
from .vision import AIQuotaError, AIRequestError, ImagePayload, VisionBackend, create_backend

__all__ = [
    "InventoryItem",
    "ShoppingListEntry",
    "ExpenseEntry",
    "ReviewCandidate",
    "Recipe",
    "InventoryDB",
    "ShoppingListDB",
    "ExpenseDB",
    "AnonymousAuth",
    "Session",
    "ReviewSession",
    "ReviewState",
    "CommitError",
    "VisionBackend",
    "ImagePayload",
    "AIRequestError",
    "AIQuotaError",
    "create_backend",
    "InventarConfig",
    "AppConfig",
    "CatalogConfig",
    "AIConfig",
    "ServerConfig",
    "load_config",
]
