"""Grouping of already-loaded items and expenses for display."""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from .config import CatalogConfig
from .models import STATUS_HOME, STATUS_SHOPPING, ExpenseEntry, InventoryItem

NEAR_EXPIRY_DAYS = 2


def shopping_by_category(
    items: list[InventoryItem], catalog: CatalogConfig
) -> tuple[dict[str, list[InventoryItem]], list[InventoryItem]]:
    """Split shopping items into not-bought rows per category and the bought list."""
    groups: dict[str, list[InventoryItem]] = {c: [] for c in catalog.categories}
    bought: list[InventoryItem] = []
    for item in items:
        if item.status != STATUS_SHOPPING:
            continue
        if item.is_bought:
            bought.append(item)
            continue
        category = item.category if item.category in groups else catalog.default_category
        groups[category].append(item)
    return groups, bought


def home_by_location(
    items: list[InventoryItem], catalog: CatalogConfig
) -> dict[str, list[InventoryItem]]:
    """Home items per storage location, each list sorted by name."""
    groups: dict[str, list[InventoryItem]] = {loc: [] for loc in catalog.locations}
    for item in items:
        if item.status != STATUS_HOME:
            continue
        loc = item.location if item.location in groups else catalog.default_location
        groups[loc].append(item)
    for loc_items in groups.values():
        loc_items.sort(key=lambda i: (i.name or "").casefold())
    return groups


def days_left(expiry: datetime | None, now: datetime) -> int | None:
    if expiry is None:
        return None
    return math.ceil((expiry - now).total_seconds() / 86400)


def is_near_expiry(expiry: datetime | None, now: datetime) -> bool:
    left = days_left(expiry, now)
    return left is not None and 0 <= left <= NEAR_EXPIRY_DAYS


def expense_overview(
    expenses: list[ExpenseEntry], now: datetime | None = None, top: int = 7
) -> dict:
    """Month total, biggest labels this month and per-day sums for the last week."""
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    month = [e for e in expenses if e.created_at is not None and e.created_at >= month_start]

    by_label: dict[str, float] = defaultdict(float)
    for e in month:
        by_label[e.label or "Ostatní"] += e.amount_czk
    labels = sorted(by_label.items(), key=lambda kv: kv[1], reverse=True)[:top]

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    weekly = []
    for offset in range(6, -1, -1):
        start = today - timedelta(days=offset)
        end = start + timedelta(days=1)
        total = sum(
            e.amount_czk
            for e in expenses
            if e.created_at is not None and start <= e.created_at < end
        )
        weekly.append({"day": start.date().isoformat(), "value": total})

    return {
        "month_total": sum(e.amount_czk for e in month),
        "by_label": [{"label": k, "value": v} for k, v in labels],
        "weekly": weekly,
    }
