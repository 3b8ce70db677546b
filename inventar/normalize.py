"""Coercion of AI candidates and user input into the allowed enumerations."""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any

from .config import CatalogConfig
from .models import AMOUNT_MAX, EXPIRY_DAYS_MAX, ReviewCandidate

# Keyword → emoji, first match wins
_EMOJI_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("mléko",), "🥛"),
    (("chléb", "rohl"), "🥖"),
    (("sýr",), "🧀"),
    (("jabl",), "🍎"),
    (("ban",), "🍌"),
    (("rajč", "okurk"), "🥬"),
    (("mas",), "🥩"),
    (("kuř",), "🍗"),
    (("pivo",), "🍺"),
    (("víno",), "🍷"),
    (("šampon", "mýdlo", "prášek"), "🧴"),
]

_EMOJI_CATEGORIES: dict[str, str] = {
    "Chlazené": "🧊",
    "Pečivo": "🥐",
    "Ovoce & Zelenina": "🥦",
    "Maso": "🥩",
    "Drogerie": "🧼",
}

_DEFAULT_EMOJI = "🧺"

# Combining marks, variation selectors, ZWJ sequences and skin tones
_GRAPHEME_EXTEND = re.compile(
    "[\u0300-\u036f\u200d\ufe0e\ufe0f\U0001f3fb-\U0001f3ff\u20e3]"
)


def clamp_number(value: Any, minimum: float, maximum: float) -> float:
    """Clamp *value* into [minimum, maximum]; anything non-numeric becomes minimum."""
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
    try:
        n = float(value)
    except OverflowError:
        # int beyond float range
        return maximum if value > 0 else minimum
    except (TypeError, ValueError):
        return minimum
    if not math.isfinite(n):
        return minimum
    n = float(max(minimum, min(maximum, n)))
    return int(n) if n.is_integer() else n


def sanitize_emoji(value: Any) -> str:
    """Return the first user-visible character of *value*, or ``""``."""
    if not value or not isinstance(value, str):
        return ""
    text = value.strip()
    if not text:
        return ""
    end = 1
    while end < len(text):
        ch = text[end]
        if _GRAPHEME_EXTEND.match(ch) or unicodedata.combining(ch):
            end += 1
        elif text[end - 1] == "\u200d":
            end += 1
        else:
            break
    return text[:end]


def guess_emoji(name: str | None, category: str | None) -> str:
    """Keyword-based emoji used when the model doesn't supply one."""
    n = (name or "").lower()
    for keywords, emoji in _EMOJI_KEYWORDS:
        if any(k in n for k in keywords):
            return emoji
    return _EMOJI_CATEGORIES.get(category or "", _DEFAULT_EMOJI)


def pick(value: Any, allowed: tuple[str, ...], default: str) -> str:
    if isinstance(value, str) and value in allowed:
        return value
    return default


def normalize_amount(value: Any) -> float:
    return clamp_number(1 if value is None else value, 0, AMOUNT_MAX)


def normalize_expiry_days(value: Any) -> int:
    return int(round(clamp_number(0 if value is None else value, 0, EXPIRY_DAYS_MAX)))


def normalize_candidate(raw: Any, catalog: CatalogConfig) -> ReviewCandidate | None:
    """Coerce one raw model row into a ReviewCandidate.

    Out-of-set unit/category/location values are replaced with the catalog
    defaults and numbers are saturated into range. Returns None when the name
    is empty after trimming. Never raises.
    """
    if not isinstance(raw, dict):
        return None

    name = str(raw.get("name") or "").strip()
    if not name:
        return None

    amount = raw.get("amount")
    if amount is None:
        amount = raw.get("quantity")

    location = raw.get("location")
    return ReviewCandidate(
        name=name,
        amount=normalize_amount(amount),
        unit=pick(raw.get("unit"), catalog.units, catalog.default_unit),
        category=pick(raw.get("category"), catalog.categories, catalog.default_category),
        location=(
            pick(location, catalog.locations, catalog.default_location)
            if location is not None
            else None
        ),
        emoji=sanitize_emoji(raw.get("emoji")),
        expiry_estimate_days=normalize_expiry_days(
            raw.get("expiry_estimate_days", raw.get("expiryEstimateDays"))
        ),
    )
