"""Turning free-form model text into candidate inventory rows.

Parsing is an ordered chain of strategies. Each one either recovers rows or
gives up, and the first success wins:

1. ``JSON``: the first bracketed array in the text, parsed strictly.
2. ``HEURISTIC``: ``label: value`` pairs on each line ("Produkt: Mléko,
   množství: 2, jednotka: l").
3. ``PLACEHOLDER``: a single "unknown item" row, so the review step always
   has something to show.
"""

from __future__ import annotations

import enum
import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..config import CatalogConfig
from ..models import (
    PLACEHOLDER_EMOJI,
    PLACEHOLDER_NAME,
    Recipe,
    ReviewCandidate,
    placeholder_candidate,
)
from ..normalize import normalize_candidate


class ParseStrategy(enum.Enum):
    JSON = "json"
    HEURISTIC = "heuristic"
    PLACEHOLDER = "placeholder"


@dataclass
class ParseResult:
    strategy: ParseStrategy
    rows: list[dict[str, Any]] = field(default_factory=list)


_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")

# Canonical field → accepted labels (lowercase, Czech and English)
_LABELS: dict[str, tuple[str, ...]] = {
    "name": ("produkt", "položka", "polozka", "název", "nazev", "name", "item", "product"),
    "amount": ("množství", "mnozstvi", "počet", "pocet", "quantity", "amount", "qty"),
    "unit": ("jednotka", "unit"),
    "location": ("umístění", "umisteni", "lokace", "location"),
    "category": ("kategorie", "category"),
}
_LABEL_TO_FIELD = {label: key for key, labels in _LABELS.items() for label in labels}
_PAIR_RE = re.compile(
    r"(?<!\w)(?P<label>" + "|".join(sorted(map(re.escape, _LABEL_TO_FIELD), key=len, reverse=True)) + r")"
    r"\s*[:=]\s*(?P<value>[^,;\n]*)",
    re.IGNORECASE,
)


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip())


def _parse_json(text: str) -> list[dict[str, Any]] | None:
    match = _ARRAY_RE.search(_strip_fences(text))
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(parsed, list):
        return None
    rows = [x for x in parsed if isinstance(x, dict)]
    return rows or None


def _parse_number(value: str) -> float | None:
    match = _NUMBER_RE.search(value)
    if not match:
        return None
    n = float(match.group(0).replace(",", "."))
    return int(n) if n.is_integer() else n


def _parse_heuristic(text: str) -> list[dict[str, Any]] | None:
    rows: list[dict[str, Any]] = []
    for line in re.split(r"[\n;]", text):
        row: dict[str, Any] = {}
        for m in _PAIR_RE.finditer(line):
            key = _LABEL_TO_FIELD[m.group("label").lower()]
            value = m.group("value").strip().strip("\"'*")
            if key in row or not value:
                continue
            if key == "amount":
                number = _parse_number(value)
                if number is None:
                    continue
                row[key] = number
                # "množství: 500 g" carries the unit too
                rest = value[_NUMBER_RE.search(value).end():].strip()
                if rest and "unit" not in row:
                    row["unit"] = rest.split()[0].lower()
            elif key == "unit":
                row[key] = value.split()[0].lower()
            else:
                row[key] = value
        if row.get("name"):
            rows.append(row)
    return rows or None


def _placeholder_row() -> dict[str, Any]:
    return {
        "name": PLACEHOLDER_NAME,
        "amount": 1,
        "unit": "ks",
        "category": "Ostatní",
        "emoji": PLACEHOLDER_EMOJI,
        "expiry_estimate_days": 0,
    }


_STRATEGIES: list[tuple[ParseStrategy, Callable[[str], list[dict[str, Any]] | None]]] = [
    (ParseStrategy.JSON, _parse_json),
    (ParseStrategy.HEURISTIC, _parse_heuristic),
]


def parse_response(text: Any) -> ParseResult:
    """Extract raw item rows from model text. Never raises, never empty."""
    if isinstance(text, str) and text.strip():
        for strategy, parse in _STRATEGIES:
            rows = parse(text)
            if rows:
                return ParseResult(strategy=strategy, rows=rows)
    return ParseResult(strategy=ParseStrategy.PLACEHOLDER, rows=[_placeholder_row()])


def extract_candidates(
    text: Any, catalog: CatalogConfig
) -> tuple[ParseStrategy, list[ReviewCandidate]]:
    """Parse and normalize model text into reviewable candidates.

    Rows whose name is empty are dropped; if nothing survives, the
    placeholder row is returned instead.
    """
    result = parse_response(text)
    candidates = [
        c for c in (normalize_candidate(row, catalog) for row in result.rows) if c is not None
    ]
    if not candidates:
        return ParseStrategy.PLACEHOLDER, [
            placeholder_candidate(catalog.default_unit, catalog.default_category)
        ]
    if result.strategy is ParseStrategy.HEURISTIC:
        # line-oriented answers name the location inline or not at all
        for c in candidates:
            c.location = c.location or catalog.default_location
    return result.strategy, candidates


def extract_recipes(text: Any, limit: int = 3) -> list[Recipe]:
    """Parse recipe suggestions; untitled entries are dropped."""
    rows = _parse_json(text) if isinstance(text, str) else None
    recipes: list[Recipe] = []
    for r in rows or []:
        title = str(r.get("title") or "").strip()
        if not title:
            continue
        used = r.get("ingredientsUsed", r.get("ingredients_used"))
        steps = r.get("steps")
        recipes.append(
            Recipe(
                title=title,
                why=str(r.get("why") or "").strip(),
                ingredients_used=[str(x) for x in used][:12] if isinstance(used, list) else [],
                steps=[str(x) for x in steps][:8] if isinstance(steps, list) else [],
            )
        )
    return recipes[:limit]
