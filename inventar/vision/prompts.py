"""Prompt templates for photo analysis, emoji and recipe suggestions."""

from __future__ import annotations

from ..config import CatalogConfig

_MODE_TEXT = {
    "receipt": (
        "Jde o fotku účtenky. Zaměř se na názvy produktů. Ceny mohou pomoci "
        "s rozpoznáním řádků, ale do výsledku je NEVYPISUJ."
    ),
    "fridge": (
        "Jde o fotku lednice / zásob. Odhadni množství (ks/gramy/ml) podle toho, "
        "co vidíš."
    ),
}

MODES = tuple(_MODE_TEXT)


def analyze_prompt(mode: str, catalog: CatalogConfig) -> str:
    mode_text = _MODE_TEXT.get(mode, _MODE_TEXT["fridge"])
    return f"""\
Jsi asistent pro "Domácí Inventář".
{mode_text}

Vrať POUZE validní JSON pole bez markdown a bez dalšího textu.
Formát je přesně:
[
  {{"name": "...", "amount": 1, "unit": "{catalog.default_unit}", "category": "{catalog.default_category}", "emoji": "🍎", "expiryEstimateDays": 7}}
]

Pravidla:
- name: česky, krátce (např. "Mléko", "Chléb", "Kuřecí prsa")
- amount: číslo (odhad)
- unit: jedna z {", ".join(catalog.units)}
- category: jedna z {", ".join(catalog.categories)}
- emoji: jedno emoji (nejvýstižnější)
- expiryEstimateDays: celé číslo 0 až 60 (odhad do spotřeby)

Pokud si nejsi jistý, použij category "{catalog.default_category}", unit "{catalog.default_unit}" a amount 1."""


def emoji_prompt(name: str | None, category: str | None) -> str:
    return f"""\
Vyber JEDNO emoji pro položku domácího inventáře.
Vrať pouze emoji znak, bez dalších slov.
Položka: {name or "Položka"}
Kategorie: {category or "Ostatní"}"""


def recipes_prompt(names: list[str]) -> str:
    return f"""\
Navrhni 3 jednoduché recepty na základě těchto surovin doma (v češtině).
Suroviny: {", ".join(names) or "žádné"}

Vrať POUZE validní JSON pole bez markdown a bez dalšího textu:
[
  {{
    "title": "Název receptu",
    "why": "Proč se hodí k surovinám",
    "ingredientsUsed": ["...","..."],
    "steps": ["...","...","..."]
  }}
]"""
