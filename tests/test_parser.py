"""Tests for the model-text parser chain."""

import json

import pytest

from inventar.config import CatalogConfig
from inventar.models import PLACEHOLDER_NAME
from inventar.vision.parser import (
    ParseStrategy,
    extract_candidates,
    extract_recipes,
    parse_response,
)

CATALOG = CatalogConfig()


class TestParseResponse:
    def test_json_array(self):
        rows = [
            {"name": "Mléko", "amount": 2, "unit": "l"},
            {"name": "Chléb", "amount": 1, "unit": "ks"},
        ]
        result = parse_response(json.dumps(rows, ensure_ascii=False))
        assert result.strategy is ParseStrategy.JSON
        assert result.rows == rows

    def test_json_with_markdown_fences(self):
        text = """```json
[
  {"name": "Vejce", "amount": 10, "unit": "ks"}
]
```"""
        result = parse_response(text)
        assert result.strategy is ParseStrategy.JSON
        assert result.rows[0]["name"] == "Vejce"

    def test_json_surrounded_by_prose(self):
        text = 'Tady je výsledek: [{"name": "Sýr"}] Doufám, že to pomůže.'
        result = parse_response(text)
        assert result.strategy is ParseStrategy.JSON
        assert result.rows == [{"name": "Sýr"}]

    def test_heuristic_line(self):
        result = parse_response("Produkt: Mléko, množství: 2, jednotka: l")
        assert result.strategy is ParseStrategy.HEURISTIC
        assert result.rows == [{"name": "Mléko", "amount": 2, "unit": "l"}]

    def test_heuristic_multiple_lines_and_unit_suffix(self):
        text = "Název: Mouka, množství: 1 kg\nNázev: Cukr; Položka: Sůl, počet: 2"
        result = parse_response(text)
        assert result.strategy is ParseStrategy.HEURISTIC
        assert result.rows[0] == {"name": "Mouka", "amount": 1, "unit": "kg"}
        assert [r["name"] for r in result.rows] == ["Mouka", "Cukr", "Sůl"]
        assert result.rows[2]["amount"] == 2

    def test_broken_json_falls_back_to_heuristic(self):
        text = '[{"name": "Mléko", "amount": 2,'  + "\nname: Jogurt"
        result = parse_response(text)
        assert result.strategy is ParseStrategy.HEURISTIC
        assert result.rows == [{"name": "Jogurt"}]

    @pytest.mark.parametrize("text", ["", "   ", None, "Na fotce nic nevidím.", "[]"])
    def test_never_empty(self, text):
        result = parse_response(text)
        assert result.rows
        assert result.strategy is ParseStrategy.PLACEHOLDER
        assert result.rows[0]["name"] == PLACEHOLDER_NAME


class TestExtractCandidates:
    def test_heuristic_gets_default_location(self):
        strategy, candidates = extract_candidates(
            "Produkt: Mléko, množství: 2, jednotka: l", CATALOG
        )
        assert strategy is ParseStrategy.HEURISTIC
        assert len(candidates) == 1
        c = candidates[0]
        assert (c.name, c.amount, c.unit, c.location) == ("Mléko", 2, "l", "Spíž")

    def test_json_rows_normalized(self):
        text = json.dumps([
            {"name": "Kuřecí prsa", "amount": 50000, "unit": "balení", "category": "Maso"},
        ])
        _, candidates = extract_candidates(text, CATALOG)
        c = candidates[0]
        assert c.amount == 9999
        assert c.unit == "ks"
        assert c.category == "Maso"
        assert c.location is None

    def test_empty_names_dropped(self):
        text = json.dumps([{"name": ""}, {"name": "Banán"}, {"name": "   "}])
        _, candidates = extract_candidates(text, CATALOG)
        assert [c.name for c in candidates] == ["Banán"]

    def test_all_names_empty_gives_placeholder(self):
        strategy, candidates = extract_candidates(json.dumps([{"name": ""}]), CATALOG)
        assert strategy is ParseStrategy.PLACEHOLDER
        assert len(candidates) == 1
        assert candidates[0].name == PLACEHOLDER_NAME


class TestExtractRecipes:
    def test_parse_recipes(self):
        text = json.dumps([
            {
                "title": "Omeleta",
                "why": "Máte vejce",
                "ingredientsUsed": ["Vejce", "Sýr"],
                "steps": ["Rozšlehat", "Osmažit"],
            },
            {"title": "", "steps": []},
            {"title": "Toast", "ingredientsUsed": [str(i) for i in range(20)]},
            {"title": "Palačinky"},
            {"title": "Čtvrtý"},
        ])
        recipes = extract_recipes(text)
        assert [r.title for r in recipes] == ["Omeleta", "Toast", "Palačinky"]
        assert recipes[0].ingredients_used == ["Vejce", "Sýr"]
        assert len(recipes[1].ingredients_used) == 12

    def test_garbage_gives_empty_list(self):
        assert extract_recipes("Žádné recepty") == []
        assert extract_recipes(None) == []
