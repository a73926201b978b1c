from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from datamine_exporter.spreadsheet_document import Dataset
from datamine_exporter.utils.logging import clear_context

GridValue = str | int | float | dict[str, Any] | None


def cell_json(value: GridValue) -> dict[str, Any]:
    """Encode a Python value the way the API sends a cell.

    Strings and numbers carry both slots; dicts are passed through as raw
    cell data; None is a cell with no values.
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        extended = {"stringValue": value}
    else:
        extended = {"numberValue": value}
    return {"userEnteredValue": extended, "effectiveValue": extended}


def image_cell_json(url: str, function: str = "IMAGE") -> dict[str, Any]:
    return {
        "userEnteredValue": {"formulaValue": f'={function}("{url}")'},
        "effectiveValue": {},
    }


def sheet_json(title: str, rows: list[list[GridValue]] | None) -> dict[str, Any]:
    sheet: dict[str, Any] = {"properties": {"title": title, "index": 0}}
    if rows is not None:
        sheet["data"] = [
            {"rowData": [{"values": [cell_json(v) for v in row]} for row in rows]}
        ]
    return sheet


@pytest.fixture(autouse=True)
def _clear_log_context() -> None:
    clear_context()


@pytest.fixture
def make_spreadsheet_json() -> Callable[..., str]:
    """Factory building a grid-data response document from plain rows."""

    def factory(sheets: dict[str, list[list[GridValue]] | None]) -> str:
        return json.dumps(
            {
                "spreadsheetId": "test-sheet",
                "sheets": [sheet_json(title, rows) for title, rows in sheets.items()],
            }
        )

    return factory


@pytest.fixture
def datamine_sheets() -> dict[str, list[list[GridValue]]]:
    """A small datamine: recipes referencing items of the Food sheet."""
    return {
        "Food": [
            ["Name", "Filename", "Unique Entry Id", "Image"],
            ["Fish Pie", "fishpie", "food_1", image_cell_json("https://img.test/1")],
            [
                "Fish Pie",
                "fishpie_alt",
                "food_2",
                image_cell_json("https://img.test/2"),
            ],
            ["Cake", "cake", "food_3", None],
        ],
        "Recipes": [
            ["Name", "Category", "Unique Entry Id"],
            ["Fish Pie", "Food", "recipe_1"],
            ["Cake", "Food", "recipe_2"],
            ["Mystery Stew", "Stews", "recipe_3"],
        ],
        "Materials": [
            ["Name", "Item Count"],
            ["Wood", 3],
            [None, None],
        ],
    }


@pytest.fixture
def datamine_json(
    make_spreadsheet_json: Callable[..., str],
    datamine_sheets: dict[str, list[list[GridValue]]],
) -> str:
    return make_spreadsheet_json(datamine_sheets)


@pytest.fixture
def recipes_dataset() -> Dataset:
    """A built dataset ready for enrichment."""
    return {
        "Recipes": [
            {"name": "Fish Pie", "category": "Food"},
            {"name": "Salad", "category": "Food"},
        ],
        "Food": [
            {"name": "Fish Pie", "filename": "fishpie"},
            {"name": "Fish Pie", "filename": "fishpie_alt"},
            {"name": "Cake", "filename": "cake"},
        ],
    }
