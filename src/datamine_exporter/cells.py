"""Cell values and the rules that turn a cell into a display string.

A grid-data cell carries two optional values: the value the spreadsheet
engine computed (``effectiveValue``) and the literal or formula the author
typed (``userEnteredValue``). Image cells always compute to an empty value,
so their URL is recovered from the ``=IMAGE("<url>")`` formula instead.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal

from datamine_exporter.utils.exceptions import (
    UnsupportedCellTypeError,
    UnsupportedFormulaError,
)

# Exactly one double-quoted argument. Do not broaden: anything else in a
# formula cell is malformed source data.
IMAGE_FORMULA_RE = re.compile(r'=IMAGE\("(.*)"\)', re.IGNORECASE)


@dataclass(frozen=True)
class NumberValue:
    value: float


@dataclass(frozen=True)
class TextValue:
    value: str


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class FormulaValue:
    """Verbatim formula source, e.g. ``=IMAGE("https://...")``."""

    value: str


@dataclass(frozen=True)
class EmptyValue:
    pass


CellValue = NumberValue | TextValue | BoolValue | FormulaValue | EmptyValue


@dataclass(frozen=True)
class Cell:
    """One grid cell with its computed and as-entered values."""

    computed: CellValue | None = None
    as_entered: CellValue | None = None


Row = list[Cell]


def format_number(value: float) -> str:
    """Render a number the way the sheet shows it.

    ``3.0`` becomes ``"3"``. Fractions are written positionally from the
    shortest round-trip digits, so ``1e-07`` becomes ``"0.0000001"``.
    """
    value = float(value)
    if not math.isfinite(value):
        return repr(value)
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def resolve_cell(cell: Cell) -> str | None:
    """Resolve a cell to its effective string value.

    The computed value wins when it holds text or a number. An empty
    computed value falls back to the as-entered value, where only an
    IMAGE formula or an explicit empty value are understood.

    Args:
        cell: Cell to resolve.

    Returns:
        The resolved string, or None for a blank cell.

    Raises:
        UnsupportedFormulaError: If the as-entered formula is not IMAGE("...").
        UnsupportedCellTypeError: If a value variant has no string form in
            the slot it appears in.
    """
    computed = cell.computed
    if isinstance(computed, TextValue):
        return computed.value
    if isinstance(computed, NumberValue):
        return format_number(computed.value)
    if computed is not None and not isinstance(computed, EmptyValue):
        raise UnsupportedCellTypeError(type(computed).__name__, "computed")

    entered = cell.as_entered
    if isinstance(entered, FormulaValue):
        match = IMAGE_FORMULA_RE.search(entered.value)
        if match is None:
            raise UnsupportedFormulaError(entered.value)
        return match.group(1)
    if entered is None or isinstance(entered, EmptyValue):
        return None
    raise UnsupportedCellTypeError(type(entered).__name__, "as_entered")
