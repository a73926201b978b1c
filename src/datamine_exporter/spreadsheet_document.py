"""Dataclasses representing a parsed spreadsheet and its flattened records."""

from __future__ import annotations

from dataclasses import dataclass

from datamine_exporter.cells import Row, resolve_cell
from datamine_exporter.utils.exceptions import (
    CellError,
    MissingColumnTitleError,
    NoColumnTitlesError,
    NoGridDataError,
)

RecordValue = str | list[str] | None
Record = dict[str, RecordValue]
Dataset = dict[str, list[Record]]


def normalize_column_name(column: str) -> str:
    """Lowercase ASCII letters and turn spaces into underscores.

    Every other character, including non-ASCII letters, is kept verbatim.
    """
    return "".join(
        "_" if char == " " else (char.lower() if char.isascii() else char)
        for char in column
    )


@dataclass
class Sheet:
    """A single sheet: its title and, when the API sent it, its grid.

    ``rows`` is None when the response carried no grid payload for the
    sheet. Row 0 is the header row.
    """

    title: str
    rows: list[Row] | None

    def _grid(self) -> list[Row]:
        if self.rows is None:
            raise NoGridDataError(self.title)
        return self.rows

    def column_titles(self) -> list[str]:
        """Resolve and normalize the header row.

        Returns:
            One normalized title per header cell, in column order.

        Raises:
            NoGridDataError: If the sheet has no grid payload.
            NoColumnTitlesError: If the grid has no rows.
            MissingColumnTitleError: If a header cell is blank.
        """
        grid = self._grid()
        if not grid:
            raise NoColumnTitlesError(self.title)

        titles: list[str] = []
        for index, cell in enumerate(grid[0]):
            try:
                title = resolve_cell(cell)
            except CellError as exc:
                raise exc.with_context(sheet=self.title, row=0, column=index)
            if title is None:
                raise MissingColumnTitleError(self.title, index)
            titles.append(normalize_column_name(title))
        return titles

    def data_rows(self) -> list[Row]:
        """Return every row after the header row."""
        grid = self._grid()
        if len(grid) <= 1:
            return []
        return grid[1:]


@dataclass
class Spreadsheet:
    """A parsed grid-data spreadsheet response."""

    sheets: list[Sheet]

    def find_sheet_by_title(self, title: str) -> Sheet | None:
        return next((sheet for sheet in self.sheets if sheet.title == title), None)

    @property
    def sheet_titles(self) -> list[str]:
        return [sheet.title for sheet in self.sheets]
