"""Flatten sheets into column-keyed records.

Each data row becomes one record mapping the normalized column title to the
resolved cell value. Rows where every value is blank are dropped, which
absorbs the trailing empty rows spreadsheets tend to carry.
"""

from __future__ import annotations

from datamine_exporter.cells import resolve_cell
from datamine_exporter.spreadsheet_document import (
    Dataset,
    Record,
    Sheet,
    Spreadsheet,
)
from datamine_exporter.utils.exceptions import CellError
from datamine_exporter.utils.logging import get_logger

logger = get_logger(__name__)

# Key used for cells beyond the last column title.
EXTRA_COLUMN_KEY = ""


def build_records(sheet: Sheet) -> list[Record]:
    """Build one record per non-blank data row of a sheet.

    Rows shorter than the header are padded with None. Cells past the last
    header are stored under the empty-string key; when a row has several
    such cells the last one wins.

    Args:
        sheet: Sheet to flatten.

    Returns:
        Records in row order, keys in column order.

    Raises:
        SpreadsheetError: If the sheet has no grid, no header row, or a blank
            column title.
        CellError: If a cell cannot be resolved; annotated with the sheet,
            row and column.
    """
    columns = sheet.column_titles()
    records: list[Record] = []

    # Row numbers count the header as row 0.
    for row_index, row in enumerate(sheet.data_rows(), start=1):
        record: Record = {column: None for column in columns}
        for column_index, cell in enumerate(row):
            try:
                value = resolve_cell(cell)
            except CellError as exc:
                raise exc.with_context(
                    sheet=sheet.title, row=row_index, column=column_index
                )
            if column_index < len(columns):
                record[columns[column_index]] = value
            else:
                record[EXTRA_COLUMN_KEY] = value

        if any(value is not None for value in record.values()):
            records.append(record)

    logger.debug(
        "Built records",
        sheet=sheet.title,
        rows=len(sheet.data_rows()),
        records=len(records),
    )
    return records


def build_dataset(spreadsheet: Spreadsheet) -> Dataset:
    """Build records for every sheet, keyed by sheet title.

    The first sheet that fails aborts the whole dataset.
    """
    dataset: Dataset = {}
    for sheet in spreadsheet.sheets:
        dataset[sheet.title] = build_records(sheet)
    return dataset
