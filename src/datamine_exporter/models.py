"""Pydantic models for the grid-data spreadsheet API response.

Only the parts of the response the exporter reads are modelled; everything
else (formats, merges, developer metadata) is ignored.
"""

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictStr,
    ValidationError,
)

from datamine_exporter.cells import (
    BoolValue,
    Cell,
    CellValue,
    EmptyValue,
    FormulaValue,
    NumberValue,
    TextValue,
)
from datamine_exporter.spreadsheet_document import Sheet, Spreadsheet
from datamine_exporter.utils.exceptions import InvalidSpreadsheetFormatError


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExtendedValue(_ApiModel):
    """A cell value as sent by the API: at most one of the fields is set.

    Keys the exporter does not know (``errorValue``) are dropped, so such a
    value reads as empty.
    """

    number_value: StrictFloat | None = Field(default=None, alias="numberValue")
    string_value: StrictStr | None = Field(default=None, alias="stringValue")
    bool_value: StrictBool | None = Field(default=None, alias="boolValue")
    formula_value: StrictStr | None = Field(default=None, alias="formulaValue")

    def to_cell_value(self) -> CellValue:
        """Convert to the matching cell value variant."""
        if self.number_value is not None:
            return NumberValue(self.number_value)
        if self.string_value is not None:
            return TextValue(self.string_value)
        if self.bool_value is not None:
            return BoolValue(self.bool_value)
        if self.formula_value is not None:
            return FormulaValue(self.formula_value)
        return EmptyValue()


class CellData(_ApiModel):
    user_entered_value: ExtendedValue | None = Field(
        default=None, alias="userEnteredValue"
    )
    effective_value: ExtendedValue | None = Field(default=None, alias="effectiveValue")

    def to_cell(self) -> Cell:
        return Cell(
            computed=self.effective_value.to_cell_value()
            if self.effective_value is not None
            else None,
            as_entered=self.user_entered_value.to_cell_value()
            if self.user_entered_value is not None
            else None,
        )


class RowData(_ApiModel):
    values: list[CellData] = Field(default_factory=list)


class GridData(_ApiModel):
    row_data: list[RowData] = Field(default_factory=list, alias="rowData")


class SheetProperties(_ApiModel):
    title: str


class SheetPayload(_ApiModel):
    """One sheet of the response. ``data`` is absent without grid data."""

    properties: SheetProperties
    data: list[GridData] | None = None

    def to_sheet(self) -> Sheet:
        if not self.data:
            return Sheet(title=self.properties.title, rows=None)
        grid = self.data[0]
        rows = [[cell.to_cell() for cell in row.values] for row in grid.row_data]
        return Sheet(title=self.properties.title, rows=rows)


class SpreadsheetPayload(_ApiModel):
    sheets: list[SheetPayload]

    def to_spreadsheet(self) -> Spreadsheet:
        return Spreadsheet(sheets=[sheet.to_sheet() for sheet in self.sheets])


def parse_spreadsheet(data: bytes | str) -> Spreadsheet:
    """Parse a grid-data API response into a Spreadsheet.

    Args:
        data: Raw JSON document.

    Returns:
        The parsed spreadsheet, sheets in response order.

    Raises:
        InvalidSpreadsheetFormatError: If the document is not valid JSON, does
            not match the expected shape, or repeats a sheet title.
    """
    try:
        payload = SpreadsheetPayload.model_validate_json(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise InvalidSpreadsheetFormatError(
            "Failed to parse spreadsheet response", errors=errors
        ) from e

    titles = [sheet.properties.title for sheet in payload.sheets]
    duplicates = sorted({title for title in titles if titles.count(title) > 1})
    if duplicates:
        raise InvalidSpreadsheetFormatError(
            "Spreadsheet contains duplicate sheet titles",
            details={"duplicate_titles": duplicates},
        )

    return payload.to_spreadsheet()
