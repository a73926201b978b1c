"""Cross-sheet enrichment: attach derived list fields by joining sheets.

Records of one target sheet name, in a foreign-key field, another sheet of
the dataset. Every record of that sheet whose join field equals the target
record's source field contributes one value to a new list field on the
target record. With the default datamine rule, each recipe collects the
``filename`` of every item in its category sheet sharing the recipe's name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from datamine_exporter.spreadsheet_document import Dataset, Record
from datamine_exporter.utils.exceptions import FieldMissingError, SheetNotFoundError
from datamine_exporter.utils.logging import get_logger

logger = get_logger(__name__)


class MissingSheetPolicy(str, Enum):
    """What to do when a record references a sheet that does not exist."""

    WARN = "warn"
    """Log a warning and leave the record without the derived field."""

    ERROR = "error"
    """Raise SheetNotFoundError."""


@dataclass(frozen=True)
class EnrichmentRule:
    """A configured cross-sheet join."""

    target_sheet: str
    """Sheet whose records receive the derived field."""

    source_field: str
    """Field of a target record holding the match key."""

    foreign_key_field: str
    """Field of a target record naming the sheet to look in."""

    join_field: str
    """Field of a looked-up record compared with the match key."""

    output_field: str
    """Name of the derived list field added to target records."""

    value_field: str | None = None
    """Field collected from matching records; defaults to output_field."""

    missing_sheet: MissingSheetPolicy = MissingSheetPolicy.WARN

    def apply(self, dataset: Dataset) -> None:
        """Run this rule against a dataset in place."""
        enrich(
            dataset,
            self.target_sheet,
            self.source_field,
            self.foreign_key_field,
            self.join_field,
            self.output_field,
            value_field=self.value_field,
            missing_sheet=self.missing_sheet,
        )


def _require_str(record: Record, field: str, sheet: str, index: int) -> str:
    value = record.get(field)
    if not isinstance(value, str):
        raise FieldMissingError(field, sheet_title=sheet, record_index=index)
    return value


class _JoinIndex:
    """Lazily built ``sheet -> join key -> [(record index, record)]`` lookup.

    Preserves the order of the looked-up sheet, so collected values come out
    exactly as a full scan would produce them.
    """

    def __init__(self, dataset: Dataset, join_field: str) -> None:
        self._dataset = dataset
        self._join_field = join_field
        self._by_sheet: dict[str, dict[str, list[tuple[int, Record]]]] = {}

    def matches(self, sheet: str, key: str) -> list[tuple[int, Record]]:
        index = self._by_sheet.get(sheet)
        if index is None:
            index = {}
            for position, record in enumerate(self._dataset[sheet]):
                join_value = record.get(self._join_field)
                if isinstance(join_value, str):
                    index.setdefault(join_value, []).append((position, record))
            self._by_sheet[sheet] = index
        return index.get(key, [])


def enrich(
    dataset: Dataset,
    target_sheet: str,
    source_field: str,
    foreign_key_field: str,
    join_field: str,
    output_field: str,
    *,
    value_field: str | None = None,
    missing_sheet: MissingSheetPolicy = MissingSheetPolicy.WARN,
) -> None:
    """Attach a derived list field to every record of ``target_sheet``.

    The target sheet is taken out of the dataset while the join runs and put
    back under the same title and position afterwards, so it cannot be
    joined against itself.

    Args:
        dataset: Dataset to enrich in place.
        target_sheet: Title of the sheet whose records are enriched.
        source_field: Target record field holding the match key.
        foreign_key_field: Target record field naming the sheet to search.
        join_field: Field of searched records compared with the match key.
        output_field: Name of the derived field on target records.
        value_field: Field collected from matching records. Defaults to
            ``output_field``.
        missing_sheet: Policy for references to sheets not in the dataset.

    Raises:
        SheetNotFoundError: If ``target_sheet`` is absent, or a referenced
            sheet is absent under MissingSheetPolicy.ERROR.
        FieldMissingError: If a target record lacks the foreign key or source
            field, or a matching record lacks the collected field.
    """
    collected_field = value_field or output_field

    if target_sheet not in dataset:
        raise SheetNotFoundError(target_sheet)
    sheet_order = list(dataset)
    records = dataset.pop(target_sheet)

    skipped = 0
    try:
        join_index = _JoinIndex(dataset, join_field)

        for record_index, record in enumerate(records):
            lookup_sheet = _require_str(
                record, foreign_key_field, target_sheet, record_index
            )
            match_key = _require_str(record, source_field, target_sheet, record_index)

            if lookup_sheet not in dataset:
                if missing_sheet is MissingSheetPolicy.ERROR:
                    raise SheetNotFoundError(
                        lookup_sheet,
                        details={
                            "referenced_by": target_sheet,
                            "record": record_index,
                        },
                    )
                logger.warning(
                    "Referenced sheet not found, skipping record",
                    sheet=target_sheet,
                    record=record_index,
                    missing_sheet=lookup_sheet,
                )
                skipped += 1
                continue

            values: list[str] = []
            for position, candidate in join_index.matches(lookup_sheet, match_key):
                values.append(
                    _require_str(candidate, collected_field, lookup_sheet, position)
                )
            record[output_field] = values
    finally:
        dataset[target_sheet] = records
        for title in sheet_order:
            dataset[title] = dataset.pop(title)

    logger.debug(
        "Enriched sheet",
        sheet=target_sheet,
        field=output_field,
        records=len(records),
        skipped=skipped,
    )
