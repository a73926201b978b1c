"""Output service writing an enriched dataset to disk.

Writes one ``<normalized_title>.json`` file per sheet and the plain-text
listing of every sheet's unique entry ids.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from datamine_exporter.output.json_generator import JsonGenerator, normalize_filename
from datamine_exporter.spreadsheet_document import Dataset, Record
from datamine_exporter.utils.exceptions import ExportError, FieldMissingError

logger = logging.getLogger(__name__)

UNIQUE_ENTRY_ID_FIELD = "unique_entry_id"
UNIQUE_ENTRY_IDS_FILENAME = "unique_entry_ids.txt"


@dataclass
class SheetExport:
    """Where one sheet was written."""

    sheet_title: str
    """Original sheet title."""

    path: Path
    """JSON file the records were written to."""

    record_count: int
    """Number of records written."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet": self.sheet_title,
            "path": str(self.path),
            "records": self.record_count,
        }


@dataclass
class ExportSummary:
    """Result of exporting a whole dataset."""

    sheets: list[SheetExport] = field(default_factory=list)
    unique_ids_path: Path | None = None

    @property
    def record_count(self) -> int:
        return sum(sheet.record_count for sheet in self.sheets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheets": [sheet.to_dict() for sheet in self.sheets],
            "records": self.record_count,
            "unique_ids_path": str(self.unique_ids_path)
            if self.unique_ids_path
            else None,
        }


def render_unique_entry_ids(
    dataset: Dataset, id_prefix: str = "", id_suffix: str = ""
) -> str:
    """Render the unique entry id listing.

    Every sheet title is followed by one indented line per record that has
    a ``unique_entry_id``. Records without one, or with a blank one, are
    skipped.

    Raises:
        FieldMissingError: If an id is present but is not a string.
    """
    lines: list[str] = []
    for sheet_title, records in dataset.items():
        lines.append(sheet_title)
        for index, record in enumerate(records):
            entry_id = record.get(UNIQUE_ENTRY_ID_FIELD)
            if entry_id is None:
                continue
            if not isinstance(entry_id, str):
                raise FieldMissingError(
                    UNIQUE_ENTRY_ID_FIELD, sheet_title=sheet_title, record_index=index
                )
            lines.append(f"   {id_prefix}{entry_id}{id_suffix}")
    return "\n".join(lines) + "\n" if lines else ""


class OutputService:
    """Service writing per-sheet JSON files and the unique id listing.

    Every sheet is validated before the first file is written, so a dataset
    is either exported completely or not at all.
    """

    def __init__(
        self,
        export_dir: Path,
        json_generator: JsonGenerator | None = None,
    ) -> None:
        """Initialize the output service.

        Args:
            export_dir: Directory receiving the exported files.
            json_generator: Generator for rendering/validation.
        """
        self.export_dir = Path(export_dir)
        self.json_generator = json_generator or JsonGenerator()

    def sheet_path(self, sheet_title: str) -> Path:
        """Return the JSON file a sheet is exported to."""
        return self.export_dir / f"{normalize_filename(sheet_title)}.json"

    def export_dataset(
        self,
        dataset: Dataset,
        *,
        unique_ids: bool = False,
        id_prefix: str = "",
        id_suffix: str = "",
    ) -> ExportSummary:
        """Validate and write every sheet of a dataset.

        Args:
            dataset: Enriched dataset.
            unique_ids: Also write the unique entry id listing.
            id_prefix: Prefix for every listed id.
            id_suffix: Suffix for every listed id.

        Returns:
            ExportSummary listing the written files.

        Raises:
            ExportError: If records fail validation, a sheet title normalizes
                to nothing or to the same file as another sheet, or a file
                cannot be written.
            FieldMissingError: If a unique entry id is not a string.
        """
        rendered: dict[Path, tuple[str, list[Record], str]] = {}
        for sheet_title, records in dataset.items():
            if not normalize_filename(sheet_title):
                raise ExportError(
                    f"Sheet title '{sheet_title}' has no usable filename characters"
                )
            path = self.sheet_path(sheet_title)
            if path in rendered:
                raise ExportError(
                    f"Sheets '{rendered[path][0]}' and '{sheet_title}' "
                    "export to the same file",
                    path=str(path),
                )
            result = self.json_generator.validate(records)
            if not result.is_valid:
                raise ExportError(
                    f"Records of sheet '{sheet_title}' failed validation",
                    path=str(path),
                    errors=result.errors,
                )
            content = self.json_generator.render(records)
            rendered[path] = (sheet_title, records, content)

        unique_ids_content = (
            render_unique_entry_ids(dataset, id_prefix, id_suffix)
            if unique_ids
            else None
        )

        self._ensure_export_dir()
        summary = ExportSummary()
        for path, (sheet_title, records, content) in rendered.items():
            self._write(path, content)
            logger.info(f"Exported sheet '{sheet_title}' ({len(records)} records)")
            summary.sheets.append(
                SheetExport(
                    sheet_title=sheet_title, path=path, record_count=len(records)
                )
            )

        if unique_ids_content is not None:
            summary.unique_ids_path = self.export_dir / UNIQUE_ENTRY_IDS_FILENAME
            self._write(summary.unique_ids_path, unique_ids_content)

        return summary

    def export_unique_entry_ids(
        self,
        dataset: Dataset,
        id_prefix: str = "",
        id_suffix: str = "",
    ) -> Path:
        """Write ``unique_entry_ids.txt`` into the export directory."""
        content = render_unique_entry_ids(dataset, id_prefix, id_suffix)
        self._ensure_export_dir()
        path = self.export_dir / UNIQUE_ENTRY_IDS_FILENAME
        self._write(path, content)
        logger.info(f"Wrote unique entry ids to {path}")
        return path

    def _ensure_export_dir(self) -> None:
        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExportError(
                f"Failed to create export directory: {e}", path=str(self.export_dir)
            ) from e

    @staticmethod
    def _write(path: Path, content: str) -> None:
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ExportError(f"Failed to write {path}: {e}", path=str(path)) from e
