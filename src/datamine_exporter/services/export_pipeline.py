"""End-to-end export: load, build, enrich, write, download images.

The whole dataset is built and enriched before the first file is written,
so a fatal error anywhere leaves the export directory untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from datamine_exporter.config import Settings
from datamine_exporter.models import parse_spreadsheet
from datamine_exporter.output.output_service import ExportSummary, OutputService
from datamine_exporter.services.image_downloader import (
    ImageDownloader,
    ImageDownloadSummary,
)
from datamine_exporter.services.record_builder import build_dataset
from datamine_exporter.services.spreadsheet_client import SpreadsheetClient
from datamine_exporter.spreadsheet_document import Dataset, Spreadsheet
from datamine_exporter.utils.exceptions import ConfigurationError
from datamine_exporter.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)


@dataclass
class ExportOptions:
    """Per-run switches, on top of Settings."""

    input_path: Path | None = None
    """Read the response from this file instead of the API/cache."""

    refresh: bool = False
    """Ignore the cached response and download again."""

    images: bool = False
    """Download images after the JSON export."""

    overwrite_images: bool = False
    """Download images even when the file already exists."""

    unique_ids: bool = True
    """Write the unique entry id listing."""


@dataclass
class ExportResult:
    export: ExportSummary
    images: ImageDownloadSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self.export.to_dict()
        if self.images is not None:
            result["images"] = {
                "total": self.images.total,
                "downloaded": self.images.downloaded,
                "skipped": self.images.skipped,
            }
        return result


class ExportPipeline:
    """Coordinates the spreadsheet client, record building and outputs."""

    def __init__(
        self,
        settings: Settings,
        client: SpreadsheetClient | None = None,
        output_service: OutputService | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings.
            client: Spreadsheet client; built from settings when omitted.
            output_service: Output service; built from settings when omitted.
            transport: Optional httpx transport for every request (used by
                tests).
        """
        self.settings = settings
        self._transport = transport
        self.client = client or SpreadsheetClient(
            api_key=settings.get_api_key(),
            cache_dir=settings.cache_dir,
            base_url=settings.api_base_url,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )
        self.output_service = output_service or OutputService(settings.export_dir)

    async def load_spreadsheet(
        self, input_path: Path | None = None, refresh: bool = False
    ) -> Spreadsheet:
        """Load the spreadsheet from a file, the cache, or the API."""
        if input_path is not None:
            try:
                data = Path(input_path).read_bytes()
            except OSError as e:
                raise ConfigurationError(
                    f"Cannot read input file {input_path}: {e}", setting="input"
                ) from e
            logger.info("Loaded spreadsheet from file", path=str(input_path))
            return parse_spreadsheet(data)

        return await self.client.get(self.settings.spreadsheet_id, refresh=refresh)

    def build(self, spreadsheet: Spreadsheet) -> Dataset:
        """Build records for every sheet and apply the configured enrichment."""
        with timed_operation(logger, "build_dataset") as metrics:
            dataset = build_dataset(spreadsheet)
            metrics.items_processed = sum(len(records) for records in dataset.values())

            rule = self.settings.enrichment_rule()
            if rule is not None:
                rule.apply(dataset)
        return dataset

    async def run(self, options: ExportOptions | None = None) -> ExportResult:
        """Run a complete export.

        Raises:
            DatamineError: The first fatal error; nothing is written when it
                happens before the JSON export step.
        """
        opts = options or ExportOptions()

        spreadsheet = await self.load_spreadsheet(opts.input_path, opts.refresh)
        dataset = self.build(spreadsheet)

        summary = self.output_service.export_dataset(
            dataset,
            unique_ids=opts.unique_ids,
            id_prefix=self.settings.id_prefix,
            id_suffix=self.settings.id_suffix,
        )
        result = ExportResult(export=summary)

        if opts.images:
            downloader = ImageDownloader(
                self.settings.image_dir,
                concurrency=self.settings.image_concurrency,
                timeout=self.settings.request_timeout_seconds,
                overwrite=opts.overwrite_images,
                transport=self._transport,
            )
            result.images = await downloader.download_dataset(dataset)

        logger.info(
            "Export finished",
            sheets=len(summary.sheets),
            records=summary.record_count,
        )
        return result
