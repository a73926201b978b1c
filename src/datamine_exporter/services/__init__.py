"""Services for building, enriching and fetching spreadsheet datasets."""

from datamine_exporter.services.enrichment import (
    EnrichmentRule,
    MissingSheetPolicy,
    enrich,
)
from datamine_exporter.services.record_builder import build_dataset, build_records

__all__ = [
    "EnrichmentRule",
    "MissingSheetPolicy",
    "build_dataset",
    "build_records",
    "enrich",
]
