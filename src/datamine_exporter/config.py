"""Configuration management for the datamine exporter.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
DATAMINE_ prefix, or via a .env file in the working directory.

Environment Variables:
    DATAMINE_API_KEY: Spreadsheet API key (required unless the cache is warm)
    DATAMINE_SPREADSHEET_ID: Spreadsheet to export
    DATAMINE_API_BASE_URL: Spreadsheet API endpoint
    DATAMINE_CACHE_DIR: Directory for cached API responses
    DATAMINE_EXPORT_DIR: Directory for exported JSON files (default: export)
    DATAMINE_IMAGE_DIR: Directory for downloaded images (default: export/images)
    DATAMINE_IMAGE_CONCURRENCY: Max in-flight image downloads (default: 10)
    DATAMINE_REQUEST_TIMEOUT_SECONDS: HTTP timeout (default: 120)
    DATAMINE_ENRICHMENT_ENABLED: Run the cross-sheet join (default: true)
    DATAMINE_ENRICHMENT_TARGET_SHEET: Sheet receiving the derived field
    DATAMINE_ENRICHMENT_SOURCE_FIELD: Target field holding the match key
    DATAMINE_ENRICHMENT_FOREIGN_KEY_FIELD: Target field naming the lookup sheet
    DATAMINE_ENRICHMENT_JOIN_FIELD: Lookup field compared with the match key
    DATAMINE_ENRICHMENT_VALUE_FIELD: Lookup field collected into the list
    DATAMINE_ENRICHMENT_OUTPUT_FIELD: Name of the derived list field
    DATAMINE_ENRICHMENT_STRICT: Fail on references to missing sheets
    DATAMINE_ID_PREFIX: Prefix for unique entry id listing lines
    DATAMINE_ID_SUFFIX: Suffix for unique entry id listing lines
    DATAMINE_LOG_LEVEL: Logging level (default: INFO)
    DATAMINE_DEBUG: Enable debug mode (default: false)
"""

import logging
from pathlib import Path
from typing import Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from datamine_exporter.services.enrichment import EnrichmentRule, MissingSheetPolicy

DEFAULT_SPREADSHEET_ID = "13d_LAJPlxMa_DubPTuirkIV4DERBMXbrWQsmSh8ReK4"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Example .env file:
        DATAMINE_API_KEY=AIza...
        DATAMINE_LOG_LEVEL=DEBUG
        DATAMINE_IMAGE_CONCURRENCY=4
    """

    model_config = SettingsConfigDict(
        env_prefix="DATAMINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Spreadsheet API Settings
    # =========================================================================

    api_key: SecretStr = SecretStr("")
    """Spreadsheet API key. Only needed when the response is not cached."""

    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID
    """Identifier of the spreadsheet to export."""

    api_base_url: str = "https://sheets.googleapis.com/v4/spreadsheets/"
    """Base URL of the spreadsheets endpoint; the id is appended."""

    request_timeout_seconds: float = 120.0
    """Timeout for spreadsheet and image requests."""

    cache_dir: Path = Path(".cache/spreadsheets")
    """Directory holding one cached response per spreadsheet id."""

    # =========================================================================
    # Export Settings
    # =========================================================================

    export_dir: Path = Path("export")
    """Directory receiving one JSON file per sheet."""

    image_dir: Path = Path("export/images")
    """Directory receiving downloaded images as <filename>.png."""

    image_concurrency: int = 10
    """Maximum number of image downloads in flight."""

    id_prefix: str = ""
    """Prepended to every id in the unique entry id listing."""

    id_suffix: str = ""
    """Appended to every id in the unique entry id listing."""

    # =========================================================================
    # Enrichment Settings
    # =========================================================================

    enrichment_enabled: bool = True
    enrichment_target_sheet: str = "Recipes"
    enrichment_source_field: str = "name"
    enrichment_foreign_key_field: str = "category"
    enrichment_join_field: str = "name"
    enrichment_value_field: str = "filename"
    enrichment_output_field: str = "filenames"

    enrichment_strict: bool = False
    """Fail instead of warning when a record references a missing sheet."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional logging and error details."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("image_concurrency")
    @classmethod
    def validate_image_concurrency(cls, v: int) -> int:
        """Validate image concurrency is reasonable."""
        if not 1 <= v <= 100:
            raise ValueError(f"image_concurrency must be between 1 and 100, got {v}")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"request_timeout_seconds must be positive, got {v}")
        return v

    @field_validator("spreadsheet_id")
    @classmethod
    def validate_spreadsheet_id(cls, v: str) -> str:
        """Validate the spreadsheet id is usable as a cache filename."""
        v = v.strip()
        if not v or "/" in v or v in {".", ".."}:
            raise ValueError(f"Invalid spreadsheet_id: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_enrichment_fields(self) -> "Settings":
        """Validate the enrichment rule is complete when enabled."""
        if not self.enrichment_enabled:
            return self
        required = {
            "enrichment_target_sheet": self.enrichment_target_sheet,
            "enrichment_source_field": self.enrichment_source_field,
            "enrichment_foreign_key_field": self.enrichment_foreign_key_field,
            "enrichment_join_field": self.enrichment_join_field,
            "enrichment_output_field": self.enrichment_output_field,
        }
        empty = [name for name, value in required.items() if not value]
        if empty:
            names = ", ".join(empty)
            raise ValueError(f"Enrichment is enabled but settings are empty: {names}")
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    @property
    def cache_path(self) -> Path:
        """Cache file for the configured spreadsheet."""
        return self.cache_dir / self.spreadsheet_id

    def get_api_key(self) -> str:
        """Get the API key value.

        Returns:
            The API key string. Returns empty string if not set.

        Note:
            Direct access to api_key returns a SecretStr which prevents
            accidental logging.
        """
        return self.api_key.get_secret_value()

    def enrichment_rule(self) -> EnrichmentRule | None:
        """Build the configured enrichment rule, or None when disabled."""
        if not self.enrichment_enabled:
            return None
        return EnrichmentRule(
            target_sheet=self.enrichment_target_sheet,
            source_field=self.enrichment_source_field,
            foreign_key_field=self.enrichment_foreign_key_field,
            join_field=self.enrichment_join_field,
            output_field=self.enrichment_output_field,
            value_field=self.enrichment_value_field or None,
            missing_sheet=MissingSheetPolicy.ERROR
            if self.enrichment_strict
            else MissingSheetPolicy.WARN,
        )

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary with sensitive values masked."""
        data = self.model_dump(mode="json")
        data["api_key"] = "***" if self.get_api_key() else "(not set)"
        return data


def validate_settings_on_startup(s: Settings) -> None:
    """Log warnings for settings that will make a run fail later.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if not s.get_api_key() and not s.cache_path.exists():
        logger.warning(
            "DATAMINE_API_KEY is not configured and no cached response exists "
            f"at {s.cache_path}. Downloading the spreadsheet will fail."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"spreadsheet_id={s.spreadsheet_id}, export_dir={s.export_dir}, "
        f"image_concurrency={s.image_concurrency}"
    )
