"""Tests for configuration management module."""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import SecretStr, ValidationError

from datamine_exporter.config import (
    DEFAULT_SPREADSHEET_ID,
    Settings,
    validate_settings_on_startup,
)
from datamine_exporter.services.enrichment import MissingSheetPolicy


class TestSettings:
    """Tests for the Settings class."""

    def test_default_values(self) -> None:
        """Test default configuration values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.get_api_key() == ""
        assert settings.spreadsheet_id == DEFAULT_SPREADSHEET_ID
        assert settings.api_base_url == "https://sheets.googleapis.com/v4/spreadsheets/"
        assert settings.request_timeout_seconds == 120.0
        assert settings.cache_dir == Path(".cache/spreadsheets")

        assert settings.export_dir == Path("export")
        assert settings.image_dir == Path("export/images")
        assert settings.image_concurrency == 10
        assert settings.id_prefix == ""
        assert settings.id_suffix == ""

        assert settings.enrichment_enabled is True
        assert settings.enrichment_target_sheet == "Recipes"
        assert settings.enrichment_value_field == "filename"
        assert settings.enrichment_output_field == "filenames"
        assert settings.enrichment_strict is False

        assert settings.log_level == "INFO"
        assert settings.debug is False

    def test_environment_variables(self) -> None:
        """Test loading settings from environment variables."""
        env = {
            "DATAMINE_API_KEY": "AIza-test",
            "DATAMINE_SPREADSHEET_ID": "abc123",
            "DATAMINE_EXPORT_DIR": "/tmp/out",
            "DATAMINE_IMAGE_CONCURRENCY": "4",
            "DATAMINE_ENRICHMENT_STRICT": "true",
            "DATAMINE_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)

        assert settings.get_api_key() == "AIza-test"
        assert isinstance(settings.api_key, SecretStr)
        assert settings.spreadsheet_id == "abc123"
        assert settings.export_dir == Path("/tmp/out")
        assert settings.image_concurrency == 4
        assert settings.enrichment_strict is True
        assert settings.log_level == "DEBUG"
        assert settings.log_level_int == logging.DEBUG

    def test_env_file(self, tmp_path: Path) -> None:
        """Test loading settings from a .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("DATAMINE_ID_PREFIX=<\nDATAMINE_ID_SUFFIX=>\n")

        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=env_file)

        assert settings.id_prefix == "<"
        assert settings.id_suffix == ">"

    def test_cache_path(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(
                _env_file=None, cache_dir=Path("/var/cache"), spreadsheet_id="abc"
            )

        assert settings.cache_path == Path("/var/cache/abc")

    def test_api_key_hidden_in_repr(self) -> None:
        with patch.dict(os.environ, {"DATAMINE_API_KEY": "topsecret"}, clear=True):
            settings = Settings(_env_file=None)

        assert "topsecret" not in repr(settings)

    def test_to_safe_dict(self) -> None:
        with patch.dict(os.environ, {"DATAMINE_API_KEY": "topsecret"}, clear=True):
            settings = Settings(_env_file=None)

        data = settings.to_safe_dict()
        assert data["api_key"] == "***"
        assert data["export_dir"] == "export"

    def test_to_safe_dict_without_key(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.to_safe_dict()["api_key"] == "(not set)"


class TestSettingsValidation:
    """Tests for settings validators."""

    @pytest.mark.parametrize("level", ["LOUD", "", "trace"])
    def test_invalid_log_level(self, level: str) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None, log_level=level)

    @pytest.mark.parametrize("concurrency", [0, -1, 101])
    def test_invalid_image_concurrency(self, concurrency: int) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None, image_concurrency=concurrency)

    def test_invalid_timeout(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None, request_timeout_seconds=0)

    @pytest.mark.parametrize("spreadsheet_id", ["", "  ", "a/b", ".."])
    def test_invalid_spreadsheet_id(self, spreadsheet_id: str) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(_env_file=None, spreadsheet_id=spreadsheet_id)

    def test_spreadsheet_id_is_stripped(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None, spreadsheet_id="  abc  ")

        assert settings.spreadsheet_id == "abc"

    def test_empty_enrichment_field(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None, enrichment_join_field="")

        assert "enrichment_join_field" in str(exc_info.value)

    def test_empty_enrichment_field_allowed_when_disabled(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(
                _env_file=None, enrichment_enabled=False, enrichment_join_field=""
            )

        assert settings.enrichment_rule() is None


class TestEnrichmentRule:
    """Tests for Settings.enrichment_rule."""

    def test_default_rule(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            rule = Settings(_env_file=None).enrichment_rule()

        assert rule is not None
        assert rule.target_sheet == "Recipes"
        assert rule.source_field == "name"
        assert rule.foreign_key_field == "category"
        assert rule.join_field == "name"
        assert rule.value_field == "filename"
        assert rule.output_field == "filenames"
        assert rule.missing_sheet is MissingSheetPolicy.WARN

    def test_strict_rule(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            rule = Settings(_env_file=None, enrichment_strict=True).enrichment_rule()

        assert rule is not None
        assert rule.missing_sheet is MissingSheetPolicy.ERROR

    def test_empty_value_field_collects_output_field(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            rule = Settings(_env_file=None, enrichment_value_field="").enrichment_rule()

        assert rule is not None
        assert rule.value_field is None


class TestValidateSettingsOnStartup:
    """Tests for validate_settings_on_startup."""

    def test_warns_without_key_or_cache(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None, cache_dir=tmp_path)

        with caplog.at_level(logging.INFO):
            validate_settings_on_startup(settings)

        assert "DATAMINE_API_KEY is not configured" in caplog.text
        assert "Configuration loaded" in caplog.text

    def test_no_warning_with_cache(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None, cache_dir=tmp_path)
        settings.cache_path.write_text("{}")

        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(settings)

        assert "DATAMINE_API_KEY" not in caplog.text

    def test_no_warning_with_key(self, caplog: pytest.LogCaptureFixture) -> None:
        with patch.dict(os.environ, {"DATAMINE_API_KEY": "k"}, clear=True):
            settings = Settings(_env_file=None)

        with caplog.at_level(logging.WARNING):
            validate_settings_on_startup(settings)

        assert "DATAMINE_API_KEY" not in caplog.text
