"""Command line interface for the datamine exporter.

Commands:
    export      Build, enrich and write every sheet, optionally fetch images.
    sheets      List sheet titles and their column titles.
    unique-ids  Write only the unique entry id listing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from datamine_exporter.config import Settings, validate_settings_on_startup
from datamine_exporter.services.export_pipeline import ExportOptions, ExportPipeline
from datamine_exporter.utils.exceptions import (
    CellError,
    ConfigurationError,
    DatamineError,
    SpreadsheetError,
)
from datamine_exporter.utils.logging import LogContext, configure_logging, get_logger

logger = get_logger(__name__)

app = typer.Typer(
    name="datamine-exporter",
    help="Export spreadsheet grid data to per-sheet JSON record files.",
    no_args_is_help=True,
    add_completion=False,
)

InputOpt = Annotated[
    Path | None,
    typer.Option(
        "--input",
        "-i",
        help="Read the API response from this file instead of the API/cache",
    ),
]
RefreshOpt = Annotated[
    bool, typer.Option("--refresh", help="Ignore the cached response")
]
LogLevelOpt = Annotated[
    str | None, typer.Option("--log-level", help="Override DATAMINE_LOG_LEVEL")
]


def _load_settings(**overrides: Any) -> Settings:
    """Build Settings from the environment plus non-None CLI overrides."""
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {errors}") from e


def _run(
    command: str,
    settings_overrides: dict[str, Any],
    body: Callable[[Settings], Coroutine[Any, Any, Any]],
) -> Any:
    """Run a command body with logging configured and errors reported.

    Any DatamineError is logged, printed as JSON to stderr and turned into
    exit code 1.
    """
    run_id = uuid.uuid4().hex[:12]
    debug = False
    try:
        settings = _load_settings(**settings_overrides)
        debug = settings.debug
        configure_logging(logging.DEBUG if debug else settings.log_level_int)
        with LogContext(run_id=run_id, command=command):
            validate_settings_on_startup(settings)
            return asyncio.run(body(settings))
    except DatamineError as e:
        logger.error(
            f"{command} failed: {e}", exc_info=debug, error_code=e.error_code.value
        )
        typer.echo(json.dumps(e.to_dict(), indent=2, ensure_ascii=False), err=True)
        raise typer.Exit(1) from e


@app.command()
def export(
    images: Annotated[
        bool,
        typer.Option("--images/--no-images", help="Download referenced images"),
    ] = False,
    refresh: RefreshOpt = False,
    overwrite_images: Annotated[
        bool,
        typer.Option("--overwrite-images", help="Re-download existing images"),
    ] = False,
    input_path: InputOpt = None,
    export_dir: Annotated[
        Path | None,
        typer.Option("--export-dir", help="Override DATAMINE_EXPORT_DIR"),
    ] = None,
    log_level: LogLevelOpt = None,
) -> None:
    """Build, enrich and write every sheet as JSON.

    Writes ``<export_dir>/<sheet>.json`` for each sheet and
    ``unique_entry_ids.txt``. With ``--images`` the images referenced by the
    records are downloaded afterwards.
    """

    async def body(settings: Settings) -> None:
        pipeline = ExportPipeline(settings)
        result = await pipeline.run(
            ExportOptions(
                input_path=input_path,
                refresh=refresh,
                images=images,
                overwrite_images=overwrite_images,
            )
        )
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))

    _run("export", {"export_dir": export_dir, "log_level": log_level}, body)


@app.command()
def sheets(
    input_path: InputOpt = None,
    refresh: RefreshOpt = False,
    log_level: LogLevelOpt = None,
) -> None:
    """List every sheet title with its normalized column titles."""

    async def body(settings: Settings) -> None:
        pipeline = ExportPipeline(settings)
        spreadsheet = await pipeline.load_spreadsheet(input_path, refresh)
        for sheet in spreadsheet.sheets:
            typer.echo(sheet.title)
            try:
                columns = sheet.column_titles()
            except (SpreadsheetError, CellError) as e:
                logger.warning("Sheet has no usable header", sheet=sheet.title)
                typer.echo(f"   ! {e}")
                continue
            for column in columns:
                typer.echo(f"   {column}")

    _run("sheets", {"log_level": log_level}, body)


@app.command("unique-ids")
def unique_ids(
    input_path: InputOpt = None,
    refresh: RefreshOpt = False,
    id_prefix: Annotated[
        str | None,
        typer.Option("--id-prefix", help="Override DATAMINE_ID_PREFIX"),
    ] = None,
    id_suffix: Annotated[
        str | None,
        typer.Option("--id-suffix", help="Override DATAMINE_ID_SUFFIX"),
    ] = None,
    export_dir: Annotated[
        Path | None,
        typer.Option("--export-dir", help="Override DATAMINE_EXPORT_DIR"),
    ] = None,
    log_level: LogLevelOpt = None,
) -> None:
    """Write only ``unique_entry_ids.txt``."""

    async def body(settings: Settings) -> None:
        pipeline = ExportPipeline(settings)
        spreadsheet = await pipeline.load_spreadsheet(input_path, refresh)
        dataset = pipeline.build(spreadsheet)
        path = pipeline.output_service.export_unique_entry_ids(
            dataset, settings.id_prefix, settings.id_suffix
        )
        typer.echo(str(path))

    _run(
        "unique-ids",
        {
            "id_prefix": id_prefix,
            "id_suffix": id_suffix,
            "export_dir": export_dir,
            "log_level": log_level,
        },
        body,
    )


def main() -> None:
    app()
