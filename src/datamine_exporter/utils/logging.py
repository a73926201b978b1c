"""Structured logging for the datamine exporter.

Every line written during one CLI invocation carries the run id, plus any
fields pushed with LogContext (the command, the sheet being processed).
Modules log through StructuredLogger, which appends ``key=value`` fields to
the message:

    logger = get_logger(__name__)

    with LogContext(run_id="3f9c0a", sheet="Recipes"):
        logger.info("Exported sheet", records=42)

    # [run_id=3f9c0a sheet=Recipes] Exported sheet | records=42
"""

import logging
import time
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_extra_context_var: ContextVar[Mapping[str, Any] | None] = ContextVar(
    "log_context", default=None
)


def get_run_id() -> str | None:
    """Return the id of the current export run, if one is set."""
    return _run_id_var.get()


def set_run_id(run_id: str | None) -> None:
    _run_id_var.set(run_id)


def get_extra_context() -> dict[str, Any]:
    """Return a copy of the fields added by enclosing LogContext blocks."""
    return dict(_extra_context_var.get() or {})


def set_extra_context(context: Mapping[str, Any]) -> None:
    _extra_context_var.set(dict(context))


def clear_context() -> None:
    """Drop the run id and every context field."""
    _run_id_var.set(None)
    _extra_context_var.set(None)


def _format_fields(fields: Mapping[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items())


@dataclass
class PerformanceMetrics:
    """Counters collected while a timed operation runs.

    Attributes:
        operation: Name of the operation, e.g. ``spreadsheet_download``.
        items_processed: Records, sheets or images handled.
        bytes_transferred: Bytes downloaded or written.
        custom_metrics: Any other counters worth reporting.
    """

    operation: str
    items_processed: int = 0
    bytes_transferred: int = 0
    custom_metrics: dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)
    duration_seconds: float | None = None

    @property
    def finished(self) -> bool:
        return self.duration_seconds is not None

    def finish(self) -> None:
        self.duration_seconds = time.perf_counter() - self.started_at

    def to_dict(self) -> dict[str, Any]:
        """Fields worth logging; zero counters are left out."""
        data: dict[str, Any] = {"operation": self.operation}
        if self.duration_seconds is not None:
            data["duration_seconds"] = round(self.duration_seconds, 3)
        for name in ("items_processed", "bytes_transferred"):
            value = getattr(self, name)
            if value:
                data[name] = value
        data.update(self.custom_metrics)
        return data


class StructuredLogFormatter(logging.Formatter):
    """Formatter that prefixes the message with the run id and context.

    The record itself is left untouched, so other handlers see the original
    message.
    """

    def format(self, record: logging.LogRecord) -> str:
        context: dict[str, Any] = {}
        run_id = get_run_id()
        if run_id:
            context["run_id"] = run_id
        context.update(get_extra_context())
        if not context:
            return super().format(record)

        prefixed = logging.makeLogRecord(record.__dict__)
        prefixed.msg = f"[{_format_fields(context)}] {record.getMessage()}"
        prefixed.args = None
        return super().format(prefixed)


class StructuredLogger:
    """Thin wrapper over ``logging.Logger`` taking fields as keyword arguments.

    ``logger.info("Downloaded", bytes=120)`` logs ``Downloaded | bytes=120``.
    Fields are only rendered when the level is enabled.
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _log(
        self,
        level: int,
        message: str,
        fields: Mapping[str, Any],
        exc_info: bool = False,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if fields:
            parts = ", ".join(f"{key}={value}" for key, value in fields.items())
            message = f"{message} | {parts}"
        # stacklevel points the record at the caller of debug()/info()/...
        self._logger.log(level, message, exc_info=exc_info, stacklevel=3)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        """Log at ERROR level.

        Args:
            message: Log message.
            exc_info: Attach the exception being handled, with traceback.
            **fields: Structured fields appended to the message.
        """
        self._log(logging.ERROR, message, fields, exc_info=exc_info)

    def log_performance(self, metrics: PerformanceMetrics) -> None:
        fields = metrics.to_dict()
        operation = fields.pop("operation")
        self.info(f"Finished {operation}", **fields)

    def log_progress(
        self,
        stage: str,
        current: int,
        total: int,
        details: str | None = None,
    ) -> None:
        """Log ``current/total`` progress of a counted stage.

        Args:
            stage: What is being counted, e.g. "Downloading images".
            current: Items done so far.
            total: Items expected; 0 reports 100%.
            details: Optional note about the latest item.
        """
        percent = 100.0 if total <= 0 else current * 100 / total
        fields: dict[str, Any] = {
            "done": f"{current}/{total}",
            "percent": f"{percent:.0f}%",
        }
        if details:
            fields["last"] = details
        self.info(stage, **fields)


class LogContext:
    """Add fields (and optionally the run id) to every log line in a block.

    Usage:
        with LogContext(run_id="3f9c0a", command="export"):
            with LogContext(sheet="Recipes"):
                logger.info("Building records")

    Nested blocks merge their fields; leaving a block restores the previous
    state even when an exception escapes.
    """

    def __init__(self, run_id: str | None = None, **fields: Any) -> None:
        self._run_id = run_id
        self._fields = fields
        self._run_id_token: Token[str | None] | None = None
        self._context_token: Token[Mapping[str, Any] | None] | None = None

    def __enter__(self) -> "LogContext":
        if self._run_id is not None:
            self._run_id_token = _run_id_var.set(self._run_id)
        merged = {**get_extra_context(), **self._fields}
        self._context_token = _extra_context_var.set(merged)
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._context_token is not None:
            _extra_context_var.reset(self._context_token)
            self._context_token = None
        if self._run_id_token is not None:
            _run_id_var.reset(self._run_id_token)
            self._run_id_token = None


@contextmanager
def timed_operation(
    logger: StructuredLogger,
    operation: str,
) -> Generator[PerformanceMetrics, None, None]:
    """Time a block and log its duration and counters when it ends.

    The line is logged whether the block succeeds or raises.

    Usage:
        with timed_operation(logger, "spreadsheet_download") as metrics:
            metrics.bytes_transferred += len(chunk)
    """
    metrics = PerformanceMetrics(operation=operation)
    try:
        yield metrics
    finally:
        metrics.finish()
        logger.log_performance(metrics)


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    use_structured_formatter: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Level as an int or a name such as "debug".
        format_string: Format for the handler; DEFAULT_FORMAT when None.
        use_structured_formatter: Prefix lines with the run id and context.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    formatter_class = (
        StructuredLogFormatter if use_structured_formatter else logging.Formatter
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter_class(format_string or DEFAULT_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)


def get_logger(name: str) -> StructuredLogger:
    """Return a StructuredLogger for a module, usually ``get_logger(__name__)``."""
    return StructuredLogger(name)


class ProgressTracker:
    """Counts finished items of a stage and logs every ``log_interval`` items.

    Concurrent tasks may share one tracker: updates only ever add to the
    count.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        stage: str,
        total: int,
        log_interval: int = 1,
    ) -> None:
        self._logger = logger
        self._stage = stage
        self._total = total
        self._log_interval = max(1, log_interval)
        self._current = 0
        self._started_at = time.perf_counter()

    @property
    def current(self) -> int:
        return self._current

    def update(self, increment: int = 1, details: str | None = None) -> None:
        """Count ``increment`` more items; log on interval boundaries."""
        self._current += increment
        at_boundary = self._current % self._log_interval == 0
        if at_boundary or self._current == self._total:
            self._logger.log_progress(
                self._stage, self._current, self._total, details
            )

    def complete(self) -> float:
        """Log the stage as finished and return its duration in seconds."""
        duration = time.perf_counter() - self._started_at
        self._logger.info(
            f"{self._stage} done",
            items=self._current,
            total=self._total,
            duration_seconds=round(duration, 2),
        )
        return duration
