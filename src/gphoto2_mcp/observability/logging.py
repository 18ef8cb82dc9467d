"""Structured logging for gphoto2-mcp.

Thin layer over the standard logging module. Keyword arguments given to
any level method travel with the record as ``structured_data`` and are
rendered as ``key=value`` pairs or as JSON fields. Ambient fields such as
the camera and port are bound once with LogContext and added to every
record emitted inside it, including records from the session worker.

gphoto2 output, setting values and camera names are untrusted text. Pass
them as fields, never inside the message, so a value carrying a line
break cannot forge log lines:

    logger.info("Setting changed", setting=name, value=value)

Example:
    logger = get_logger(__name__)

    with LogContext(camera="Canon EOS 700D", port="usb:001,004"):
        logger.info("Command dispatched", command="list-config")

    configure_logging(level="DEBUG", json_format=True, force=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, cast

#: Name of the package root logger. All module loggers hang below it.
ROOT_LOGGER_NAME = "gphoto2_mcp"

DEFAULT_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Fields bound by the innermost active LogContext.
_log_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "gphoto2_log_context", default={}
)


class StructuredLogger(logging.Logger):
    """Logger whose level methods accept structured fields as keywords.

    The inherited debug()/info()/warning()/error() pass unknown keywords
    through to _log(), which files them under ``record.structured_data``
    together with the active LogContext fields. Explicit fields win over
    context fields of the same name. The standard parameters of _log()
    are positional-only, so a field may be called ``args`` or ``level``.

    Usage:
        logger.info("Shell started", launches=1, program="gphoto2")
    """

    def _log(  # type: ignore[override]
        self,
        level: int,
        msg: object,
        args: Any,
        /,
        exc_info: Any = None,
        extra: Mapping[str, object] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **fields: Any,
    ) -> None:
        record_extra = dict(extra or {})
        record_extra["structured_data"] = {**_log_context.get(), **fields}
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=record_extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


def _format_value(value: Any) -> str:
    """Render one field value for key=value output.

    None becomes ``null``; strings with spaces are quoted; dicts and lists
    are JSON-encoded; anything else uses str().

    Example:
        >>> _format_value("get-config /main/imgsettings/iso")
        '"get-config /main/imgsettings/iso"'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        return f'"{value}"' if " " in value else value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Text formatter: ``<base format> | key=value key=value``."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Create the formatter.

        Args:
            fmt: Base format, DEFAULT_TEXT_FORMAT when None.
            datefmt: Format for %(asctime)s.
            include_structured: Append the fields after a bar when True.
        """
        super().__init__(fmt or DEFAULT_TEXT_FORMAT, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = getattr(record, "structured_data", None)
        if not (self.include_structured and fields):
            return text
        rendered = " ".join(f"{key}={_format_value(v)}" for key, v in fields.items())
        return f"{text} | {rendered}"


class JSONFormatter(logging.Formatter):
    """One JSON object per record (NDJSON).

    Keys: timestamp (ISO 8601, UTC), level, logger, message, every
    structured field at top level, and ``exception`` when exc_info is set.
    Values JSON cannot encode fall back to str().
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "structured_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class LogContext:
    """Bind fields to every record logged inside a ``with`` block.

    Contexts nest; inner fields override outer ones and the outer set is
    restored on exit.

    Usage:
        with LogContext(camera="Nikon DSC D5100", port="usb:002,003"):
            logger.info("Opening camera")
    """

    def __init__(self, **fields: Any) -> None:
        self._fields = fields
        self._token: contextvars.Token[Mapping[str, Any]] | None = None

    def __repr__(self) -> str:
        return f"LogContext({self._fields!r})"

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._fields})
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def _install_handler(
    level: int | str,
    json_format: bool,
    stream: Any,
    include_structured: bool,
) -> None:
    """Attach the package handler. Caller holds _config_lock."""
    global _configured

    logging.setLoggerClass(StructuredLogger)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        JSONFormatter()
        if json_format
        else StructuredFormatter(include_structured=include_structured)
    )

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _remove_handlers() -> None:
    """Detach and close the package handlers. Caller holds _config_lock."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    _configured = False


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure logging for the gphoto2_mcp logger tree.

    The first call wins: later calls change nothing unless force=True.
    get_logger() performs a default first call, so anything that must
    override the defaults after modules are imported passes force=True.
    Output goes to stderr by default because stdout carries MCP traffic.

    Args:
        level: Minimum level as int or name ("DEBUG", "INFO", ...).
        json_format: Emit NDJSON instead of key=value text.
        stream: Destination stream, sys.stderr when None.
        include_structured: Show fields in text mode.
        force: Replace an existing configuration.
    """
    with _config_lock:
        if force:
            _remove_handlers()
        if not _configured:
            _install_handler(level, json_format, stream, include_structured)


def reset_logging() -> None:
    """Remove the package handlers and mark logging unconfigured."""
    with _config_lock:
        _remove_handlers()


def get_logger(name: str) -> StructuredLogger:
    """Return the StructuredLogger for a module, configuring defaults once.

    Args:
        name: Logger name, normally ``__name__``.
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _install_handler(logging.INFO, False, None, True)

    # setLoggerClass() has run, so new loggers are StructuredLogger.
    return cast(StructuredLogger, logging.getLogger(name))
