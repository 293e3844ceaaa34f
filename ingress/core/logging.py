"""Loguru sinks for the service.

Two output formats are available through `log_config.log_formatter_type`:

- **console**: colored single lines with the request context inlined
- **json**: one JSON object per line, for log collectors

Records from the standard library (uvicorn, asyncio, HTTP clients) are
forwarded to Loguru by `InterceptHandler`, so they carry the same context
fields as the service's own records.
"""

from __future__ import annotations

import inspect
import json
import logging
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final, cast

from loguru import logger

from ingress.core.error_context import REDACTED, is_sensitive_field

if TYPE_CHECKING:
    from ingress.core.config import Settings

type LogRecord = dict[str, Any]


@dataclass
class _LoggingState:
    configured: bool = False


_state = _LoggingState()

DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)

# Shown first and highlighted on console lines
HIGHLIGHTED_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
)
SHORT_ID_LENGTH: Final[int] = 8
VALUE_PREVIEW_LENGTH: Final[int] = 100

UVICORN_LOGGERS: Final[tuple[str, ...]] = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
)


def _literal(text: object) -> str:
    # The console formatter returns a Loguru template, so braces must be doubled
    return str(text).replace("{", "{{").replace("}", "}}")


def _display_value(key: str, value: object) -> str:
    if is_sensitive_field(key):
        return REDACTED
    if key == "correlation_id":
        return str(value)[:SHORT_ID_LENGTH]
    if key == "duration_ms":
        return f"{value}ms"
    text = str(value)
    if len(text) > VALUE_PREVIEW_LENGTH:
        return text[: VALUE_PREVIEW_LENGTH - 3] + "..."
    return text


def _context_tags(extra: dict[str, Any]) -> str:
    tags = []
    for key in HIGHLIGHTED_FIELDS:
        if extra.get(key) is not None:
            pair = f"{key}={_display_value(key, extra[key])}"
            tags.append(f"[<yellow>{_literal(pair)}</yellow>]")
    for key, value in extra.items():
        if key in HIGHLIGHTED_FIELDS or key.startswith("_") or value is None:
            continue
        pair = f"{key}={_display_value(key, value)}"
        tags.append(f"[<dim>{_literal(pair)}</dim>]")
    return " ".join(tags)


def format_console_with_context(record: LogRecord) -> str:
    """Build the Loguru template for one console line.

    Context fields bound with `logger.bind` or `logger.contextualize` are
    rendered as `[key=value]` tags between the location and the message.
    Records that lack the standard keys fall back to `DEFAULT_LOG_FORMAT`.
    """
    try:
        stamp = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        columns = [
            f"<green>{stamp}</green>",
            f"<level>{record['level'].name: <8}</level>",
            "<cyan>"
            + _literal(f"{record['name']}:{record['function']}:{record['line']}")
            + "</cyan>",
        ]
    except (AttributeError, KeyError, TypeError, ValueError):
        return DEFAULT_LOG_FORMAT + "\n"

    if tags := _context_tags(record.get("extra") or {}):
        columns.append(tags)
    columns.append(_literal(record.get("message", "")))

    template = " | ".join(columns) + "\n"
    if record.get("exception"):
        template += "{exception}\n"
    return template


def serialize_for_json(record: LogRecord) -> str:
    """Render a record as one JSON line.

    Public context fields are merged at the top level. An attached exception
    is reduced to its type name and message; tracebacks are not serialized.
    """
    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    for key, value in (record.get("extra") or {}).items():
        if not key.startswith("_"):
            entry[key] = value

    exception = record.get("exception")
    if exception:
        entry["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value else None,
        }
    return json.dumps(entry, default=str) + "\n"


def _json_sink(message: object) -> None:
    sys.stdout.write(serialize_for_json(cast("Any", message).record))
    sys.stdout.flush()


class InterceptHandler(logging.Handler):
    """Standard library handler that re-emits records through Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Report the caller of the stdlib logger, not the logging module
        frame, depth = inspect.currentframe(), 0
        while frame is not None and (
            depth == 0 or frame.f_code.co_filename == logging.__file__
        ):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: Settings) -> None:
    """Replace Loguru's default sink and capture standard library logging.

    Only the first call in a process has an effect.

    Args:
        settings: Settings providing the level, format and debug flag.
    """
    if _state.configured:
        return

    config = settings.log_config
    formatter_type = config.log_formatter_type or "console"

    logger.remove()
    if formatter_type == "json":
        logger.add(
            _json_sink,
            level=config.log_level,
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stdout,
            level=config.log_level,
            format=cast("Any", format_console_with_context),
            enqueue=True,
            colorize=True,
            backtrace=settings.debug,
            diagnose=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in UVICORN_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    _state.configured = True
    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=config.log_level,
    )
