"""Structured logging configuration using structlog.

Provides JSON output for production and human-readable console output for development.
All logging throughout the project should use get_logger() instead of print().
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

LogSink = Callable[[datetime, str], None]

# Keys that are rendered separately or carry no meaning in a log sheet row.
_SINK_SKIP_KEYS = frozenset({"event", "level", "timestamp", "exc_info", "stack_info"})
_SINK_LEVELS = frozenset({"info", "warning", "error", "critical", "exception"})


class SheetLogProcessor:
    """Structlog processor that mirrors log events into an append-only sheet.

    Best effort: a sink failure is reported on stderr and never propagated to
    the code that emitted the log line.
    """

    def __init__(self, sink: LogSink) -> None:
        self.sink = sink

    def __call__(
        self, logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        if method_name not in _SINK_LEVELS:
            return event_dict
        try:
            self.sink(datetime.now(timezone.utc), format_sheet_message(event_dict))
        except Exception as e:
            print(f"log sink error: {e}", file=sys.stderr)
        return event_dict


def format_sheet_message(event_dict: dict[str, Any]) -> str:
    """Render an event dict as a single human-readable line."""
    parts = [str(event_dict.get("event", ""))]
    for key, value in event_dict.items():
        if key in _SINK_SKIP_KEYS:
            continue
        parts.append(f"{key}={value}")
    return " ".join(parts)


def setup_logging(
    json_output: bool = False,
    log_level: str = "INFO",
    log_sink: LogSink | None = None,
) -> None:
    """Configure structlog with appropriate processors and output format.

    Args:
        json_output: If True, output JSON (production). If False, console format (dev).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_sink: Optional (timestamp, message) appender, e.g. SheetStore.append_log.
    """
    # Convert string log level to logging constant
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if log_sink is not None:
        processors.append(SheetLogProcessor(log_sink))

    # Add renderer based on output format
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Bridge stdlib logging (googleapiclient, urllib3) to the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    logging.getLogger().handlers = []
    logging.getLogger().addHandler(logging.StreamHandler(sys.stdout))


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance bound with the module name.

    Args:
        name: Logger name (typically __name__ from calling module).

    Returns:
        Configured structlog logger with module name context.
    """
    return structlog.get_logger(name)
