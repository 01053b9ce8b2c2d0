"""Structured logging configuration using structlog.

Log lines go to stderr so they never interleave with the chat on stdout.
"""

import inspect
import logging
import sys
import time
from collections.abc import Callable
from typing import Any, cast

import structlog
from structlog.types import EventDict


def add_elapsed_ms() -> Callable[[Any, str, EventDict], EventDict]:
    """Add elapsed_ms since logging was configured."""
    start_time = time.time()

    def processor(_logger: Any, _method_name: str, event_dict: EventDict) -> EventDict:  # noqa: ANN401
        event_dict["elapsed_ms"] = round((time.time() - start_time) * 1000, 2)
        return event_dict

    return processor


def configure_logging(*, level: str = "INFO", format_json: bool = True) -> None:
    """Configure structlog and the stdlib root logger."""
    structlog.reset_defaults()

    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_elapsed_ms(),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO", utc=True),
    ]

    if format_json:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # The MCP and OpenAI SDKs log through the stdlib.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
        force=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (defaults to calling module)

    Example:
        logger = get_logger(__name__)
        logger.info("Tool invoked", server="weather", tool="get_forecast")
    """
    if name is None:
        frame = inspect.currentframe()
        if frame is not None and frame.f_back is not None:
            name = frame.f_back.f_globals.get("__name__", "unknown")
        else:
            name = "unknown"

    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(name))
