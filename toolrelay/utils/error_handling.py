"""Error logging and wrapping helper."""

from typing import Any

import structlog

from toolrelay.exceptions import ToolRelayError, wrap_exception


def log_and_wrap_error(
    exception: Exception,
    exception_class: type[ToolRelayError],
    message: str,
    error_code: str | None = None,
    context: dict[str, Any] | None = None,
    logger: Any | None = None,  # noqa: ANN401
) -> ToolRelayError:
    """Log an error and wrap it in the ToolRelay hierarchy.

    Args:
        exception: Original exception
        exception_class: Target exception class
        message: Error message
        error_code: Optional error code
        context: Additional context information
        logger: structlog logger (if None, creates one)

    Returns:
        Wrapped exception
    """
    if logger is None:
        logger = structlog.get_logger(__name__)

    logger.error(message, error=str(exception), error_code=error_code, **(context or {}))

    return wrap_exception(
        exception, exception_class, message, error_code=error_code, context=context
    )
