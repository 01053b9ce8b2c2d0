"""ToolRelay exception hierarchy.

Every failure raised inside the package derives from ``ToolRelayError`` so
callers can catch one base class and still get a code and context for logs.
"""

from typing import Any


class ToolRelayError(Exception):
    """Base exception for all ToolRelay errors.

    Carries an optional error code, a context dictionary and the original
    exception that caused it.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with additional context
            cause: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.error_code:
            parts.append(f"[{self.error_code}]")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " ".join(parts)


# === Configuration Errors ===
class ConfigurationError(ToolRelayError):
    """Missing or invalid startup settings. Fatal."""


class ConfigurationValidationError(ConfigurationError):
    """Configuration validation failed."""


class ConfigurationMissingError(ConfigurationError):
    """Required configuration is missing."""


class ConfigurationLoadError(ConfigurationError):
    """Failed to load configuration from source."""


# === Registry Errors ===
class ValidationError(ToolRelayError):
    """A backend registration config is incomplete."""


class RegistrationError(ToolRelayError):
    """A tool backend could not be connected or listed.

    When raised for a batch, ``failures`` maps each failed backend name to the
    last error it produced.
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        super().__init__(message, error_code, context, cause)
        self.failures = failures or {}


# === Tool Invocation Errors ===
class ToolError(ToolRelayError):
    """Base class for errors the model can see in-band as tool output."""


class ArgumentParseError(ToolError):
    """Tool call arguments could not be parsed, even after recovery."""


class RoutingError(ToolError):
    """Fully-qualified tool name is malformed."""


class NotFoundError(ToolError):
    """No backend is registered under the requested name."""


class ToolExecutionError(ToolError):
    """The backend failed while executing a tool."""


# === External Service Errors ===
class ExternalServiceError(ToolRelayError):
    """Base class for external service errors."""


class UpstreamError(ExternalServiceError):
    """The completion API call failed (network, auth, rate limit)."""


class EmptyResponseError(UpstreamError):
    """The completion API returned zero choices."""


# === Internal Errors ===
class InternalFault(ToolRelayError):
    """Unexpected failure inside an orchestration step."""


# === Utility Functions ===
def wrap_exception(
    exc: Exception,
    exception_class: type = ToolRelayError,
    message: str | None = None,
    error_code: str | None = None,
    context: dict[str, Any] | None = None,
) -> ToolRelayError:
    """Wrap a generic exception in a ToolRelay exception.

    Exceptions already in the hierarchy are returned unchanged.
    """
    if isinstance(exc, ToolRelayError):
        return exc

    wrapped_message = message or f"Wrapped exception: {exc!s}"
    wrapped_context = context or {}
    wrapped_context["original_exception"] = exc.__class__.__name__

    return exception_class(
        message=wrapped_message,
        error_code=error_code,
        context=wrapped_context,
        cause=exc,
    )


def get_exception_for_domain(domain: str) -> type:
    """Get the base exception class for a domain name such as 'registry'."""
    domain_mapping = {
        "config": ConfigurationError,
        "configuration": ConfigurationError,
        "registry": RegistrationError,
        "registration": RegistrationError,
        "tool": ToolError,
        "routing": RoutingError,
        "upstream": UpstreamError,
        "openai": UpstreamError,
        "external": ExternalServiceError,
        "internal": InternalFault,
    }

    return domain_mapping.get(domain.lower(), ToolRelayError)
