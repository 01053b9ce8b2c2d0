"""Tests for toolrelay exceptions."""

from toolrelay.exceptions import (
    ArgumentParseError,
    ConfigurationError,
    ConfigurationMissingError,
    EmptyResponseError,
    ExternalServiceError,
    InternalFault,
    NotFoundError,
    RegistrationError,
    RoutingError,
    ToolError,
    ToolExecutionError,
    ToolRelayError,
    UpstreamError,
    get_exception_for_domain,
    wrap_exception,
)


class TestToolRelayError:
    """Test suite for ToolRelayError."""

    def test_basic_exception_creation(self) -> None:
        """Test creating a basic exception."""
        exc = ToolRelayError("Test message")
        assert str(exc) == "Test message"
        assert exc.message == "Test message"
        assert exc.error_code is None
        assert exc.context == {}
        assert exc.cause is None

    def test_str_includes_code_and_context(self) -> None:
        """Test that error code and context appear in the string form."""
        exc = ToolRelayError("Failed", error_code="E1", context={"server": "weather"})
        assert str(exc) == "Failed [E1] Context: {'server': 'weather'}"

    def test_to_dict(self) -> None:
        """Test conversion for structured logging."""
        cause = ValueError("boom")
        exc = UpstreamError("Completion failed", error_code="COMPLETION_FAILED", cause=cause)

        assert exc.to_dict() == {
            "error_type": "UpstreamError",
            "message": "Completion failed",
            "error_code": "COMPLETION_FAILED",
            "context": {},
            "cause": "boom",
        }


class TestHierarchy:
    """Test the shape of the exception hierarchy."""

    def test_tool_errors_share_a_base(self) -> None:
        """Test that every in-band tool error is a ToolError."""
        for cls in (ArgumentParseError, RoutingError, NotFoundError, ToolExecutionError):
            assert issubclass(cls, ToolError)

    def test_empty_response_is_upstream_error(self) -> None:
        """Test that a response without choices is handled like any upstream failure."""
        assert issubclass(EmptyResponseError, UpstreamError)
        assert issubclass(UpstreamError, ExternalServiceError)

    def test_configuration_missing_is_configuration_error(self) -> None:
        """Test configuration subclasses."""
        assert issubclass(ConfigurationMissingError, ConfigurationError)

    def test_registration_error_failures(self) -> None:
        """Test that aggregate registration errors carry per-backend failures."""
        failure = RuntimeError("refused")
        exc = RegistrationError("Failed", failures={"notion": failure})
        assert exc.failures == {"notion": failure}
        assert RegistrationError("Failed").failures == {}


class TestWrapException:
    """Test suite for wrap_exception."""

    def test_wraps_generic_exception(self) -> None:
        """Test wrapping a non-ToolRelay exception."""
        original = OSError("disk")
        wrapped = wrap_exception(original, ConfigurationError, "Load failed", "LOAD")

        assert isinstance(wrapped, ConfigurationError)
        assert wrapped.message == "Load failed"
        assert wrapped.error_code == "LOAD"
        assert wrapped.cause is original
        assert wrapped.context["original_exception"] == "OSError"

    def test_returns_toolrelay_exception_unchanged(self) -> None:
        """Test that exceptions already in the hierarchy pass through."""
        original = RoutingError("bad name")
        assert wrap_exception(original, InternalFault) is original

    def test_default_message(self) -> None:
        """Test the message used when none is given."""
        wrapped = wrap_exception(KeyError("k"))
        assert isinstance(wrapped, ToolRelayError)
        assert wrapped.message.startswith("Wrapped exception:")


class TestGetExceptionForDomain:
    """Test suite for get_exception_for_domain."""

    def test_known_domains(self) -> None:
        """Test domain lookups."""
        assert get_exception_for_domain("config") is ConfigurationError
        assert get_exception_for_domain("Registry") is RegistrationError
        assert get_exception_for_domain("tool") is ToolError
        assert get_exception_for_domain("openai") is UpstreamError
        assert get_exception_for_domain("internal") is InternalFault

    def test_unknown_domain_falls_back_to_base(self) -> None:
        """Test the fallback class."""
        assert get_exception_for_domain("unknown") is ToolRelayError
