"""Shared helpers for result serialization, error wrapping and secret masking."""

from .content_extraction import serialize_tool_result
from .error_handling import log_and_wrap_error
from .security import mask_sensitive_keys

__all__ = [
    "log_and_wrap_error",
    "mask_sensitive_keys",
    "serialize_tool_result",
]
