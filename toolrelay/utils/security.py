"""Masking of secrets before configuration is logged or printed."""

from collections.abc import Mapping
from typing import Any, cast

REDACTED = "***REDACTED***"

SENSITIVE_KEYS = frozenset(
    {
        "api_key",
        "secret",
        "token",
        "password",
        "auth",
        "credential",
        "credentials",
        "authorization",
    }
)


def mask_sensitive_keys(
    data: Mapping[str, Any], sensitive_keys: frozenset[str] | set[str] | None = None
) -> dict[str, Any]:
    """Mask keys that are known to contain sensitive data.

    Nested mappings and lists of mappings are masked recursively. Matching is
    on the key suffix, so ``api_key_env`` (where a secret lives) and
    ``max_tokens`` are left alone.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Key suffixes that mark a key as secret

    Returns:
        Dictionary with sensitive values masked
    """
    if sensitive_keys is None:
        sensitive_keys = SENSITIVE_KEYS

    result: dict[str, Any] = {}
    for key, value in data.items():
        lowered = key.lower()
        if any(lowered.endswith(sensitive_key) for sensitive_key in sensitive_keys):
            result[key] = REDACTED if value else value
        elif isinstance(value, Mapping):
            nested: Mapping[str, Any] = cast("Mapping[str, Any]", value)
            result[key] = mask_sensitive_keys(nested, sensitive_keys)
        elif isinstance(value, list):
            result[key] = [
                mask_sensitive_keys(item, sensitive_keys)
                if isinstance(item, Mapping)
                else item
                for item in value
            ]
        else:
            result[key] = value

    return result
