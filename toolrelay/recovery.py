"""Parsing of tool-call arguments, with pluggable recovery for broken JSON."""

import json
from typing import Any, Protocol

from .exceptions import ArgumentParseError
from .logging_config import get_logger

logger = get_logger(__name__)

_CLOSERS = {"{": "}", "[": "]"}


class ArgumentRecovery(Protocol):
    """Turns a near-valid argument payload into valid JSON text, or gives up."""

    def recover(self, raw: str) -> str | None: ...


class NoRecovery:
    """Never repairs anything."""

    def recover(self, raw: str) -> str | None:  # noqa: ARG002
        return None


class TruncatedJSONRecovery:
    """Best-effort repair of payloads cut off mid-object.

    Closes an unterminated string, drops a dangling comma, completes a key left
    without a value, and closes any open objects and arrays.
    """

    def __init__(self, max_length: int = 100_000) -> None:
        self.max_length = max_length

    def recover(self, raw: str) -> str | None:
        text = raw.strip()
        if not text or len(text) > self.max_length or text[0] not in "{[":
            return None

        stack: list[str] = []
        in_string = False
        escaped = False
        for char in text:
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char in _CLOSERS:
                stack.append(_CLOSERS[char])
            elif char in "}]":
                if not stack or stack.pop() != char:
                    return None

        if escaped:
            text = text[:-1]
        if in_string:
            text += '"'

        text = text.rstrip()
        while text.endswith(","):
            text = text[:-1].rstrip()
        if text.endswith(":"):
            text += " null"

        return text + "".join(reversed(stack))


def parse_arguments(raw: str | None, recovery: ArgumentRecovery | None = None) -> dict[str, Any]:
    """Parse a tool call's argument payload into a mapping.

    An empty payload means no arguments.

    Raises:
        ArgumentParseError: If the payload is not a JSON object even after recovery
    """
    if raw is None or not raw.strip():
        return {}

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        repaired = (recovery or NoRecovery()).recover(raw)
        if repaired is None:
            msg = f"error_parsing_args: {e}"
            raise ArgumentParseError(msg, error_code="ARGS_INVALID_JSON", cause=e) from e
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError as repair_error:
            msg = f"error_parsing_args: {e}"
            raise ArgumentParseError(
                msg, error_code="ARGS_INVALID_JSON", cause=repair_error
            ) from repair_error
        logger.info("Recovered malformed tool arguments", raw=raw, repaired=repaired)

    if not isinstance(parsed, dict):
        msg = f"error_parsing_args: expected a JSON object, got {type(parsed).__name__}"
        raise ArgumentParseError(msg, error_code="ARGS_NOT_OBJECT")
    return parsed
