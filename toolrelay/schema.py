"""Tool naming and input-schema normalization for the completion API."""

import copy
import json
from typing import Any

from .exceptions import RoutingError

SEPARATOR = "__"

# Keys that describe the schema document rather than the call shape.
_AUTHORING_KEYS = ("$schema", "$id", "$comment")


def qualify_tool_name(backend: str, tool: str) -> str:
    """Return the model-facing name ``<backend>__<tool>``."""
    return f"{backend}{SEPARATOR}{tool}"


def split_tool_name(qualified_name: str) -> tuple[str, str]:
    """Split a fully-qualified tool name into ``(backend, tool)``.

    Raises:
        RoutingError: If the name does not contain exactly one separator
    """
    parts = qualified_name.split(SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:  # noqa: PLR2004
        msg = f"Tool name {qualified_name!r} is not of the form <backend>{SEPARATOR}<tool>"
        raise RoutingError(
            msg, error_code="MALFORMED_TOOL_NAME", context={"tool": qualified_name}
        )
    return parts[0], parts[1]


def normalize_input_schema(schema: dict[str, Any] | None) -> dict[str, Any]:
    """Turn a backend's input schema into a valid function-call parameter schema.

    Guarantees a top-level ``type: object`` and a ``properties`` mapping, and
    drops document-level keys the completion API rejects. ``$defs`` is only
    dropped when nothing references it. Applying it twice gives the same result.
    """
    if not isinstance(schema, dict):
        return {"type": "object", "properties": {}}

    normalized = copy.deepcopy(schema)
    for key in _AUTHORING_KEYS:
        normalized.pop(key, None)

    if "$defs" in normalized and '"$ref"' not in json.dumps(normalized):
        del normalized["$defs"]

    normalized["type"] = "object"
    if not isinstance(normalized.get("properties"), dict):
        normalized["properties"] = {}

    required = normalized.get("required")
    if required is not None:
        if isinstance(required, list):
            normalized["required"] = list(dict.fromkeys(required))
        else:
            del normalized["required"]

    return normalized


def publish_tool(backend: str, tool: Any) -> dict[str, Any]:  # noqa: ANN401
    """Build the OpenAI function-tool definition for an MCP tool descriptor."""
    return {
        "type": "function",
        "function": {
            "name": qualify_tool_name(backend, tool.name),
            "description": tool.description or "",
            "parameters": normalize_input_schema(tool.inputSchema),
        },
    }
