"""Serialization of MCP tool results for the model."""

import json
from typing import Any


def serialize_tool_result(result: Any) -> str:  # noqa: ANN401
    """Serialize a full MCP tool result to JSON text.

    The whole structured result is kept (content list, structured content,
    ``isError`` flag) instead of flattening it to the first text item, so the
    model sees nested data as the backend returned it.

    Args:
        result: MCP ``CallToolResult`` or any JSON-compatible value

    Returns:
        str: JSON text, or ``repr`` when the value is not serializable
    """
    if hasattr(result, "model_dump"):
        payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        payload = result

    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(payload)
