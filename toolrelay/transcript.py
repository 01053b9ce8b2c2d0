"""Conversation transcript with a sliding window."""

from collections.abc import Iterator
from typing import Any

from openai.types.chat import ChatCompletionMessageParam

from .gateway import ToolCall
from .logging_config import get_logger


class Transcript:
    """Ordered message log; the system message is always element 0.

    A ``tool`` message must follow the assistant message whose ``tool_calls``
    requested it, otherwise the completion API rejects the request.
    """

    def __init__(self, system_message: str) -> None:
        self.system_message: ChatCompletionMessageParam = {
            "role": "system",
            "content": system_message,
        }
        self.messages: list[ChatCompletionMessageParam] = [self.system_message]
        self.logger = get_logger(__name__)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[ChatCompletionMessageParam]:
        return iter(self.messages)

    def snapshot(self) -> list[dict[str, Any]]:
        """Shallow copy of the messages for a request."""
        return [dict(message) for message in self.messages]

    def append_user(self, content: str) -> None:
        self.messages.append({"role": "user", "content": content})

    def append_assistant(self, content: str, tool_calls: list[ToolCall] | None = None) -> None:
        message: dict[str, Any] = {"role": "assistant", "content": content}
        if tool_calls:
            message["tool_calls"] = [
                {
                    "id": call["id"],
                    "type": call["type"],
                    "function": dict(call["function"]),
                }
                for call in tool_calls
            ]
        self.messages.append(message)  # type: ignore[arg-type]

    def append_tool(self, tool_call_id: str, content: str) -> None:
        self.messages.append({"role": "tool", "tool_call_id": tool_call_id, "content": content})

    def pending_tool_call_ids(self) -> list[str]:
        """Call ids of the last tool-calling assistant message still lacking a result."""
        answered: set[str] = set()
        for message in reversed(self.messages):
            if message["role"] == "tool":
                answered.add(message["tool_call_id"])
                continue
            if message["role"] == "assistant" and message.get("tool_calls"):
                return [
                    call["id"]
                    for call in message["tool_calls"]  # type: ignore[typeddict-item]
                    if call["id"] not in answered
                ]
            break
        return []

    def apply_window(self, turns: int | None) -> None:
        """Keep the system message and at most ``2 * turns`` recent messages.

        The kept part always starts at a user message, so an assistant message
        is never separated from its tool results. When the recent messages hold
        no user message, for example one long tool round, only the system
        message is kept. ``None`` or 0 keeps everything.
        """
        if not turns:
            return

        limit = 2 * turns
        body = self.messages[1:]
        if len(body) <= limit:
            return

        tail = body[-limit:]
        start = next(
            (index for index, message in enumerate(tail) if message["role"] == "user"),
            len(tail),
        )
        dropped = len(body) - len(tail) + start
        self.messages = [self.system_message, *tail[start:]]
        self.logger.info("Transcript trimmed", dropped=dropped, kept=len(self.messages))

    def clear(self) -> None:
        """Drop everything except the system message."""
        self.messages = [self.system_message]
