"""Completion gateway: the one handle to the OpenAI chat completions API."""

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, TypedDict

import openai
from openai import AsyncOpenAI

from .exceptions import EmptyResponseError, UpstreamError
from .logging_config import get_logger


class ToolCallFunction(TypedDict):
    """Type definition for tool call function parameters."""

    name: str
    arguments: str


class ToolCall(TypedDict):
    """Type definition for tool call structure."""

    id: str
    type: str
    function: ToolCallFunction


@dataclass(frozen=True)
class ModelParams:
    """Per-request model settings."""

    model: str = "gpt-4.1"
    temperature: float = 0.7
    max_tokens: int | None = None
    seed: int | None = 0
    tool_choice: str = "auto"


@dataclass
class AssistantReply:
    """The top choice of a completion, in the same shape for both paths."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None


class CompletionGateway:
    """Builds completion requests and consumes whole or streamed responses.

    Never touches the transcript; callers own history bookkeeping.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any | None = None,  # noqa: ANN401
    ) -> None:
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.logger = get_logger(__name__)

    def _build_request(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        params: ModelParams,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": params.model,
            "messages": list(messages),
            "temperature": params.temperature,
        }
        if params.seed is not None:
            request["seed"] = params.seed
        if params.max_tokens is not None:
            request["max_tokens"] = params.max_tokens
        # The API rejects an empty tools list.
        if tools:
            request["tools"] = list(tools)
            request["tool_choice"] = params.tool_choice
        return request

    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        params: ModelParams,
    ) -> AssistantReply:
        """Send one non-streaming request and return the top choice.

        Raises:
            UpstreamError: On any API or network failure
            EmptyResponseError: If the response has no choices
        """
        request = self._build_request(messages, tools, params)
        try:
            response = await self.client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            msg = f"Completion request failed: {e}"
            raise UpstreamError(
                msg, error_code="COMPLETION_FAILED", context={"model": params.model}, cause=e
            ) from e

        if not response.choices:
            msg = "Completion returned no choices"
            raise EmptyResponseError(msg, error_code="EMPTY_RESPONSE")

        choice = response.choices[0]
        message = choice.message
        tool_calls: list[ToolCall] = [
            {
                "id": call.id,
                "type": call.type or "function",
                "function": {
                    "name": call.function.name,
                    "arguments": call.function.arguments or "",
                },
            }
            for call in (message.tool_calls or [])
        ]
        usage = getattr(response, "usage", None)
        self.logger.info(
            "Completion received",
            finish_reason=choice.finish_reason,
            tool_calls=len(tool_calls),
            total_tokens=getattr(usage, "total_tokens", None),
        )
        return AssistantReply(
            content=message.content or "",
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
        )

    async def complete_streaming(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]],
        params: ModelParams,
    ) -> AsyncIterator[str | AssistantReply]:
        """Stream a completion.

        Yields content deltas as ``str`` while they arrive, then exactly one
        ``AssistantReply`` holding the accumulated content and tool calls.

        Raises:
            UpstreamError: On any API or network failure
            EmptyResponseError: If no chunk carried a choice
        """
        request = self._build_request(messages, tools, params)
        full_content = ""
        tool_calls_dict: dict[int, ToolCall] = {}
        finish_reason: str | None = None
        saw_choice = False

        try:
            response = await self.client.chat.completions.create(**request, stream=True)
            async for chunk in response:
                if not chunk.choices:
                    continue
                saw_choice = True
                choice = chunk.choices[0]
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                delta = choice.delta

                if delta.content:
                    full_content += delta.content
                    yield delta.content

                for delta_tool_call in delta.tool_calls or []:
                    idx = delta_tool_call.index
                    function = delta_tool_call.function

                    if idx not in tool_calls_dict:
                        tool_calls_dict[idx] = {
                            "id": delta_tool_call.id or "",
                            "type": delta_tool_call.type or "function",
                            "function": {
                                "name": (function.name if function and function.name else ""),
                                "arguments": (
                                    function.arguments
                                    if function and function.arguments
                                    else ""
                                ),
                            },
                        }
                    else:
                        if delta_tool_call.id:
                            tool_calls_dict[idx]["id"] = delta_tool_call.id
                        if function and function.name:
                            tool_calls_dict[idx]["function"]["name"] += function.name
                        if function and function.arguments:
                            tool_calls_dict[idx]["function"]["arguments"] += (
                                function.arguments
                            )
        except openai.OpenAIError as e:
            msg = f"Streaming completion failed: {e}"
            raise UpstreamError(
                msg, error_code="COMPLETION_FAILED", context={"model": params.model}, cause=e
            ) from e

        if not saw_choice:
            msg = "Completion stream returned no choices"
            raise EmptyResponseError(msg, error_code="EMPTY_RESPONSE")

        tool_calls = [tool_calls_dict[idx] for idx in sorted(tool_calls_dict)]
        self.logger.info(
            "Completion stream finished",
            finish_reason=finish_reason,
            tool_calls=len(tool_calls),
        )
        yield AssistantReply(
            content=full_content, tool_calls=tool_calls, finish_reason=finish_reason
        )


_gateway: CompletionGateway | None = None


def get_completion_gateway(
    api_key: str | None = None, base_url: str | None = None
) -> CompletionGateway:
    """Get the process-wide gateway; the first caller's credentials win."""
    global _gateway  # noqa: PLW0603
    if _gateway is None:
        _gateway = CompletionGateway(api_key=api_key, base_url=base_url)
    return _gateway
