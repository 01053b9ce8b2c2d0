import dataclasses
import enum
from collections.abc import AsyncIterator
from typing import Any

from .exceptions import (
    InternalFault,
    ToolError,
    UpstreamError,
)
from .gateway import AssistantReply, CompletionGateway, ModelParams, ToolCall
from .logging_config import get_logger
from .recovery import ArgumentRecovery, NoRecovery, parse_arguments
from .registry import ToolRegistry
from .transcript import Transcript

ERROR_PREFIX = "Error: "


class ErrorLine(str):
    """Output text that reports a failed turn rather than an answer."""

    __slots__ = ()


SUMMARY_PROMPT = (
    "I've reached my tool call limit ({limit} rounds per message). "
    "Please summarize what you've accomplished so far, what still needs to be done, "
    "and ask if I'd like you to continue by sending another message."
)


class TurnState(enum.Enum):
    """Where the orchestration loop is within a turn."""

    AWAITING_USER_INPUT = "awaiting_user_input"
    REQUEST_SENT = "request_sent"
    TOOL_CALLS_PENDING = "tool_calls_pending"
    FINAL_ANSWER_READY = "final_answer_ready"


class ConversationManager:
    """Runs turns: request, tool calls, re-request, until a final answer.

    Tool calls within a round are executed one at a time in the order the model
    listed them, and each result is recorded right after the assistant message
    that asked for it.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        gateway: CompletionGateway,
        transcript: Transcript,
        params: ModelParams,
        *,
        allow_history: bool = True,
        history_size: int | None = 5,
        max_tool_rounds: int = 8,
        stream: bool = False,
        recovery: ArgumentRecovery | None = None,
    ) -> None:
        """Initialize the conversation.

        Args:
            registry: Source of the tool catalogue and tool invocations
            gateway: Completion API handle
            transcript: History owned by this conversation
            params: Model settings for every request
            allow_history: Keep final answers (and earlier turns) in history
            history_size: Sliding window in turns; None or 0 disables it
            max_tool_rounds: Tool-call rounds allowed before forcing a summary
            stream: Yield content deltas instead of whole answers
            recovery: Repair strategy for malformed tool arguments
        """
        self.registry = registry
        self.gateway = gateway
        self.transcript = transcript
        self.params = params
        self.allow_history = allow_history
        self.history_size = history_size
        self.max_tool_rounds = max_tool_rounds
        self.stream = stream
        self.recovery = recovery or NoRecovery()
        self.state = TurnState.AWAITING_USER_INPUT
        self.logger = get_logger(__name__)

    async def process_message(self, user_message: str) -> AsyncIterator[str]:
        """Run one turn and yield the text to show the user.

        Completion API failures end the turn with an ``Error:`` line and are
        not written to history. Unexpected failures are reported the same way.
        """
        if not self.allow_history:
            self.transcript.clear()
        self.transcript.apply_window(self.history_size)
        self.transcript.append_user(user_message)

        try:
            async for chunk in self._run_turn():
                yield chunk
        except UpstreamError as e:
            self.logger.error("Turn aborted by completion failure", error=e.to_dict())
            yield ErrorLine(f"{ERROR_PREFIX}{e.message}")
        except Exception as e:
            fault = InternalFault(
                f"internal error: {e}", error_code="INTERNAL_FAULT", cause=e
            )
            self.logger.exception("Turn aborted by internal fault", error=fault.to_dict())
            for call_id in self.transcript.pending_tool_call_ids():
                self.transcript.append_tool(call_id, "tool_error: turn aborted")
            yield ErrorLine(f"{ERROR_PREFIX}{fault.message}")
        finally:
            self.state = TurnState.AWAITING_USER_INPUT

    async def _run_turn(self) -> AsyncIterator[str]:
        rounds = 0
        while True:
            tools = await self.registry.catalogue()
            self.state = TurnState.REQUEST_SENT

            reply: AssistantReply | None = None
            async for item in self._request(tools, self.params):
                if isinstance(item, AssistantReply):
                    reply = item
                else:
                    yield item
            if reply is None:
                raise InternalFault(
                    "Completion stream ended without a reply", error_code="NO_REPLY"
                )

            if not reply.tool_calls:
                self.state = TurnState.FINAL_ANSWER_READY
                if self.allow_history and reply.content:
                    self.transcript.append_assistant(reply.content)
                if not self.stream:
                    yield reply.content
                return

            self.state = TurnState.TOOL_CALLS_PENDING
            rounds += 1
            self.logger.info(
                "Received tool calls",
                round=rounds,
                tools=[call["function"]["name"] for call in reply.tool_calls],
            )
            self.transcript.append_assistant(reply.content, reply.tool_calls)
            await self._execute_tool_calls(reply.tool_calls)

            if rounds >= self.max_tool_rounds:
                async for chunk in self._handle_max_rounds(tools):
                    yield chunk
                return

    async def _request(
        self, tools: list[dict[str, Any]], params: ModelParams
    ) -> AsyncIterator[str | AssistantReply]:
        messages = self.transcript.snapshot()
        if self.stream:
            async for item in self.gateway.complete_streaming(messages, tools, params):
                yield item
        else:
            yield await self.gateway.complete(messages, tools, params)

    async def _execute_tool_calls(self, tool_calls: list[ToolCall]) -> None:
        """Execute tool calls in order and record one tool message per call."""
        for tool_call in tool_calls:
            call_id = tool_call["id"]
            name = tool_call["function"]["name"]

            if tool_call.get("type", "function") != "function":
                self.transcript.append_tool(
                    call_id, f"tool_error: unsupported tool call type {tool_call['type']!r}"
                )
                continue

            try:
                arguments = parse_arguments(tool_call["function"]["arguments"], self.recovery)
            except ToolError as e:
                self.logger.warning("Failed to parse tool arguments", tool=name, error=e.message)
                self.transcript.append_tool(call_id, e.message)
                continue

            try:
                result = await self.registry.invoke(name, arguments)
            except ToolError as e:
                self.logger.warning("Tool call failed", tool=name, error=e.message)
                self.transcript.append_tool(call_id, f"tool_error: {e.message}")
                continue

            self.logger.debug("Tool call response", tool=name, response=result)
            self.transcript.append_tool(call_id, result)

    async def _handle_max_rounds(self, tools: list[dict[str, Any]]) -> AsyncIterator[str]:
        """Ask the model, with tools disabled, to summarise an unfinished turn."""
        self.logger.info(
            "Reached maximum tool rounds, asking model to summarize",
            max_tool_rounds=self.max_tool_rounds,
        )
        self.transcript.append_user(SUMMARY_PROMPT.format(limit=self.max_tool_rounds))
        params = dataclasses.replace(self.params, tool_choice="none")

        self.state = TurnState.REQUEST_SENT
        reply: AssistantReply | None = None
        async for item in self._request(tools, params):
            if isinstance(item, AssistantReply):
                reply = item
            else:
                yield item
        if reply is None:
            raise InternalFault("Completion stream ended without a reply", error_code="NO_REPLY")

        self.state = TurnState.FINAL_ANSWER_READY
        if self.allow_history:
            self.transcript.append_assistant(reply.content)
        if not self.stream:
            yield reply.content
