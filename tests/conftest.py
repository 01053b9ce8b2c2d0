"""Pytest configuration and shared fixtures."""

import asyncio
from collections import defaultdict
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import pytest

from toolrelay.connection_config import BackendConfig
from toolrelay.exceptions import RegistrationError
from toolrelay.gateway import AssistantReply, ToolCall
from toolrelay.registry import ToolRegistry
from toolrelay.settings import Settings


def make_tool(
    name: str, description: str | None = "", input_schema: dict[str, Any] | None = None
) -> SimpleNamespace:
    """Build an object shaped like an MCP tool descriptor."""
    return SimpleNamespace(
        name=name,
        description=description,
        inputSchema=input_schema if input_schema is not None else {"type": "object"},
    )


def tool_call(call_id: str, name: str, arguments: str = "{}", call_type: str = "function") -> ToolCall:
    """Build a tool call as the gateway returns it."""
    return {"id": call_id, "type": call_type, "function": {"name": name, "arguments": arguments}}


class FakeSession:
    """In-memory stand-in for MCPSession."""

    def __init__(self, factory: "FakeSessionFactory", config: BackendConfig, profile: dict[str, Any]) -> None:
        self.factory = factory
        self.config = config
        self.profile = profile
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.cleaned = False

    async def connect(self) -> SimpleNamespace:
        self.factory.attempts[self.config.name] += 1
        if self.profile["hang"]:
            await asyncio.Event().wait()
        if self.factory.attempts[self.config.name] <= self.profile["fail_times"]:
            msg = f"Could not connect to MCP server {self.config.name}"
            raise RegistrationError(msg, error_code="MCP_CONNECTION_FAILED")
        return SimpleNamespace(tools=list(self.profile["tools"]))

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        if self.profile["call_error"] is not None:
            raise self.profile["call_error"]
        return self.profile["call_result"]

    async def cleanup(self) -> None:
        self.cleaned = True
        self.factory.closed.append(self.config.name)
        if self.profile["cleanup_error"] is not None:
            raise self.profile["cleanup_error"]


class FakeSessionFactory:
    """Session factory for ToolRegistry; backends are described with ``add``."""

    def __init__(self) -> None:
        self.profiles: dict[str, dict[str, Any]] = {}
        self.sessions: list[FakeSession] = []
        self.attempts: defaultdict[str, int] = defaultdict(int)
        self.closed: list[str] = []

    def add(
        self,
        name: str,
        tools: list[Any] | None = None,
        *,
        fail_times: int = 0,
        hang: bool = False,
        call_result: Any = None,
        call_error: Exception | None = None,
        cleanup_error: Exception | None = None,
    ) -> None:
        self.profiles[name] = {
            "tools": tools or [],
            "fail_times": fail_times,
            "hang": hang,
            "call_result": call_result,
            "call_error": call_error,
            "cleanup_error": cleanup_error,
        }

    def __call__(self, config: BackendConfig) -> FakeSession:
        session = FakeSession(self, config, self.profiles[config.name])
        self.sessions.append(session)
        return session

    def sessions_for(self, name: str) -> list[FakeSession]:
        return [session for session in self.sessions if session.config.name == name]


class ScriptedGateway:
    """Completion gateway that replays prepared replies and records requests."""

    def __init__(self, replies: list[AssistantReply | Exception]) -> None:
        self.replies = list(replies)
        self.requests: list[dict[str, Any]] = []

    async def complete(self, messages, tools, params) -> AssistantReply:
        self.requests.append(
            {"messages": [dict(m) for m in messages], "tools": list(tools), "params": params}
        )
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete_streaming(self, messages, tools, params):
        reply = await self.complete(messages, tools, params)
        for start in range(0, len(reply.content), 4):
            yield reply.content[start : start + 4]
        yield reply


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    """Fake MCP session factory."""
    return FakeSessionFactory()


@pytest.fixture
def sleep() -> AsyncMock:
    """Replacement for asyncio.sleep between registration retries."""
    return AsyncMock()


@pytest.fixture
def registry(session_factory: FakeSessionFactory, sleep: AsyncMock) -> ToolRegistry:
    """ToolRegistry backed by fake sessions."""
    return ToolRegistry(session_factory=session_factory, sleep=sleep)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings that ignore any .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        system_message="You are a test assistant.",
        servers_config_file=str(tmp_path / "servers.yaml"),
    )
