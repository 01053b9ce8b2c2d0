"""Tool registry: connections to many MCP backends behind one tool catalogue.

Tools are published to the model as ``<backend>__<tool>`` so same-named tools
on different backends never collide, and invocations are routed back by
splitting that name.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from .connection_config import BackendConfig
from .exceptions import (
    NotFoundError,
    RegistrationError,
    ToolExecutionError,
    ValidationError,
)
from .logging_config import get_logger
from .schema import SEPARATOR, publish_tool, split_tool_name
from .session import MCPSession
from .utils import serialize_tool_result

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.3


class ReadWriteLock:
    """Asyncio reader/writer lock: many readers or one writer."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class ToolBackend:
    """A registered backend and everything derived from it at discovery time."""

    name: str
    endpoint: str
    session: Any
    tool_descriptors: list[Any] = field(default_factory=list)
    published_schemas: list[dict[str, Any]] = field(default_factory=list)


class ToolRegistry:
    """Holds one connection per backend name and routes tool calls to them."""

    def __init__(
        self,
        session_factory: Callable[[BackendConfig], Any] = MCPSession,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize an empty registry.

        Args:
            session_factory: Builds an unconnected session for a backend config
            sleep: Used between registration retries
        """
        self._session_factory = session_factory
        self._sleep = sleep
        self._lock = ReadWriteLock()
        self._backends: dict[str, ToolBackend] = {}
        self._order: list[str] = []
        self.logger = get_logger(__name__)

    async def register(self, config: BackendConfig) -> None:
        """Connect to a backend, publish its tools and swap it into the registry.

        On failure any earlier registration under the same name is left as is,
        and the new connection is closed. Tools whose names contain the
        ``__`` separator cannot be routed back and are skipped.

        Raises:
            ValidationError: If name or endpoint is empty, or the name cannot
                be split back out of a published tool name
            RegistrationError: If the backend cannot be connected or listed
        """
        if not config.name:
            msg = "Backend name is required"
            raise ValidationError(msg, error_code="BACKEND_NAME_REQUIRED")
        if SEPARATOR in config.name or config.name.endswith("_"):
            msg = f"Backend name {config.name!r} must not contain {SEPARATOR!r} or end with '_'"
            raise ValidationError(
                msg, error_code="BACKEND_NAME_INVALID", context={"server": config.name}
            )
        if not config.endpoint:
            msg = f"Endpoint is required for backend {config.name!r}"
            raise ValidationError(
                msg, error_code="BACKEND_ENDPOINT_REQUIRED", context={"server": config.name}
            )

        session = self._session_factory(config)
        tools_result = await session.connect()
        swapped = False
        try:
            descriptors = []
            for tool in tools_result.tools:
                if SEPARATOR in tool.name:
                    self.logger.warning(
                        "Skipping tool with separator in its name",
                        server=config.name,
                        tool=tool.name,
                    )
                    continue
                descriptors.append(tool)
            schemas = [publish_tool(config.name, tool) for tool in descriptors]

            backend = ToolBackend(
                name=config.name,
                endpoint=config.endpoint,
                session=session,
                tool_descriptors=descriptors,
                published_schemas=schemas,
            )

            async with self._lock.write():
                previous = self._backends.get(config.name)
                if previous is not None:
                    await self._close_quietly(previous.name, previous.session)
                self._backends[config.name] = backend
                if config.name not in self._order:
                    self._order.append(config.name)
                swapped = True
        except BaseException:
            if not swapped:
                await self._close_quietly(config.name, session)
            raise

        self.logger.info(
            "Registered MCP server",
            server=config.name,
            tools=[schema["function"]["name"] for schema in schemas],
        )

    async def register_all(
        self,
        configs: Iterable[BackendConfig],
        timeout: float | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
        backoff: float = DEFAULT_BACKOFF,
    ) -> None:
        """Register many backends concurrently, retrying each one.

        Each backend gets ``attempts`` tries with a doubling delay starting at
        ``backoff`` seconds. Successful registrations are kept whatever happens
        to the others.

        Raises:
            RegistrationError: After every registration finished or the timeout
                elapsed, if any backend failed; ``failures`` names them all
        """
        configs = list(configs)
        tasks = {
            asyncio.create_task(
                self._register_with_retry(config, attempts, backoff),
                name=f"register-{config.name or index}",
            ): config
            for index, config in enumerate(configs)
        }
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        failures: dict[str, Exception] = {}
        first_error: Exception | None = None
        for task, config in tasks.items():
            error: Exception | None
            if task in pending:
                error = TimeoutError(f"registration did not finish within {timeout}s")
            else:
                error = task.exception()  # type: ignore[assignment]
            if error is None:
                continue
            failures[config.name or f"<unnamed #{configs.index(config)}>"] = error
            if first_error is None:
                first_error = error

        if failures:
            self.logger.error(
                "Some MCP servers failed to register",
                failed=sorted(failures),
                registered=self.list_servers_in_order(),
            )
            msg = "Failed to register MCP servers: " + ", ".join(
                f"{name} ({error})" for name, error in failures.items()
            )
            raise RegistrationError(
                msg,
                error_code="REGISTRATION_FAILED",
                context={"failed": sorted(failures)},
                cause=first_error,
                failures=failures,
            )

    async def _register_with_retry(
        self, config: BackendConfig, attempts: int, backoff: float
    ) -> None:
        delay = backoff
        for attempt in range(1, attempts + 1):
            try:
                await self.register(config)
            except RegistrationError as e:
                self.logger.warning(
                    "Registration attempt failed",
                    server=config.name,
                    attempt=attempt,
                    attempts=attempts,
                    error=str(e),
                )
                if attempt == attempts:
                    raise
                await self._sleep(delay)
                delay *= 2
            else:
                return

    async def unregister(self, name: str) -> None:
        """Close a backend's connection and forget everything derived from it."""
        async with self._lock.write():
            backend = self._backends.pop(name, None)
            if name in self._order:
                self._order.remove(name)
            if backend is not None:
                await self._close_quietly(backend.name, backend.session)
        self.logger.info("Unregistered MCP server", server=name)

    async def _close_quietly(self, name: str, session: Any) -> None:  # noqa: ANN401
        try:
            await session.cleanup()
        except Exception as e:  # noqa: BLE001
            self.logger.warning("Error closing MCP server", server=name, error=str(e))

    async def catalogue(self) -> list[dict[str, Any]]:
        """Published schemas of every backend, in registration order."""
        async with self._lock.read():
            return [
                dict(schema)
                for name in self._order
                for schema in self._backends[name].published_schemas
            ]

    async def invoke(self, qualified_name: str, arguments: dict[str, Any]) -> str:
        """Route a call to ``<backend>__<tool>`` and return the result as JSON text.

        Raises:
            RoutingError: If the name is malformed
            NotFoundError: If the backend is not registered
            ToolExecutionError: If the backend call fails
        """
        backend_name, tool_name = split_tool_name(qualified_name)

        async with self._lock.read():
            backend = self._backends.get(backend_name)
        if backend is None:
            msg = f"No MCP server registered as {backend_name!r}"
            raise NotFoundError(
                msg, error_code="SERVER_NOT_FOUND", context={"tool": qualified_name}
            )

        self.logger.info(
            "Invoking tool", server=backend_name, tool=tool_name, arguments=arguments
        )
        try:
            result = await backend.session.call_tool(tool_name, arguments)
        except Exception as e:
            msg = f"Tool {qualified_name} failed: {e}"
            raise ToolExecutionError(
                msg, error_code="TOOL_CALL_FAILED", context={"tool": qualified_name}, cause=e
            ) from e

        return serialize_tool_result(result)

    def list_servers_in_order(self) -> list[str]:
        """Registered backend names, oldest registration first."""
        return list(self._order)

    def get_session(self, name: str) -> Any | None:  # noqa: ANN401
        """Connection of a registered backend, or None."""
        backend = self._backends.get(name)
        return backend.session if backend else None

    def schemas_for(self, name: str) -> list[dict[str, Any]]:
        """Copy of one backend's published schemas (empty if unknown)."""
        backend = self._backends.get(name)
        return [dict(schema) for schema in backend.published_schemas] if backend else []

    async def close(self) -> None:
        """Unregister every backend, newest first."""
        for name in reversed(self.list_servers_in_order()):
            await self.unregister(name)


_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    """Get the process-wide registry, creating it on first use."""
    global _registry  # noqa: PLW0603
    if _registry is None:
        _registry = ToolRegistry()
    return _registry
