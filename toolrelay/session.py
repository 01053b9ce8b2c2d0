import asyncio
import os
import shlex
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.client.streamable_http import streamablehttp_client

from .connection_config import BackendConfig
from .exceptions import (
    RegistrationError,
    ToolExecutionError,
)
from .logging_config import get_logger
from .utils import log_and_wrap_error


def describe_transport(endpoint: str) -> str:
    """Pick the MCP transport for an endpoint: 'sse', 'http' or 'stdio'."""
    if endpoint.startswith(("http://", "https://")):
        return "sse" if endpoint.rstrip("/").endswith("/sse") else "http"
    return "stdio"


class MCPSession:
    """One connection to an MCP server.

    The transport and ``ClientSession`` contexts are entered and exited by a
    dedicated owner task, so the connection can be opened from one task and
    closed from another.
    """

    def __init__(self, config: BackendConfig) -> None:
        self.config = config
        self.session: ClientSession | None = None
        self.logger = get_logger(__name__).bind(server=config.name)
        self.server_info: dict[str, Any] = {
            "name": config.name,
            "endpoint": config.endpoint,
            "transport": describe_transport(config.endpoint),
        }
        self._owner: asyncio.Task[None] | None = None
        self._ready = asyncio.Event()
        self._closing = asyncio.Event()
        self._error: BaseException | None = None
        self._tools_result: Any = None

    async def connect(self) -> Any:  # noqa: ANN401
        """Open the connection, initialize it and list the server's tools.

        Returns:
            The ``ListToolsResult`` reported by the server

        Raises:
            RegistrationError: If the server cannot be reached or listed
        """
        self.logger.info(
            "Connecting to MCP server",
            endpoint=self.config.endpoint,
            transport=self.server_info["transport"],
        )
        self._owner = asyncio.create_task(
            self._own_connection(), name=f"mcp-{self.config.name}"
        )
        try:
            await self._ready.wait()
        except asyncio.CancelledError:
            self._owner.cancel()
            raise

        if self._error is not None:
            wrapped_error = log_and_wrap_error(
                self._error,  # type: ignore[arg-type]
                RegistrationError,
                f"Could not connect to MCP server {self.config.name}",
                error_code="MCP_CONNECTION_FAILED",
                context={"server": self.config.name, "endpoint": self.config.endpoint},
                logger=self.logger,
            )
            raise wrapped_error from self._error

        self.logger.info(
            "Connected to MCP server", tools=len(self._tools_result.tools)
        )
        return self._tools_result

    async def _own_connection(self) -> None:
        try:
            async with AsyncExitStack() as stack:
                read, write = await self._open_transport(stack)
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()
                self._tools_result = await session.list_tools()
                self.session = session
                self._ready.set()
                await self._closing.wait()
        except Exception as e:  # noqa: BLE001
            if not self._ready.is_set():
                self._error = e
            else:
                self.logger.warning("MCP connection ended with error", error=str(e))
        finally:
            self.session = None
            self._ready.set()

    async def _open_transport(self, stack: AsyncExitStack) -> tuple[Any, Any]:
        endpoint = self.config.endpoint
        transport = self.server_info["transport"]
        headers = (
            {"Authorization": f"Bearer {self.config.api_key}"}
            if self.config.api_key
            else None
        )

        if transport == "sse":
            read, write = await stack.enter_async_context(
                sse_client(endpoint, headers=headers)
            )
            return read, write

        if transport == "http":
            read, write, _get_session_id = await stack.enter_async_context(
                streamablehttp_client(endpoint, headers=headers)
            )
            return read, write

        command_args = shlex.split(endpoint)
        env = None
        if self.config.api_key:
            env = {**os.environ, "MCP_API_KEY": self.config.api_key}
        params = StdioServerParameters(
            command=command_args[0], args=command_args[1:], env=env
        )
        read, write = await stack.enter_async_context(stdio_client(params))
        return read, write

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:  # noqa: ANN401
        """Call a tool on the MCP server by its short name."""
        if self.session is None:
            msg = f"Session for {self.config.name} is not connected"
            raise ToolExecutionError(msg, error_code="SESSION_NOT_CONNECTED")

        return await self.session.call_tool(name, arguments=arguments)

    async def cleanup(self) -> None:
        """Close the connection. Errors are logged, never raised."""
        if self._owner is None:
            return
        self.logger.info("Closing MCP connection")
        self._closing.set()
        try:
            await self._owner
        except asyncio.CancelledError:
            pass
        except Exception as e:  # noqa: BLE001
            self.logger.warning("Error during session cleanup", error=str(e))
        finally:
            self._owner = None
