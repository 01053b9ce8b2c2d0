from collections.abc import AsyncIterator

from .connection_config import ConnectionConfig
from .conversation import ConversationManager
from .exceptions import RegistrationError
from .gateway import CompletionGateway, ModelParams, get_completion_gateway
from .logging_config import get_logger
from .pipeline import ChannelPipeline, ConsoleRenderer, Reader
from .recovery import TruncatedJSONRecovery
from .registry import ToolRegistry, get_tool_registry
from .settings import Settings
from .transcript import Transcript


class ChatBot:
    """Wires settings, tool registry, completion gateway and conversation together.

    The registry and gateway are process-wide services; a ChatBot borrows them
    and owns its transcript.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ToolRegistry | None = None,
        gateway: CompletionGateway | None = None,
    ) -> None:
        """Initialize the ChatBot; no backend is contacted until connect_servers()."""
        self.settings = settings
        self.logger = get_logger(__name__)
        self.registry = registry or get_tool_registry()
        self.gateway = gateway or get_completion_gateway(
            api_key=settings.openai_api_key, base_url=settings.openai_base_url
        )
        self.connection_config = ConnectionConfig(settings.servers_config_file)
        self.transcript = Transcript(settings.system_message)
        self.conversation = ConversationManager(
            self.registry,
            self.gateway,
            self.transcript,
            ModelParams(
                model=settings.model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                seed=settings.seed,
            ),
            allow_history=settings.allow_history,
            history_size=settings.history_size,
            max_tool_rounds=settings.max_tool_rounds,
            stream=settings.response_mode == "stream",
            recovery=TruncatedJSONRecovery(),
        )
        self.registration_error: RegistrationError | None = None

        self.logger.info(
            "ChatBot initialized",
            model=settings.model,
            mode=settings.response_mode,
            allow_history=settings.allow_history,
        )

    async def connect_servers(self) -> list[str]:
        """Register every configured backend; failures leave the rest usable.

        Returns:
            Names of the registered backends in registration order
        """
        backends = self.connection_config.get_backends()
        try:
            await self.registry.register_all(
                backends,
                timeout=self.settings.registration_timeout,
                attempts=self.settings.registration_attempts,
                backoff=self.settings.registration_backoff,
            )
        except RegistrationError as e:
            self.registration_error = e
            self.logger.warning("Continuing without some MCP servers", failed=sorted(e.failures))
        return self.registry.list_servers_in_order()

    def process_message(self, user_message: str) -> AsyncIterator[str]:
        """Run one turn; returns an async iterator of output text."""
        return self.conversation.process_message(user_message)

    async def run(
        self, reader: Reader | None = None, renderer: ConsoleRenderer | None = None
    ) -> None:
        """Chat on the terminal until the user exits."""
        pipeline = ChannelPipeline(
            self.conversation,
            renderer=renderer,
            reader=reader,
            commands={
                "/tools": self._describe_tools,
                "/history": self._describe_history,
                "/clear": self._clear_history,
            },
        )
        await pipeline.run()

    async def _describe_tools(self) -> str:
        catalogue = await self.registry.catalogue()
        if not catalogue:
            return "No tools available."
        lines = [f"{len(catalogue)} tools:"]
        lines.extend(
            f"  - {tool['function']['name']}: {tool['function']['description']}"
            for tool in catalogue
        )
        return "\n".join(lines)

    async def _describe_history(self) -> str:
        return f"History holds {len(self.transcript)} messages."

    async def _clear_history(self) -> str:
        self.transcript.clear()
        return "History cleared."

    async def cleanup(self) -> None:
        """Close every backend connection."""
        await self.registry.close()
