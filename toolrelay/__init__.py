"""ToolRelay.

A terminal chatbot that relays user text to an OpenAI-compatible completion API
and lets the model call tools on any number of MCP servers.

Main Components:
- ToolRegistry: connections to MCP servers and the unified tool catalogue
- CompletionGateway: chat completion requests, whole or streamed
- Transcript: conversation history with a sliding window
- ConversationManager: the request / tool call / re-request loop
- ChannelPipeline: inbound and outbound workers between terminal and loop
- ChatBot: composition root used by the CLI

Quick Start:
    from toolrelay import ChatBot, load_settings

    bot = ChatBot(load_settings())
    await bot.connect_servers()
    async for chunk in bot.process_message("What's the weather in Paris?"):
        print(chunk, end="")
    await bot.cleanup()
"""

from .chatbot import ChatBot
from .connection_config import BackendConfig, ConnectionConfig
from .conversation import ConversationManager, TurnState
from .exceptions import (
    ArgumentParseError,
    ConfigurationError,
    ConfigurationLoadError,
    ConfigurationMissingError,
    ConfigurationValidationError,
    EmptyResponseError,
    ExternalServiceError,
    InternalFault,
    NotFoundError,
    RegistrationError,
    RoutingError,
    ToolError,
    ToolExecutionError,
    ToolRelayError,
    UpstreamError,
    ValidationError,
    get_exception_for_domain,
    wrap_exception,
)
from .gateway import AssistantReply, CompletionGateway, ModelParams
from .pipeline import ChannelPipeline
from .registry import ToolRegistry, get_tool_registry
from .settings import Settings, get_settings, load_settings
from .transcript import Transcript

__all__ = [
    "ArgumentParseError",
    "AssistantReply",
    "BackendConfig",
    "ChannelPipeline",
    "ChatBot",
    "CompletionGateway",
    "ConfigurationError",
    "ConfigurationLoadError",
    "ConfigurationMissingError",
    "ConfigurationValidationError",
    "ConnectionConfig",
    "ConversationManager",
    "EmptyResponseError",
    "ExternalServiceError",
    "InternalFault",
    "ModelParams",
    "NotFoundError",
    "RegistrationError",
    "RoutingError",
    "Settings",
    "ToolError",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolRelayError",
    "Transcript",
    "TurnState",
    "UpstreamError",
    "ValidationError",
    "get_exception_for_domain",
    "get_settings",
    "get_tool_registry",
    "load_settings",
    "wrap_exception",
]

__version__ = "1.0.0"
