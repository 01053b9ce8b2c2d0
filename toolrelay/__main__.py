#!/usr/bin/env python3
"""ToolRelay terminal chatbot.

Usage: python -m toolrelay [--servers FILE] [--mode once|stream] [--no-history]
       [--show-config] [--verbose]
"""

import argparse
import asyncio
import sys
from typing import Any

from dotenv import load_dotenv

from .chatbot import ChatBot
from .exceptions import ConfigurationError
from .logging_config import configure_logging, get_logger
from .settings import load_settings
from .utils import mask_sensitive_keys


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Terminal chatbot with MCP tool calling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Chat with the backends listed in servers.yaml
  python -m toolrelay

  # Stream replies token by token, without keeping history
  python -m toolrelay --mode stream --no-history

  # Show the effective configuration
  python -m toolrelay --show-config

Type exit, quit or bye to leave. /tools, /history and /clear work in the chat.
        """,
    )

    parser.add_argument("--servers", help="YAML file listing MCP servers")
    parser.add_argument(
        "--mode", choices=["once", "stream"], help="Reply flavor (default: once)"
    )
    parser.add_argument(
        "--no-history", action="store_true", help="Answer each message independently"
    )
    parser.add_argument(
        "--show-config", action="store_true", help="Show current configuration and exit"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    return parser.parse_args(argv)


def settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Settings fields overridden on the command line."""
    overrides: dict[str, Any] = {}
    if args.servers:
        overrides["servers_config_file"] = args.servers
    if args.mode:
        overrides["response_mode"] = args.mode
    if args.no_history:
        overrides["allow_history"] = False
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return overrides


async def run_chat(chatbot: ChatBot) -> None:
    """Register backends, chat, and always close the connections."""
    try:
        registered = await chatbot.connect_servers()
        if chatbot.registration_error is not None:
            print(f"⚠️  {chatbot.registration_error.message}")
        print(f"🔌 MCP servers: {', '.join(registered) or 'none'}")
        print("💬 You can start chatting (type exit, quit or bye to leave)")
        await chatbot.run()
    finally:
        await chatbot.cleanup()


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    load_dotenv()

    try:
        settings = load_settings(**settings_overrides(args))
    except ConfigurationError as e:
        print(f"❌ Error: {e.message}")
        for detail in e.context.get("errors", []):
            print(f"   - {detail}")
        sys.exit(1)

    configure_logging(level=settings.log_level, format_json=settings.log_format_json)
    logger = get_logger(__name__)

    if args.show_config:
        for key, value in mask_sensitive_keys(settings.model_dump()).items():
            print(f"{key}: {value}")
        return

    try:
        chatbot = ChatBot(settings)
        asyncio.run(run_chat(chatbot))
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except ConfigurationError as e:
        logger.error("Startup failed", error=e.to_dict())
        print(f"❌ Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
