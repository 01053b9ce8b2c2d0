"""Tests for the command line entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from toolrelay.__main__ import main, parse_args, settings_overrides
from toolrelay.exceptions import ConfigurationMissingError, RegistrationError


@pytest.fixture
def fake_chatbot():
    chatbot = MagicMock()
    chatbot.connect_servers = AsyncMock(return_value=["weather"])
    chatbot.run = AsyncMock()
    chatbot.cleanup = AsyncMock()
    chatbot.registration_error = None
    return chatbot


@pytest.fixture(autouse=True)
def no_side_effects():
    with (
        patch("toolrelay.__main__.load_dotenv"),
        patch("toolrelay.__main__.configure_logging") as configure_logging,
    ):
        yield configure_logging


class TestParseArgs:
    """Test suite for argument parsing."""

    def test_defaults(self):
        """Test that no flag overrides any setting."""
        args = parse_args([])
        assert settings_overrides(args) == {}
        assert args.show_config is False

    def test_all_flags(self):
        """Test that every flag maps onto a settings field."""
        args = parse_args(["--servers", "prod.yaml", "--mode", "stream", "--no-history", "-v"])

        assert settings_overrides(args) == {
            "servers_config_file": "prod.yaml",
            "response_mode": "stream",
            "allow_history": False,
            "log_level": "DEBUG",
        }

    def test_invalid_mode(self):
        """Test that unknown modes are rejected by argparse."""
        with pytest.raises(SystemExit):
            parse_args(["--mode", "chunked"])


class TestMain:
    """Test suite for main."""

    def test_configuration_error_exits(self, capsys):
        """Test that missing configuration is fatal with status 1."""
        error = ConfigurationMissingError(
            "Missing required configuration: OPENAI_API_KEY", error_code="CONFIG_MISSING"
        )
        with patch("toolrelay.__main__.load_settings", side_effect=error):
            with pytest.raises(SystemExit) as exc_info:
                main([])

        assert exc_info.value.code == 1
        assert "❌ Error: Missing required configuration: OPENAI_API_KEY" in capsys.readouterr().out

    def test_show_config_masks_secrets(self, settings, capsys):
        """Test that --show-config prints settings without the API key."""
        with (
            patch("toolrelay.__main__.load_settings", return_value=settings),
            patch("toolrelay.__main__.ChatBot") as chatbot_cls,
        ):
            main(["--show-config"])

        out = capsys.readouterr().out
        assert "openai_api_key: ***REDACTED***" in out
        assert "sk-test" not in out
        assert "model: gpt-4.1" in out
        chatbot_cls.assert_not_called()

    def test_overrides_passed_to_settings(self, settings, fake_chatbot, no_side_effects):
        """Test that command line flags reach the settings loader."""
        with (
            patch("toolrelay.__main__.load_settings", return_value=settings) as load_settings,
            patch("toolrelay.__main__.ChatBot", return_value=fake_chatbot),
        ):
            main(["--mode", "stream", "-v"])

        load_settings.assert_called_once_with(response_mode="stream", log_level="DEBUG")
        no_side_effects.assert_called_once_with(
            level=settings.log_level, format_json=settings.log_format_json
        )

    def test_chat_session(self, settings, fake_chatbot, capsys):
        """Test that a session registers backends, chats and cleans up."""
        with (
            patch("toolrelay.__main__.load_settings", return_value=settings),
            patch("toolrelay.__main__.ChatBot", return_value=fake_chatbot),
        ):
            main([])

        fake_chatbot.connect_servers.assert_awaited_once()
        fake_chatbot.run.assert_awaited_once()
        fake_chatbot.cleanup.assert_awaited_once()
        assert "🔌 MCP servers: weather" in capsys.readouterr().out

    def test_registration_failure_reported(self, settings, fake_chatbot, capsys):
        """Test that failed backends are announced before chatting."""
        fake_chatbot.registration_error = RegistrationError(
            "Failed to register MCP servers: notion (refused)"
        )
        with (
            patch("toolrelay.__main__.load_settings", return_value=settings),
            patch("toolrelay.__main__.ChatBot", return_value=fake_chatbot),
        ):
            main([])

        out = capsys.readouterr().out
        assert "Failed to register MCP servers: notion (refused)" in out
        fake_chatbot.run.assert_awaited_once()

    def test_cleanup_after_failure(self, settings, fake_chatbot):
        """Test that backends are closed even when the chat loop fails."""
        fake_chatbot.run.side_effect = RuntimeError("terminal lost")
        with (
            patch("toolrelay.__main__.load_settings", return_value=settings),
            patch("toolrelay.__main__.ChatBot", return_value=fake_chatbot),
        ):
            with pytest.raises(RuntimeError):
                main([])

        fake_chatbot.cleanup.assert_awaited_once()
