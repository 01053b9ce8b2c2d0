"""Tests for application settings."""

import pytest

from toolrelay.exceptions import ConfigurationError, ConfigurationMissingError
from toolrelay.settings import Settings, get_settings, load_settings

ENV_NAMES = [
    "OPENAI_API_KEY",
    "TOOLRELAY_OPENAI_API_KEY",
    "SYSTEM_MESSAGE",
    "TOOLRELAY_SYSTEM_MESSAGE",
    "TEMPERATURE",
    "MAX_TOKENS",
    "TOOLRELAY_MODEL",
    "TOOLRELAY_RESPONSE_MODE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    """Test suite for Settings."""

    def test_defaults(self, settings):
        """Test default values."""
        assert settings.model == "gpt-4.1"
        assert settings.temperature == 0.7
        assert settings.max_tokens is None
        assert settings.seed == 0
        assert settings.allow_history is True
        assert settings.history_size == 5
        assert settings.max_tool_rounds == 8
        assert settings.response_mode == "once"
        assert settings.registration_attempts == 3
        assert settings.registration_backoff == 0.3

    def test_environment_names(self, monkeypatch):
        """Test the bare and prefixed environment variable names."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("SYSTEM_MESSAGE", "Be brief.")
        monkeypatch.setenv("TEMPERATURE", "0.2")
        monkeypatch.setenv("MAX_TOKENS", "512")
        monkeypatch.setenv("TOOLRELAY_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("TOOLRELAY_RESPONSE_MODE", "stream")

        settings = Settings(_env_file=None)

        assert settings.openai_api_key == "sk-env"
        assert settings.system_message == "Be brief."
        assert settings.temperature == 0.2
        assert settings.max_tokens == 512
        assert settings.model == "gpt-4o-mini"
        assert settings.response_mode == "stream"

    def test_env_file(self, tmp_path):
        """Test loading from a .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("OPENAI_API_KEY=sk-dotenv\nSYSTEM_MESSAGE=From file\n")

        settings = Settings(_env_file=env_file)

        assert settings.openai_api_key == "sk-dotenv"
        assert settings.system_message == "From file"

    def test_system_message_file(self, tmp_path):
        """Test that the system message can be read from a file."""
        prompt = tmp_path / "system.txt"
        prompt.write_text("  You answer weather questions.\n", encoding="utf-8")

        settings = Settings(_env_file=None, openai_api_key="sk-test", system_message_file=prompt)

        assert settings.system_message == "You answer weather questions."


class TestLoadSettings:
    """Test suite for load_settings."""

    def test_missing_api_key(self):
        """Test that a missing credential is a ConfigurationMissingError."""
        with pytest.raises(ConfigurationMissingError) as exc_info:
            load_settings(_env_file=None, system_message="sys")

        assert exc_info.value.error_code == "CONFIG_MISSING"
        assert exc_info.value.context["fields"]

    def test_missing_system_message(self):
        """Test that an empty system message is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(_env_file=None, openai_api_key="sk-test", system_message="   ")

        assert exc_info.value.error_code == "CONFIG_INVALID"
        assert any("system message" in error for error in exc_info.value.context["errors"])

    def test_unreadable_system_message_file(self, tmp_path):
        """Test that a missing prompt file is a configuration error."""
        with pytest.raises(ConfigurationError):
            load_settings(
                _env_file=None,
                openai_api_key="sk-test",
                system_message_file=tmp_path / "missing.txt",
            )

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("temperature", 3.0),
            ("max_tokens", 0),
            ("response_mode", "chunked"),
            ("max_tool_rounds", 0),
            ("history_size", -1),
        ],
    )
    def test_invalid_values(self, field, value):
        """Test that out-of-range values are configuration errors."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(
                _env_file=None, openai_api_key="sk-test", system_message="sys", **{field: value}
            )

        assert not isinstance(exc_info.value, ConfigurationMissingError)

    def test_get_settings_is_shared(self, monkeypatch):
        """Test the process-wide settings accessor."""
        monkeypatch.setattr("toolrelay.settings._settings", None)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("SYSTEM_MESSAGE", "sys")

        first = get_settings()

        assert first is get_settings()
        assert first.openai_api_key == "sk-env"
