"""Application settings loaded from the environment and ``.env``."""

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError, ConfigurationMissingError


class Settings(BaseSettings):
    """Application settings.

    The OpenAI key, token cap, temperature and system message also accept the
    bare names used by earlier deployments (``OPENAI_API_KEY``, ``MAX_TOKENS``,
    ``TEMPERATURE``, ``SYSTEM_MESSAGE``).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TOOLRELAY_",
        extra="ignore",
        populate_by_name=True,
    )

    # Completion API
    openai_api_key: str = Field(
        validation_alias=AliasChoices("OPENAI_API_KEY", "TOOLRELAY_OPENAI_API_KEY"),
        min_length=1,
    )
    openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_BASE_URL", "TOOLRELAY_OPENAI_BASE_URL"),
    )
    model: str = "gpt-4.1"
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        validation_alias=AliasChoices("TEMPERATURE", "TOOLRELAY_TEMPERATURE"),
    )
    max_tokens: int | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("MAX_TOKENS", "TOOLRELAY_MAX_TOKENS"),
    )
    seed: int | None = 0

    # Conversation
    system_message: str = Field(
        default="",
        validation_alias=AliasChoices("SYSTEM_MESSAGE", "TOOLRELAY_SYSTEM_MESSAGE"),
    )
    system_message_file: Path | None = None
    allow_history: bool = True
    history_size: int = Field(default=5, ge=0)
    max_tool_rounds: int = Field(default=8, ge=1)
    response_mode: Literal["once", "stream"] = "once"

    # Tool backends
    servers_config_file: str = "servers.yaml"
    registration_timeout: float = Field(default=30.0, gt=0)
    registration_attempts: int = Field(default=3, ge=1)
    registration_backoff: float = Field(default=0.3, ge=0)

    # Logging
    log_level: str = "INFO"
    log_format_json: bool = True

    @model_validator(mode="after")
    def _resolve_system_message(self) -> "Settings":
        if self.system_message_file is not None:
            try:
                self.system_message = self.system_message_file.read_text(
                    encoding="utf-8"
                )
            except OSError as e:
                msg = f"cannot read system message file {self.system_message_file}: {e}"
                raise ValueError(msg) from e

        self.system_message = self.system_message.strip()
        if not self.system_message:
            msg = "a system message is required (SYSTEM_MESSAGE or system_message_file)"
            raise ValueError(msg)
        return self


def load_settings(**overrides: Any) -> Settings:  # noqa: ANN401
    """Build settings, converting validation failures to ConfigurationError."""
    try:
        return Settings(**overrides)
    except PydanticValidationError as e:
        missing = [
            ".".join(str(part) for part in err["loc"])
            for err in e.errors()
            if err["type"] == "missing"
        ]
        if missing:
            msg = f"Missing required configuration: {', '.join(missing)}"
            raise ConfigurationMissingError(
                msg, error_code="CONFIG_MISSING", context={"fields": missing}, cause=e
            ) from e
        msg = f"Invalid configuration: {e.error_count()} error(s)"
        raise ConfigurationError(
            msg,
            error_code="CONFIG_INVALID",
            context={"errors": [err["msg"] for err in e.errors()]},
            cause=e,
        ) from e


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings instance, loading it on first use."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings
