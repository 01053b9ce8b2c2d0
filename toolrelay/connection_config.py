import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import (
    ConfigurationLoadError,
    ConfigurationValidationError,
)
from .logging_config import get_logger
from .utils import log_and_wrap_error, mask_sensitive_keys


@dataclass(frozen=True)
class BackendConfig:
    """One tool backend to register.

    ``endpoint`` is an SSE or streamable-HTTP URL, or a stdio command line.
    """

    name: str
    endpoint: str
    api_key: str | None = None

    def __repr__(self) -> str:
        key = "***" if self.api_key else None
        return f"BackendConfig(name={self.name!r}, endpoint={self.endpoint!r}, api_key={key!r})"


class ConnectionConfig:
    """Loads the list of tool backends from a YAML file."""

    def __init__(self, config_file: str = "servers.yaml") -> None:
        """Initialize the connection configuration manager.

        Args:
            config_file: Path to the configuration file
        """
        self.config_file = config_file
        self.config: dict[str, Any] = {}
        self.logger = get_logger(__name__)
        self.load_config()

    def load_config(self) -> None:
        """Load backend configuration from file.

        A missing file means no backends; the chatbot then runs without tools.
        """
        config_path = Path(self.config_file)

        if not config_path.exists():
            self.logger.warning("Servers file not found", config_file=self.config_file)
            self.config = {"servers": []}
            return

        try:
            with config_path.open(encoding="utf-8") as f:
                self.config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            wrapped_error = log_and_wrap_error(
                e,
                ConfigurationLoadError,
                "Failed to load servers configuration",
                error_code="CONFIG_LOAD_FAILED",
                context={"config_file": self.config_file},
                logger=self.logger,
            )
            raise wrapped_error from e

        if not isinstance(self.config, dict):
            msg = f"{self.config_file} must contain a mapping with a 'servers' list"
            raise ConfigurationValidationError(
                msg,
                error_code="CONFIG_NOT_MAPPING",
                context={"config_file": self.config_file},
            )

        self.logger.info(
            "Loaded servers config",
            config_file=self.config_file,
            servers=mask_sensitive_keys(self.config).get("servers"),
        )

    def get_backends(self) -> list[BackendConfig]:
        """Return the configured backends in file order.

        Raises:
            ConfigurationValidationError: If an entry is not a mapping
        """
        entries = self.config.get("servers") or []
        if not isinstance(entries, list):
            msg = f"'servers' in {self.config_file} must be a list"
            raise ConfigurationValidationError(
                msg,
                error_code="SERVERS_NOT_LIST",
                context={"config_file": self.config_file},
            )

        backends: list[BackendConfig] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                msg = f"Server entry #{index} in {self.config_file} must be a mapping"
                raise ConfigurationValidationError(
                    msg,
                    error_code="SERVER_ENTRY_INVALID",
                    context={"index": index},
                )

            api_key = entry.get("api_key")
            if not api_key and entry.get("api_key_env"):
                api_key = os.getenv(entry["api_key_env"])

            backends.append(
                BackendConfig(
                    name=str(entry.get("name") or ""),
                    endpoint=str(entry.get("endpoint") or ""),
                    api_key=api_key or None,
                )
            )
        return backends
