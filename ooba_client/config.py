"""Configuration management for the Oobabooga client."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from .logging_utils import configure_logging
from .models import ClientConfig, StreamingSettings

ENV_BASE_URL = "OOBABOOGA_BASE_URL"
ENV_API_KEY = "OOBABOOGA_API_KEY"
ENV_MODEL = "OOBABOOGA_MODEL"

VALID_RENDERERS = ("console", "json")


class Configuration:
    """Loads client settings from YAML and environment variables."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables.

        Args:
            config_path: YAML file to read; defaults to config.yaml beside
                this module.
        """
        self.load_env()
        self.config_path = config_path or os.path.join(
            os.path.dirname(__file__), "config.yaml"
        )
        self._config = self._load_yaml_config(self.config_path)

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_server_config(self) -> dict[str, Any]:
        """Get server settings, with environment overrides applied.

        Returns:
            Server configuration dictionary.

        Raises:
            ValueError: If base_url is missing or not an http(s) URL.
        """
        server_config = {**self._config.get("server", {})}

        overrides = {
            "base_url": os.getenv(ENV_BASE_URL),
            "api_key": os.getenv(ENV_API_KEY),
            "model": os.getenv(ENV_MODEL),
        }
        for key, value in overrides.items():
            if value:
                server_config[key] = value

        base_url = server_config.get("base_url")
        if not base_url:
            raise ValueError(
                "server.base_url must be explicitly configured in config.yaml "
                f"or via {ENV_BASE_URL}"
            )
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"server.base_url must start with http:// or https://, got '{base_url}'"
            )

        return server_config

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP connection settings.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self._config.get("http_client", {})

        required_keys = [
            "max_connections", "max_keepalive", "keepalive_expiry",
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout",
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"http_client.{key} must be explicitly configured in config.yaml"
                )

        if http_config["max_connections"] < 1:
            raise ValueError("http_client.max_connections must be at least 1")
        if http_config["max_keepalive"] > http_config["max_connections"]:
            raise ValueError("http_client.max_keepalive must be <= max_connections")
        for key in ("connect_timeout", "read_timeout", "write_timeout", "pool_timeout"):
            if http_config[key] <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return http_config

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming pipeline settings.

        Returns:
            Streaming configuration dictionary.

        Raises:
            ValueError: If a value is out of range.
        """
        streaming_config = {**self._config.get("streaming", {})}

        excerpt_length = streaming_config.get("error_excerpt_length", 500)
        if excerpt_length < 1:
            raise ValueError("streaming.error_excerpt_length must be at least 1")

        for key in ("strict_termination", "require_event_stream"):
            if key in streaming_config and not isinstance(streaming_config[key], bool):
                raise ValueError(f"streaming.{key} must be a boolean")

        return streaming_config

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        logging_config = {
            "level": "INFO",
            "renderer": "console",
            **self._config.get("logging", {}),
        }
        if logging_config["renderer"] not in VALID_RENDERERS:
            raise ValueError(
                f"logging.renderer must be one of: {list(VALID_RENDERERS)}"
            )
        return logging_config

    def setup_logging(self) -> None:
        """Apply the logging section to structlog."""
        logging_config = self.get_logging_config()
        configure_logging(logging_config["level"], logging_config["renderer"])

    def get_client_config(self) -> ClientConfig:
        """Build the frozen client settings from all sections."""
        server_config = self.get_server_config()
        http_config = self.get_http_client_config()
        streaming_config = self.get_streaming_config()

        defaults = server_config.get("defaults", {})

        return ClientConfig(
            base_url=server_config["base_url"],
            api_key=server_config.get("api_key"),
            model=server_config.get("model"),
            max_tokens=defaults.get("max_tokens"),
            temperature=defaults.get("temperature"),
            max_connections=http_config["max_connections"],
            max_keepalive=http_config["max_keepalive"],
            keepalive_expiry=http_config["keepalive_expiry"],
            connect_timeout=http_config["connect_timeout"],
            read_timeout=http_config["read_timeout"],
            write_timeout=http_config["write_timeout"],
            pool_timeout=http_config["pool_timeout"],
            streaming=StreamingSettings(
                strict_termination=streaming_config.get("strict_termination", False),
                require_event_stream=streaming_config.get("require_event_stream", True),
                error_excerpt_length=streaming_config.get("error_excerpt_length", 500),
            ),
        )
