"""Configuration management for the chat relay."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


class Configuration:
    """Manages configuration and environment variables for the chat relay."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    def get_provider_config(self) -> dict[str, Any]:
        """Get chat provider configuration from YAML.

        Returns:
            Provider configuration with ``endpoint``, ``principal`` and
            ``api_key_env``.

        Raises:
            ValueError: If a required key is missing or empty.
        """
        provider_config = self._config.get("provider", {})

        for key in ("endpoint", "principal", "api_key_env"):
            value = provider_config.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(
                    f"provider.{key} must be explicitly configured in config.yaml"
                )

        return provider_config

    @property
    def api_key(self) -> str:
        """Get the API key for the configured provider.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        env_key = self.get_provider_config()["api_key_env"]
        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables"
            )
        return api_key

    def get_http_client_config(self) -> dict[str, Any]:
        """Get HTTP client configuration.

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
        """Get streaming configuration.

        Returns:
            Dictionary with ``task_id_header`` and ``report_parse_failures``.
        """
        streaming_config = self._config.get("streaming", {})

        task_id_header = streaming_config.get("task_id_header", "X-Task-Id")
        if not isinstance(task_id_header, str) or not task_id_header:
            raise ValueError("streaming.task_id_header must be a non-empty string")

        return {
            "task_id_header": task_id_header,
            "report_parse_failures": bool(
                streaming_config.get("report_parse_failures", True)
            ),
        }

    def get_viewer_config(self) -> dict[str, Any]:
        """Get viewer configuration (thinking markers)."""
        viewer_config = self._config.get("viewer", {})
        open_marker = viewer_config.get("think_start", "<think>")
        close_marker = viewer_config.get("think_end", "</think>")

        if not open_marker or not close_marker:
            raise ValueError("viewer.think_start and viewer.think_end must be non-empty")
        if open_marker == close_marker:
            raise ValueError("viewer.think_start and viewer.think_end must differ")

        return {"think_start": open_marker, "think_end": close_marker}

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._config.get("logging", {})
