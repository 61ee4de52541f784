"""Application configuration using Pydantic Settings.

This module provides centralized configuration management for the LeoForge
stream client. All settings can be overridden via environment variables or a
.env file.
"""

import json
import logging
from typing import Any

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        server_base_url: Base URL of the generation server (HTTP scheme).
        websocket_path: Path of the SockJS event stream endpoint.
        api_prefix: Path prefix of the generation server's REST API.
        http_timeout_seconds: Timeout for REST calls to the generation server.
        connect_timeout_seconds: Timeout for opening the event stream.
        reconnect_base_delay_seconds: Linear backoff unit between reconnects.
        max_reconnect_attempts: Automatic reconnect attempts before giving up.
        connect_on_startup: Open the event stream when the UI surface starts.
        ui_port: Port for the local UI surface.
        cors_origins: Allowed origins for the local UI surface.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """

    # Generation server
    server_base_url: str = "http://localhost:8080"
    websocket_path: str = "/ws/generation"
    api_prefix: str = "/api"
    http_timeout_seconds: float = 30.0

    # Connection policy
    connect_timeout_seconds: float = 10.0
    reconnect_base_delay_seconds: float = 1.0
    max_reconnect_attempts: int = 5
    connect_on_startup: bool = True

    # Local UI surface
    ui_port: int = 3001
    cors_origins: str | list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from string or list.

        Accepts:
        - JSON array: '["http://localhost:3000"]'
        - Comma-separated: 'http://localhost:3000,http://localhost:8080'
        - Single value: 'http://localhost:3000'
        - Already a list: ["http://localhost:3000"]
        """
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return ["http://localhost:3000"]

    @field_validator("server_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended directly."""
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_prefix="LEOFORGE_",
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def stream_url(self) -> str:
        """Full URL of the SockJS endpoint."""
        return f"{self.server_base_url}{self.websocket_path}"

    @property
    def api_base_url(self) -> str:
        """Full base URL of the generation server's REST API."""
        return f"{self.server_base_url}{self.api_prefix}"


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging for the application.

    Sets up structlog with appropriate processors for either JSON or console output.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format - 'json' for production, 'text' for development.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Global settings instance
settings = Settings()

# Configure logging on module import
configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger(__name__)
