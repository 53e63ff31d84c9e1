"""
Constants and configuration for toolstream.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

#: Log output directory
LOG_DIR = PROJECT_ROOT / "logs"

# ============================================================================
# Tool Naming
# ============================================================================

#: Separator between server id and tool name in a qualified tool name.
#: Server ids must not contain it; tool names may.
QUALIFIED_NAME_SEPARATOR = "__"

# ============================================================================
# Agentic Loop Configuration
# ============================================================================

#: Maximum generate/execute rounds per chat request.
#: Reaching the bound ends the reply with a "truncated" event.
DEFAULT_MAX_TOOL_ROUNDS = 10

#: Notice appended to the text channel when the model stream fails mid-round.
STREAM_ERROR_NOTICE = "\n\n[Error: the response stream was interrupted: {error}]"

# ============================================================================
# Stream Protocol
# ============================================================================

#: Opens an event envelope in the delimited text protocol.
#: Begins with STX so ordinary model output never produces it unescaped.
EVENT_OPEN = "\x02event:"

#: Closes an event envelope. JSON payloads escape control characters,
#: so a payload can never contain it.
EVENT_CLOSE = "\x03"

#: Escape prefix for literal STX / DLE characters inside text fragments.
EVENT_ESCAPE = "\x10"

#: Media types for the two outbound encodings.
MEDIA_TYPE_DELIMITED = "text/plain; charset=utf-8"
MEDIA_TYPE_FRAMED = "application/x-ndjson"

# Stream event types
EVENT_CALL_START = "call_start"
EVENT_CALL_RESULT = "call_result"
EVENT_TRUNCATED = "truncated"

#: Frame type for plain text in the NDJSON protocol.
FRAME_TEXT = "text"

# ============================================================================
# MCP Transport Configuration
# ============================================================================

#: Handshake timeout for MCP connections (seconds).
MCP_CONNECT_TIMEOUT = 30.0

#: Timeout for tools/list, prompts/list and resources/list requests (seconds).
MCP_LIST_TOOLS_TIMEOUT = 30.0

#: Timeout for tools/call requests (seconds).
#: Default SDK timeouts are too short for fetch/search style tools.
MCP_CALL_TOOL_TIMEOUT = 60.0

#: MCP protocol version announced by the websocket client.
MCP_PROTOCOL_VERSION = "2024-11-05"

#: Client identity announced during the MCP handshake.
MCP_CLIENT_NAME = "toolstream"
MCP_CLIENT_VERSION = "0.1.0"

# ============================================================================
# Model Defaults
# ============================================================================

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 2048

# ============================================================================
# Logging Configuration
# ============================================================================

#: Maximum size in bytes for log files before rotation (10MB).
LOG_MAX_SIZE = 10 * 1024 * 1024

#: Number of error log backups to retain during rotation.
LOG_BACKUP_COUNT_ERRORS = 3

#: Maximum characters to show in log previews of tool arguments/results.
LOG_PREVIEW_LENGTH = 80

# ============================================================================
# Settings
# ============================================================================

Environment = Literal["development", "production", "test"]


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env_name}",
        PROJECT_ROOT / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)
    """

    app_env: Environment = Field(default="development", description="Application environment")

    # Model provider
    openai_api_key: str | None = Field(default=None, description="OpenAI API key for authentication")
    openai_base_url: str | None = Field(
        default=None, description="Optional base URL for OpenAI-compatible endpoints"
    )
    model: str = Field(default=DEFAULT_MODEL, description="Chat model used by the agentic loop")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=DEFAULT_MAX_OUTPUT_TOKENS, gt=0)
    system_prompt: str | None = Field(default=None, description="Optional system instructions for the model")

    # Agentic loop
    max_tool_rounds: int = Field(
        default=DEFAULT_MAX_TOOL_ROUNDS, ge=1, description="Maximum generate/execute rounds per request"
    )

    # MCP transport timeouts
    mcp_connect_timeout: float = Field(default=MCP_CONNECT_TIMEOUT, gt=0)
    mcp_call_tool_timeout: float = Field(default=MCP_CALL_TOOL_TIMEOUT, gt=0)

    # Debug and logging
    debug: bool = Field(default=False, description="Enable debug logging")
    log_to_file: bool = Field(default=True, description="Write JSON error logs under logs/")

    # API server
    api_host: str = Field(default="0.0.0.0", description="FastAPI host")
    api_port: int = Field(default=8000, description="FastAPI port")
    app_version: str = Field(default="0.1.0", description="Application version")

    # HTTP client timeouts (streaming responses can pause while the model thinks)
    http_read_timeout: float = Field(default=600.0, description="HTTP read timeout for streaming (seconds)")

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment variables override dotenv files; constructor values override both."""
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | None) -> str:
        """Validate and normalize APP_ENV value."""
        if v is None:
            return "development"
        normalized = str(v).lower()
        if normalized not in ("development", "production", "test"):
            raise ValueError(f"app_env must be 'development', 'production', or 'test', got '{v}'")
        return normalized

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_api_key(cls, v: str | None) -> str | None:
        """Basic validation of OpenAI API key format."""
        if v is not None and len(v) < 10:
            raise ValueError("Invalid OpenAI API key format")
        return v

    @model_validator(mode="after")
    def validate_production_credentials(self) -> Settings:
        """Production must be able to reach the model provider."""
        if self.app_env == "production" and not self.openai_api_key:
            raise ValueError(
                "Configuration Error: openai_api_key is required in production.\n"
                "Set OPENAI_API_KEY in your .env.production file or environment."
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


# ============================================================================
# Settings Management
# ============================================================================


class _SettingsManager:
    """Thread-safe lazily created settings instance.

    Uses a class to avoid global statement warnings from linters.
    """

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        if self._instance is not None:
            return self._instance

        with self._lock:
            # Double-check after acquiring lock
            if self._instance is None:
                self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        with self._lock:
            self._instance = None


_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get the cached, validated Settings instance.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    return _settings_manager.get()


def clear_settings_cache() -> None:
    """Clear cached settings instance.

    Primarily useful for testing to ensure fresh settings on each test.
    """
    _settings_manager.clear()
