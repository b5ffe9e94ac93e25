"""Configuration management for the companion service — pydantic-settings + TOML."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from companion.constants import (
    CONFIG_FILE,
    DATABASE_FILE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    HISTORY_LIMIT,
    MEMORY_LIMIT,
    TASK_SIGNAL_LIMIT,
    UPCOMING_WINDOW_HOURS,
)


class GatewayConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_GATEWAY_"}

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_request_bytes: int = 1024 * 1024
    rate_limit_per_minute: int = 60
    request_timeout_seconds: int = 60


class AuthConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_AUTH_"}

    token_ttl_seconds: int = 30 * 24 * 3600

    @field_validator("token_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Token TTL must be positive")
        return v


class LLMConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_LLM_"}

    provider: str = "google"
    model: str = "gemini-2.5-flash"
    api_base: str = ""
    api_key_name: str = "LLM_API_KEY"
    max_tokens: int = 1024
    temperature: float = 0.8


class ContextConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_CONTEXT_"}

    history_limit: int = HISTORY_LIMIT
    memory_limit: int = MEMORY_LIMIT
    task_signal_limit: int = TASK_SIGNAL_LIMIT
    upcoming_window_hours: int = UPCOMING_WINDOW_HOURS
    project_keywords: list[str] = []
    active_project: str = ""
    persona_name: str = "jessica"

    @field_validator("history_limit", "memory_limit", "task_signal_limit", "upcoming_window_hours")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Context limits must be at least 1")
        return v


class ToolsConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_TOOLS_"}

    web_search_enabled: bool = True
    search_max_results: int = 3
    image_gen_enabled: bool = True
    image_api_base: str = "https://api.openai.com/v1"
    image_api_key_name: str = "OPENAI_API_KEY"
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"


class StorageConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_STORAGE_"}

    database_path: str = str(DATABASE_FILE)


class LoggingConfig(BaseSettings):
    model_config = {"env_prefix": "COMPANION_LOGGING_"}

    level: str = "INFO"
    format: str = "json"


class CompanionConfig(BaseSettings):
    """Root configuration. Loads from TOML + env vars."""

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_prefix": "COMPANION_"}

    @property
    def database_path(self) -> Path:
        return Path(self.storage.database_path).expanduser()


def load_config(config_path: Path | None = None) -> CompanionConfig:
    """
    Load configuration from TOML files.

    Priority (highest to lowest):
    1. User config file (~/.companion/config.toml, or config_path)
    2. Default config (config/default.toml)
    """
    import tomli

    merged: dict[str, Any] = {}

    default_path = Path(__file__).parent.parent.parent / "config" / "default.toml"
    if default_path.exists():
        with open(default_path, "rb") as f:
            merged = tomli.load(f)

    user_path = config_path or CONFIG_FILE
    if user_path.exists():
        with open(user_path, "rb") as f:
            merged = _deep_merge(merged, tomli.load(f))

    return CompanionConfig(
        gateway=GatewayConfig(**merged.get("gateway", {})),
        auth=AuthConfig(**merged.get("auth", {})),
        llm=LLMConfig(**merged.get("llm", {})),
        context=ContextConfig(**merged.get("context", {})),
        tools=ToolsConfig(**merged.get("tools", {})),
        storage=StorageConfig(**merged.get("storage", {})),
        logging=LoggingConfig(**merged.get("logging", {})),
    )


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Override values take precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
