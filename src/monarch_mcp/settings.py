from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    server_name: str = "Monarch Money MCP"
    mcp_path: str = "/mcp"
    cors_origins: str = "*"

    redis_url: str | None = None
    credential_key_prefix: str = "credential:"

    user_id_header: str = "x-user-id"
    default_user_id: str = "default"

    monarch_base_url: str | None = None
    upstream_timeout_seconds: int = 10

    auth_refresh_url: str = "http://localhost:8000/auth/refresh"
    token_lifetime_days: int = 90

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="allow",
    )


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS
