"""Global settings loaded from environment variables via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PIPEWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_base_url: str = "http://localhost:3000"
    api_token: str = ""  # Bearer token issued by the identity provider
    log_dir: str = "./data/logs"
    log_level: str = "WARNING"  # console only; the log file always gets DEBUG
    proxy_url: str = ""
    user_agent: str = "pipewatch/0.1.0"
    request_timeout: float = 30.0
    # Streams sit idle between heartbeats (15 s server-side), so reads need headroom
    stream_read_timeout: float = 60.0
    connect_attempts: int = 3
    auto_advance: bool = True
