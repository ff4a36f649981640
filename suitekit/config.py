"""Centralized configuration loaded from environment."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    max_concurrency: int = Field(default=5, alias="MAX_CONCURRENCY")
    heartbeat_interval_s: float = Field(default=15.0, alias="HEARTBEAT_INTERVAL_S")
    timeout_s: float = Field(default=60.0, alias="TIMEOUT_S")
    runs_dir: Path = Field(default=Path("runs"), alias="RUNS_DIR")

    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    grok_base_url: str = Field(default="https://api.x.ai/v1", alias="GROK_BASE_URL")
    deepseek_base_url: str = Field(default="https://api.deepseek.com", alias="DEEPSEEK_BASE_URL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta", alias="GEMINI_BASE_URL"
    )
    anthropic_base_url: str = Field(default="https://api.anthropic.com", alias="ANTHROPIC_BASE_URL")

    # Only the CLI reads these; library callers pass Credentials explicitly.
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    anthropic_api_key: str = Field(default="", alias="ANTHROPIC_API_KEY")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    grok_api_key: str = Field(default="", alias="XAI_API_KEY")
    deepseek_api_key: str = Field(default="", alias="DEEPSEEK_API_KEY")

    def provider_keys(self) -> dict[str, str]:
        keys = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
            "grok": self.grok_api_key,
            "deepseek": self.deepseek_api_key,
        }
        return {name: key for name, key in keys.items() if key}


settings = Settings()
