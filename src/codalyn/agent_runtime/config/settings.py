"""Agent Runtime configuration settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent Runtime Layer configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CODALYN_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    # Agent Loop
    default_provider: Literal["openrouter", "gemini"] = "gemini"
    default_model: str = "gemini-2.5-flash-lite"
    max_iterations: int = 10

    # Model Providers
    llm_timeout_seconds: int = 120
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Sandbox Configuration
    sandbox_default_type: Literal["mock", "container", "browser-hosted"] = "mock"
    sandbox_log_capacity: int = 1000
    sandbox_default_log_limit: int = 50
    sandbox_command_timeout_ms: int = 60000
    sandbox_container_image: str = "node:20-bookworm-slim"
    sandbox_container_workdir: str = "/workspace"
    sandbox_memory_limit_mb: int = 1024
    sandbox_cpu_percent: float = 100.0
    sandbox_pids_limit: int = 256
    sandbox_network_mode: Literal["none", "bridge", "host"] = "bridge"
    sandbox_browser_bridge_url: str = "http://localhost:5174/__sandbox"
    sandbox_browser_timeout_seconds: int = 30

    # Persistence
    conversation_store_dir: str = "/tmp/codalyn/conversations"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
