"""Application configuration from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    anthropic_api_key: str = ""
    visualedit_env: str = "development"
    visualedit_log_level: str = "debug"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Script generator
    generator_backend: str = "anthropic"  # "anthropic" or "http"
    generator_endpoint: str = ""
    generator_healthcheck_endpoint: str = ""
    generator_timeout: float = 120.0
    model_edit: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096

    # Edit engine
    max_iterations: int = 3
    ancestor_levels: int = 5
    progress_interval: float = 0.1

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
