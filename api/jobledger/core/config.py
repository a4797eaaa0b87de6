from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "jobledger-api"
    environment: str = "dev"
    repository_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    database_command_timeout_seconds: float = 15.0
    admin_api_key: str | None = None
    cors_allowed_origins: list[str] = ["http://localhost:5173", "https://www.nerdnarcan.com"]
    budget_starting_earned_cents: int = 1000
    ngrok_api_url: str = "https://api.ngrok.com"
    ngrok_api_key: str | None = None
    ngrok_timeout_seconds: float = 10.0
    otel_enabled: bool = True
    otel_service_name: str = "jobledger-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JL_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
