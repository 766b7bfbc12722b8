from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "gigboard-api"
    environment: str = "dev"
    user_id_header: str = "X-User-Id"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    store_timeout_seconds: float = 15.0
    mutation_max_attempts: int = 3
    gig_expiry_days: int = 30
    expiry_sweep_batch_size: int = 500
    otel_enabled: bool = True
    otel_service_name: str = "gigboard-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="GB_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
