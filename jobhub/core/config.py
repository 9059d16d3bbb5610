from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "jobhub-api"
    environment: str = "dev"
    storage_backend: Literal["memory", "postgres"] = "memory"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    startup_max_attempts: int = 5
    startup_retry_delay_seconds: float = 5.0
    event_max_attempts: int = 5
    event_retry_base_seconds: int = 5
    event_retry_max_seconds: int = 300
    event_lease_seconds: int = 60
    lease_reaper_interval_seconds: float = 15.0
    consumer_batch_size: int = 20
    poll_interval_seconds: float = 1.0
    max_backoff_seconds: float = 15.0
    embedded_worker: bool = False
    application_threshold: int = 10
    days_threshold: int = 1
    hot_duration_days: int = 7
    trending_sweep_interval_seconds: float = 86400.0
    lifecycle_sweep_interval_seconds: float = 86400.0
    trending_trigger_delay_seconds: float = 1.0
    notification_ttl_days: int = 30
    notification_purge_interval_seconds: float = 3600.0
    frontend_url: str = "http://localhost:5000"
    push_gateway_url: str | None = None
    push_gateway_token: str | None = None
    push_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "jobhub"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JH_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
