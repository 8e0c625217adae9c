from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    service_name: str = Field(default="telemetry-demo", alias="SERVICE_NAME")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    log_dir: str = Field(default="./logs", alias="LOG_PATH")
    log_to_file: bool = Field(default=True, alias="LOG_TO_FILE")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")
    app_root: str | None = Field(default=None, alias="APP_ROOT")
    app_root_marker: str = Field(default="app", alias="APP_ROOT_MARKER")

    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_window_ms: int = Field(default=60_000, alias="RATE_LIMIT_WINDOW_MS")
    rate_limit_max_requests: int = Field(default=100, alias="RATE_LIMIT_MAX_REQUESTS")

    cache_default_ttl: float = Field(default=60.0, alias="CACHE_DEFAULT_TTL")
    cache_cleanup_interval: float = Field(default=300.0, alias="CACHE_CLEANUP_INTERVAL")

    slow_query_threshold_ms: float = Field(default=1000.0, alias="SLOW_QUERY_THRESHOLD_MS")
    simulated_query_ms: float = Field(default=45.0, alias="SIMULATED_QUERY_MS")
    simulated_slow_query_ms: float = Field(default=800.0, alias="SIMULATED_SLOW_QUERY_MS")
    enable_metrics_endpoint: bool = Field(default=True, alias="ENABLE_METRICS_ENDPOINT")

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
