"""Core configuration management using Pydantic settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator, field_validator
from typing import Optional, List


# Valid log levels
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

DEFAULT_XRPL_ENDPOINTS = (
    "wss://xrplcluster.com,"
    "wss://s1.ripple.com,"
    "wss://s2.ripple.com,"
    "wss://xrpl.ws"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/tierscan.db"

    # Redis (redis_url should contain full connection string including port)
    redis_url: str = "redis://localhost:6379/0"

    # Logging
    log_level: str = "INFO"

    # XRPL endpoints (comma-separated websocket URLs)
    xrpl_endpoints: str = DEFAULT_XRPL_ENDPOINTS
    xrpl_connection_timeout: float = 30.0

    # Crawl
    scan_page_limit: int = 2048  # Max allowed by ledger_data
    scan_batch_size: int = 10000
    scan_max_consecutive_failures: int = 5
    scan_log_interval: int = 100000

    # Endpoint health
    endpoint_failure_threshold: int = 3
    endpoint_cooldown_seconds: float = 60.0

    # Retry/backoff
    retry_max_attempts: int = 5
    retry_base_delay_ms: float = 100.0
    retry_max_delay_ms: float = 30000.0

    # Adaptive pacing (milliseconds)
    pacer_min_delay_ms: float = 20.0
    pacer_max_delay_ms: float = 5000.0
    pacer_initial_delay_ms: float = 100.0
    pacer_target_response_ms: float = 1000.0
    pacer_fast_streak: int = 10

    # Coordination and cache lifetimes (seconds)
    scan_lock_ttl_seconds: int = 900
    scan_progress_ttl_seconds: int = 24 * 60 * 60
    thresholds_cache_ttl_seconds: int = 60 * 60

    # Durable thresholds older than this fall back to the cache
    store_max_age_hours: int = 48

    # Scan triggers
    scan_api_key: Optional[str] = None
    cron_secret: Optional[str] = None
    scan_cron_hour_utc: int = 3

    # API Configuration
    backend_port: int = 8000
    cors_origins: str = "http://localhost:3000"  # Comma-separated list of allowed origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        upper_v = v.upper()
        if upper_v not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}")
        return upper_v

    @field_validator('scan_cron_hour_utc')
    @classmethod
    def validate_cron_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("scan_cron_hour_utc must be between 0 and 23")
        return v

    @property
    def endpoint_list(self) -> List[str]:
        """Parse XRPL endpoints from comma-separated string to list."""
        return [url.strip() for url in self.xrpl_endpoints.split(",") if url.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode='after')
    def validate_config(self) -> 'Settings':
        """Validate configuration after all fields are set."""
        if not self.endpoint_list:
            raise ValueError("At least one XRPL endpoint must be configured")
        if self.pacer_min_delay_ms > self.pacer_max_delay_ms:
            raise ValueError("pacer_min_delay_ms must not exceed pacer_max_delay_ms")
        if self.scan_batch_size <= 0 or self.scan_page_limit <= 0:
            raise ValueError("scan_batch_size and scan_page_limit must be positive")
        return self


# Global settings instance
settings = Settings()
