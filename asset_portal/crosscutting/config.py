"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults that match current behavior of the cache/activity core

Collaborators:
  - container.py: reads settings to build stores, readers and gates
  - infrastructure/services/retry.py: retry attempts/delays
  - crosscutting/rate_limit.py: token bucket rates
  - crosscutting/logger.py: log level / JSON toggle

Constraints:
  - Lives in crosscutting layer, NOT in domain/application
  - No business logic: pure configuration

Notes:
  - Singleton via lru_cache for performance
  - All limits configurable for different environments
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Ventana máxima que el audit log (CloudTrail) permite consultar.
MAX_LOOKBACK_DAYS_LIMIT = 90


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_env: Application environment (development/production)
        log_level: Root log level (default: INFO)
        log_json: Emit JSON log lines (default: True)
        durable_store_bucket: S3 bucket holding cache/ and assets/ objects
        s3_endpoint_url: S3-compatible endpoint URL (optional, e.g. MinIO)
        s3_region: S3 region (optional)
        s3_access_key: Access key id (optional; default AWS credential chain)
        s3_secret_key: Secret access key (optional)
        cache_key_prefix: Prefix for every durable cache key (default: cache)
        memory_cache_max_size: Max entries in the process memory cache
        memory_cache_ttl_seconds: Default TTL for memory cache entries
        activity_max_lookback_days: Cap for refresh windows (default: 90)
        audit_event_source: Audited service of interest
        audit_region: Region for the audit log client (optional)
        audit_max_pages_per_query: Page limit per event name lookup (exceeding it fails the lookup)
        retry_max_attempts: Attempts for durable/audit calls (default: 3)
        retry_base_delay_seconds: Initial backoff (default: 0.1)
        retry_max_delay_seconds: Backoff cap (default: 5.0)
        audit_log_rate_per_second: Token refill rate for audit log calls
        audit_log_burst: Token bucket size for audit log calls
        asset_listing_rate_per_second: Token refill rate for asset listing
        asset_listing_burst: Token bucket size for asset listing
    """

    # Environment
    app_env: str = "development"
    log_level: str = "INFO"
    log_json: bool = True

    # Durable store - S3/MinIO
    durable_store_bucket: str = ""
    s3_endpoint_url: str = ""
    s3_region: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""
    cache_key_prefix: str = "cache"

    # Memory cache (process-local)
    memory_cache_max_size: int = 10_000
    memory_cache_ttl_seconds: float = 600.0  # 10 minutes

    # Activity pipeline
    activity_max_lookback_days: int = MAX_LOOKBACK_DAYS_LIMIT
    audit_event_source: str = "quicksight.amazonaws.com"
    audit_region: str = ""
    audit_max_pages_per_query: int = 1000

    # Retry/Resilience
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.1
    retry_max_delay_seconds: float = 5.0

    # Rate gates (token bucket)
    audit_log_rate_per_second: float = 2.0
    audit_log_burst: int = 2
    asset_listing_rate_per_second: float = 10.0
    asset_listing_burst: int = 10

    @field_validator(
        "memory_cache_max_size",
        "audit_max_pages_per_query",
        "retry_max_attempts",
        "audit_log_burst",
        "asset_listing_burst",
    )
    @classmethod
    def must_be_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator(
        "memory_cache_ttl_seconds",
        "retry_max_delay_seconds",
        "audit_log_rate_per_second",
        "asset_listing_rate_per_second",
    )
    @classmethod
    def must_be_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("retry_base_delay_seconds")
    @classmethod
    def base_delay_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_base_delay_seconds must be >= 0")
        return v

    @field_validator("activity_max_lookback_days")
    @classmethod
    def lookback_within_audit_retention(cls, v: int) -> int:
        if v < 1 or v > MAX_LOOKBACK_DAYS_LIMIT:
            raise ValueError(
                f"activity_max_lookback_days must be between 1 and {MAX_LOOKBACK_DAYS_LIMIT}"
            )
        return v

    @field_validator("cache_key_prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        return (v or "").strip().strip("/")

    @model_validator(mode="after")
    def validate_retry_window(self):
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError(
                "retry_max_delay_seconds must be >= retry_base_delay_seconds"
            )
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
