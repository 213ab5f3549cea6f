import logging
from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Session lifecycle
    session_timeout_minutes: int = Field(30, alias="SESSION_TIMEOUT_MINUTES")
    session_sweep_interval_minutes: int = Field(5, alias="SESSION_SWEEP_INTERVAL_MINUTES")

    # Drop-off detection
    dropoff_min_sample_size: int = Field(5, alias="DROPOFF_MIN_SAMPLE_SIZE")
    dropoff_confidence_threshold: float = Field(0.7, alias="DROPOFF_CONFIDENCE_THRESHOLD")

    # Timing comparison / statistics
    timing_min_sample_size: int = Field(10, alias="TIMING_MIN_SAMPLE_SIZE")
    significance_threshold: float = Field(0.05, alias="SIGNIFICANCE_THRESHOLD")
    effect_size_threshold: float = Field(0.3, alias="EFFECT_SIZE_THRESHOLD")
    confidence_level: float = Field(0.95, alias="CONFIDENCE_LEVEL")
    bootstrap_samples: int = Field(1000, alias="BOOTSTRAP_SAMPLES")
    permutation_samples: int = Field(1000, alias="PERMUTATION_SAMPLES")
    random_seed: int = Field(42, alias="RANDOM_SEED")

    # Journey pairing
    pairing_min_sample_size: int = Field(5, alias="PAIRING_MIN_SAMPLE_SIZE")
    pairing_confidence_threshold: float = Field(0.6, alias="PAIRING_CONFIDENCE_THRESHOLD")
    max_comparison_distance_days: int = Field(30, alias="MAX_COMPARISON_DISTANCE_DAYS")
    analysis_window_days: int = Field(30, alias="ANALYSIS_WINDOW_DAYS")
    batch_chunk_size: int = Field(5, alias="BATCH_CHUNK_SIZE")
    batch_yield_seconds: float = Field(0.01, alias="BATCH_YIELD_SECONDS")

    # Real-time buffer, cache and alerting
    event_buffer_max_size: int = Field(50, alias="EVENT_BUFFER_MAX_SIZE")
    event_buffer_flush_seconds: float = Field(5.0, alias="EVENT_BUFFER_FLUSH_SECONDS")
    analytics_cache_ttl_seconds: int = Field(60, alias="ANALYTICS_CACHE_TTL_SECONDS")
    analytics_cache_cleanup_minutes: int = Field(5, alias="ANALYTICS_CACHE_CLEANUP_MINUTES")
    alert_dedup_minutes: int = Field(15, alias="ALERT_DEDUP_MINUTES")
    alert_retention_minutes: int = Field(1440, alias="ALERT_RETENTION_MINUTES")
    event_retention_minutes: int = Field(60, alias="EVENT_RETENTION_MINUTES")

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings():
    """Clear cached settings (useful in tests when env vars change)."""
    get_settings.cache_clear()


def configure_logging(level: str | None = None) -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("journey_analyzer")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel((level or get_settings().log_level).upper())
    return logger
