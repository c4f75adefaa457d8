"""Core configuration pulled from environment variables via pydantic."""
import os
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the telemetry assistant core."""
    model_config = SettingsConfigDict(env_prefix="TELEMETRY_", extra="ignore")

    default_timezone: str = "Africa/Lagos"
    api_key: str | None = None
    max_query_chars: int = 2000

    # intent classification
    intent_confidence_scale: float = 50.0
    intent_min_confidence: float = 0.15

    # temporal fallback (LLM date extraction)
    date_fallback_enabled: bool = False
    date_fallback_timeout_seconds: float = 15.0
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "phi4-mini"
    ollama_retries: int = 1
    ollama_retry_backoff_seconds: float = 0.5
    ollama_options: dict = Field(
        default_factory=lambda: {
            "temperature": float(os.getenv("TELEMETRY_OLLAMA_TEMPERATURE", 0.1)),
            "num_predict": int(os.getenv("TELEMETRY_OLLAMA_NUM_PREDICT", 200)),
        }
    )

    # telemetry backend; options: http, empty
    telemetry_source: str = "http"
    telemetry_api_url: str = "http://localhost:8080"
    telemetry_api_timeout_seconds: float = 10.0

    # result cache
    cache_max_entries: int = 100

    # lookback used for position history when the query has no date reference
    recent_position_window_hours: int = 24

    @field_validator("ollama_base_url", "telemetry_api_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("intent_confidence_scale", mode="after")
    @classmethod
    def positive_scale(cls, v: float) -> float:
        """The confidence divisor must be strictly positive."""
        if v <= 0:
            raise ValueError("intent_confidence_scale must be > 0")
        return v


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4, exclude={'api_key'})}")
