import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Client settings loaded from environment: processing API base URL, HTTP timeout, status poll cadence, preview retry bound, download link expiry and log level.
    Why available: Single source of configuration so the transport, poller and preview reconciler agree on timings and limits."""
    api_base: str = os.getenv(
        "SURFACEGEN_API_BASE",
        "https://surface-gen-api.purplebush-adcf4e3b.eastus.azurecontainerapps.io",
    )
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "120"))
    poll_interval_seconds: float = float(os.getenv("POLL_INTERVAL_SECONDS", "3.0"))
    preview_max_attempts: int = int(os.getenv("PREVIEW_MAX_ATTEMPTS", "6"))  # 1 initial + 5 retries
    preview_retry_delay_seconds: float = float(os.getenv("PREVIEW_RETRY_DELAY_SECONDS", "2.0"))
    transport_retry_delay_seconds: float = float(os.getenv("TRANSPORT_RETRY_DELAY_SECONDS", "1.0"))
    download_expiry_hours: int = int(os.getenv("DOWNLOAD_EXPIRY_HOURS", "1"))
    preview_point_limit: int = int(os.getenv("PREVIEW_POINT_LIMIT", "50"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "http_timeout_seconds",
        "poll_interval_seconds",
        "preview_max_attempts",
        "download_expiry_hours",
        "preview_point_limit",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure timeouts, intervals and limits are positive. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("preview_retry_delay_seconds", "transport_retry_delay_seconds")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


settings = Settings()
