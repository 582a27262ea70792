from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    database_url: str = "sqlite+pysqlite:///./runmetrics.db"
    # Timezone used to assign runs to calendar days, weeks and months.
    # Examples: "America/New_York", "Europe/London", or "local" to use system tz.
    timezone: str = "UTC"
    log_level: str = "INFO"
    log_format: str = "text"  # text | json

    # Store budget (bytes across all persisted collections), modeled on the
    # ~5 MB a browser grants to local storage.
    storage_quota_bytes: int = 5 * 1024 * 1024
    # Fraction of the quota above which a full-resolution write is not attempted
    storage_safety_ratio: float = 0.9
    # Only runs older than this many days may lose GPS point density
    degrade_after_days: int = 30
    # Keep every Nth point: first retry, second retry
    degrade_steps: tuple[int, ...] = (10, 20)

    # Strava (token must already be authorized)
    strava_client_id: str | None = None
    strava_client_secret: str | None = None
    strava_tokens_path: str = "uploads/strava/tokens.json"
    strava_api_base: str = "https://www.strava.com/api/v3"
    strava_oauth_token_url: str = "https://www.strava.com/oauth/token"
    strava_activity_types: str = "Run"  # comma-separated

    # Sync pacing
    sync_min_delay_s: float = 1.0
    sync_max_rate_limit_retries: int = 3
    sync_backoff_base_s: float = 60.0

    # Allow empty env strings for optional fields
    @field_validator("strava_client_id", "strava_client_secret", mode="before")
    @classmethod
    def _empty_to_none(cls, v):
        if v in ("", None, "null", "None"):
            return None
        return v

    class Config:
        env_file = ".env"


settings = Settings()
