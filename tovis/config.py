# tovis/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tovis.db"
    redis_url: str | None = None

    log_level: str = "INFO"

    # Store operations (lock waits, statements) give up after this long
    store_timeout_seconds: float = 5.0
    auto_create_schema: bool = True

    # Availability
    slot_step_minutes: int = 15
    horizon_days: int = 60
    min_advance_minutes: int = 0
    slot_cache_ttl_seconds: int = 86400
    hold_ttl_minutes: int = 10

    # Session resolver window around "now"
    session_lookback_minutes: int = 30
    session_lookahead_minutes: int = 180

    # Booking policy
    start_window_minutes: int = 15
    start_on_accept: bool = False
    client_can_cancel_accepted: bool = True

    # Background expiry of never-accepted bookings
    pending_expiry_enabled: bool = True
    pending_expiry_interval_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_prefix="TOVIS_",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite paths are resolved against the project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
