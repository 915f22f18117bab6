from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Only needed by admin scripts
    avatar_bucket: str = "avatars"

    # Presence
    heartbeat_interval_sec: float = 5.0
    presence_stale_after_sec: float = 30.0

    # Device polling / geolocation
    battery_poll_interval_sec: float = 60.0
    location_once_timeout_ms: int = 15000
    location_watch_timeout_ms: int = 30000
    location_watch_max_age_ms: int = 5000
    arrival_radius_m: float = 100.0

    # Read limits
    history_limit: int = 50
    alerts_limit: int = 50
    group_messages_limit: int = 100
    direct_messages_limit: int = 100

    # App
    app_name: str = "familysafe"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:5173"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
