from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, case_sensitive=False)

    # App
    app_name: str = "Download Statistics API"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./app.db"

    # Security (tokens are issued by the host platform)
    access_token_secret: str = "dev-access-secret-change-me"
    jwt_algorithm: str = "HS256"
    access_token_expires_minutes: int = 15

    # Site clock used for event timestamps and day windows
    site_timezone: str = "UTC"

    # Result cache
    cache_ttl_seconds: int = 600
    cache_max_entries: int = 1024

    # Statistics
    popular_default_limit: int = 5
    # When true, admin-only table operations raise 403 instead of silently doing nothing
    strict_admin_checks: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


settings = Settings()
