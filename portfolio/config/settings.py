from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase (Daily Tracker Postgres)
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used by db-health when set

    # Leaderboard
    leaderboard_backend: str = "file"  # file | memory (serverless deployments keep scores in process)
    scores_file: str = "scores.json"
    leaderboard_size: int = 10
    leaderboard_buffer: int = 20  # Scores kept on disk, a bit more than shown to handle ties
    max_name_length: int = 20
    score_submit_rate_limit: str = "30/minute"

    # Game-side leaderboard client
    leaderboard_api_url: str = "http://localhost:8000/api"
    scores_backup_file: str = "tetris-scores-backup.json"

    # Daily Tracker offline sync client
    tracker_api_url: str = "http://localhost:8000"
    offline_db_path: str = "daily-tracker-offline.db"
    sync_interval_seconds: int = 1800  # 30 minutes
    sync_max_retries: int = 3
    http_timeout_seconds: float = 10.0

    # App
    app_name: str = "portfolio-backend"
    debug: bool = False
    environment: str = "development"  # development | production
    log_level: str = "INFO"
    cors_origins: str = "*"
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
