from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./archive_review.db"
    db_timeout_seconds: float = 5.0
    sql_echo: bool = False

    # API
    cors_origins: List[str] = ["http://localhost:3000"]
    default_page_size: int = 6
    max_page_size: int = 50

    # Notification dispatch
    notify_max_attempts: int = 3
    notify_backoff_seconds: float = 0.2
    notify_backoff_max_seconds: float = 2.0

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "ARCHIVE_REVIEW_"


settings = Settings()
