from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    linear_api_key: str = ""
    linear_api_url: str = "https://api.linear.app/graphql"
    linear_project_id: Optional[str] = None
    linear_timeout_seconds: float = 30.0
    sync_enabled: bool = True
    sync_cron_schedule: str = "*/15 * * * *"
    sync_trigger_token: Optional[str] = None
    new_item_days_threshold: int = 7
    database_url: str = "sqlite:///./backlog.db"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
