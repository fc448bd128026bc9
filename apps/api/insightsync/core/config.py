from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "InsightSync API"
    app_env: str = "local"
    storage_backend: str = "memory"
    database_url: str = "sqlite+pysqlite:///./insightsync.db"
    seed_demo_data: bool = True
    default_actor_user_id: int = 1
    dashboard_timezone: str = "UTC"
    dashboard_new_customer_window_days: int = 30
    dashboard_recent_activity_limit: int = 5
    dashboard_todays_task_limit: int = 5
    # Not derived from data; surfaced as-is until churn tracking exists.
    dashboard_churn_rate_placeholder: float = 3.2
    metrics_enabled: bool = False
    otel_enabled: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
