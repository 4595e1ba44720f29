# src/assessment_engine/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./assessment_engine.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # Heartbeat anti-inflation caps
    LEARNING_TIME_CAP_MULTIPLIER: float = 1.5
    HEARTBEAT_MAX_DELTA_SEC: int = 60

    # Reporting only, never used to gate re-attempts
    PASSING_PERCENT: int = 70

    RETEST_DEFAULT_SIZE: int = 20

    ANALYTICS_TOP_TOPICS: int = 10
    ANALYTICS_WEEKS: int = 8
    READINESS_WINDOW: int = 5

    DISPLAY_TIMEZONE: str = "UTC"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
