from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "venues_app"
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Local clock for opening hours and time-of-day scoring
    timezone: str = "Europe/London"

    # Popularity refresh
    activity_lookback_hours: float = 4
    refresh_interval_minutes: float = 5

    log_level: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
