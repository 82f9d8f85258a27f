from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "venture-chat"
    app_env: str = "development"
    log_level: str = "INFO"

    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "venture_chat"

    # JWT
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    # messaging
    message_max_length: int = 5000
    message_history_limit: int = 100
    typing_timeout_seconds: int = 3
    realtime_validate_join: bool = True

    cors_origins: List[str] = ["http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
