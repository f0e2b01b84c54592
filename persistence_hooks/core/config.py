from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Service Info
    SERVICE_NAME: str = "persistence-hooks"
    LOG_LEVEL: str = "INFO"

    # Audit
    AUDIT_ACTOR_ID: int = 1

    # Database
    DATABASE_URL: str = "sqlite:///./app.db"
    ASYNC_DATABASE_URL: str = "sqlite+aiosqlite:///./app.db"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("AUDIT_ACTOR_ID")
    @classmethod
    def validate_actor_id(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("AUDIT_ACTOR_ID must be a positive integer")
        return v

settings = Settings()
