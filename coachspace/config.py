from functools import lru_cache
import os
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="Europe/Zurich", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    postgres_db: str = Field(default="coachspace", alias="POSTGRES_DB")
    postgres_user: str = Field(default="coachspace", alias="POSTGRES_USER")
    postgres_password: str = Field(default="coachspace", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    database_url_override: str = Field(default="", alias="DATABASE_URL")
    db_statement_timeout_ms: int = Field(default=5000, alias="DB_STATEMENT_TIMEOUT_MS")

    booking_lock_timeout_seconds: float = Field(default=5.0, alias="BOOKING_LOCK_TIMEOUT_SECONDS")
    waitlist_enabled: bool = Field(default=True, alias="WAITLIST_ENABLED")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    push_gateway_url: str = Field(default="", alias="PUSH_GATEWAY_URL")
    push_gateway_token: str = Field(default="", alias="PUSH_GATEWAY_TOKEN")
    notification_workers: int = Field(default=4, alias="NOTIFICATION_WORKERS")
    notification_timeout_seconds: float = Field(default=10.0, alias="NOTIFICATION_TIMEOUT_SECONDS")

    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")
    reminder_lead_hours: int = Field(default=24, alias="REMINDER_LEAD_HOURS")

    class Config:
        populate_by_name = True

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv(override=False)
    return Settings(**os.environ)
