from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):

    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    WEBHOOK_TOLERANCE_SECONDS: int = 300

    OPERATING_TIMEZONE: str = "Australia/Sydney"

    AWS_REGION: str = "ap-southeast-2"
    AWS_PROFILE: str | None = None
    DYNAMODB_TABLE_NAME: str
    NOTIFICATION_QUEUE_URL: str | None = None
    SES_FROM_EMAIL: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("OPERATING_TIMEZONE")
    @classmethod
    def timezone_must_exist(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.OPERATING_TIMEZONE)

@lru_cache()
def get_settings() -> Settings:
    return Settings()
