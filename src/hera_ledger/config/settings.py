"""Configuration settings for the HERA ledger posting service."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Universal API
    hera_api_url: str = Field(
        default="http://localhost:3000/api/v1/universal",
        validation_alias="HERA_API_URL",
    )
    hera_api_token: SecretStr = Field(default=SecretStr(""), validation_alias="HERA_API_TOKEN")
    hera_api_timeout: float = Field(default=30.0, validation_alias="HERA_API_TIMEOUT")
    hera_api_max_retries: int = Field(default=3, validation_alias="HERA_API_MAX_RETRIES")

    # Daily sales posting
    daily_post_enabled: bool = Field(default=True, validation_alias="DAILY_POST_ENABLED")
    daily_post_timezone: str = Field(
        default="Asia/Dubai", validation_alias="DAILY_POST_TIMEZONE"
    )
    daily_post_time: str = Field(default="23:59", validation_alias="DAILY_POST_TIME")
    # Comma separated; empty means every organization in the store
    daily_post_organization_ids: str = Field(
        default="", validation_alias="DAILY_POST_ORGANIZATION_IDS"
    )
    daily_post_retry_attempts: int = Field(
        default=3, validation_alias="DAILY_POST_RETRY_ATTEMPTS"
    )
    daily_post_retry_delay_seconds: float = Field(
        default=30.0, validation_alias="DAILY_POST_RETRY_DELAY_SECONDS"
    )
    default_currency: str = Field(default="AED", validation_alias="DEFAULT_CURRENCY")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @property
    def organization_ids(self) -> list[str]:
        """Configured organization ids, blanks dropped."""
        return [
            org_id.strip()
            for org_id in self.daily_post_organization_ids.split(",")
            if org_id.strip()
        ]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
