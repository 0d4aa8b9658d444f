from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="COUPONDESK_",
        case_sensitive=False,
    )

    app_name: str = "coupondesk API"
    app_version: str = "0.1.0"
    environment: str = "local"

    database_url: str = "sqlite+aiosqlite:///./coupondesk.db"
    database_echo: bool = False

    log_json: bool = False
    log_level: str = "INFO"

    currency: str = "USD"
    money_rounding: Literal["half_up", "half_even", "up", "down"] = "half_up"
    code_max_length: int = 40


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
