"""Application settings, read from ``SCHEDULER_*`` environment variables."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_", env_file=".env", extra="ignore"
    )

    default_horizon_months: int = Field(
        default=6, ge=1, description="How far ahead occurrences are materialized"
    )
    expansion_check_interval_hours: float = Field(
        default=24, gt=0, description="Delay between horizon maintenance passes"
    )
    expansion_enabled: bool = Field(
        default=True, description="Run the horizon maintenance loop on start-up"
    )
    default_timezone: str | None = Field(
        default=None, description="IANA zone used when an event has none"
    )
    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
