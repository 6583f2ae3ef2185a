# astroflow/config.py
# runtime settings, read from ASTROFLOW_* environment variables or a .env file
import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ASTROFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    step_delay_ms: int = Field(default=1000, ge=0, description="Delay between steps of a run")
    center_on_step: bool = Field(default=True, description="Ask observers to center on each visited node")
    simulation_seed: Optional[int] = Field(default=None, description="Seed for simulated device readings")
    log_level: str = Field(default="INFO", description="Log level")

    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        v = v.upper()
        if not isinstance(logging.getLevelName(v), int):
            raise ValueError(f"unknown log level: {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
