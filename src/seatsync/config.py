import sys
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_arduino_port() -> str:
    """Pick the usual Arduino serial device for the current platform."""
    if sys.platform.startswith("win"):
        return "COM3"
    return "/dev/ttyACM0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    seat_count: int = Field(default=4, ge=1)
    seat_timeout_seconds: float = Field(default=3600.0, gt=0)

    arduino_port: str = Field(default_factory=_default_arduino_port)
    serial_baud_rate: int = 9600
    serial_enabled: bool = True
    serial_reconnect_delay: float = 5.0
    serial_outbox_size: int = 64

    subscriber_queue_size: int = 100
    cors_origins: list[str] = ["*"]

    host: str = "0.0.0.0"
    port: int = 3001
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"

    @model_validator(mode="before")
    @classmethod
    def set_log_level_upper(cls, values):
        """Accept LOG_LEVEL in any case."""
        if isinstance(values, dict) and isinstance(values.get("log_level"), str):
            values["log_level"] = values["log_level"].upper()
        return values


settings = Settings()
