# File: smartpark/infrastructure/config.py
"""
Application settings and logging setup

Settings are read from SMARTPARK_* environment variables, optionally
populated from a .env file via python-dotenv. They are validated by
pydantic and converted into the immutable ParkingConfig the billing
engine is built with.
"""

from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.models import ParkingConfig, SlotType, DEFAULT_RATES

ENV_PREFIX = "SMARTPARK_"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Settings(BaseModel):
    """Runtime settings for the SmartPark application"""

    model_config = ConfigDict(frozen=True)

    bookings_file: str = "bookings.txt"
    storage_backend: str = "file"
    database_url: str = "sqlite:///smartpark.db"
    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"
    log_file: str = "smartpark.log"
    booking_timeout_ms: int = Field(default=60_000, gt=0)
    currency: str = "USD"
    rates: Dict[SlotType, Decimal] = Field(default_factory=lambda: dict(DEFAULT_RATES))

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("file", "sql"):
            raise ValueError(f"storage_backend must be 'file' or 'sql', got: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.strip().upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level: {value}")
        return value

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> 'Settings':
        """
        Build settings from the environment
        Explicit keyword overrides win over environment values
        """
        load_dotenv(env_file)

        values: Dict[str, object] = {}
        for name in ("bookings_file", "storage_backend", "database_url",
                     "log_level", "log_dir", "log_file", "booking_timeout_ms", "currency"):
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw

        rates: Dict[SlotType, object] = dict(DEFAULT_RATES)
        for slot_type in SlotType:
            raw = os.getenv(f"{ENV_PREFIX}RATE_{slot_type.value}")
            if raw is not None:
                rates[slot_type] = raw
        values["rates"] = rates

        values.update(overrides)
        return cls(**values)

    def to_parking_config(self) -> ParkingConfig:
        return ParkingConfig(
            rates=dict(self.rates),
            booking_timeout_ms=self.booking_timeout_ms,
            currency=self.currency,
        )


def setup_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Setup application logging configuration"""
    settings = settings or Settings()

    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / settings.log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    return logging.getLogger("smartpark")
