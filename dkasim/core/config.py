"""
Configuration for the DKA simulator backend.

Values come from environment variables (optionally via a .env file).
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return int(value)


class SimulationSettings(BaseModel):
    """Tick driver settings."""
    tick_interval_ms: int = Field(1000, gt=0)
    default_speed_factor: float = Field(1.0, gt=0)
    session_code_length: int = Field(6, ge=4, le=12)
    random_seed: Optional[int] = None


class Config:
    """Application configuration."""

    HOST: str = os.getenv("DKASIM_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("DKASIM_PORT", "8000"))
    DEBUG: bool = _get_bool("DKASIM_DEBUG", False)
    LOG_LEVEL: str = os.getenv("DKASIM_LOG_LEVEL", "INFO")

    CORS_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv("DKASIM_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    TICK_INTERVAL_MS: int = int(os.getenv("DKASIM_TICK_INTERVAL_MS", "1000"))
    DEFAULT_SPEED_FACTOR: float = float(os.getenv("DKASIM_DEFAULT_SPEED_FACTOR", "1.0"))
    SESSION_CODE_LENGTH: int = int(os.getenv("DKASIM_SESSION_CODE_LENGTH", "6"))
    RANDOM_SEED: Optional[int] = _get_optional_int("DKASIM_RANDOM_SEED")

    # Directory holding default_clinical_rules.json and scenarios/; None = packaged data
    DATA_DIR: Optional[str] = os.getenv("DKASIM_DATA_DIR")

    @classmethod
    def get_simulation_settings(cls) -> SimulationSettings:
        return SimulationSettings(
            tick_interval_ms=cls.TICK_INTERVAL_MS,
            default_speed_factor=cls.DEFAULT_SPEED_FACTOR,
            session_code_length=cls.SESSION_CODE_LENGTH,
            random_seed=cls.RANDOM_SEED,
        )
