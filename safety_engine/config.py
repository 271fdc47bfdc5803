"""Safety Intelligence Engine configuration.

Centralized configuration for the engine using Pydantic settings. Holds the
policy values callers may tune per deployment: hexagon resolutions, store
sharding, trust review threshold and routing parameters.

Algorithm constants that stored data depends on (the AHP random-index table,
the consistency threshold, the EigenTrust damping factor and iteration cap)
live next to the algorithms and are deliberately not configurable here.

Environment variables are loaded from .env file in development and from the
system environment in production.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings - single source of truth for configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Store backing
    DATABASE_URL: str = Field(default="sqlite:///./safety_engine.db")
    STORE_SHARD_COUNT: int = Field(default=64, ge=1)

    # Hex grid (H3)
    HEX_URBAN_RESOLUTION: int = Field(default=9, ge=0, le=15)  # ~174m edge
    HEX_DENSE_RESOLUTION: int = Field(default=10, ge=0, le=15)  # ~66m edge
    DENSE_POPULATION_THRESHOLD: float = 5000.0  # people per km²

    # Trust
    TRUST_REVIEW_THRESHOLD: float = Field(default=0.3, ge=0.0, le=1.0)
    TRUST_WINDOW_DAYS: int = Field(default=90, ge=1)

    # Routing
    ROUTING_MAX_SNAP_DISTANCE_M: float = Field(default=500.0, gt=0)
    ROUTING_REFERENCE_MINUTE_S: float = Field(default=60.0, gt=0)
    ROUTING_EDGE_SAMPLE_INTERVAL_M: float = Field(default=25.0, gt=0)
    ROUTING_HEX_RESOLUTION: Literal["URBAN", "DENSE"] = "URBAN"

    @field_validator("ROUTING_HEX_RESOLUTION", mode="before")
    @classmethod
    def parse_resolution_name(cls, v: str) -> str:
        """Accept resolution names in any case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("HEX_DENSE_RESOLUTION")
    @classmethod
    def dense_finer_than_urban(cls, v: int, info) -> int:
        """DENSE cells must be at a finer resolution than URBAN cells."""
        urban = info.data.get("HEX_URBAN_RESOLUTION")
        if urban is not None and v <= urban:
            raise ValueError("HEX_DENSE_RESOLUTION must be greater than HEX_URBAN_RESOLUTION")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
