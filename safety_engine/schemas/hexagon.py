"""Safety hexagon schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class Resolution(str, Enum):
    """Supported hexagon resolutions."""

    URBAN = "URBAN"
    DENSE = "DENSE"


class SafetyFactor(str, Enum):
    """Safety factors scored per cell, in weight-vector order."""

    CRIME = "crime"
    LIGHTING = "lighting"
    CROWD = "crowd"
    POLICE = "police"


FACTORS = tuple(factor.value for factor in SafetyFactor)

DEFAULT_FACTOR_SCORE = 50.0
DEFAULT_CONFIDENCE = 0.5

# Fallback weights when an expert matrix fails the consistency check
DEFAULT_FACTOR_WEIGHTS: Dict[str, float] = {
    "crime": 0.4,
    "lighting": 0.3,
    "crowd": 0.2,
    "police": 0.1,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HexCell(BaseModel):
    """Hexagonal cell with aggregated safety factors.

    Every factor is a safety score (0-100, higher is safer). ``overall`` is
    derived from the factors by the store and is never written directly.
    """

    cell_id: int = Field(..., description="64-bit H3 cell index")
    resolution: Resolution = Field(..., description="URBAN or DENSE")
    crime: float = Field(default=DEFAULT_FACTOR_SCORE, ge=0.0, le=100.0)
    lighting: float = Field(default=DEFAULT_FACTOR_SCORE, ge=0.0, le=100.0)
    crowd: float = Field(default=DEFAULT_FACTOR_SCORE, ge=0.0, le=100.0)
    police: float = Field(default=DEFAULT_FACTOR_SCORE, ge=0.0, le=100.0)
    overall: float = Field(
        default=DEFAULT_FACTOR_SCORE,
        ge=0.0,
        le=100.0,
        description="Weighted combination of the four factors at last recompute",
    )
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    last_updated: datetime = Field(default_factory=_utcnow)
    update_count: int = Field(default=0, ge=0, description="Monotonic write counter")
    has_data: bool = Field(
        default=False,
        description="False until the first ingestion write or crowdsourced merge",
    )

    def factor_scores(self) -> Dict[str, float]:
        """Factor scores keyed by factor name."""
        return {factor: getattr(self, factor) for factor in FACTORS}
