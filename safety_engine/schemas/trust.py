"""Contributor trust schemas."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class VerificationOutcome(str, Enum):
    """Result of a peer checking another contributor's observation."""

    ACCURATE = "ACCURATE"
    INACCURATE = "INACCURATE"


class Verification(BaseModel):
    """One peer verification record."""

    model_config = ConfigDict(frozen=True)

    verifier_id: str = Field(..., min_length=1)
    contributor_id: str = Field(..., min_length=1)
    outcome: VerificationOutcome
    verified_at: Optional[datetime] = None


class Observation(BaseModel):
    """Crowdsourced factor deltas for one cell."""

    model_config = ConfigDict(frozen=True)

    observation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    cell_id: int
    contributor_id: str = Field(..., min_length=1)
    factor_deltas: Dict[str, float]
    reputation: float = Field(..., ge=0.0, le=1.0)
