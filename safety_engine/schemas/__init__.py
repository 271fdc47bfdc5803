"""Engine data schemas."""

from safety_engine.schemas.hexagon import (
    DEFAULT_FACTOR_WEIGHTS,
    FACTORS,
    HexCell,
    Resolution,
    SafetyFactor,
)
from safety_engine.schemas.route import Route, RouteComparison, RouteDifferential
from safety_engine.schemas.trust import Observation, Verification, VerificationOutcome

__all__ = [
    "DEFAULT_FACTOR_WEIGHTS",
    "FACTORS",
    "HexCell",
    "Observation",
    "Resolution",
    "Route",
    "RouteComparison",
    "RouteDifferential",
    "SafetyFactor",
    "Verification",
    "VerificationOutcome",
]
