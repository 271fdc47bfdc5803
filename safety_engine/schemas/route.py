"""Route planning schemas."""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Route(BaseModel):
    """A planned route. Immutable once built.

    Safety metrics are ``None`` when the route has no edges (origin and
    destination snapped to the same node), since there is nothing to average.
    """

    model_config = ConfigDict(frozen=True)

    node_ids: Tuple[int | str, ...] = Field(..., description="Graph nodes in travel order")
    coordinates: Tuple[Tuple[float, float], ...] = Field(
        ..., description="(lat, lng) of each node in travel order"
    )
    total_distance_m: float = Field(..., ge=0.0)
    estimated_time_s: float = Field(..., ge=0.0)
    average_safety_score: Optional[float] = Field(
        None, ge=0.0, le=100.0, description="Mean edge safety, None if not computable"
    )
    minimum_safety_score: Optional[float] = Field(
        None, ge=0.0, le=100.0, description="Lowest edge safety, None if not computable"
    )
    safety_weight: float = Field(..., ge=0.0, le=1.0)
    edge_safety_scores: Tuple[float, ...] = Field(default=())

    @property
    def edge_count(self) -> int:
        return max(len(self.node_ids) - 1, 0)


class RouteDifferential(BaseModel):
    """Safest route compared with the fastest one."""

    model_config = ConfigDict(frozen=True)

    time_delta_minutes: float = Field(..., description="Extra minutes the safest route takes")
    safety_delta: Optional[float] = Field(
        None, description="Average safety gain of the safest route, None if not computable"
    )
    percent_safer: Optional[float] = Field(
        None,
        description="safety_delta relative to the fastest route, None if not computable",
    )

    @property
    def percent_safer_computable(self) -> bool:
        return self.percent_safer is not None


class RouteComparison(BaseModel):
    """Fastest and safest routes between the same endpoints."""

    model_config = ConfigDict(frozen=True)

    fastest: Route
    safest: Route
    differential: RouteDifferential

    @property
    def same_path(self) -> bool:
        return self.fastest.node_ids == self.safest.node_ids


Coordinate = Tuple[float, float]
