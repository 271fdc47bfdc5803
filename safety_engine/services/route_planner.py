"""Safety-weighted route planning.

Edge cost blends hexagon safety with travel time according to the caller's
``safety_weight``:

    cost = w * (100 - safety) / 100 + (1 - w) * travel_time / reference_minute

Both terms are non-negative, so A* with a heuristic that only estimates the
time term (straight-line distance at the graph's top speed) stays admissible.
Edge safety is the mean overall score of the hexagons an edge crosses, read
from the store once per planning session and never cached across sessions.
"""

import logging
import math
import time
from typing import Dict, List, Optional, Tuple

import networkx as nx

from safety_engine.config import Settings, get_settings
from safety_engine.core.cancellation import CancellationToken
from safety_engine.core.exceptions import (
    InvalidCoordinate,
    InvalidSafetyWeight,
    NoPathExists,
    NoReachableNode,
)
from safety_engine.core.logging_config import log_fields, operation
from safety_engine.schemas.hexagon import DEFAULT_FACTOR_SCORE, Resolution
from safety_engine.schemas.route import Coordinate, Route, RouteComparison, RouteDifferential
from safety_engine.services.hex_index import HexIndex
from safety_engine.services.road_graph import NodeId, RoadGraph
from safety_engine.services.safety_store import SafetyHexagonStore
from safety_engine.utils.geometry import haversine_distance

logger = logging.getLogger(__name__)

EdgeKey = Tuple[NodeId, NodeId]


class PlanningSession:
    """Edge safety annotations for one planning call.

    Each edge is annotated at most once per session from a copy-on-read store
    snapshot, so a search never sees an edge's safety change underneath it.
    """

    def __init__(self, planner: "RoutePlanner"):
        self.planner = planner
        self.edge_safety: Dict[EdgeKey, float] = {}
        self.cells_read = 0

    def safety(self, u: NodeId, v: NodeId) -> float:
        key = (u, v)
        score = self.edge_safety.get(key)
        if score is None:
            cells = self.planner.edge_cells(u, v)
            if cells:
                snapshot = self.planner.store.snapshot(cells)
                score = sum(snapshot[c] for c in cells) / len(cells)
            else:
                score = DEFAULT_FACTOR_SCORE
            self.cells_read += len(cells)
            self.edge_safety[key] = score
        return score


class RoutePlanner:
    """Plans safety-weighted routes over a frozen road graph."""

    def __init__(
        self,
        road_graph: RoadGraph,
        store: SafetyHexagonStore,
        hex_index: HexIndex,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.road_graph = road_graph.freeze()
        self.store = store
        self.hex_index = hex_index
        self.resolution = Resolution(settings.ROUTING_HEX_RESOLUTION)
        self.max_snap_distance_m = settings.ROUTING_MAX_SNAP_DISTANCE_M
        self.reference_minute_s = settings.ROUTING_REFERENCE_MINUTE_S
        self.sample_interval_m = settings.ROUTING_EDGE_SAMPLE_INTERVAL_M
        # Edge geometry is immutable, so the cells it crosses can be kept
        self._edge_cells: Dict[EdgeKey, List[int]] = {}

    def edge_cells(self, u: NodeId, v: NodeId) -> List[int]:
        """Hexagons the edge u->v crosses at the routing resolution."""
        key = (u, v)
        cells = self._edge_cells.get(key)
        if cells is None:
            coords = self.road_graph.edge(u, v)["coords"]
            cells = self.hex_index.cells_along(coords, self.resolution, self.sample_interval_m)
            self._edge_cells[key] = cells
        return cells

    def snap(self, point: Coordinate) -> NodeId:
        """Nearest graph node to a (lat, lng) point.

        Raises:
            InvalidCoordinate: point out of range
            NoReachableNode: empty graph or nearest node beyond the snap distance
        """
        lat, lng = point
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise InvalidCoordinate(f"Coordinate must be finite, got ({lat}, {lng})")
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            raise InvalidCoordinate(f"Coordinate ({lat}, {lng}) out of range")
        if len(self.road_graph) == 0:
            raise NoReachableNode("Road graph has no nodes")

        node_id, distance_m = self.road_graph.nearest_node(lat, lng)
        if distance_m > self.max_snap_distance_m:
            raise NoReachableNode(
                f"Nearest node to ({lat:.6f}, {lng:.6f}) is {distance_m:.0f}m away "
                f"(max {self.max_snap_distance_m:.0f}m)"
            )
        return node_id

    def plan_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        safety_weight: float,
        cancellation: Optional[CancellationToken] = None,
    ) -> Route:
        """Best route for a given safety/time tradeoff.

        Args:
            origin: (lat, lng) start
            destination: (lat, lng) end
            safety_weight: 0 for fastest, 1 for safest
            cancellation: Optional token checked before every edge relaxation

        Returns:
            Route with metrics computed from the realized edges

        Raises:
            InvalidSafetyWeight: weight outside [0, 1]
            InvalidCoordinate: origin/destination out of range
            NoReachableNode: nothing within the snap distance
            NoPathExists: endpoints not connected
            Cancelled: token cancelled or deadline passed
        """
        with operation("plan_route"):
            session = PlanningSession(self)
            return self._plan(session, origin, destination, safety_weight, cancellation)

    def plan_comparative_routes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        cancellation: Optional[CancellationToken] = None,
    ) -> RouteComparison:
        """Fastest (weight 0) and safest (weight 1) routes with their differential.

        Both searches share one planning session so they see the same edge
        safety annotations.
        """
        with operation("plan_comparative_routes"):
            session = PlanningSession(self)
            fastest = self._plan(session, origin, destination, 0.0, cancellation)
            safest = self._plan(session, origin, destination, 1.0, cancellation)
            differential = compute_differential(fastest, safest)
            logger.info(
                f"Comparative routes: fastest {fastest.estimated_time_s:.0f}s, "
                f"safest {safest.estimated_time_s:.0f}s",
                extra=log_fields(
                    time_delta_minutes=differential.time_delta_minutes,
                    safety_delta=differential.safety_delta,
                    percent_safer=differential.percent_safer,
                    edges_annotated=len(session.edge_safety),
                    cells_read=session.cells_read,
                ),
            )
        return RouteComparison(fastest=fastest, safest=safest, differential=differential)

    def _plan(
        self,
        session: PlanningSession,
        origin: Coordinate,
        destination: Coordinate,
        safety_weight: float,
        cancellation: Optional[CancellationToken],
    ) -> Route:
        weight = float(safety_weight)
        if not math.isfinite(weight) or not 0.0 <= weight <= 1.0:
            raise InvalidSafetyWeight(f"Safety weight must be between 0 and 1, got {weight}")

        source = self.snap(origin)
        target = self.snap(destination)

        start_time = time.perf_counter()
        path = self._search(session, source, target, weight, cancellation)
        route = self._build_route(session, path, weight)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Route found (w={weight:.2f}): {len(path)} nodes, "
            f"{route.total_distance_m:.0f}m, calculated in {elapsed_ms:.1f}ms",
            extra=log_fields(
                safety_weight=weight,
                nodes=len(path),
                distance_m=round(route.total_distance_m, 1),
                time_s=round(route.estimated_time_s, 1),
                average_safety=route.average_safety_score,
                calculation_ms=round(elapsed_ms, 2),
            ),
        )
        return route

    def _edge_cost(
        self, session: PlanningSession, u: NodeId, v: NodeId, data: dict, weight: float
    ) -> float:
        cost = (1.0 - weight) * (data["travel_time"] / self.reference_minute_s)
        if weight > 0:
            cost += weight * (100.0 - session.safety(u, v)) / 100.0
        return cost

    def _search(
        self,
        session: PlanningSession,
        source: NodeId,
        target: NodeId,
        weight: float,
        cancellation: Optional[CancellationToken],
    ) -> List[NodeId]:
        """A* from source to target under the blended cost."""
        graph = self.road_graph
        target_lat, target_lng = graph.coordinate(target)
        speed = graph.max_speed_mps
        time_share = 1.0 - weight

        def heuristic(node: NodeId) -> float:
            if time_share <= 0 or speed <= 0:
                return 0.0
            lat, lng = graph.coordinate(node)
            seconds = haversine_distance(lat, lng, target_lat, target_lng) / speed
            return time_share * seconds / self.reference_minute_s

        def edge_cost(u: NodeId, v: NodeId, data: dict) -> float:
            if cancellation is not None:
                cancellation.raise_if_cancelled()
            return self._edge_cost(session, u, v, data, weight)

        if cancellation is not None:
            cancellation.raise_if_cancelled()
        try:
            return nx.astar_path(
                graph.graph,
                source,
                target,
                heuristic=lambda node, _: heuristic(node),
                weight=edge_cost,
            )
        except nx.NetworkXNoPath as e:
            raise NoPathExists(f"No path from node {source} to node {target}") from e

    def _build_route(self, session: PlanningSession, path: List[NodeId], weight: float) -> Route:
        """Route metrics from the realized edge sequence."""
        total_distance = 0.0
        total_time = 0.0
        edge_scores: List[float] = []

        for u, v in zip(path, path[1:]):
            data = self.road_graph.edge(u, v)
            total_distance += data["length"]
            total_time += data["travel_time"]
            edge_scores.append(session.safety(u, v))

        return Route(
            node_ids=tuple(path),
            coordinates=tuple(self.road_graph.coordinate(n) for n in path),
            total_distance_m=total_distance,
            estimated_time_s=total_time,
            average_safety_score=sum(edge_scores) / len(edge_scores) if edge_scores else None,
            minimum_safety_score=min(edge_scores) if edge_scores else None,
            safety_weight=weight,
            edge_safety_scores=tuple(edge_scores),
        )


def compute_differential(fastest: Route, safest: Route) -> RouteDifferential:
    """How much slower and how much safer the safest route is.

    ``percent_safer`` is None when the fastest route has no safety score or a
    score of zero, instead of propagating a division by zero.
    """
    time_delta_minutes = (safest.estimated_time_s - fastest.estimated_time_s) / 60.0

    if fastest.average_safety_score is None or safest.average_safety_score is None:
        return RouteDifferential(time_delta_minutes=time_delta_minutes)

    safety_delta = safest.average_safety_score - fastest.average_safety_score
    percent_safer = None
    if fastest.average_safety_score != 0:
        percent_safer = safety_delta / fastest.average_safety_score * 100.0

    return RouteDifferential(
        time_delta_minutes=time_delta_minutes,
        safety_delta=safety_delta,
        percent_safer=percent_safer,
    )
