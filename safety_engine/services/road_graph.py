"""Road network for route planning.

A thin wrapper over a networkx ``DiGraph`` that uses the OSMnx attribute
conventions: nodes carry ``y`` (lat) and ``x`` (lng); edges carry ``length`` in
metres, ``travel_time`` in seconds and an optional ``coords`` polyline of
(lat, lng) points. Once frozen the graph is immutable for the rest of the
planning session.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from safety_engine.core.exceptions import InvalidCoordinate, ValidationError
from safety_engine.utils.geometry import EARTH_RADIUS_M

logger = logging.getLogger(__name__)

NodeId = int | str


class RoadGraph:
    """Directed road network with coordinates, lengths and base travel times."""

    def __init__(self) -> None:
        self.graph = nx.DiGraph()
        self._node_ids: List[NodeId] = []
        self._lats: Optional[np.ndarray] = None
        self._lngs: Optional[np.ndarray] = None
        self.max_speed_mps: float = 0.0

    @property
    def frozen(self) -> bool:
        return nx.is_frozen(self.graph)

    def add_node(self, node_id: NodeId, lat: float, lng: float) -> None:
        """Add an intersection.

        Raises:
            InvalidCoordinate: lat/lng out of range
        """
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise InvalidCoordinate(f"Node {node_id} coordinate must be finite")
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            raise InvalidCoordinate(f"Node {node_id} coordinate ({lat}, {lng}) out of range")
        self.graph.add_node(node_id, y=float(lat), x=float(lng))

    def add_edge(
        self,
        u: NodeId,
        v: NodeId,
        length_m: float,
        travel_time_s: float,
        coords: Optional[Sequence[Tuple[float, float]]] = None,
        bidirectional: bool = True,
    ) -> None:
        """Add a road segment between two existing nodes.

        Args:
            u, v: Endpoint node ids
            length_m: Segment length in metres
            travel_time_s: Base travel time in seconds
            coords: Optional (lat, lng) polyline from u to v
            bidirectional: Also add the reverse edge

        Raises:
            ValidationError: unknown endpoint or negative/non-finite metrics
        """
        for node in (u, v):
            if node not in self.graph:
                raise ValidationError(f"Edge endpoint {node} is not a graph node")
        for name, value in (("length_m", length_m), ("travel_time_s", travel_time_s)):
            if not math.isfinite(value) or value < 0:
                raise ValidationError(
                    f"Edge {u}->{v} {name} must be finite and >= 0, got {value}"
                )

        if coords:
            polyline = [tuple(p) for p in coords]
        else:
            polyline = [self.coordinate(u), self.coordinate(v)]

        attrs = {"length": float(length_m), "travel_time": float(travel_time_s)}
        self.graph.add_edge(u, v, coords=polyline, **attrs)
        if bidirectional:
            self.graph.add_edge(v, u, coords=polyline[::-1], **attrs)

    def freeze(self) -> "RoadGraph":
        """Make the graph immutable and build lookup arrays."""
        if self.frozen:
            return self

        self._node_ids = list(self.graph.nodes)
        self._lats = np.array([self.graph.nodes[n]["y"] for n in self._node_ids], dtype=float)
        self._lngs = np.array([self.graph.nodes[n]["x"] for n in self._node_ids], dtype=float)

        speeds = [
            data["length"] / data["travel_time"]
            for _, _, data in self.graph.edges(data=True)
            if data["travel_time"] > 0
        ]
        self.max_speed_mps = max(speeds) if speeds else 0.0

        nx.freeze(self.graph)
        logger.info(
            f"Road graph frozen: {self.graph.number_of_nodes()} nodes, "
            f"{self.graph.number_of_edges()} edges, max speed {self.max_speed_mps:.1f} m/s"
        )
        return self

    def coordinate(self, node_id: NodeId) -> Tuple[float, float]:
        """(lat, lng) of a node."""
        data = self.graph.nodes[node_id]
        return data["y"], data["x"]

    def edge(self, u: NodeId, v: NodeId) -> Dict[str, Any]:
        return self.graph.edges[u, v]

    def nearest_node(self, lat: float, lng: float) -> Tuple[NodeId, float]:
        """Closest node by great-circle distance.

        Returns:
            (node_id, distance_m)

        Raises:
            ValidationError: graph has no nodes
        """
        if not self.frozen:
            self.freeze()
        if not self._node_ids:
            raise ValidationError("Road graph has no nodes")

        lat1 = math.radians(lat)
        lat2 = np.radians(self._lats)
        d_lat = lat2 - lat1
        d_lng = np.radians(self._lngs - lng)
        a = np.sin(d_lat / 2) ** 2 + math.cos(lat1) * np.cos(lat2) * np.sin(d_lng / 2) ** 2
        distances = 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

        idx = int(np.argmin(distances))
        return self._node_ids[idx], float(distances[idx])

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    @classmethod
    def from_networkx(cls, source: nx.Graph) -> "RoadGraph":
        """Load an OSMnx-style graph.

        Nodes need ``y``/``x``; edges need ``length`` and ``travel_time``
        (OSMnx ``add_edge_travel_times``). Parallel edges of a MultiDiGraph are
        collapsed to the fastest one. Shapely ``geometry`` edge attributes are
        used as the polyline when present.
        """
        road_graph = cls()
        for node_id, data in source.nodes(data=True):
            road_graph.add_node(node_id, data["y"], data["x"])

        best: Dict[Tuple[NodeId, NodeId], Dict[str, Any]] = {}
        for u, v, data in source.edges(data=True):
            current = best.get((u, v))
            if current is None or data["travel_time"] < current["travel_time"]:
                best[(u, v)] = data

        for (u, v), data in best.items():
            geometry = data.get("geometry")
            coords = [(y, x) for x, y in geometry.coords] if geometry is not None else None
            road_graph.add_edge(
                u,
                v,
                data["length"],
                data["travel_time"],
                coords=coords,
                bidirectional=not source.is_directed(),
            )

        return road_graph.freeze()
