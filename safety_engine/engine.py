"""Safety Intelligence Engine facade.

Wires the hex index, hexagon store, AHP calculator, trust engine and route
planning together from one ``Settings`` object and holds the active factor
weight vector.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

from safety_engine.config import Settings, get_settings
from safety_engine.core.exceptions import InconsistentMatrix, UnsupportedCriteriaCount
from safety_engine.core.logging_config import log_fields
from safety_engine.db.base import build_engine, build_session_factory, init_db
from safety_engine.repositories.hex_cell_repository import (
    HexCellRepository,
    SqlHexCellRepository,
)
from safety_engine.schemas.hexagon import DEFAULT_FACTOR_WEIGHTS, FACTORS
from safety_engine.services.ahp_calculator import AhpCalculator
from safety_engine.services.hex_index import HexIndex
from safety_engine.services.ingestion_service import IngestionService
from safety_engine.services.observation_service import ObservationService
from safety_engine.services.reputation_service import ReputationService
from safety_engine.services.road_graph import RoadGraph
from safety_engine.services.route_planner import RoutePlanner
from safety_engine.services.safety_store import SafetyHexagonStore, validate_weights
from safety_engine.services.trust_engine import TrustEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeightResolution:
    """Outcome of turning an expert matrix into factor weights."""

    weights: Dict[str, float]
    consistency_ratio: float
    used_default: bool


class SafetyIntelligenceEngine:
    """Entry point for callers that need scores, weights, trust or routes."""

    def __init__(
        self,
        settings: Settings | None = None,
        repository: HexCellRepository | None = None,
    ):
        self.settings = settings or get_settings()
        self.hex_index = HexIndex(self.settings)
        self.store = SafetyHexagonStore(self.hex_index, repository, settings=self.settings)
        self.ahp = AhpCalculator()
        self.trust = TrustEngine(self.settings)
        self.reputations = ReputationService(self.trust, self.settings)
        self.ingestion = IngestionService(self.store)
        self.observations = ObservationService(self.store, self.reputations, self.trust)
        self._weights: Dict[str, float] = dict(DEFAULT_FACTOR_WEIGHTS)
        self._weights_lock = threading.Lock()

    @classmethod
    def with_database(
        cls, database_url: Optional[str] = None, settings: Settings | None = None
    ) -> "SafetyIntelligenceEngine":
        """Engine whose store is backed by a SQL database."""
        settings = settings or get_settings()
        engine = build_engine(database_url or settings.DATABASE_URL)
        init_db(engine)
        repository = SqlHexCellRepository(build_session_factory(engine))
        return cls(settings=settings, repository=repository)

    @property
    def weights(self) -> Dict[str, float]:
        with self._weights_lock:
            return dict(self._weights)

    def resolve_weights(self, matrix: Sequence[Sequence[float]]) -> WeightResolution:
        """Factor weights from an expert matrix, or the defaults if it is inconsistent.

        The fallback is reported through ``used_default`` so the caller can
        surface it; validation errors (bad size, bad entries) still raise.
        """
        if len(matrix) != len(FACTORS):
            raise UnsupportedCriteriaCount(
                f"Factor matrix must be {len(FACTORS)}x{len(FACTORS)}, got {len(matrix)} rows"
            )

        try:
            result = self.ahp.calculate_weights(matrix)
        except InconsistentMatrix as e:
            logger.warning(
                f"Expert matrix rejected (CR={e.consistency_ratio:.3f}); using default weights",
                extra=log_fields(consistency_ratio=e.consistency_ratio, used_default=True),
            )
            return WeightResolution(
                weights=dict(DEFAULT_FACTOR_WEIGHTS),
                consistency_ratio=e.consistency_ratio,
                used_default=True,
            )

        return WeightResolution(
            weights=result.as_dict(FACTORS),
            consistency_ratio=result.consistency_ratio,
            used_default=False,
        )

    def set_weights(self, weights: Mapping[str, float], recompute: bool = True) -> int:
        """Replace the active weight vector.

        Returns:
            Number of cells recomputed (0 when ``recompute`` is False)
        """
        weight_vector = validate_weights(weights)
        with self._weights_lock:
            self._weights = weight_vector
        logger.info(
            "Active factor weights replaced",
            extra=log_fields(weights=weight_vector, recompute=recompute),
        )
        return self.store.recompute_all(weight_vector) if recompute else 0

    def ingest(self, updates) -> int:
        """Apply authoritative (cell_id, factor, value) triples with the active weights."""
        return self.ingestion.ingest(updates, self.weights)

    def submit_observation(
        self, cell_id: int, factor_deltas: Mapping[str, float], contributor_id: str
    ):
        """Merge or queue a crowdsourced observation with the active weights."""
        return self.observations.submit(cell_id, factor_deltas, contributor_id, self.weights)

    def route_planner(self, road_graph: RoadGraph) -> RoutePlanner:
        """Planner over a loaded road graph, reading this engine's store."""
        return RoutePlanner(road_graph, self.store, self.hex_index, self.settings)
