"""Crowdsourced observation intake."""

import logging
import threading
from typing import Dict, List, Mapping, Optional

from safety_engine.core.exceptions import ObservationNotFound
from safety_engine.core.logging_config import log_fields
from safety_engine.schemas.hexagon import HexCell
from safety_engine.schemas.trust import Observation
from safety_engine.services.reputation_service import ReputationService
from safety_engine.services.safety_store import SafetyHexagonStore
from safety_engine.services.trust_engine import TrustEngine

logger = logging.getLogger(__name__)


class ObservationService:
    """Merges observations from trusted contributors, queues the rest for review.

    Queued observations are keyed by ``observation_id`` and kept in submission
    order. An entry leaves the queue only once it has been merged or rejected.
    """

    def __init__(
        self,
        store: SafetyHexagonStore,
        reputations: ReputationService,
        trust_engine: TrustEngine,
    ):
        self.store = store
        self.reputations = reputations
        self.trust_engine = trust_engine
        self._review_queue: Dict[str, Observation] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        cell_id: int,
        factor_deltas: Mapping[str, float],
        contributor_id: str,
        weights: Mapping[str, float],
    ) -> Optional[HexCell]:
        """Merge an observation, or hold it for manual review.

        Returns:
            The updated cell, or None when the observation was queued

        Raises:
            InvalidFactorValue: unknown factor or non-finite value, queued or not
            InvalidCellId: unsupported cell id, queued or not
        """
        reputation = self.reputations.reputation(contributor_id)

        if self.trust_engine.needs_review(reputation):
            observed = self.store.validate_observation(cell_id, factor_deltas)
            observation = Observation(
                cell_id=cell_id,
                contributor_id=contributor_id,
                factor_deltas=observed,
                reputation=reputation,
            )
            with self._lock:
                self._review_queue[observation.observation_id] = observation
            logger.info(
                f"Observation from {contributor_id} queued for review",
                extra=log_fields(
                    observation_id=observation.observation_id,
                    reputation=reputation,
                    factors=sorted(observed),
                ),
            )
            return None

        return self.store.merge_observation(cell_id, factor_deltas, reputation, weights)

    def pending_review(self) -> List[Observation]:
        with self._lock:
            return list(self._review_queue.values())

    def approve(self, observation_id: str, weights: Mapping[str, float]) -> HexCell:
        """Merge a reviewed observation.

        A reviewer's approval lifts the contributor's weight to the review
        threshold for this one observation; it never exceeds what an
        unreviewed contributor at the threshold would get. If the merge
        fails the observation stays queued.

        Raises:
            ObservationNotFound: no queued observation with that id
            InvalidWeightVector: malformed weights
        """
        with self._lock:
            observation = self._queued(observation_id)
            trust = max(observation.reputation, self.trust_engine.review_threshold)
            cell = self.store.merge_observation(
                observation.cell_id, observation.factor_deltas, trust, weights
            )
            del self._review_queue[observation_id]
        logger.info(
            f"Observation {observation_id} approved",
            extra=log_fields(observation_id=observation_id, trust=trust),
        )
        return cell

    def reject(self, observation_id: str) -> Observation:
        with self._lock:
            self._queued(observation_id)
            return self._review_queue.pop(observation_id)

    def _queued(self, observation_id: str) -> Observation:
        """Caller holds the queue lock."""
        observation = self._review_queue.get(observation_id)
        if observation is None:
            raise ObservationNotFound(f"No queued observation {observation_id!r}")
        return observation
