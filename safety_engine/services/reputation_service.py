"""Contributor reputation cycle.

Runs as a batch job: restrict verifications to the active window, rebuild the
local trust matrix, propagate global trust and publish per-contributor
reputations for the observation pipeline to look up.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from safety_engine.config import Settings, get_settings
from safety_engine.core.logging_config import log_fields, operation
from safety_engine.schemas.trust import Verification
from safety_engine.services.trust_engine import TrustEngine

logger = logging.getLogger(__name__)


class ReputationService:
    """Holds the latest reputation table and recomputes it on demand."""

    def __init__(self, trust_engine: TrustEngine, settings: Settings | None = None):
        settings = settings or get_settings()
        self.trust_engine = trust_engine
        self.window = timedelta(days=settings.TRUST_WINDOW_DAYS)
        self._reputations: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.last_run_at: Optional[datetime] = None

    def _in_window(self, record: Verification, now: datetime) -> bool:
        if record.verified_at is None:
            return True
        verified_at = record.verified_at
        if verified_at.tzinfo is None:
            verified_at = verified_at.replace(tzinfo=timezone.utc)
        return now - verified_at <= self.window

    def recalculate(
        self,
        contributor_ids: Sequence[str],
        verifications: Iterable[Verification],
        pre_trust: Optional[Mapping[str, float]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, float]:
        """Rebuild reputations for the active contributor set.

        Args:
            contributor_ids: Contributors active in the window
            verifications: Verification records (older ones are dropped)
            pre_trust: Seed trust per contributor; uniform when omitted
            now: Reference time for the window (defaults to current UTC time)

        Returns:
            Contributor id to reputation in [0, 1]
        """
        now = now or datetime.now(timezone.utc)
        with operation("reputation_cycle"):
            ids = list(contributor_ids)
            recent: List[Verification] = [v for v in verifications if self._in_window(v, now)]

            if pre_trust is None:
                seed = [1.0] * len(ids)
            else:
                seed = [float(pre_trust.get(contributor, 0.0)) for contributor in ids]

            matrix = self.trust_engine.build_trust_matrix(ids, recent)
            trust = self.trust_engine.propagate(matrix, seed)
            reputations = self.trust_engine.reputation_scores(ids, trust)

            with self._lock:
                self._reputations = reputations
                self.last_run_at = now

            flagged = self.trust_engine.flagged_contributors(reputations)
            logger.info(
                f"Reputation cycle: {len(ids)} contributors, {len(flagged)} below review threshold",
                extra=log_fields(
                    contributors=len(ids),
                    verifications_in_window=len(recent),
                    flagged=len(flagged),
                    seeded=pre_trust is not None,
                ),
            )
            return dict(reputations)

    def reputation(self, contributor_id: str) -> float:
        """Latest reputation, 0.0 for contributors outside the last cycle."""
        with self._lock:
            return self._reputations.get(contributor_id, 0.0)
