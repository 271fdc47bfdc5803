"""Contributor trust via EigenTrust-style propagation.

Peer verifications become a row-stochastic local trust matrix; global trust is
the damped power iteration of its transpose, anchored to a pre-trust vector so
that a ring of colluding accounts cannot bootstrap itself from nothing.
"""

import logging
from typing import Dict, Iterable, List, Sequence

import numpy as np

from safety_engine.config import Settings, get_settings
from safety_engine.core.exceptions import InvalidTrustInput
from safety_engine.core.logging_config import log_fields
from safety_engine.schemas.trust import Verification, VerificationOutcome

logger = logging.getLogger(__name__)

ALPHA = 0.15
MAX_ITERATIONS = 50
CONVERGENCE_EPSILON = 0.001

OUTCOME_SCORES: Dict[VerificationOutcome, float] = {
    VerificationOutcome.ACCURATE: 1.0,
    VerificationOutcome.INACCURATE: -0.5,
}


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Rows scaled to sum to 1; all-zero rows become uniform."""
    n = matrix.shape[0]
    row_sums = matrix.sum(axis=1)
    normalized = np.full_like(matrix, 1.0 / n)
    nonzero = row_sums > 0
    normalized[nonzero] = matrix[nonzero] / row_sums[nonzero, None]
    return normalized


def _normalize_vector(vector: np.ndarray) -> np.ndarray:
    total = vector.sum()
    if total <= 0:
        return np.full_like(vector, 1.0 / len(vector))
    return vector / total


class TrustEngine:
    """Builds local trust matrices and propagates global trust. Stateless."""

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.review_threshold = settings.TRUST_REVIEW_THRESHOLD

    def build_trust_matrix(
        self, contributor_ids: Sequence[str], verifications: Iterable[Verification]
    ) -> np.ndarray:
        """Row-stochastic local trust matrix from verification outcomes.

        Row i holds how much contributor i trusts each other contributor, based
        on how often i found their observations accurate. Contributors who
        verified nobody get a uniform row (no information is neutral trust).

        Self-verifications (verifier and contributor are the same id) are
        dropped, so a contributor can never raise their own reputation. Records
        naming anyone outside ``contributor_ids`` are dropped too. Both are
        counted in a debug log line.

        Args:
            contributor_ids: Contributors in the evaluation window, in matrix order
            verifications: Peer verification records

        Returns:
            n x n numpy array, each row summing to 1

        Raises:
            InvalidTrustInput: empty or duplicate contributor ids
        """
        ids = list(contributor_ids)
        if not ids:
            raise InvalidTrustInput("At least one contributor is required")
        position = {contributor: i for i, contributor in enumerate(ids)}
        if len(position) != len(ids):
            raise InvalidTrustInput("Contributor ids must be unique")

        n = len(ids)
        raw = np.zeros((n, n), dtype=float)
        skipped = 0

        for record in verifications:
            i = position.get(record.verifier_id)
            j = position.get(record.contributor_id)
            if i is None or j is None or i == j:
                skipped += 1
                continue
            raw[i, j] += OUTCOME_SCORES[VerificationOutcome(record.outcome)]

        if skipped:
            logger.debug(
                f"Skipped {skipped} verifications outside the window or self-directed",
                extra=log_fields(skipped=skipped, contributors=n),
            )

        np.clip(raw, 0.0, None, out=raw)
        return _normalize_rows(raw)

    def propagate(
        self, trust_matrix: Sequence[Sequence[float]], pre_trust: Sequence[float]
    ) -> np.ndarray:
        """Global trust vector by damped power iteration.

        ``t_{k+1} = (1 - alpha) * C^T t_k + alpha * p`` starting from
        ``t_0 = p``; stops once the L1 change drops below 0.001 and never runs
        more than 50 iterations.

        Args:
            trust_matrix: n x n local trust matrix
            pre_trust: Length-n seed trust

        Returns:
            Length-n numpy array summing to 1

        Raises:
            InvalidTrustInput: shape mismatch, negative or non-finite entries
        """
        try:
            c = np.asarray(trust_matrix, dtype=float)
            p = np.asarray(pre_trust, dtype=float)
        except (TypeError, ValueError) as e:
            raise InvalidTrustInput(f"Trust input is not numeric: {e}") from e

        if c.ndim != 2 or c.shape[0] != c.shape[1] or c.shape[0] == 0:
            raise InvalidTrustInput(f"Trust matrix must be square and non-empty, got {c.shape}")
        if p.shape != (c.shape[0],):
            raise InvalidTrustInput(
                f"Pre-trust vector length {p.shape} does not match matrix size {c.shape[0]}"
            )
        if not (np.all(np.isfinite(c)) and np.all(np.isfinite(p))):
            raise InvalidTrustInput("Trust inputs must be finite")
        if np.any(c < 0) or np.any(p < 0):
            raise InvalidTrustInput("Trust inputs must be non-negative")

        c = _normalize_rows(c)
        p = _normalize_vector(p)
        c_transposed = c.T

        t = p.copy()
        for iteration in range(1, MAX_ITERATIONS + 1):
            t_next = (1 - ALPHA) * (c_transposed @ t) + ALPHA * p
            delta = float(np.abs(t_next - t).sum())
            t = t_next
            if delta < CONVERGENCE_EPSILON:
                logger.debug(
                    f"Trust converged after {iteration} iterations",
                    extra=log_fields(iterations=iteration, delta=delta, contributors=len(p)),
                )
                break
        else:
            logger.warning(
                f"Trust propagation hit {MAX_ITERATIONS} iterations without converging",
                extra=log_fields(iterations=MAX_ITERATIONS, delta=delta, contributors=len(p)),
            )

        return t

    def reputation_scores(
        self, contributor_ids: Sequence[str], trust_vector: Sequence[float]
    ) -> Dict[str, float]:
        """Contributor reputations in [0, 1], relative to the most trusted contributor.

        The global trust vector is a distribution whose entries shrink as the
        community grows; scaling by its maximum keeps the review threshold
        meaningful at any size.
        """
        ids = list(contributor_ids)
        t = np.asarray(trust_vector, dtype=float)
        if len(ids) != len(t):
            raise InvalidTrustInput(
                f"{len(ids)} contributor ids for a trust vector of length {len(t)}"
            )
        peak = float(t.max()) if len(t) else 0.0
        if peak <= 0:
            return {contributor: 0.0 for contributor in ids}
        return {contributor: float(value / peak) for contributor, value in zip(ids, t)}

    def needs_review(self, reputation: float) -> bool:
        """Observations from contributors below the review threshold go to manual review."""
        return reputation < self.review_threshold

    def flagged_contributors(self, reputations: Dict[str, float]) -> List[str]:
        """Contributors whose observations must be reviewed before merging."""
        return sorted(c for c, r in reputations.items() if self.needs_review(r))
