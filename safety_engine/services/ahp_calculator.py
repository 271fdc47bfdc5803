"""AHP (Analytic Hierarchy Process) weight calculation.

Turns an expert pairwise-comparison matrix into a weight vector using the
column-normalization / row-mean approximation of the principal eigenvector,
then checks Saaty's consistency ratio. Stored weight vectors were produced with
exactly this procedure, so the steps and constants must not change.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np

from safety_engine.core.exceptions import (
    InconsistentMatrix,
    InvalidMatrixEntry,
    UnsupportedCriteriaCount,
)
from safety_engine.core.logging_config import log_fields
from safety_engine.schemas.hexagon import FACTORS

logger = logging.getLogger(__name__)

# Saaty random consistency index by matrix size
RANDOM_INDEX: Dict[int, float] = {3: 0.58, 4: 0.90, 5: 1.12, 6: 1.24, 7: 1.32}

CONSISTENCY_THRESHOLD = 0.1


@dataclass(frozen=True)
class AhpResult:
    """Weights derived from a pairwise matrix."""

    weights: np.ndarray
    consistency_ratio: float
    lambda_max: float

    def as_dict(self, criteria: Sequence[str]) -> Dict[str, float]:
        """Weights keyed by criterion name."""
        if len(criteria) != len(self.weights):
            raise ValueError(f"Expected {len(self.weights)} criteria, got {len(criteria)}")
        return {name: float(w) for name, w in zip(criteria, self.weights)}


def _as_matrix(matrix: Sequence[Sequence[float]]) -> np.ndarray:
    try:
        array = np.asarray(matrix, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidMatrixEntry(f"Pairwise matrix is not numeric: {e}") from e

    if array.ndim != 2 or array.shape[0] != array.shape[1]:
        raise InvalidMatrixEntry(f"Pairwise matrix must be square, got shape {array.shape}")

    n = array.shape[0]
    if n not in RANDOM_INDEX:
        raise UnsupportedCriteriaCount(f"Pairwise matrix must have 3 to 7 criteria, got {n}")

    if not np.all(np.isfinite(array)):
        raise InvalidMatrixEntry("Pairwise matrix entries must be finite")
    if np.any(array <= 0):
        raise InvalidMatrixEntry("Pairwise matrix entries must be positive")

    return array


class AhpCalculator:
    """Derives criteria weights from pairwise comparisons. Stateless."""

    def calculate_weights(self, matrix: Sequence[Sequence[float]]) -> AhpResult:
        """Priority weights and consistency ratio for a pairwise matrix.

        Args:
            matrix: n x n matrix (3 <= n <= 7), entry (i, j) the importance of
                criterion i over criterion j on the 1/9..9 scale

        Returns:
            AhpResult with weights summing to 1

        Raises:
            UnsupportedCriteriaCount: n outside 3..7
            InvalidMatrixEntry: non-square, non-positive or non-finite entries
            InconsistentMatrix: consistency ratio above 0.1
        """
        a = _as_matrix(matrix)
        n = a.shape[0]

        normalized = a / a.sum(axis=0)
        weights = normalized.mean(axis=1)

        weighted_sum = a @ weights
        lambda_max = float(np.mean(weighted_sum / weights))
        consistency_index = (lambda_max - n) / (n - 1)
        consistency_ratio = consistency_index / RANDOM_INDEX[n]

        logger.debug(
            f"AHP consistency ratio {consistency_ratio:.4f} for {n} criteria",
            extra=log_fields(
                criteria=n,
                lambda_max=lambda_max,
                consistency_index=consistency_index,
                consistency_ratio=consistency_ratio,
            ),
        )

        if consistency_ratio > CONSISTENCY_THRESHOLD:
            raise InconsistentMatrix(consistency_ratio)

        return AhpResult(
            weights=weights, consistency_ratio=consistency_ratio, lambda_max=lambda_max
        )

    def calculate_factor_weights(self, matrix: Sequence[Sequence[float]]) -> Dict[str, float]:
        """Weights for the four safety factors (crime, lighting, crowd, police).

        Raises:
            UnsupportedCriteriaCount: matrix is not 4 x 4
        """
        a = _as_matrix(matrix)
        if a.shape[0] != len(FACTORS):
            raise UnsupportedCriteriaCount(
                f"Factor matrix must be {len(FACTORS)}x{len(FACTORS)}, got {a.shape[0]}"
            )
        return self.calculate_weights(a).as_dict(FACTORS)
