"""Safety hexagon store.

Keeps per-cell factor scores and the derived overall score. Writes to a cell are
serialized through a fixed array of shard locks keyed by the cell id, so
unrelated cells never wait on each other. Reads return copies and may be stale.
"""

import logging
import math
import threading
import zlib
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping

from safety_engine.config import Settings, get_settings
from safety_engine.core.exceptions import InvalidFactorValue, InvalidWeightVector
from safety_engine.core.logging_config import log_fields
from safety_engine.repositories.hex_cell_repository import (
    HexCellRepository,
    InMemoryHexCellRepository,
)
from safety_engine.schemas.hexagon import (
    DEFAULT_FACTOR_SCORE,
    FACTORS,
    HexCell,
    SafetyFactor,
)
from safety_engine.services.hex_index import HexIndex

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 1e-6


def _factor_name(factor: str | SafetyFactor) -> str:
    name = factor.value if isinstance(factor, SafetyFactor) else str(factor).lower()
    if name not in FACTORS:
        raise InvalidFactorValue(f"Unknown safety factor {factor!r}")
    return name


def validate_weights(weights: Mapping[str | SafetyFactor, float]) -> Dict[str, float]:
    """Check a factor weight vector and key it by factor name.

    Raises:
        InvalidWeightVector: missing factor, negative or non-finite weight,
            or weights not summing to 1
    """
    normalized: Dict[str, float] = {}
    for factor, weight in weights.items():
        name = factor.value if isinstance(factor, SafetyFactor) else str(factor).lower()
        if name not in FACTORS:
            raise InvalidWeightVector(f"Unknown safety factor {factor!r}")
        weight = float(weight)
        if not math.isfinite(weight) or weight < 0:
            raise InvalidWeightVector(f"Weight for {name} must be finite and >= 0, got {weight}")
        normalized[name] = weight

    missing = [f for f in FACTORS if f not in normalized]
    if missing:
        raise InvalidWeightVector(f"Weight vector missing factors: {', '.join(missing)}")

    total = sum(normalized.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise InvalidWeightVector(f"Weights must sum to 1, got {total:.6f}")

    return normalized


def combine_factors(cell: HexCell, weights: Mapping[str, float]) -> float:
    """Weighted sum of a cell's factor scores, clamped to [0, 100]."""
    overall = sum(weights[factor] * getattr(cell, factor) for factor in FACTORS)
    return max(0.0, min(100.0, overall))


def _clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


class SafetyHexagonStore:
    """Keyed store of safety hexagons with per-shard write locks."""

    def __init__(
        self,
        hex_index: HexIndex,
        repository: HexCellRepository | None = None,
        shard_count: int | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.hex_index = hex_index
        self.repository = repository or InMemoryHexCellRepository()
        self.shard_count = shard_count or settings.STORE_SHARD_COUNT
        self._locks = [threading.Lock() for _ in range(self.shard_count)]

    def _lock_for(self, cell_id: int) -> threading.Lock:
        # H3 fills unused low digits with ones, so hash before taking the modulus
        shard = zlib.crc32(cell_id.to_bytes(8, "big", signed=False)) % self.shard_count
        return self._locks[shard]

    def _load_or_create(self, cell_id: int) -> HexCell:
        """Load a cell, creating and persisting a default one. Caller holds the shard lock."""
        cell = self.repository.get(cell_id)
        if cell is None:
            cell = HexCell(cell_id=cell_id, resolution=self.hex_index.resolution_of(cell_id))
            self.repository.save(cell)
            logger.debug(f"Created default hex cell {cell_id:x}")
        return cell

    def get(self, cell_id: int) -> HexCell:
        """Cell for ``cell_id``, created with default scores if never seen.

        Raises:
            InvalidCellId: id is not an H3 cell at a supported resolution
        """
        self.hex_index.resolution_of(cell_id)
        with self._lock_for(cell_id):
            return self._load_or_create(cell_id).model_copy()

    def apply_factor_update(
        self,
        cell_id: int,
        factor: str | SafetyFactor,
        value: float,
        weights: Mapping[str | SafetyFactor, float],
    ) -> HexCell:
        """Overwrite one factor from an authoritative source and recompute.

        Args:
            cell_id: Target cell
            factor: crime, lighting, crowd or police
            value: New factor score, clamped to [0, 100]
            weights: Factor weight vector used for the overall score

        Returns:
            Copy of the updated cell

        Raises:
            InvalidFactorValue: unknown factor or non-finite value
            InvalidWeightVector: malformed weights
            InvalidCellId: unsupported cell id
        """
        name = _factor_name(factor)
        try:
            value = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidFactorValue(f"Value for {name} is not a number: {value!r}") from e
        if not math.isfinite(value):
            raise InvalidFactorValue(f"Value for {name} must be finite, got {value}")
        weight_vector = validate_weights(weights)
        self.hex_index.resolution_of(cell_id)

        with self._lock_for(cell_id):
            cell = self._load_or_create(cell_id)
            setattr(cell, name, _clamp_score(value))
            cell.overall = combine_factors(cell, weight_vector)
            cell.update_count += 1
            cell.has_data = True
            cell.last_updated = datetime.now(timezone.utc)
            self.repository.save(cell)

        return cell.model_copy()

    def validate_observation(
        self, cell_id: int, factor_deltas: Mapping[str | SafetyFactor, float]
    ) -> Dict[str, float]:
        """Check an observation without touching the cell.

        Returns:
            Observed values keyed by factor name

        Raises:
            InvalidFactorValue: unknown factor or non-finite observed value
            InvalidCellId: unsupported cell id
        """
        observed: Dict[str, float] = {}
        for factor, delta in factor_deltas.items():
            name = _factor_name(factor)
            try:
                delta = float(delta)
            except (TypeError, ValueError) as e:
                raise InvalidFactorValue(f"Value for {name} is not a number: {delta!r}") from e
            if not math.isfinite(delta):
                raise InvalidFactorValue(f"Value for {name} must be finite, got {delta}")
            observed[name] = delta
        self.hex_index.resolution_of(cell_id)
        return observed

    def merge_observation(
        self,
        cell_id: int,
        factor_deltas: Mapping[str | SafetyFactor, float],
        contributor_trust: float,
        weights: Mapping[str | SafetyFactor, float],
    ) -> HexCell:
        """Blend a crowdsourced observation into the cell.

        Each observed factor moves towards the observed value in proportion to
        the contributor's trust against the cell's update history:
        ``(existing * update_count + observed * trust) / (update_count + trust)``.
        A zero denominator (fresh cell, zero trust) leaves the factor unchanged.

        Returns:
            Copy of the updated cell

        Raises:
            InvalidFactorValue: unknown factor or non-finite observed value
            InvalidFactorValue: trust not a number or outside [0, 1]
            InvalidWeightVector: malformed weights
            InvalidCellId: unsupported cell id
        """
        observed = self.validate_observation(cell_id, factor_deltas)
        try:
            trust = float(contributor_trust)
        except (TypeError, ValueError) as e:
            raise InvalidFactorValue(
                f"Contributor trust is not a number: {contributor_trust!r}"
            ) from e
        if not math.isfinite(trust) or not 0.0 <= trust <= 1.0:
            raise InvalidFactorValue(f"Contributor trust must be in [0, 1], got {trust}")
        weight_vector = validate_weights(weights)

        with self._lock_for(cell_id):
            cell = self._load_or_create(cell_id)
            history = cell.update_count
            denominator = history + trust

            if denominator > 0:
                for name, value in observed.items():
                    existing = getattr(cell, name)
                    blended = (existing * history + value * trust) / denominator
                    setattr(cell, name, _clamp_score(blended))

            cell.confidence = (cell.confidence * history + trust) / (history + 1)
            cell.overall = combine_factors(cell, weight_vector)
            cell.update_count = history + 1
            cell.has_data = True
            cell.last_updated = datetime.now(timezone.utc)
            self.repository.save(cell)

        logger.debug(
            f"Merged observation into {cell_id:x} (trust={trust:.3f}, history={history})"
        )
        return cell.model_copy()

    def snapshot(self, cell_ids: Iterable[int]) -> Dict[int, float]:
        """Copy of the overall score of each cell, read under its shard lock.

        Cells never written read as the default score without being persisted.
        """
        scores: Dict[int, float] = {}
        for cell_id in cell_ids:
            if cell_id in scores:
                continue
            with self._lock_for(cell_id):
                cell = self.repository.get(cell_id)
            scores[cell_id] = cell.overall if cell is not None else DEFAULT_FACTOR_SCORE
        return scores

    def recompute_all(self, weights: Mapping[str | SafetyFactor, float]) -> int:
        """Re-derive every stored cell's overall score after a weight change.

        Returns:
            Number of cells recomputed
        """
        weight_vector = validate_weights(weights)
        cell_ids: List[int] = self.repository.cell_ids()

        for cell_id in cell_ids:
            with self._lock_for(cell_id):
                cell = self.repository.get(cell_id)
                if cell is None:
                    continue
                cell.overall = combine_factors(cell, weight_vector)
                cell.last_updated = datetime.now(timezone.utc)
                self.repository.save(cell)

        logger.info(
            f"Recomputed overall score for {len(cell_ids)} cells",
            extra=log_fields(cells_recomputed=len(cell_ids), weights=weight_vector),
        )
        return len(cell_ids)
