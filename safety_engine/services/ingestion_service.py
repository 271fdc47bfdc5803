"""Authoritative factor ingestion.

Applies ``(cell_id, factor, value)`` triples from trusted data sources (crime
statistics, street-light inventories, footfall counters, patrol schedules).
A batch is validated as a whole before the first write, so a bad triple never
leaves the store half-updated.
"""

import logging
import math
from typing import Iterable, List, Mapping, Tuple

from safety_engine.core.exceptions import InvalidFactorValue
from safety_engine.core.logging_config import log_fields
from safety_engine.schemas.hexagon import FACTORS, SafetyFactor
from safety_engine.services.safety_store import SafetyHexagonStore, validate_weights

logger = logging.getLogger(__name__)

FactorUpdate = Tuple[int, str, float]


class IngestionService:
    """Validates and applies batches of authoritative factor updates."""

    def __init__(self, store: SafetyHexagonStore):
        self.store = store

    def _validate(self, updates: Iterable[FactorUpdate]) -> List[Tuple[int, str, float]]:
        validated = []
        for position, (cell_id, factor, value) in enumerate(updates):
            name = factor.value if isinstance(factor, SafetyFactor) else str(factor).lower()
            if name not in FACTORS:
                raise InvalidFactorValue(f"Update {position}: unknown safety factor {factor!r}")
            try:
                number = float(value)
            except (TypeError, ValueError) as e:
                raise InvalidFactorValue(
                    f"Update {position}: value {value!r} is not a number"
                ) from e
            if not math.isfinite(number):
                raise InvalidFactorValue(f"Update {position}: value must be finite, got {number}")
            self.store.hex_index.resolution_of(cell_id)
            validated.append((cell_id, name, number))
        return validated

    def ingest(self, updates: Iterable[FactorUpdate], weights: Mapping[str, float]) -> int:
        """Apply a batch of factor updates.

        Args:
            updates: (cell_id, factor, value) triples
            weights: Factor weight vector for recomputing overall scores

        Returns:
            Number of updates applied

        Raises:
            ValidationError: any triple or the weight vector is malformed;
                nothing is written in that case
        """
        weight_vector = validate_weights(weights)
        batch = self._validate(updates)

        for cell_id, factor, value in batch:
            self.store.apply_factor_update(cell_id, factor, value, weight_vector)

        logger.info(
            f"Ingested {len(batch)} factor updates",
            extra=log_fields(
                batch_size=len(batch),
                cells_touched=len({cell_id for cell_id, _, _ in batch}),
            ),
        )
        return len(batch)
