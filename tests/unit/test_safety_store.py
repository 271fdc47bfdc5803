"""Unit tests for the safety hexagon store."""

import math
import threading

import pytest

from safety_engine.core.exceptions import (
    InvalidCellId,
    InvalidFactorValue,
    InvalidWeightVector,
)
from safety_engine.schemas.hexagon import HexCell, Resolution, SafetyFactor
from safety_engine.services.safety_store import (
    SafetyHexagonStore,
    combine_factors,
    validate_weights,
)


def _load_factors(store, cell_id, weights, crime, lighting, crowd, police):
    store.apply_factor_update(cell_id, "crime", crime, weights)
    store.apply_factor_update(cell_id, "lighting", lighting, weights)
    store.apply_factor_update(cell_id, "crowd", crowd, weights)
    return store.apply_factor_update(cell_id, "police", police, weights)


def test_get_creates_default_cell(store, cell_id, repository):
    """Test that an unseen cell comes back with default scores and no data."""
    cell = store.get(cell_id)

    assert cell.cell_id == cell_id
    assert cell.resolution == Resolution.URBAN
    assert cell.factor_scores() == {"crime": 50.0, "lighting": 50.0, "crowd": 50.0, "police": 50.0}
    assert cell.overall == 50.0
    assert cell.confidence == 0.5
    assert cell.update_count == 0
    assert cell.has_data is False
    assert repository.get(cell_id) is not None


def test_get_rejects_invalid_cell(store):
    """Test that non-H3 ids are rejected."""
    with pytest.raises(InvalidCellId):
        store.get(12345)


def test_overall_score_weighted_sum(store, cell_id, weights):
    """Test the overall score is the weighted sum of the factors."""
    cell = _load_factors(store, cell_id, weights, crime=72, lighting=85, crowd=55, police=58)

    # 72*0.4 + 85*0.3 + 55*0.2 + 58*0.1
    assert cell.overall == pytest.approx(71.1)
    assert cell.update_count == 4
    assert cell.has_data is True


def test_factor_update_is_idempotent(store, cell_id, weights):
    """Test that repeating an update leaves the scores unchanged."""
    first = store.apply_factor_update(cell_id, "lighting", 85.0, weights)
    second = store.apply_factor_update(cell_id, "lighting", 85.0, weights)

    assert first.factor_scores() == second.factor_scores()
    assert first.overall == second.overall
    assert second.update_count == first.update_count + 1


def test_factor_update_clamps_values(store, cell_id, weights):
    """Test that out-of-range factor values are clamped to [0, 100]."""
    high = store.apply_factor_update(cell_id, "crime", 150.0, weights)
    assert high.crime == 100.0

    low = store.apply_factor_update(cell_id, SafetyFactor.CRIME, -20.0, weights)
    assert low.crime == 0.0
    assert 0.0 <= low.overall <= 100.0


@pytest.mark.parametrize("value", [math.nan, math.inf, "high"])
def test_factor_update_rejects_bad_values_without_writing(
    store, cell_id, weights, value, repository
):
    """Test that malformed values fail before any mutation."""
    with pytest.raises(InvalidFactorValue):
        store.apply_factor_update(cell_id, "crime", value, weights)

    assert repository.get(cell_id) is None


def test_factor_update_rejects_unknown_factor(store, cell_id, weights):
    """Test that unknown factors are rejected."""
    with pytest.raises(InvalidFactorValue, match="Unknown safety factor"):
        store.apply_factor_update(cell_id, "weather", 50.0, weights)


def test_update_count_is_monotonic(store, cell_id, weights):
    """Test that every accepted update increments the counter."""
    counts = [
        store.apply_factor_update(cell_id, "crowd", float(value), weights).update_count
        for value in range(5)
    ]
    merged = store.merge_observation(cell_id, {"crowd": 10.0}, 0.5, weights)

    assert counts == [1, 2, 3, 4, 5]
    assert merged.update_count == 6


def test_merge_observation_into_fresh_cell(store, cell_id, weights):
    """Test a first observation takes the observed value."""
    cell = store.merge_observation(cell_id, {"lighting": 90.0}, 0.8, weights)

    assert cell.lighting == pytest.approx(90.0)
    assert cell.crime == 50.0
    assert cell.confidence == pytest.approx(0.8)
    assert cell.update_count == 1
    assert cell.has_data is True


def test_merge_observation_blends_with_history(store, cell_id, weights):
    """Test the trust-weighted running average."""
    store.merge_observation(cell_id, {"lighting": 90.0}, 0.8, weights)
    cell = store.merge_observation(cell_id, {"lighting": 30.0}, 0.5, weights)

    # (90 * 1 + 30 * 0.5) / (1 + 0.5)
    assert cell.lighting == pytest.approx(70.0)
    # (0.8 * 1 + 0.5) / 2
    assert cell.confidence == pytest.approx(0.65)
    assert cell.update_count == 2


def test_merge_observation_zero_trust_on_fresh_cell(store, cell_id, weights):
    """Test that zero trust on an empty history leaves factors unchanged."""
    cell = store.merge_observation(cell_id, {"crime": 0.0}, 0.0, weights)

    assert cell.crime == 50.0
    assert cell.update_count == 1
    assert cell.confidence == 0.0


@pytest.mark.parametrize("trust", [-0.1, 1.5, math.nan, "high", None])
def test_merge_observation_rejects_bad_trust(store, cell_id, weights, trust, repository):
    """Test that trust outside [0, 1] or not a number is rejected before writing."""
    with pytest.raises(InvalidFactorValue, match="trust"):
        store.merge_observation(cell_id, {"crime": 10.0}, trust, weights)

    assert repository.get(cell_id) is None


def test_merge_observation_rejects_bad_delta(store, cell_id, weights):
    """Test that non-finite observed values are rejected."""
    with pytest.raises(InvalidFactorValue):
        store.merge_observation(cell_id, {"crime": math.inf}, 0.5, weights)


def test_snapshot_reads_defaults_without_persisting(store, cell_id, hex_index, repository, weights):
    """Test that unseen cells read as 50 in a snapshot and are not created."""
    other = next(iter(hex_index.neighbors(cell_id, 1) - {cell_id}))
    store.apply_factor_update(cell_id, "crime", 0.0, weights)

    scores = store.snapshot([cell_id, other, cell_id])

    assert scores[cell_id] == pytest.approx(30.0)  # 50 - 0.4 * 50
    assert scores[other] == 50.0
    assert repository.get(other) is None


def test_snapshot_is_a_copy(store, cell_id, weights):
    """Test that later writes do not change an earlier snapshot."""
    before = store.snapshot([cell_id])
    store.apply_factor_update(cell_id, "crime", 100.0, weights)

    assert before[cell_id] == 50.0
    assert store.snapshot([cell_id])[cell_id] == pytest.approx(70.0)


def test_recompute_all_applies_new_weights(store, hex_index, cell_id, weights):
    """Test recomputing every stored cell after a weight change."""
    cells = sorted(hex_index.neighbors(cell_id, 1))[:3]
    for cell in cells:
        _load_factors(store, cell, weights, crime=100, lighting=0, crowd=0, police=0)

    count = store.recompute_all({"crime": 0.1, "lighting": 0.3, "crowd": 0.3, "police": 0.3})

    assert count == 3
    for cell in cells:
        refreshed = store.get(cell)
        assert refreshed.overall == pytest.approx(10.0)
        assert refreshed.update_count == 4


def test_shard_locks_spread_cells(hex_index, repository, cell_id):
    """Test that neighbouring cells do not all share one lock."""
    store = SafetyHexagonStore(hex_index, repository, shard_count=16)
    locks = {id(store._lock_for(c)) for c in hex_index.neighbors(cell_id, 2)}

    assert len(locks) > 1


def test_concurrent_updates_are_not_lost(store, hex_index, cell_id, weights):
    """Test that concurrent writers to the same and different cells keep every update."""
    cells = sorted(hex_index.neighbors(cell_id, 1))
    updates_per_thread = 25

    def writer(target):
        for i in range(updates_per_thread):
            store.merge_observation(target, {"crowd": float(i)}, 0.5, weights)

    threads = [threading.Thread(target=writer, args=(c,)) for c in cells]
    threads += [threading.Thread(target=writer, args=(cell_id,)) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    # cell_id is in the ring, so it gets one ring writer plus three extras
    assert store.get(cell_id).update_count == 4 * updates_per_thread
    for cell in cells:
        if cell != cell_id:
            assert store.get(cell).update_count == updates_per_thread


class TestWeightVector:
    """Tests for weight vector validation."""

    def test_accepts_defaults(self, weights):
        assert validate_weights(weights) == weights

    def test_accepts_enum_keys(self):
        result = validate_weights(
            {
                SafetyFactor.CRIME: 0.25,
                SafetyFactor.LIGHTING: 0.25,
                SafetyFactor.CROWD: 0.25,
                SafetyFactor.POLICE: 0.25,
            }
        )
        assert result == {"crime": 0.25, "lighting": 0.25, "crowd": 0.25, "police": 0.25}

    def test_rejects_missing_factor(self):
        with pytest.raises(InvalidWeightVector, match="missing factors: police"):
            validate_weights({"crime": 0.5, "lighting": 0.3, "crowd": 0.2})

    def test_rejects_bad_sum(self):
        with pytest.raises(InvalidWeightVector, match="sum to 1"):
            validate_weights({"crime": 0.5, "lighting": 0.5, "crowd": 0.5, "police": 0.5})

    def test_rejects_negative_weight(self):
        with pytest.raises(InvalidWeightVector):
            validate_weights({"crime": 1.2, "lighting": -0.2, "crowd": 0.0, "police": 0.0})

    def test_store_rejects_bad_weights_before_writing(self, store, cell_id, repository):
        with pytest.raises(InvalidWeightVector):
            store.apply_factor_update(cell_id, "crime", 10.0, {"crime": 1.0})
        assert repository.get(cell_id) is None


def test_combine_factors_is_clamped(weights):
    """Test that the combined score never leaves [0, 100]."""
    cell = HexCell(
        cell_id=1, resolution=Resolution.URBAN, crime=100, lighting=100, crowd=100, police=100
    )

    assert combine_factors(cell, weights) == pytest.approx(100.0)


def test_validate_observation_does_not_write(store, cell_id, repository):
    observed = store.validate_observation(cell_id, {SafetyFactor.CRIME: 12, "Lighting": "40"})

    assert observed == {"crime": 12.0, "lighting": 40.0}
    assert repository.get(cell_id) is None
