"""Unit tests for hex cell repositories."""

from datetime import datetime, timezone

import pytest

from safety_engine.repositories.hex_cell_repository import InMemoryHexCellRepository
from safety_engine.schemas.hexagon import HexCell, Resolution
from safety_engine.services.safety_store import SafetyHexagonStore


def _cell(cell_id, **overrides):
    values = dict(
        cell_id=cell_id,
        resolution=Resolution.URBAN,
        crime=72.0,
        lighting=85.0,
        crowd=55.0,
        police=58.0,
        overall=71.1,
        confidence=0.8,
        update_count=4,
        has_data=True,
        last_updated=datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return HexCell(**values)


@pytest.fixture(params=["memory", "sql"])
def any_repository(request, sql_repository):
    """Each repository implementation in turn."""
    if request.param == "memory":
        return InMemoryHexCellRepository()
    return sql_repository


def test_get_missing_cell(any_repository, cell_id):
    assert any_repository.get(cell_id) is None
    assert any_repository.cell_ids() == []


def test_save_and_get_roundtrip(any_repository, cell_id):
    """Test that every field survives a save."""
    any_repository.save(_cell(cell_id))

    loaded = any_repository.get(cell_id)

    assert loaded == _cell(cell_id)
    assert loaded.last_updated.tzinfo is not None


def test_save_updates_existing(any_repository, cell_id):
    any_repository.save(_cell(cell_id))
    any_repository.save(_cell(cell_id, crime=10.0, update_count=5))

    loaded = any_repository.get(cell_id)

    assert loaded.crime == 10.0
    assert loaded.update_count == 5
    assert any_repository.cell_ids() == [cell_id]


def test_iterates_cell_ids(any_repository, hex_index, cell_id):
    cells = sorted(hex_index.neighbors(cell_id, 1))
    for cell in cells:
        any_repository.save(_cell(cell))

    assert sorted(any_repository) == cells


def test_returned_cells_are_detached(any_repository, cell_id):
    """Test that mutating a returned cell does not change stored state."""
    any_repository.save(_cell(cell_id))

    loaded = any_repository.get(cell_id)
    loaded.crime = 0.0

    assert any_repository.get(cell_id).crime == 72.0


def test_store_over_sql_repository(sql_repository, hex_index, cell_id, weights, settings):
    """Test that the store persists through the SQL repository."""
    store = SafetyHexagonStore(hex_index, sql_repository, settings=settings)

    store.apply_factor_update(cell_id, "crime", 72.0, weights)
    store.merge_observation(cell_id, {"lighting": 85.0}, 0.6, weights)

    reloaded = SafetyHexagonStore(hex_index, sql_repository, settings=settings).get(cell_id)
    assert reloaded.crime == 72.0
    assert reloaded.lighting == pytest.approx((50.0 * 1 + 85.0 * 0.6) / 1.6)
    assert reloaded.update_count == 2
    assert reloaded.has_data is True
