"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_LEVEL"] = "DEBUG"

from safety_engine.config import Settings
from safety_engine.db.base import build_engine, build_session_factory, init_db
from safety_engine.engine import SafetyIntelligenceEngine
from safety_engine.repositories.hex_cell_repository import (
    InMemoryHexCellRepository,
    SqlHexCellRepository,
)
from safety_engine.schemas.hexagon import DEFAULT_FACTOR_WEIGHTS
from safety_engine.services.hex_index import HexIndex
from safety_engine.services.road_graph import RoadGraph
from safety_engine.services.safety_store import SafetyHexagonStore
from safety_engine.services.trust_engine import TrustEngine

# Southampton city centre
CITY_CENTRE = (50.9097, -1.4044)


@pytest.fixture
def settings() -> Settings:
    """Fresh settings built from the test environment."""
    return Settings()


@pytest.fixture
def hex_index(settings) -> HexIndex:
    return HexIndex(settings)


@pytest.fixture
def repository() -> InMemoryHexCellRepository:
    return InMemoryHexCellRepository()


@pytest.fixture
def store(hex_index, repository, settings) -> SafetyHexagonStore:
    return SafetyHexagonStore(hex_index, repository, settings=settings)


@pytest.fixture
def weights() -> dict:
    return dict(DEFAULT_FACTOR_WEIGHTS)


@pytest.fixture
def trust_engine(settings) -> TrustEngine:
    return TrustEngine(settings)


@pytest.fixture
def sql_repository() -> SqlHexCellRepository:
    """SQL repository on a private in-memory SQLite database."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield SqlHexCellRepository(build_session_factory(engine))
    engine.dispose()


@pytest.fixture
def engine(settings) -> SafetyIntelligenceEngine:
    return SafetyIntelligenceEngine(settings=settings, repository=InMemoryHexCellRepository())


@pytest.fixture
def cell_id(hex_index) -> int:
    from safety_engine.schemas.hexagon import Resolution

    return hex_index.coordinate_to_cell(*CITY_CENTRE, Resolution.URBAN)


@pytest.fixture
def tradeoff_graph() -> RoadGraph:
    """Two ways from west (0) to east (1).

    A direct road (edge 0-1, ~2.8km, 200s) and a northern detour through
    node 2 (two ~2.2km roads, 300s each).
    """
    graph = RoadGraph()
    graph.add_node(0, 50.9000, -1.4200)
    graph.add_node(1, 50.9000, -1.3800)
    graph.add_node(2, 50.9150, -1.4000)
    graph.add_edge(0, 1, length_m=2800.0, travel_time_s=200.0)
    graph.add_edge(0, 2, length_m=2200.0, travel_time_s=300.0)
    graph.add_edge(2, 1, length_m=2200.0, travel_time_s=300.0)
    return graph.freeze()


@pytest.fixture
def single_road_graph() -> RoadGraph:
    """One road between two nodes."""
    graph = RoadGraph()
    graph.add_node(0, 50.9000, -1.4200)
    graph.add_node(1, 50.9000, -1.4100)
    graph.add_edge(0, 1, length_m=700.0, travel_time_s=60.0)
    return graph.freeze()


@pytest.fixture
def paint_cells(store, weights):
    """Write the same score to every factor of the given cells."""

    def _paint(cells, score: float) -> None:
        for cell in cells:
            for factor in ("crime", "lighting", "crowd", "police"):
                store.apply_factor_update(cell, factor, score, weights)

    return _paint
