"""Data access layer."""

from safety_engine.repositories.hex_cell_repository import (
    HexCellRepository,
    InMemoryHexCellRepository,
    SqlHexCellRepository,
)

__all__ = ["HexCellRepository", "InMemoryHexCellRepository", "SqlHexCellRepository"]
