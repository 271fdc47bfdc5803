"""Database models."""

from safety_engine.models.hex_cell import HexCellRecord

__all__ = ["HexCellRecord"]
