"""Safety hexagon repositories.

The store treats its repository as a synchronous dependency: ``get`` returns a
detached ``HexCell`` or ``None``, ``save`` upserts one. Locking is the store's
job; repositories only need to be safe to call from several threads at once.
"""

import threading
from abc import ABC, abstractmethod
from datetime import timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from safety_engine.models.hex_cell import HexCellRecord
from safety_engine.schemas.hexagon import HexCell, Resolution


class HexCellRepository(ABC):
    """Hex cell data access layer."""

    @abstractmethod
    def get(self, cell_id: int) -> Optional[HexCell]:
        """Get a cell by id, or None if never stored."""

    @abstractmethod
    def save(self, cell: HexCell) -> None:
        """Create or update a cell."""

    @abstractmethod
    def cell_ids(self) -> List[int]:
        """Ids of every stored cell."""

    def __iter__(self) -> Iterator[int]:
        return iter(self.cell_ids())


class InMemoryHexCellRepository(HexCellRepository):
    """Dict-backed repository for tests and single-process deployments."""

    def __init__(self) -> None:
        self._cells: Dict[int, HexCell] = {}
        self._lock = threading.Lock()

    def get(self, cell_id: int) -> Optional[HexCell]:
        with self._lock:
            cell = self._cells.get(cell_id)
        return cell.model_copy() if cell is not None else None

    def save(self, cell: HexCell) -> None:
        with self._lock:
            self._cells[cell.cell_id] = cell.model_copy()

    def cell_ids(self) -> List[int]:
        with self._lock:
            return list(self._cells)

    def __len__(self) -> int:
        return len(self._cells)


class SqlHexCellRepository(HexCellRepository):
    """SQLAlchemy-backed repository. Opens one session per call."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def get(self, cell_id: int) -> Optional[HexCell]:
        with self.session_factory() as db:
            record = db.get(HexCellRecord, cell_id)
            return self._to_schema(record) if record is not None else None

    def save(self, cell: HexCell) -> None:
        with self.session_factory() as db:
            record = db.get(HexCellRecord, cell.cell_id)
            if record is None:
                record = HexCellRecord(cell_id=cell.cell_id)
                db.add(record)

            record.resolution = cell.resolution.value
            record.crime = cell.crime
            record.lighting = cell.lighting
            record.crowd = cell.crowd
            record.police = cell.police
            record.overall = cell.overall
            record.confidence = cell.confidence
            record.update_count = cell.update_count
            record.has_data = cell.has_data
            record.last_updated = cell.last_updated

            db.commit()

    def cell_ids(self) -> List[int]:
        with self.session_factory() as db:
            return list(db.scalars(select(HexCellRecord.cell_id)))

    @staticmethod
    def _to_schema(record: HexCellRecord) -> HexCell:
        last_updated = record.last_updated
        # SQLite drops tzinfo on the way back
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)

        return HexCell(
            cell_id=record.cell_id,
            resolution=Resolution(record.resolution),
            crime=record.crime,
            lighting=record.lighting,
            crowd=record.crowd,
            police=record.police,
            overall=record.overall,
            confidence=record.confidence,
            update_count=record.update_count,
            has_data=record.has_data,
            last_updated=last_updated,
        )
