"""Safety hexagon persistence model."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from safety_engine.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HexCellRecord(Base):
    """Persisted safety hexagon.

    Keyed by the 64-bit H3 index; H3 never sets the top bit so the value fits
    a signed BIGINT.
    """

    __tablename__ = "hex_cells"

    cell_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    resolution: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    crime: Mapped[float] = mapped_column(Float, nullable=False)
    lighting: Mapped[float] = mapped_column(Float, nullable=False)
    crowd: Mapped[float] = mapped_column(Float, nullable=False)
    police: Mapped[float] = mapped_column(Float, nullable=False)
    overall: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    update_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    has_data: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (Index("ix_hex_cells_has_data", "has_data"),)

    def __repr__(self) -> str:
        return f"<HexCellRecord(cell_id={self.cell_id}, overall={self.overall})>"
