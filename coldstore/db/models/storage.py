from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId, utcnow


class StorageLocation(Base, HasId, HasCreatedAt):
    __tablename__ = "cs_storage_location"
    __table_args__ = (
        UniqueConstraint("zone", "rack", "slot", name="uq_location_zone_rack_slot"),
        CheckConstraint("capacity > 0", name="ck_location_capacity_positive"),
        CheckConstraint(
            "current_occupancy >= 0 AND current_occupancy <= capacity",
            name="ck_location_occupancy_bounds",
        ),
    )

    zone: Mapped[str] = mapped_column(String(50), nullable=False)
    rack: Mapped[str] = mapped_column(String(50), nullable=False)
    slot: Mapped[str] = mapped_column(String(50), nullable=False)
    location_type: Mapped[str] = mapped_column(String(24), nullable=False, index=True)  # Ambient|Cold Storage
    size_type: Mapped[str | None] = mapped_column(String(50), nullable=True)  # Small|Medium|Large

    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    # derived from the batches assigned here; only services.storage.ledger writes it
    current_occupancy: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # cold storage only
    min_temp: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    max_temp: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    latest_temperature: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    last_temp_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    batches = relationship("Batch", back_populates="location")

    @property
    def label(self) -> str:
        return f"{self.zone}-{self.rack}-{self.slot}"

    @property
    def free_capacity(self) -> int:
        return int(self.capacity) - int(self.current_occupancy or 0)


class TemperatureLog(Base, HasId):
    """Append-only reading history; the location row caches the latest one."""

    __tablename__ = "cs_temperature_log"

    location_id: Mapped[str] = mapped_column(
        ForeignKey("cs_storage_location.id", ondelete="CASCADE"), nullable=False, index=True
    )
    temperature_reading: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False)
    humidity_reading: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, nullable=False)


Index("ix_temp_log_location_time", TemperatureLog.location_id, TemperatureLog.recorded_at)
