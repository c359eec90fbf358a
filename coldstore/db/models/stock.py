from __future__ import annotations

from datetime import date

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId, HasUpdatedAt
from coldstore.db.models.enums import BatchStatus


class Batch(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "cs_batch"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_batch_quantity_non_negative"),)

    product_id: Mapped[str] = mapped_column(ForeignKey("cs_product.id", ondelete="RESTRICT"), nullable=False, index=True)
    batch_number: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    barcode: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    # set once at intake, never reassigned
    assigned_location_id: Mapped[str | None] = mapped_column(
        ForeignKey("cs_storage_location.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(24), default=BatchStatus.AVAILABLE.value, nullable=False)

    product = relationship("Product")
    location = relationship("StorageLocation", back_populates="batches")


# FEFO candidate scan
Index("ix_batch_fefo", Batch.product_id, Batch.status, Batch.expiry_date)
