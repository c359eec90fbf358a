from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId, utcnow
from coldstore.db.models.enums import OrderStatus, PickStatus


class Order(Base, HasId):
    __tablename__ = "cs_order"

    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(24), default=OrderStatus.PENDING.value, nullable=False, index=True)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    picks = relationship("Pick", back_populates="order", cascade="all, delete-orphan")
    dispatch = relationship("Dispatch", back_populates="order", uselist=False, cascade="all, delete-orphan")


class OrderItem(Base, HasId):
    """What was asked for; never changed after creation."""

    __tablename__ = "cs_order_item"

    order_id: Mapped[str] = mapped_column(ForeignKey("cs_order.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(ForeignKey("cs_product.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class Pick(Base, HasId):
    __tablename__ = "cs_pick"
    __table_args__ = (UniqueConstraint("order_id", "batch_id", name="uq_pick_order_batch"),)

    order_id: Mapped[str] = mapped_column(ForeignKey("cs_order.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id: Mapped[str] = mapped_column(ForeignKey("cs_batch.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity_picked: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(24), default=PickStatus.PENDING_PICK.value, nullable=False)
    picked_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="picks")
    batch = relationship("Batch")


class Dispatch(Base, HasId, HasCreatedAt):
    __tablename__ = "cs_dispatch"

    order_id: Mapped[str] = mapped_column(
        ForeignKey("cs_order.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    dispatched_by: Mapped[str] = mapped_column(String(255), nullable=False)
    dispatch_date: Mapped[date] = mapped_column(Date, nullable=False)

    order = relationship("Order", back_populates="dispatch")
