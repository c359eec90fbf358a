from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, JSON, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId, utcnow


class OutboxEvent(Base, HasId, HasCreatedAt):
    """Warehouse change waiting to be pushed to webhook subscribers.

    Written in the same unit of work as the intake, order or temperature
    reading it describes, so a rolled-back operation never notifies anyone.
    """

    __tablename__ = "outbox_event"

    topic: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    subject_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    priority: Mapped[int] = mapped_column(SmallInteger, default=100, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # retry schedule
    available_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


Index("ix_outbox_subject_created", OutboxEvent.subject_id, OutboxEvent.created_at)
Index("ix_outbox_due", OutboxEvent.delivered, OutboxEvent.priority, OutboxEvent.available_at)
