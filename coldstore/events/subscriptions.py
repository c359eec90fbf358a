from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId


class EventSubscription(Base, HasId, HasCreatedAt):
    """Webhook endpoint, e.g. a control-room dashboard taking live temperatures.

    `topic_pattern` is "storage.temperature.logged" (exact), "storage."
    (prefix) or "storage.*" (same as the prefix). After `max_failures`
    consecutive failed deliveries the subscription is switched off; 0 keeps
    it on forever.
    """

    __tablename__ = "event_subscription"

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    topic_pattern: Mapped[str] = mapped_column(String(128), nullable=False)
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    headers: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    max_failures: Mapped[int] = mapped_column(Integer, default=20, nullable=False)

    failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
