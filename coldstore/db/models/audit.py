from __future__ import annotations

from sqlalchemy import Boolean, Index, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from coldstore.db.base import Base
from coldstore.db.models.common import HasCreatedAt, HasId


class AuditLog(Base, HasId, HasCreatedAt):
    __tablename__ = "sys_audit_log"

    actor: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)


Index("ix_audit_entity_time", AuditLog.entity_type, AuditLog.entity_id, AuditLog.created_at)
