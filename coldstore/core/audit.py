from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from coldstore.db.models.audit import AuditLog


def audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    payload: dict | None = None,
    success: bool = True,
) -> AuditLog:
    """Append an audit record to the caller's unit of work.

    Keep payload JSON-serializable.
    """
    safe_payload: dict[str, Any] = payload or {}
    try:
        json.dumps(safe_payload)
    except (TypeError, ValueError):
        safe_payload = json.loads(json.dumps(safe_payload, default=str))

    row = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        success=success,
        payload=safe_payload,
    )
    db.add(row)
    return row
