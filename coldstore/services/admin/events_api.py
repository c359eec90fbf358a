from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coldstore.core.errors import NotFoundError, ValidationError
from coldstore.core.tx import atomic
from coldstore.db.session import get_db
from coldstore.events.outbox import OutboxEvent
from coldstore.events.subscriptions import EventSubscription

router = APIRouter(prefix="/admin/events", tags=["admin_events"])


def _iso(v):
    return v.isoformat() if v else None


@router.get("/subscriptions")
def list_subscriptions(db: Session = Depends(get_db)):
    subs = db.query(EventSubscription).order_by(EventSubscription.created_at.desc()).all()
    return [
        {
            "id": s.id,
            "name": s.name,
            "topic_pattern": s.topic_pattern,
            "target_url": s.target_url,
            "headers": s.headers or {},
            "is_active": bool(s.is_active),
            "max_failures": int(s.max_failures or 0),
            "failure_count": int(s.failure_count or 0),
            "last_error": s.last_error,
            "last_delivered_at": _iso(s.last_delivered_at),
            "created_at": _iso(s.created_at),
        }
        for s in subs
    ]


@router.post("/subscriptions", status_code=201)
def create_subscription(payload: dict, db: Session = Depends(get_db)):
    topic_pattern = (payload or {}).get("topic_pattern")
    target_url = (payload or {}).get("target_url")
    if not topic_pattern or not target_url:
        raise ValidationError("topic_pattern and target_url are required.")
    max_failures = (payload or {}).get("max_failures", 20)
    if not isinstance(max_failures, int) or isinstance(max_failures, bool) or max_failures < 0:
        raise ValidationError("max_failures must be a non-negative integer.")

    with atomic(db):
        s = EventSubscription(
            name=(payload or {}).get("name") or "subscription",
            topic_pattern=str(topic_pattern),
            target_url=str(target_url),
            headers=(payload or {}).get("headers") or {},
            is_active=bool((payload or {}).get("is_active", True)),
            max_failures=max_failures,
            failure_count=0,
        )
        db.add(s)
    return {"ok": True, "id": s.id}


@router.post("/subscriptions/{sub_id}/toggle")
def toggle_subscription(sub_id: str, payload: dict | None = None, db: Session = Depends(get_db)):
    with atomic(db):
        s = db.get(EventSubscription, sub_id)
        if not s:
            raise NotFoundError("Unknown subscription.")
        s.is_active = bool((payload or {}).get("is_active", not bool(s.is_active)))
    return {"ok": True, "id": s.id, "is_active": bool(s.is_active)}


@router.delete("/subscriptions/{sub_id}")
def delete_subscription(sub_id: str, db: Session = Depends(get_db)):
    with atomic(db):
        s = db.get(EventSubscription, sub_id)
        if not s:
            return {"ok": True, "deleted": False}
        db.delete(s)
    return {"ok": True, "deleted": True}


@router.get("/outbox")
def list_outbox(pending_only: bool = False, subject_id: str | None = None, limit: int = 100,
                db: Session = Depends(get_db)):
    q = db.query(OutboxEvent)
    if subject_id:
        q = q.filter(OutboxEvent.subject_id == subject_id)
    if pending_only:
        q = q.filter(OutboxEvent.delivered == False)  # noqa: E712
    rows = q.order_by(OutboxEvent.created_at.desc()).limit(max(1, min(limit, 500))).all()
    return [
        {
            "id": e.id,
            "topic": e.topic,
            "subject_id": e.subject_id,
            "priority": int(e.priority),
            "payload": e.payload or {},
            "delivered": bool(e.delivered),
            "attempt_count": int(e.attempt_count or 0),
            "last_error": e.last_error,
            "available_at": _iso(e.available_at),
            "created_at": _iso(e.created_at),
        }
        for e in rows
    ]
