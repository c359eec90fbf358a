from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from coldstore.db.models.common import utcnow
from coldstore.events.outbox import OutboxEvent

TEMPERATURE_LOGGED = "storage.temperature.logged"
BATCH_RECEIVED = "stock.batch.received"
ORDER_CREATED = "orders.created"
ORDER_DISPATCHED = "orders.dispatched"

# lower is delivered first; live readings feed the temperature dashboards
LIVE_PRIORITY = 0
DEFAULT_PRIORITY = 100
TOPIC_PRIORITY = {TEMPERATURE_LOGGED: LIVE_PRIORITY}


def publish(db: Session, topic: str, payload: dict, *, subject_id: str | None = None,
            available_at: datetime | None = None) -> OutboxEvent:
    """Stage an event in the caller's unit of work.

    Nothing is committed here: the event becomes visible to the dispatcher
    only if the surrounding transaction commits. `subject_id` is the
    location, batch or order the event is about.
    """
    evt = OutboxEvent(
        topic=topic,
        subject_id=subject_id,
        priority=TOPIC_PRIORITY.get(topic, DEFAULT_PRIORITY),
        payload=payload or {},
        available_at=available_at or utcnow(),
        delivered=False,
        attempt_count=0,
    )
    db.add(evt)
    return evt
