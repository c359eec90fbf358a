from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

import httpx
from sqlalchemy.orm import Session

from coldstore.db.models.common import utcnow
from coldstore.events.outbox import OutboxEvent
from coldstore.events.subscriptions import EventSubscription

log = logging.getLogger("coldstore.events")

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class Target:
    subscription_id: str
    url: str
    headers: dict[str, str]


@dataclass
class Delivery:
    """Detached copy of one due event, safe to use off the database thread."""

    event_id: str
    topic: str
    body: dict
    targets: list[Target] = field(default_factory=list)
    # subscription id -> error, None when the POST succeeded
    outcomes: dict[str, str | None] = field(default_factory=dict)


def _pattern_matches(pattern: str, topic: str) -> bool:
    """Exact match, prefix match with trailing '.', or 'prefix.*'."""
    if not pattern:
        return False
    if pattern == topic:
        return True
    if pattern.endswith(".*"):
        return topic.startswith(pattern[:-1])  # keep trailing '.'
    if pattern.endswith("."):
        return topic.startswith(pattern)
    return False


def _schedule_next(attempt_count: int, now: datetime | None = None) -> datetime:
    # exponential backoff capped at 10 minutes
    seconds = min(600, 2 ** min(attempt_count, 9))
    return (now or utcnow()) + timedelta(seconds=seconds)


def _claim_due(session_factory: SessionFactory, limit: int) -> tuple[int, list[Delivery]]:
    """Load due events, live temperature readings first.

    Events nobody subscribes to are closed right here. Returns how many
    events were looked at and the deliveries still to be sent.
    """
    db = session_factory()
    try:
        now = utcnow()
        events = (
            db.query(OutboxEvent)
            .filter(OutboxEvent.delivered == False)  # noqa: E712
            .filter(OutboxEvent.available_at <= now)
            .order_by(OutboxEvent.priority.asc(), OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(limit)
            .all()
        )
        if not events:
            db.rollback()
            return 0, []

        subs = db.query(EventSubscription).filter(EventSubscription.is_active == True).all()  # noqa: E712
        pending = []
        for evt in events:
            targets = [Target(s.id, s.target_url, {k: str(v) for k, v in (s.headers or {}).items()})
                       for s in subs if _pattern_matches(s.topic_pattern, evt.topic)]
            if not targets:
                # nobody listens; close it so the outbox does not grow forever
                evt.delivered = True
                evt.delivered_at = now
                continue
            pending.append(Delivery(
                event_id=evt.id,
                topic=evt.topic,
                body={
                    "topic": evt.topic,
                    "event_id": evt.id,
                    "subject_id": evt.subject_id,
                    "created_at": evt.created_at.isoformat() if evt.created_at else None,
                    "payload": evt.payload or {},
                },
                targets=targets,
            ))
        db.commit()
        return len(events), pending
    finally:
        db.close()


async def _post(client: httpx.AsyncClient, target: Target, body: dict) -> str | None:
    try:
        resp = await client.post(target.url, json=body, headers=target.headers, timeout=10.0)
    except httpx.HTTPError as e:
        return str(e) or e.__class__.__name__
    if 200 <= resp.status_code < 300:
        return None
    return f"HTTP {resp.status_code}: {resp.text[:300]}"


async def _send(client: httpx.AsyncClient, delivery: Delivery) -> None:
    errors = await asyncio.gather(*(_post(client, t, delivery.body) for t in delivery.targets))
    delivery.outcomes = {t.subscription_id: err for t, err in zip(delivery.targets, errors)}


def _record_outcomes(session_factory: SessionFactory, deliveries: list[Delivery]) -> None:
    db = session_factory()
    try:
        now = utcnow()
        sub_ids = {sid for d in deliveries for sid in d.outcomes}
        subs = {s.id: s for s in db.query(EventSubscription).filter(EventSubscription.id.in_(sub_ids)).all()}

        for d in deliveries:
            evt = db.get(OutboxEvent, d.event_id)
            if evt is None:
                continue
            last_err = None
            for sid, err in d.outcomes.items():
                sub = subs.get(sid)
                if err is None:
                    if sub is not None:
                        sub.failure_count = 0
                        sub.last_error = None
                        sub.last_delivered_at = now
                    continue
                last_err = err
                if sub is None:
                    continue
                sub.failure_count = (sub.failure_count or 0) + 1
                sub.last_error = err
                if sub.is_active and sub.max_failures and sub.failure_count >= sub.max_failures:
                    sub.is_active = False
                    log.warning("subscription %s (%s) disabled after %d failed deliveries",
                                sub.id, sub.target_url, sub.failure_count)

            if last_err is None:
                evt.delivered = True
                evt.delivered_at = now
                evt.last_error = None
            else:
                evt.attempt_count = (evt.attempt_count or 0) + 1
                evt.last_error = last_err
                evt.available_at = _schedule_next(evt.attempt_count, now)
                log.warning("event %s (%s) delivery failed: %s", evt.id, evt.topic, last_err)
        db.commit()
    finally:
        db.close()


async def dispatch_batch(client: httpx.AsyncClient, session_factory: SessionFactory, *, limit: int = 50) -> int:
    """Deliver one batch of due events. Returns how many events were handled.

    Database work runs in worker threads so the event loop keeps serving
    requests while the outbox is polled.
    """
    handled, pending = await asyncio.to_thread(_claim_due, session_factory, limit)
    if not pending:
        return handled
    # one event at a time, in priority order
    for delivery in pending:
        await _send(client, delivery)
    await asyncio.to_thread(_record_outcomes, session_factory, pending)
    return handled


async def run_dispatcher_forever(session_factory: SessionFactory, *, poll_interval_seconds: float = 1.0) -> None:
    """Background worker delivering outbox events to webhook subscribers."""
    async with httpx.AsyncClient() as client:
        while True:
            try:
                await dispatch_batch(client, session_factory)
            except asyncio.CancelledError:
                raise
            except Exception:
                # a bad round must not take the server down; next poll retries
                log.exception("outbox dispatch round failed")
            await asyncio.sleep(poll_interval_seconds)
