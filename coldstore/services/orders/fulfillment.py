"""FEFO order fulfillment.

`plan_depletion` decides, without touching the database, which batch
quantities satisfy an order. `create_order` locks the candidate batches,
asks for a plan and either applies all of it or none of it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coldstore.core.audit import audit
from coldstore.core.errors import ConcurrencyConflictError, InsufficientStockError, NotFoundError, ValidationError
from coldstore.core.tx import atomic
from coldstore.db.models.catalog import Product
from coldstore.db.models.enums import BatchStatus, OrderStatus, PickStatus
from coldstore.db.models.orders import Order, OrderItem, Pick
from coldstore.db.models.stock import Batch
from coldstore.events import bus
from coldstore.services.storage.ledger import apply_occupancy_deltas

log = logging.getLogger("coldstore.fulfillment")


@dataclass(frozen=True)
class BatchSnapshot:
    batch_id: str
    product_id: str
    quantity: int
    expiry_date: date
    location_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def of(cls, b: Batch) -> "BatchSnapshot":
        return cls(b.id, b.product_id, int(b.quantity), b.expiry_date, b.assigned_location_id, b.created_at)


@dataclass(frozen=True)
class PlannedPick:
    product_id: str
    batch_id: str
    location_id: str | None
    quantity: int


@dataclass(frozen=True)
class Shortage:
    product_id: str
    requested: int
    available: int

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "requested": self.requested,
                "available": self.available, "short": self.requested - self.available}


@dataclass
class DepletionPlan:
    picks: list[PlannedPick] = field(default_factory=list)
    shortages: list[Shortage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.shortages

    def merged_picks(self) -> list[PlannedPick]:
        """One pick per batch, in first-planned order."""
        merged: dict[str, PlannedPick] = {}
        for p in self.picks:
            prev = merged.get(p.batch_id)
            merged[p.batch_id] = p if prev is None else PlannedPick(
                p.product_id, p.batch_id, p.location_id, prev.quantity + p.quantity
            )
        return list(merged.values())

    def location_deltas(self) -> dict[str, int]:
        deltas: dict[str, int] = {}
        for p in self.picks:
            if p.location_id:
                deltas[p.location_id] = deltas.get(p.location_id, 0) - p.quantity
        return deltas


def fefo_key(s: BatchSnapshot):
    return (s.expiry_date, s.created_at or datetime.min, s.batch_id)


def plan_depletion(items: Sequence[tuple[str, int]], candidates: Iterable[BatchSnapshot]) -> DepletionPlan:
    """Greedy FEFO over `candidates` for each (product_id, quantity) item.

    Items naming the same product draw from one shared pool, so a later
    item only sees what earlier items left behind.
    """
    remaining_in: dict[str, int] = {}
    by_product: dict[str, list[BatchSnapshot]] = {}
    for s in sorted(candidates, key=fefo_key):
        if s.quantity <= 0:
            continue
        remaining_in[s.batch_id] = s.quantity
        by_product.setdefault(s.product_id, []).append(s)

    plan = DepletionPlan()
    for product_id, wanted in items:
        remaining = wanted
        for s in by_product.get(product_id, []):
            if remaining == 0:
                break
            left = remaining_in[s.batch_id]
            if left == 0:
                continue
            take = min(remaining, left)
            plan.picks.append(PlannedPick(product_id, s.batch_id, s.location_id, take))
            remaining_in[s.batch_id] = left - take
            remaining -= take
        if remaining > 0:
            plan.shortages.append(Shortage(product_id, wanted, wanted - remaining))
    return plan


def _normalize_items(items) -> list[tuple[str, int]]:
    if not items:
        raise ValidationError("Order must contain at least one item.")
    out = []
    for i, it in enumerate(items):
        if isinstance(it, dict):
            product_id, qty = it.get("product_id"), it.get("quantity")
        else:
            try:
                product_id, qty = it
            except (TypeError, ValueError):
                raise ValidationError(f"Item {i} must be a product_id and quantity pair.")
        if not product_id:
            raise ValidationError(f"Item {i} is missing product_id.")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError(f"Item {i} quantity must be a positive integer.")
        out.append((str(product_id), qty))
    return out


def _lock_candidates(db: Session, product_ids: list[str]) -> list[Batch]:
    # one statement, one consistent lock order for every concurrent order
    return (db.query(Batch)
            .filter(Batch.product_id.in_(product_ids),
                    Batch.quantity > 0,
                    Batch.status == BatchStatus.AVAILABLE.value)
            .order_by(Batch.id.asc())
            .with_for_update()
            .populate_existing()
            .all())


def create_order(db: Session, items, *, actor: str = "system") -> Order:
    """Create a Pending order and deplete stock FEFO for every item, or fail whole."""
    wanted = _normalize_items(items)
    product_ids = sorted({pid for pid, _ in wanted})

    try:
        with atomic(db):
            found = {pid for (pid,) in db.query(Product.id).filter(Product.id.in_(product_ids)).all()}
            missing = [pid for pid in product_ids if pid not in found]
            if missing:
                raise NotFoundError(f"Product(s) not found: {', '.join(missing)}.", details={"product_ids": missing})

            order = Order(status=OrderStatus.PENDING.value)
            db.add(order)
            db.flush()
            for pid, qty in wanted:
                db.add(OrderItem(order_id=order.id, product_id=pid, quantity=qty))

            rows = {b.id: b for b in _lock_candidates(db, product_ids)}
            plan = plan_depletion(wanted, [BatchSnapshot.of(b) for b in rows.values()])
            if not plan.ok:
                first = plan.shortages[0]
                raise InsufficientStockError(
                    f"Insufficient stock for product {first.product_id}. "
                    f"Requested: {first.requested}, available: {first.available}.",
                    details=[s.to_dict() for s in plan.shortages],
                )

            for p in plan.merged_picks():
                batch = rows[p.batch_id]
                if batch.quantity < p.quantity:
                    raise ConcurrencyConflictError(f"Batch {batch.batch_number} changed while it was locked.")
                batch.quantity -= p.quantity
                db.add(Pick(order_id=order.id, batch_id=batch.id, quantity_picked=p.quantity,
                            status=PickStatus.PENDING_PICK.value))
            apply_occupancy_deltas(db, plan.location_deltas())

            bus.publish(db, bus.ORDER_CREATED, {
                "order_id": order.id,
                "items": [{"product_id": pid, "quantity": qty} for pid, qty in wanted],
                "picks": [{"batch_id": p.batch_id, "quantity": p.quantity} for p in plan.merged_picks()],
            }, subject_id=order.id)
    except InsufficientStockError as e:
        _record_rejection(db, wanted, e, actor)
        raise

    log.info("order %s created with %s item(s)", order.id, len(wanted))
    return order


def _record_rejection(db: Session, wanted: list[tuple[str, int]], err: InsufficientStockError, actor: str) -> None:
    log.info("order rejected: %s", err.message)
    try:
        with atomic(db):
            audit(db, actor=actor, action="order.rejected", entity_type="Order", success=False,
                  payload={"items": [{"product_id": pid, "quantity": qty} for pid, qty in wanted],
                           "shortages": err.details})
    except (SQLAlchemyError, ConcurrencyConflictError):
        log.exception("could not record rejected order")
