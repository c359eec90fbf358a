"""Batch intake and maintenance.

Every path here that changes how much stock sits in a location moves the
occupancy counter through the ledger in the same unit of work.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session, joinedload

from coldstore.core.audit import audit
from coldstore.core.config import Settings
from coldstore.core.errors import (
    CapacityExceededError,
    ConcurrencyConflictError,
    DuplicateBatchNumberError,
    DuplicateKeyError,
    NoSuitableLocationError,
    NotFoundError,
    ValidationError,
)
from coldstore.core.tx import atomic
from coldstore.db.models.catalog import Product
from coldstore.db.models.enums import BatchStatus, parse_enum
from coldstore.db.models.orders import Pick
from coldstore.db.models.stock import Batch
from coldstore.events import bus
from coldstore.services.allocation.allocator import allocate
from coldstore.services.storage.ledger import apply_occupancy_delta

log = logging.getLogger("coldstore.stock")

_EDITABLE = {"product_id", "batch_number", "manufacture_date", "expiry_date", "quantity", "barcode", "status"}


@dataclass(frozen=True)
class IntakeResult:
    batch: Batch
    assigned_location_id: str


def _as_date(raw, field: str, *, required: bool = True) -> date | None:
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{field} is required.")
        return None
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD).")


def _as_quantity(raw, *, allow_zero: bool) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError("quantity must be an integer.")
    if raw < 0 or (raw == 0 and not allow_zero):
        raise ValidationError("quantity must be positive." if not allow_zero else "quantity must not be negative.")
    return raw


def _ensure_unique(db: Session, batch_number: str, barcode: str, *, exclude_id: str | None = None) -> None:
    q = db.query(Batch.id, Batch.batch_number, Batch.barcode).filter(
        (Batch.batch_number == batch_number) | (Batch.barcode == barcode)
    )
    if exclude_id:
        q = q.filter(Batch.id != exclude_id)
    for _, number, code in q.all():
        if number == batch_number:
            raise DuplicateBatchNumberError(f"Batch number '{batch_number}' already exists.")
        if code == barcode:
            raise DuplicateKeyError(f"Barcode '{barcode}' is already in use.")


def create_batch(
    db: Session,
    *,
    product_id: str,
    batch_number: str,
    expiry_date,
    quantity: int,
    barcode: str | None = None,
    manufacture_date=None,
    settings: Settings | None = None,
) -> IntakeResult:
    """Receive a batch: pick a location, charge its occupancy, insert the batch."""
    settings = settings or Settings()
    batch_number = (batch_number or "").strip()
    if not product_id or not batch_number:
        raise ValidationError("product_id and batch_number are required.")
    expiry = _as_date(expiry_date, "expiry_date")
    made = _as_date(manufacture_date, "manufacture_date", required=False)
    qty = _as_quantity(quantity, allow_zero=False)
    barcode = (barcode or "").strip() or batch_number

    with atomic(db):
        product = db.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found.")
        _ensure_unique(db, batch_number, barcode)

        excluded: list[str] = []
        location = None
        for attempt in range(settings.allocation_attempts):
            candidate = allocate(
                db,
                product.category,
                qty,
                allow_unread=settings.allow_unread_cold_locations,
                exclude=excluded,
            )
            if candidate is None:
                raise NoSuitableLocationError(
                    f"No suitable {product.category} location with capacity for {qty} units."
                )
            try:
                location = apply_occupancy_delta(db, candidate.id, qty)
            except CapacityExceededError:
                # another intake filled it between the read and the lock
                log.info("location %s filled concurrently (attempt %s)", candidate.label, attempt + 1)
                excluded.append(candidate.id)
                continue
            break
        if location is None:
            raise ConcurrencyConflictError("Could not secure a storage location; retry the intake.")

        batch = Batch(
            product_id=product.id,
            batch_number=batch_number,
            manufacture_date=made,
            expiry_date=expiry,
            quantity=qty,
            barcode=barcode,
            assigned_location_id=location.id,
            status=BatchStatus.AVAILABLE.value,
        )
        db.add(batch)
        db.flush()
        bus.publish(db, bus.BATCH_RECEIVED, {
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "product_id": product.id,
            "quantity": qty,
            "location_id": location.id,
            "location_name": location.label,
        }, subject_id=batch.id)

    log.info("batch %s (%s units) stored at %s", batch_number, qty, location.label)
    return IntakeResult(batch=batch, assigned_location_id=location.id)


def _lock_batch(db: Session, batch_id: str) -> Batch:
    batch = (db.query(Batch)
             .filter(Batch.id == batch_id)
             .with_for_update()
             .populate_existing()
             .first())
    if not batch:
        raise NotFoundError(f"Batch {batch_id} not found.")
    return batch


def update_batch(db: Session, batch_id: str, *, actor: str = "system", **fields) -> Batch:
    unknown = set(fields) - _EDITABLE
    if unknown:
        raise ValidationError(f"Unknown batch fields: {', '.join(sorted(unknown))}.")
    # null only clears the optional fields
    fields = {k: v for k, v in fields.items() if v is not None or k in ("barcode", "manufacture_date")}

    with atomic(db):
        batch = _lock_batch(db, batch_id)
        before = {
            "product_id": batch.product_id,
            "batch_number": batch.batch_number,
            "quantity": batch.quantity,
            "status": batch.status,
        }

        if "product_id" in fields and fields["product_id"] != batch.product_id:
            product = db.get(Product, fields["product_id"])
            if not product:
                raise NotFoundError(f"Product {fields['product_id']} not found.")
            if batch.location is not None and product.category != batch.location.location_type:
                raise ValidationError(
                    f"Product category {product.category} does not match location type "
                    f"{batch.location.location_type}."
                )
            batch.product = product

        number = batch.batch_number
        if "batch_number" in fields:
            number = (fields["batch_number"] or "").strip()
            if not number:
                raise ValidationError("batch_number must not be empty.")
        code = batch.barcode
        if "barcode" in fields:
            code = (fields["barcode"] or "").strip() or number
        if number != batch.batch_number or code != batch.barcode:
            _ensure_unique(db, number, code, exclude_id=batch.id)
            batch.batch_number, batch.barcode = number, code

        if "expiry_date" in fields:
            batch.expiry_date = _as_date(fields["expiry_date"], "expiry_date")
        if "manufacture_date" in fields:
            batch.manufacture_date = _as_date(fields["manufacture_date"], "manufacture_date", required=False)

        if "status" in fields:
            st = parse_enum(BatchStatus, fields["status"])
            if st is None:
                raise ValidationError(f"Invalid batch status '{fields['status']}'.")
            batch.status = st.value

        if "quantity" in fields:
            new_qty = _as_quantity(fields["quantity"], allow_zero=True)
            delta = new_qty - batch.quantity
            if delta and batch.assigned_location_id:
                apply_occupancy_delta(db, batch.assigned_location_id, delta)
            batch.quantity = new_qty

        audit(db, actor=actor, action="batch.update", entity_type="Batch", entity_id=batch.id,
              payload={"before": before, "changes": fields})
    return batch


def delete_batch(db: Session, batch_id: str, *, actor: str = "system") -> dict:
    """Remove a batch, its picks, and its share of the location's occupancy."""
    with atomic(db):
        batch = _lock_batch(db, batch_id)
        released = batch.quantity
        location_id = batch.assigned_location_id

        picks_removed = (db.query(Pick)
                         .filter(Pick.batch_id == batch.id)
                         .delete(synchronize_session=False))
        if location_id and released:
            apply_occupancy_delta(db, location_id, -released)
        db.delete(batch)
        audit(db, actor=actor, action="batch.delete", entity_type="Batch", entity_id=batch_id,
              payload={"batch_number": batch.batch_number, "released_quantity": released,
                       "location_id": location_id, "picks_removed": picks_removed})

    return {"ok": True, "batch_id": batch_id, "released_quantity": released, "picks_removed": picks_removed}


def get_batch(db: Session, batch_id: str) -> Batch:
    batch = (db.query(Batch)
             .options(joinedload(Batch.product), joinedload(Batch.location))
             .filter(Batch.id == batch_id)
             .first())
    if not batch:
        raise NotFoundError(f"Batch {batch_id} not found.")
    return batch


def list_batches(db: Session) -> list[Batch]:
    return (db.query(Batch)
            .options(joinedload(Batch.product), joinedload(Batch.location))
            .order_by(Batch.expiry_date.asc(), Batch.created_at.asc(), Batch.id.asc())
            .all())
