"""Occupancy ledger.

`StorageLocation.current_occupancy` is derived from the batches assigned to
a location and is maintained by delta. Every code path that changes which
batches sit in a location, or how much of them, must go through
`apply_occupancy_delta` inside its own unit of work.
"""
from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from coldstore.core.errors import CapacityExceededError, LedgerDriftError, NotFoundError
from coldstore.db.models.stock import Batch
from coldstore.db.models.storage import StorageLocation


def _lock_location(db: Session, location_id: str) -> StorageLocation:
    # pending deltas must reach the row before it is re-read under the lock
    db.flush()
    loc = (db.query(StorageLocation)
           .filter(StorageLocation.id == location_id)
           .with_for_update()
           .populate_existing()
           .first())
    if not loc:
        raise NotFoundError(f"Storage location {location_id} not found.")
    return loc


def apply_occupancy_delta(db: Session, location_id: str, delta: int) -> StorageLocation:
    """Lock the location row and shift its occupancy by `delta`.

    Refuses (without writing) any delta that would leave the counter
    outside [0, capacity].
    """
    loc = _lock_location(db, location_id)
    delta = int(delta)
    if delta == 0:
        return loc

    new_occupancy = int(loc.current_occupancy or 0) + delta
    if new_occupancy > loc.capacity:
        raise CapacityExceededError(
            f"Location {loc.label} cannot take {delta} more units "
            f"(occupancy {loc.current_occupancy}/{loc.capacity}).",
            details={"location_id": loc.id, "capacity": loc.capacity,
                     "current_occupancy": loc.current_occupancy, "delta": delta},
        )
    if new_occupancy < 0:
        raise LedgerDriftError(
            f"Occupancy of location {loc.label} would drop below zero.",
            details={"location_id": loc.id, "current_occupancy": loc.current_occupancy, "delta": delta},
        )
    loc.current_occupancy = new_occupancy
    return loc


def apply_occupancy_deltas(db: Session, deltas: dict[str, int]) -> None:
    # fixed lock order across concurrent callers
    for location_id in sorted(deltas):
        if deltas[location_id]:
            apply_occupancy_delta(db, location_id, deltas[location_id])


def occupancy_report(db: Session) -> list[dict]:
    """Cached occupancy next to the sum it is derived from, per location.

    Read-only: drift is reported, never repaired.
    """
    sums = dict(
        db.query(Batch.assigned_location_id, func.coalesce(func.sum(Batch.quantity), 0))
        .filter(Batch.assigned_location_id.isnot(None))
        .group_by(Batch.assigned_location_id)
        .all()
    )
    out = []
    for loc in db.query(StorageLocation).order_by(StorageLocation.zone, StorageLocation.rack, StorageLocation.slot).all():
        derived = int(sums.get(loc.id, 0) or 0)
        out.append({
            "location_id": loc.id,
            "location_name": loc.label,
            "capacity": loc.capacity,
            "current_occupancy": loc.current_occupancy,
            "batch_quantity": derived,
            "drift": int(loc.current_occupancy) - derived,
        })
    return out
