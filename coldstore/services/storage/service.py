from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session, selectinload

from coldstore.core.errors import DuplicateLocationError, NotFoundError, ValidationError
from coldstore.core.tx import atomic
from coldstore.db.models.common import utcnow
from coldstore.db.models.enums import StorageCategory, parse_enum
from coldstore.db.models.storage import StorageLocation, TemperatureLog
from coldstore.events import bus

log = logging.getLogger("coldstore.storage")


def _number(raw, field: str) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number.")


def create_storage_location(
    db: Session,
    *,
    zone: str,
    rack: str,
    slot: str,
    location_type,
    capacity: int,
    min_temp=None,
    max_temp=None,
    size_type: str | None = None,
) -> StorageLocation:
    zone, rack, slot = (str(v or "").strip() for v in (zone, rack, slot))
    if not zone or not rack or not slot:
        raise ValidationError("zone, rack and slot are required.")
    loc_type = parse_enum(StorageCategory, location_type)
    if loc_type is None:
        raise ValidationError(f"Invalid location_type '{location_type}'.")
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
        raise ValidationError("capacity must be a positive integer.")

    lo, hi = _number(min_temp, "min_temp"), _number(max_temp, "max_temp")
    if loc_type is StorageCategory.COLD_STORAGE:
        if lo is None or hi is None:
            raise ValidationError("Cold Storage locations require min_temp and max_temp.")
        if lo > hi:
            raise ValidationError("min_temp must not exceed max_temp.")
    else:
        # bounds only mean something for cold storage
        lo = hi = None

    with atomic(db):
        exists = (db.query(StorageLocation.id)
                  .filter(StorageLocation.zone == zone, StorageLocation.rack == rack, StorageLocation.slot == slot)
                  .first())
        if exists:
            raise DuplicateLocationError(f"Storage location {zone}-{rack}-{slot} already exists.")
        loc = StorageLocation(
            zone=zone,
            rack=rack,
            slot=slot,
            location_type=loc_type.value,
            size_type=size_type,
            capacity=capacity,
            current_occupancy=0,
            min_temp=lo,
            max_temp=hi,
        )
        db.add(loc)
    return loc


def list_storage_locations(db: Session) -> list[StorageLocation]:
    return (db.query(StorageLocation)
            .options(selectinload(StorageLocation.batches))
            .order_by(StorageLocation.zone, StorageLocation.rack, StorageLocation.slot)
            .all())


def get_storage_location(db: Session, location_id: str) -> StorageLocation:
    loc = (db.query(StorageLocation)
           .options(selectinload(StorageLocation.batches))
           .filter(StorageLocation.id == location_id)
           .first())
    if not loc:
        raise NotFoundError(f"Storage location {location_id} not found.")
    return loc


def log_temperature(
    db: Session,
    location_id: str,
    temperature_reading,
    *,
    humidity_reading=None,
    recorded_at: datetime | None = None,
) -> TemperatureLog:
    """Append a reading and refresh the location's cached latest reading together."""
    reading = _number(temperature_reading, "temperature_reading")
    if reading is None:
        raise ValidationError("temperature_reading is required.")
    humidity = _number(humidity_reading, "humidity_reading")
    at = recorded_at or utcnow()
    if at.tzinfo is not None:
        at = at.astimezone(timezone.utc).replace(tzinfo=None)

    with atomic(db):
        loc = db.get(StorageLocation, location_id)
        if not loc:
            raise NotFoundError(f"Storage location {location_id} not found.")
        row = TemperatureLog(
            location_id=loc.id,
            temperature_reading=reading,
            humidity_reading=humidity,
            recorded_at=at,
        )
        db.add(row)
        loc.latest_temperature = reading
        loc.last_temp_update = at
        db.flush()
        bus.publish(db, bus.TEMPERATURE_LOGGED, {
            "location_id": loc.id,
            "location_name": loc.label,
            "temperature_reading": reading,
            "humidity_reading": humidity,
            "recorded_at": at.isoformat(),
        }, subject_id=loc.id)

    log.debug("temperature %.2f logged for %s", reading, loc.label)
    return row


def list_temperature_logs(db: Session, location_id: str, *, limit: int = 100) -> list[TemperatureLog]:
    if not db.get(StorageLocation, location_id):
        raise NotFoundError(f"Storage location {location_id} not found.")
    return (db.query(TemperatureLog)
            .filter(TemperatureLog.location_id == location_id)
            .order_by(TemperatureLog.recorded_at.desc())
            .limit(max(1, min(int(limit), 1000)))
            .all())
