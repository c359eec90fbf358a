"""Read-only alert derivations over current batch and location state."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session, joinedload

from coldstore.db.models.common import utcnow
from coldstore.db.models.enums import BatchStatus, StorageCategory
from coldstore.db.models.stock import Batch
from coldstore.db.models.storage import StorageLocation


class TemperatureAlertType(str, enum.Enum):
    NO_READINGS = "No Readings"
    LOW_TEMPERATURE = "Low Temperature"
    HIGH_TEMPERATURE = "High Temperature"
    STALE_READING = "Stale Reading"


@dataclass
class ExpiryAlerts:
    expired: list[Batch] = field(default_factory=list)
    expiring_soon: list[Batch] = field(default_factory=list)


@dataclass
class StockAlerts:
    low_stock: list[Batch] = field(default_factory=list)
    out_of_stock: list[Batch] = field(default_factory=list)


@dataclass(frozen=True)
class TemperatureAlert:
    location_id: str
    location_name: str
    alert_type: TemperatureAlertType
    message: str
    latest_temperature: float | None
    min_temp: float | None
    max_temp: float | None
    last_temp_update: datetime | None


def _available(db: Session):
    return (db.query(Batch)
            .options(joinedload(Batch.product), joinedload(Batch.location))
            .filter(Batch.status == BatchStatus.AVAILABLE.value))


def expiry_alerts(db: Session, *, today: date | None = None, window_days: int = 30) -> ExpiryAlerts:
    today = today or date.today()
    horizon = today + timedelta(days=window_days)
    base = _available(db).filter(Batch.quantity > 0)
    return ExpiryAlerts(
        expired=base.filter(Batch.expiry_date < today).order_by(Batch.expiry_date.asc(), Batch.id.asc()).all(),
        expiring_soon=(base.filter(Batch.expiry_date >= today, Batch.expiry_date <= horizon)
                       .order_by(Batch.expiry_date.asc(), Batch.id.asc())
                       .all()),
    )


def stock_alerts(db: Session, *, threshold: int = 10) -> StockAlerts:
    return StockAlerts(
        low_stock=(_available(db)
                   .filter(Batch.quantity > 0, Batch.quantity <= threshold)
                   .order_by(Batch.quantity.asc(), Batch.id.asc())
                   .all()),
        out_of_stock=_available(db).filter(Batch.quantity <= 0).order_by(Batch.id.asc()).all(),
    )


def classify_location(loc: StorageLocation, *, now: datetime, stale_after: timedelta) -> TemperatureAlert | None:
    """At most one alert per location, highest priority first."""
    t, lo, hi, seen = loc.latest_temperature, loc.min_temp, loc.max_temp, loc.last_temp_update

    def alert(kind: TemperatureAlertType, message: str) -> TemperatureAlert:
        return TemperatureAlert(loc.id, loc.label, kind, message, t, lo, hi, seen)

    if t is None or seen is None:
        return alert(TemperatureAlertType.NO_READINGS, "No recent temperature readings.")
    if lo is not None and t < lo:
        return alert(TemperatureAlertType.LOW_TEMPERATURE, f"Temperature too low: {t}°C (Min: {lo}°C)")
    if hi is not None and t > hi:
        return alert(TemperatureAlertType.HIGH_TEMPERATURE, f"Temperature too high: {t}°C (Max: {hi}°C)")
    if seen < now - stale_after:
        span = "hour" if stale_after == timedelta(hours=1) else f"{int(stale_after.total_seconds() // 60)} minutes"
        return alert(
            TemperatureAlertType.STALE_READING,
            f"No temperature update in the last {span}. Last reading: {t}°C at {seen.isoformat(sep=' ', timespec='seconds')}",
        )
    return None


def temperature_alerts(db: Session, *, now: datetime | None = None, stale_minutes: int = 60) -> list[TemperatureAlert]:
    now = now or utcnow()
    stale_after = timedelta(minutes=stale_minutes)
    locations = (db.query(StorageLocation)
                 .filter(StorageLocation.location_type == StorageCategory.COLD_STORAGE.value)
                 .order_by(StorageLocation.zone, StorageLocation.rack, StorageLocation.slot)
                 .all())
    out = []
    for loc in locations:
        a = classify_location(loc, now=now, stale_after=stale_after)
        if a is not None:
            out.append(a)
    return out
