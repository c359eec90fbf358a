from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from coldstore.db.models.storage import StorageLocation, TemperatureLog
from coldstore.db.session import get_db
from coldstore.services.storage import ledger, service

router = APIRouter(tags=["storage"])


class StorageLocationIn(BaseModel):
    zone: str
    rack: str
    slot: str
    location_type: str
    capacity: int
    size_type: str | None = None
    min_temp: float | None = None
    max_temp: float | None = None


class TemperatureLogIn(BaseModel):
    location_id: str
    temperature_reading: float
    humidity_reading: float | None = None
    recorded_at: datetime | None = None


def _iso(v):
    return v.isoformat() if v else None


def location_out(loc: StorageLocation, *, with_contents: bool = False) -> dict:
    out = {
        "id": loc.id,
        "zone": loc.zone,
        "rack": loc.rack,
        "slot": loc.slot,
        "location_name": loc.label,
        "location_type": loc.location_type,
        "size_type": loc.size_type,
        "capacity": loc.capacity,
        "current_occupancy": loc.current_occupancy,
        "min_temp": loc.min_temp,
        "max_temp": loc.max_temp,
        "latest_temperature": loc.latest_temperature,
        "last_temp_update": _iso(loc.last_temp_update),
    }
    if with_contents:
        out["contents"] = [
            {
                "batch_id": b.id,
                "batch_number": b.batch_number,
                "product_id": b.product_id,
                "quantity": b.quantity,
                "expiry_date": _iso(b.expiry_date),
                "status": b.status,
            }
            for b in sorted(loc.batches, key=lambda b: (b.expiry_date, b.batch_number))
        ]
    return out


def temperature_log_out(t: TemperatureLog) -> dict:
    return {
        "id": t.id,
        "location_id": t.location_id,
        "temperature_reading": t.temperature_reading,
        "humidity_reading": t.humidity_reading,
        "recorded_at": _iso(t.recorded_at),
    }


@router.get("/storage_locations")
def list_storage_locations(db: Session = Depends(get_db)):
    return [location_out(l, with_contents=True) for l in service.list_storage_locations(db)]


@router.post("/storage_locations", status_code=201)
def create_storage_location(body: StorageLocationIn, db: Session = Depends(get_db)):
    loc = service.create_storage_location(db, **body.model_dump())
    return location_out(loc)


@router.get("/storage_locations/occupancy")
def occupancy_report(db: Session = Depends(get_db)):
    return ledger.occupancy_report(db)


@router.get("/storage_locations/{location_id}")
def get_storage_location(location_id: str, db: Session = Depends(get_db)):
    return location_out(service.get_storage_location(db, location_id), with_contents=True)


@router.get("/storage_locations/{location_id}/temperature_logs")
def list_temperature_logs(location_id: str, limit: int = 100, db: Session = Depends(get_db)):
    return [temperature_log_out(t) for t in service.list_temperature_logs(db, location_id, limit=limit)]


@router.post("/temperature_logs", status_code=201)
def log_temperature(body: TemperatureLogIn, db: Session = Depends(get_db)):
    row = service.log_temperature(
        db,
        body.location_id,
        body.temperature_reading,
        humidity_reading=body.humidity_reading,
        recorded_at=body.recorded_at,
    )
    return {"ok": True, **temperature_log_out(row)}
