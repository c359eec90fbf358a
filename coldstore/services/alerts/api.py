from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from coldstore.db.models.stock import Batch
from coldstore.db.session import get_db
from coldstore.services.alerts import evaluator

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _batch_row(b: Batch) -> dict:
    return {
        "batch_id": b.id,
        "batch_number": b.batch_number,
        "product_id": b.product_id,
        "product_name": b.product.name if b.product else None,
        "quantity": b.quantity,
        "expiry_date": b.expiry_date.isoformat(),
        "location_name": b.location.label if b.location else None,
    }


@router.get("/expiry")
def expiry(request: Request, db: Session = Depends(get_db)):
    res = evaluator.expiry_alerts(db, window_days=request.app.state.settings.expiry_window_days)
    return {
        "expired": [_batch_row(b) for b in res.expired],
        "expiringSoon": [_batch_row(b) for b in res.expiring_soon],
    }


@router.get("/low_stock")
def low_stock(request: Request, db: Session = Depends(get_db)):
    res = evaluator.stock_alerts(db, threshold=request.app.state.settings.low_stock_threshold)
    return {
        "lowStock": [_batch_row(b) for b in res.low_stock],
        "outOfStock": [_batch_row(b) for b in res.out_of_stock],
    }


@router.get("/temperature")
def temperature(request: Request, db: Session = Depends(get_db)):
    alerts = evaluator.temperature_alerts(db, stale_minutes=request.app.state.settings.stale_reading_minutes)
    return [
        {
            "location_id": a.location_id,
            "location_name": a.location_name,
            "alert_type": a.alert_type.value,
            "message": a.message,
            "latest_temperature": a.latest_temperature,
            "min_temp": a.min_temp,
            "max_temp": a.max_temp,
            "last_temp_update": a.last_temp_update.isoformat() if a.last_temp_update else None,
        }
        for a in alerts
    ]
