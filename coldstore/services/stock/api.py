from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from coldstore.db.models.stock import Batch
from coldstore.db.session import get_db
from coldstore.services.stock import service
from coldstore.services.stock.barcode import verify_barcode

router = APIRouter(tags=["stock"])


class BatchIn(BaseModel):
    product_id: str
    batch_number: str
    expiry_date: date
    quantity: int
    barcode: str | None = None
    manufacture_date: date | None = None


class BatchUpdate(BaseModel):
    product_id: str | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    manufacture_date: date | None = None
    quantity: int | None = None
    barcode: str | None = None
    status: str | None = None


def batch_out(b: Batch) -> dict:
    return {
        "id": b.id,
        "product_id": b.product_id,
        "product_name": b.product.name if b.product else None,
        "batch_number": b.batch_number,
        "manufacture_date": b.manufacture_date.isoformat() if b.manufacture_date else None,
        "expiry_date": b.expiry_date.isoformat() if b.expiry_date else None,
        "quantity": b.quantity,
        "barcode": b.barcode,
        "status": b.status,
        "assigned_location_id": b.assigned_location_id,
        "location_name": b.location.label if b.location else None,
    }


@router.get("/batches")
def list_batches(db: Session = Depends(get_db)):
    return [batch_out(b) for b in service.list_batches(db)]


@router.post("/batches", status_code=201)
def create_batch(body: BatchIn, request: Request, db: Session = Depends(get_db)):
    res = service.create_batch(db, settings=request.app.state.settings, **body.model_dump())
    return {"batch": batch_out(service.get_batch(db, res.batch.id)), "assigned_location_id": res.assigned_location_id}


@router.get("/batches/{batch_id}")
def get_batch(batch_id: str, db: Session = Depends(get_db)):
    return batch_out(service.get_batch(db, batch_id))


@router.put("/batches/{batch_id}")
def update_batch(batch_id: str, body: BatchUpdate, db: Session = Depends(get_db)):
    # only the fields the client actually sent
    fields = body.model_dump(exclude_unset=True)
    service.update_batch(db, batch_id, **fields)
    return batch_out(service.get_batch(db, batch_id))


@router.delete("/batches/{batch_id}")
def delete_batch(batch_id: str, db: Session = Depends(get_db)):
    return service.delete_batch(db, batch_id)


@router.get("/verify-barcode/{barcode}")
def verify(barcode: str, request: Request, db: Session = Depends(get_db)):
    check = verify_barcode(db, barcode, expiry_window_days=request.app.state.settings.expiry_window_days)
    out = {"isValid": check.is_valid, "messages": check.messages}
    if check.batch is not None:
        out["batch"] = batch_out(check.batch)
        out["pendingPicks"] = [
            {"pick_id": p.id, "order_id": p.order_id, "quantity_picked": p.quantity_picked, "status": p.status}
            for p in check.pending_picks
        ]
    return out
