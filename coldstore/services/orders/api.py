from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from coldstore.db.models.orders import Order, Pick
from coldstore.db.session import get_db
from coldstore.services.orders import service
from coldstore.services.orders.fulfillment import create_order

router = APIRouter(tags=["orders"])


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int


class OrderIn(BaseModel):
    items: list[OrderItemIn] = Field(..., min_length=1)


class StatusIn(BaseModel):
    status: str


class DispatchIn(BaseModel):
    order_id: str
    dispatched_by: str
    dispatch_date: date | None = None


def pick_out(p: Pick) -> dict:
    b = p.batch
    return {
        "id": p.id,
        "order_id": p.order_id,
        "batch_id": p.batch_id,
        "batch_number": b.batch_number if b else None,
        "location_name": b.location.label if b and b.location else None,
        "quantity_picked": p.quantity_picked,
        "status": p.status,
        "picked_at": p.picked_at.isoformat() if p.picked_at else None,
    }


def order_out(o: Order) -> dict:
    return {
        "id": o.id,
        "order_date": o.order_date.isoformat() if o.order_date else None,
        "status": o.status,
        "items": [{"product_id": i.product_id, "quantity": i.quantity} for i in o.items],
        "picks": [pick_out(p) for p in o.picks],
        "dispatch": (
            {"dispatched_by": o.dispatch.dispatched_by, "dispatch_date": o.dispatch.dispatch_date.isoformat()}
            if o.dispatch else None
        ),
    }


@router.get("/orders")
def list_orders(db: Session = Depends(get_db)):
    return [order_out(o) for o in service.list_orders(db)]


@router.post("/orders", status_code=201)
def place_order(body: OrderIn, db: Session = Depends(get_db)):
    order = create_order(db, [i.model_dump() for i in body.items])
    return {"orderId": order.id, "status": order.status}


@router.get("/orders/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return order_out(service.get_order(db, order_id))


@router.put("/orders/{order_id}")
def set_order_status(order_id: str, body: StatusIn, db: Session = Depends(get_db)):
    o = service.set_order_status(db, order_id, body.status)
    return {"ok": True, "id": o.id, "status": o.status}


@router.put("/order_batch_picks/{pick_id}")
def set_pick_status(pick_id: str, body: StatusIn, db: Session = Depends(get_db)):
    p = service.set_pick_status(db, pick_id, body.status)
    return {"ok": True, "id": p.id, "status": p.status}


@router.post("/dispatches", status_code=201)
def record_dispatch(body: DispatchIn, db: Session = Depends(get_db)):
    d = service.record_dispatch(db, body.order_id, body.dispatched_by, body.dispatch_date)
    return {
        "id": d.id,
        "order_id": d.order_id,
        "dispatched_by": d.dispatched_by,
        "dispatch_date": d.dispatch_date.isoformat(),
    }
