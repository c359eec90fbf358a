from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session, selectinload

from coldstore.core.audit import audit
from coldstore.core.errors import DuplicateKeyError, InvalidStatusError, NotFoundError, ValidationError
from coldstore.core.tx import atomic
from coldstore.db.models.enums import OrderStatus, PickStatus, parse_enum
from coldstore.db.models.orders import Dispatch, Order, Pick
from coldstore.db.models.stock import Batch
from coldstore.events import bus

log = logging.getLogger("coldstore.orders")


def _order_query(db: Session):
    return db.query(Order).options(
        selectinload(Order.items),
        selectinload(Order.picks).selectinload(Pick.batch).selectinload(Batch.location),
        selectinload(Order.dispatch),
    )


def list_orders(db: Session) -> list[Order]:
    return _order_query(db).order_by(Order.order_date.desc(), Order.id.asc()).all()


def get_order(db: Session, order_id: str) -> Order:
    order = _order_query(db).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found.")
    return order


def set_order_status(db: Session, order_id: str, status, *, actor: str = "system") -> Order:
    """Move an order to another status. Cancelling does not put stock back."""
    st = parse_enum(OrderStatus, status)
    if st is None:
        raise InvalidStatusError(
            f"Invalid status '{status}'. Must be one of: {', '.join(s.value for s in OrderStatus)}."
        )
    with atomic(db):
        order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found.")
        previous = order.status
        order.status = st.value
        audit(db, actor=actor, action="order.status", entity_type="Order", entity_id=order.id,
              payload={"from": previous, "to": st.value})
    return order


def set_pick_status(db: Session, pick_id: str, status, *, actor: str = "system") -> Pick:
    st = parse_enum(PickStatus, status)
    if st is None:
        raise InvalidStatusError(
            f"Invalid status '{status}'. Must be one of: {', '.join(s.value for s in PickStatus)}."
        )
    with atomic(db):
        pick = db.query(Pick).filter(Pick.id == pick_id).with_for_update().first()
        if not pick:
            raise NotFoundError(f"Pick {pick_id} not found.")
        previous = pick.status
        pick.status = st.value
        audit(db, actor=actor, action="pick.status", entity_type="Pick", entity_id=pick.id,
              payload={"order_id": pick.order_id, "from": previous, "to": st.value})
    return pick


def record_dispatch(db: Session, order_id: str, dispatched_by: str, dispatch_date: date | None = None,
                    *, actor: str | None = None) -> Dispatch:
    dispatched_by = (dispatched_by or "").strip()
    if not dispatched_by:
        raise ValidationError("dispatched_by is required.")
    when = dispatch_date or date.today()

    with atomic(db):
        order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found.")
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStatusError("A cancelled order cannot be dispatched.")
        if db.query(Dispatch.id).filter(Dispatch.order_id == order.id).first():
            raise DuplicateKeyError(f"Order {order_id} has already been dispatched.")

        d = Dispatch(order_id=order.id, dispatched_by=dispatched_by, dispatch_date=when)
        db.add(d)
        order.status = OrderStatus.DISPATCHED.value
        picks = (db.query(Pick)
                 .filter(Pick.order_id == order.id)
                 .update({Pick.status: PickStatus.DISPATCHED.value}, synchronize_session="fetch"))
        db.flush()
        audit(db, actor=actor or dispatched_by, action="order.dispatch", entity_type="Order", entity_id=order.id,
              payload={"dispatch_id": d.id, "picks": picks})
        bus.publish(db, bus.ORDER_DISPATCHED, {
            "order_id": order.id,
            "dispatch_id": d.id,
            "dispatched_by": dispatched_by,
            "dispatch_date": when.isoformat(),
        }, subject_id=order.id)

    log.info("order %s dispatched by %s", order_id, dispatched_by)
    return d
