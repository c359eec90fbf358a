from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy.orm import Session, joinedload

from coldstore.db.models.enums import OrderStatus, PickStatus
from coldstore.db.models.orders import Order, Pick
from coldstore.db.models.stock import Batch


@dataclass
class BarcodeCheck:
    is_valid: bool
    messages: list[str] = field(default_factory=list)
    batch: Batch | None = None
    pending_picks: list[Pick] = field(default_factory=list)


def verify_barcode(db: Session, barcode: str, *, today: date | None = None, expiry_window_days: int = 30) -> BarcodeCheck:
    """Check whether a scanned batch may be picked right now.

    Read-only. A batch is valid only when it has stock, is not expired and
    belongs to at least one active pending pick (pick still Pending Pick on
    an order that is still Pending).
    """
    today = today or date.today()
    batch = (db.query(Batch)
             .options(joinedload(Batch.product), joinedload(Batch.location))
             .filter(Batch.barcode == barcode)
             .first())
    if not batch:
        return BarcodeCheck(is_valid=False, messages=["Barcode not found."])

    result = BarcodeCheck(is_valid=True, batch=batch)

    if batch.quantity <= 0:
        result.is_valid = False
        result.messages.append(f"Batch is out of stock (Quantity: {batch.quantity}).")

    if batch.expiry_date < today:
        result.is_valid = False
        result.messages.append(f"Expired: Batch expired on {batch.expiry_date.isoformat()}.")
    elif batch.expiry_date <= today + timedelta(days=expiry_window_days):
        # warning only
        result.messages.append(f"Expiring Soon: Batch expires on {batch.expiry_date.isoformat()}.")

    result.pending_picks = (db.query(Pick)
                            .join(Order, Order.id == Pick.order_id)
                            .filter(Pick.batch_id == batch.id,
                                    Pick.status == PickStatus.PENDING_PICK.value,
                                    Order.status == OrderStatus.PENDING.value)
                            .order_by(Order.order_date.asc(), Pick.id.asc())
                            .all())
    if result.pending_picks:
        ids = ", ".join(sorted({p.order_id for p in result.pending_picks}))
        result.messages.append(f"Part of pending order(s) for picking: {ids}.")
    elif batch.quantity > 0 and batch.expiry_date >= today:
        # only for pickable stock
        result.is_valid = False
        result.messages.append("This batch is not part of any *active* pending pick list.")

    return result
