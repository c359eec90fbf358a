from __future__ import annotations

from datetime import date

import pytest

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
from coldstore.db.models.audit import AuditLog
from coldstore.db.models.orders import Order, Pick
from coldstore.db.models.stock import Batch
from coldstore.db.models.storage import StorageLocation
from coldstore.events.outbox import OutboxEvent
from coldstore.services.orders.fulfillment import create_order
from coldstore.services.stock import service as stock_service
from coldstore.services.stock.service import create_batch, delete_batch, get_batch, list_batches, update_batch
from coldstore.services.storage.ledger import apply_occupancy_delta

EXP = date(2030, 3, 1)


def _occ(db, loc_id):
    db.expire_all()
    return db.get(StorageLocation, loc_id).current_occupancy


def test_intake_assigns_location_and_charges_occupancy(db, settings, make_product, make_location):
    p = make_product(category="Cold Storage")
    loc = make_location("Cold Storage", 40)
    make_location("Ambient", 400)

    res = create_batch(db, product_id=p.id, batch_number="LOT-1", expiry_date="2030-03-01",
                       quantity=25, manufacture_date="2029-12-01", settings=settings)

    assert res.assigned_location_id == loc.id
    assert res.batch.barcode == "LOT-1"
    assert res.batch.status == "Available"
    assert res.batch.manufacture_date == date(2029, 12, 1)
    assert _occ(db, loc.id) == 25

    evt = db.query(OutboxEvent).filter(OutboxEvent.topic == "stock.batch.received").one()
    assert evt.payload["batch_id"] == res.batch.id
    assert evt.payload["location_id"] == loc.id


def test_no_suitable_location_writes_nothing(db, settings, make_product, make_location):
    p = make_product(category="Cold Storage")
    amb = make_location("Ambient", 500)

    with pytest.raises(NoSuitableLocationError):
        create_batch(db, product_id=p.id, batch_number="LOT-2", expiry_date=EXP, quantity=5, settings=settings)

    assert db.query(Batch).count() == 0
    assert _occ(db, amb.id) == 0


def test_duplicate_batch_number_and_barcode(db, settings, make_product, make_location, receive):
    p = make_product()
    loc = make_location("Ambient", 100)
    receive(p, 10, EXP, batch_number="LOT-3", barcode="BC-3")

    with pytest.raises(DuplicateBatchNumberError):
        create_batch(db, product_id=p.id, batch_number="LOT-3", expiry_date=EXP, quantity=5, settings=settings)
    with pytest.raises(DuplicateKeyError):
        create_batch(db, product_id=p.id, batch_number="LOT-4", barcode="BC-3", expiry_date=EXP,
                     quantity=5, settings=settings)

    assert _occ(db, loc.id) == 10
    assert db.query(Batch).count() == 1


def test_unique_index_race_maps_to_batch_number_error(db, make_product):
    # both rows pass the pre-insert lookup; only the unique index catches the second
    p = make_product()
    with atomic(db):
        db.add(Batch(product_id=p.id, batch_number="LOT-R", barcode="BC-R1", expiry_date=EXP, quantity=1))

    with pytest.raises(DuplicateBatchNumberError):
        with atomic(db):
            db.add(Batch(product_id=p.id, batch_number="LOT-R", barcode="BC-R2", expiry_date=EXP, quantity=1))

    with pytest.raises(DuplicateKeyError) as exc:
        with atomic(db):
            db.add(Batch(product_id=p.id, batch_number="LOT-S", barcode="BC-R1", expiry_date=EXP, quantity=1))
    assert not isinstance(exc.value, DuplicateBatchNumberError)

    assert db.query(Batch).count() == 1


@pytest.mark.parametrize("kw", [
    {"quantity": 0},
    {"quantity": -4},
    {"quantity": 2.5},
    {"batch_number": "  "},
    {"expiry_date": "next week"},
])
def test_intake_validation(db, settings, make_product, make_location, kw):
    p = make_product()
    make_location("Ambient", 100)
    args = {"product_id": p.id, "batch_number": "LOT-5", "expiry_date": EXP, "quantity": 5}
    args.update(kw)

    with pytest.raises(ValidationError):
        create_batch(db, settings=settings, **args)


def test_intake_unknown_product(db, settings, make_location):
    make_location("Ambient", 100)
    with pytest.raises(NotFoundError):
        create_batch(db, product_id="missing", batch_number="X", expiry_date=EXP, quantity=1, settings=settings)


def test_intake_retries_when_location_filled_concurrently(db, settings, make_product, make_location, monkeypatch):
    p = make_product()
    full = make_location("Ambient", 10)
    apply_occupancy_delta(db, full.id, 10)
    db.commit()
    spare = make_location("Ambient", 50)

    real = stock_service.allocate
    seen_excludes = []

    def racing_allocate(session, category, qty, **kw):
        seen_excludes.append(list(kw.get("exclude", ())))
        if len(seen_excludes) == 1:
            # a stale read: the location looked free before the other intake committed
            return session.get(StorageLocation, full.id)
        return real(session, category, qty, **kw)

    monkeypatch.setattr(stock_service, "allocate", racing_allocate)
    res = create_batch(db, product_id=p.id, batch_number="LOT-6", expiry_date=EXP, quantity=5, settings=settings)

    assert res.assigned_location_id == spare.id
    assert seen_excludes == [[], [full.id]]
    assert _occ(db, full.id) == 10
    assert _occ(db, spare.id) == 5


def test_intake_gives_up_after_configured_attempts(db, settings, make_product, make_location, monkeypatch):
    p = make_product()
    full = make_location("Ambient", 10)
    apply_occupancy_delta(db, full.id, 10)
    db.commit()

    monkeypatch.setattr(stock_service, "allocate", lambda session, *a, **kw: session.get(StorageLocation, full.id))

    with pytest.raises(ConcurrencyConflictError):
        create_batch(db, product_id=p.id, batch_number="LOT-7", expiry_date=EXP, quantity=5, settings=settings)
    assert db.query(Batch).count() == 0


def test_quantity_edit_moves_occupancy_both_ways(db, make_product, make_location, receive):
    p = make_product()
    loc = make_location("Ambient", 50)
    b = receive(p, 20, EXP)

    update_batch(db, b.id, quantity=15)
    assert _occ(db, loc.id) == 15
    update_batch(db, b.id, quantity=45)
    assert _occ(db, loc.id) == 45

    with pytest.raises(CapacityExceededError):
        update_batch(db, b.id, quantity=51)
    assert _occ(db, loc.id) == 45
    assert get_batch(db, b.id).quantity == 45

    actions = [a.action for a in db.query(AuditLog).all()]
    assert actions.count("batch.update") == 2


def test_edit_other_fields(db, make_product, make_location, receive):
    p = make_product()
    make_location("Ambient", 50)
    b = receive(p, 20, EXP, batch_number="OLD")
    other = receive(p, 5, EXP, batch_number="TAKEN")

    update_batch(db, b.id, batch_number="NEW", barcode=None, expiry_date="2031-01-01", status="Damaged")
    b = get_batch(db, b.id)
    assert (b.batch_number, b.barcode, b.expiry_date, b.status) == ("NEW", "NEW", date(2031, 1, 1), "Damaged")

    with pytest.raises(DuplicateBatchNumberError):
        update_batch(db, b.id, batch_number=other.batch_number)
    with pytest.raises(ValidationError):
        update_batch(db, b.id, status="Lost")
    with pytest.raises(ValidationError):
        update_batch(db, b.id, colour="red")
    with pytest.raises(NotFoundError):
        update_batch(db, "missing", quantity=1)


def test_product_change_must_match_location_type(db, make_product, make_location, receive):
    ambient = make_product(category="Ambient")
    ambient2 = make_product(category="Ambient")
    cold = make_product(category="Cold Storage")
    make_location("Ambient", 50)
    b = receive(ambient, 10, EXP)

    with pytest.raises(ValidationError):
        update_batch(db, b.id, product_id=cold.id)
    update_batch(db, b.id, product_id=ambient2.id)
    assert get_batch(db, b.id).product_id == ambient2.id


def test_delete_releases_quantity_and_removes_picks(db, make_product, make_location, receive):
    p = make_product()
    loc = make_location("Ambient", 50)
    b = receive(p, 20, EXP)
    order = create_order(db, [{"product_id": p.id, "quantity": 8}])
    assert _occ(db, loc.id) == 12

    ack = delete_batch(db, b.id)

    assert ack == {"ok": True, "batch_id": b.id, "released_quantity": 12, "picks_removed": 1}
    assert _occ(db, loc.id) == 0
    assert db.query(Pick).count() == 0
    assert db.get(Order, order.id).status == "Pending"
    assert db.query(AuditLog).filter(AuditLog.action == "batch.delete").count() == 1

    with pytest.raises(NotFoundError):
        delete_batch(db, b.id)


def test_list_batches_fefo_order(db, make_product, make_location, receive):
    p = make_product()
    make_location("Ambient", 100)
    late = receive(p, 1, date(2031, 1, 1))
    early = receive(p, 1, date(2030, 1, 1))

    assert [b.id for b in list_batches(db)] == [early.id, late.id]
    assert list_batches(db)[0].location.label.startswith("A-R1-")
