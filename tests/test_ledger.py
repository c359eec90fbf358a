from __future__ import annotations

from datetime import date

import pytest

from coldstore.core.errors import CapacityExceededError, LedgerDriftError, NotFoundError
from coldstore.db.models.storage import StorageLocation
from coldstore.services.orders.fulfillment import create_order
from coldstore.services.stock.service import delete_batch, update_batch
from coldstore.services.storage.ledger import apply_occupancy_delta, apply_occupancy_deltas, occupancy_report


def _occupancy(db, location_id):
    db.expire_all()
    return db.get(StorageLocation, location_id).current_occupancy


def test_delta_moves_counter(db, make_location):
    loc = make_location("Ambient", 10)

    apply_occupancy_delta(db, loc.id, 7)
    apply_occupancy_delta(db, loc.id, -3)
    db.commit()

    assert _occupancy(db, loc.id) == 4


def test_increment_past_capacity_is_refused(db, make_location):
    loc = make_location("Ambient", 10)
    apply_occupancy_delta(db, loc.id, 8)
    db.commit()

    with pytest.raises(CapacityExceededError) as ei:
        apply_occupancy_delta(db, loc.id, 3)
    db.rollback()

    assert ei.value.details["capacity"] == 10
    assert _occupancy(db, loc.id) == 8


def test_decrement_below_zero_is_drift(db, make_location):
    loc = make_location("Ambient", 10)

    with pytest.raises(LedgerDriftError):
        apply_occupancy_delta(db, loc.id, -1)
    db.rollback()
    assert _occupancy(db, loc.id) == 0


def test_unknown_location(db):
    with pytest.raises(NotFoundError):
        apply_occupancy_delta(db, "nope", 1)


def test_batch_deltas_skip_zero(db, make_location):
    a = make_location("Ambient", 10)
    b = make_location("Ambient", 10)
    apply_occupancy_deltas(db, {a.id: 4, b.id: 0})
    db.commit()

    assert _occupancy(db, a.id) == 4
    assert _occupancy(db, b.id) == 0


def test_counter_tracks_batches_through_every_path(db, make_product, make_location, receive):
    p = make_product(category="Ambient")
    loc = make_location("Ambient", 100)

    b1 = receive(p, 30, date(2030, 1, 1))
    b2 = receive(p, 20, date(2030, 6, 1))
    create_order(db, [{"product_id": p.id, "quantity": 35}])
    update_batch(db, b2.id, quantity=12)
    delete_batch(db, b1.id)

    rows = {r["location_id"]: r for r in occupancy_report(db)}
    assert rows[loc.id]["current_occupancy"] == rows[loc.id]["batch_quantity"] == 12
    assert rows[loc.id]["drift"] == 0


def test_report_exposes_drift_without_fixing_it(db, make_product, make_location, receive):
    p = make_product()
    loc = make_location("Ambient", 100)
    receive(p, 10, date(2030, 1, 1))

    db.get(StorageLocation, loc.id).current_occupancy = 25
    db.commit()

    row = next(r for r in occupancy_report(db) if r["location_id"] == loc.id)
    assert (row["current_occupancy"], row["batch_quantity"], row["drift"]) == (25, 10, 15)
    assert _occupancy(db, loc.id) == 25
