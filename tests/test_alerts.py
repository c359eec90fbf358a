from __future__ import annotations

from datetime import date, datetime, timedelta

from coldstore.db.models.storage import StorageLocation
from coldstore.services.alerts.evaluator import (
    TemperatureAlertType,
    classify_location,
    expiry_alerts,
    stock_alerts,
    temperature_alerts,
)
from coldstore.services.orders.fulfillment import create_order
from coldstore.services.stock.service import update_batch
from coldstore.services.storage.service import log_temperature

TODAY = date(2030, 6, 15)
NOW = datetime(2030, 6, 15, 12, 0, 0)


def test_expiry_buckets(db, make_product, make_location, receive):
    p = make_product()
    make_location("Ambient", 500)
    expired = receive(p, 5, TODAY - timedelta(days=1))
    today = receive(p, 5, TODAY)
    edge = receive(p, 5, TODAY + timedelta(days=30))
    receive(p, 5, TODAY + timedelta(days=31))
    damaged = receive(p, 5, TODAY - timedelta(days=3))
    update_batch(db, damaged.id, status="Damaged")

    res = expiry_alerts(db, today=TODAY, window_days=30)

    assert [b.id for b in res.expired] == [expired.id]
    assert [b.id for b in res.expiring_soon] == [today.id, edge.id]


def test_stock_buckets(db, make_product, make_location, receive):
    p = make_product()
    make_location("Ambient", 500)
    nine = receive(p, 9, date(2031, 1, 1))
    ten = receive(p, 10, date(2031, 1, 2))
    receive(p, 11, date(2031, 1, 3))
    gone = receive(p, 3, date(2030, 1, 1))
    create_order(db, [(p.id, 3)])

    res = stock_alerts(db, threshold=10)

    assert [b.id for b in res.low_stock] == [nine.id, ten.id]
    assert [b.id for b in res.out_of_stock] == [gone.id]


def _loc(**kw) -> StorageLocation:
    base = dict(id="L", zone="C", rack="R", slot="1", location_type="Cold Storage", capacity=10,
                min_temp=2.0, max_temp=8.0, latest_temperature=5.0, last_temp_update=NOW)
    base.update(kw)
    return StorageLocation(**base)


def test_classification_priority():
    hour = timedelta(hours=1)
    stale = NOW - timedelta(hours=3)

    cases = [
        (_loc(latest_temperature=None), TemperatureAlertType.NO_READINGS, "No recent temperature readings."),
        (_loc(last_temp_update=None), TemperatureAlertType.NO_READINGS, "No recent temperature readings."),
        (_loc(latest_temperature=1.0, last_temp_update=stale), TemperatureAlertType.LOW_TEMPERATURE,
         "Temperature too low: 1.0°C (Min: 2.0°C)"),
        (_loc(latest_temperature=9.5), TemperatureAlertType.HIGH_TEMPERATURE,
         "Temperature too high: 9.5°C (Max: 8.0°C)"),
        (_loc(last_temp_update=stale), TemperatureAlertType.STALE_READING,
         "No temperature update in the last hour. Last reading: 5.0°C at 2030-06-15 09:00:00"),
    ]
    for loc, kind, message in cases:
        alert = classify_location(loc, now=NOW, stale_after=hour)
        assert (alert.alert_type, alert.message) == (kind, message)
        assert alert.location_name == "C-R-1"

    assert classify_location(_loc(), now=NOW, stale_after=hour) is None
    assert classify_location(_loc(last_temp_update=NOW - timedelta(minutes=59)), now=NOW, stale_after=hour) is None


def test_temperature_alerts_cover_cold_storage_only(db, make_location):
    make_location("Ambient", 10)
    unread = make_location("Cold Storage", 10, zone="C", slot="1")
    hot = make_location("Cold Storage", 10, zone="C", slot="2")
    fine = make_location("Cold Storage", 10, zone="C", slot="3")
    log_temperature(db, hot.id, 12.0, recorded_at=NOW - timedelta(minutes=5))
    log_temperature(db, fine.id, 4.0, recorded_at=NOW - timedelta(minutes=5))

    alerts = temperature_alerts(db, now=NOW, stale_minutes=60)

    assert [(a.location_id, a.alert_type) for a in alerts] == [
        (unread.id, TemperatureAlertType.NO_READINGS),
        (hot.id, TemperatureAlertType.HIGH_TEMPERATURE),
    ]
    assert fine.id not in {a.location_id for a in alerts}
