from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from coldstore.main import create_app


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


def _setup_stock(client):
    p = client.post("/products", json={"name": "Vaccine A", "category": "Cold Storage", "price": 12.5}).json()
    loc = client.post("/storage_locations", json={
        "zone": "C", "rack": "1", "slot": "1", "location_type": "Cold Storage",
        "capacity": 100, "min_temp": 2, "max_temp": 8,
    }).json()
    client.post("/temperature_logs", json={"location_id": loc["id"], "temperature_reading": 5})
    return p, loc


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_intake_order_dispatch_flow(client):
    p, loc = _setup_stock(client)

    r = client.post("/batches", json={"product_id": p["id"], "batch_number": "VAC-1",
                                      "expiry_date": "2099-01-01", "quantity": 40})
    assert r.status_code == 201
    body = r.json()
    assert body["assigned_location_id"] == loc["id"]
    assert body["batch"]["barcode"] == "VAC-1"
    assert body["batch"]["location_name"] == "C-1-1"

    r = client.post("/orders", json={"items": [{"product_id": p["id"], "quantity": 15}]})
    assert r.status_code == 201
    order_id = r.json()["orderId"]

    check = client.get("/verify-barcode/VAC-1").json()
    assert check["isValid"] is True
    assert check["pendingPicks"][0]["order_id"] == order_id

    order = client.get(f"/orders/{order_id}").json()
    assert order["status"] == "Pending"
    assert order["picks"][0]["quantity_picked"] == 15
    assert order["picks"][0]["location_name"] == "C-1-1"

    locs = client.get("/storage_locations").json()
    assert locs[0]["current_occupancy"] == 25
    assert locs[0]["contents"][0]["quantity"] == 25
    assert locs[0]["latest_temperature"] == 5

    r = client.put(f"/order_batch_picks/{order['picks'][0]['id']}", json={"status": "Picked"})
    assert r.json()["status"] == "Picked"

    r = client.post("/dispatches", json={"order_id": order_id, "dispatched_by": "Sam",
                                         "dispatch_date": "2030-01-02"})
    assert r.status_code == 201
    assert client.get(f"/orders/{order_id}").json()["status"] == "Dispatched"

    report = client.get("/storage_locations/occupancy").json()
    assert report[0]["drift"] == 0


def test_batch_edit_and_delete(client):
    p, loc = _setup_stock(client)
    batch = client.post("/batches", json={"product_id": p["id"], "batch_number": "VAC-2",
                                          "expiry_date": "2099-01-01", "quantity": 10}).json()["batch"]

    r = client.put(f"/batches/{batch['id']}", json={"quantity": 30})
    assert r.status_code == 200 and r.json()["quantity"] == 30
    assert client.get(f"/storage_locations/{loc['id']}").json()["current_occupancy"] == 30

    r = client.delete(f"/batches/{batch['id']}")
    assert r.json()["released_quantity"] == 30
    assert client.get(f"/storage_locations/{loc['id']}").json()["current_occupancy"] == 0
    assert client.get(f"/batches/{batch['id']}").status_code == 404


def test_business_errors_use_the_error_envelope(client):
    p, _ = _setup_stock(client)

    r = client.post("/products", json={"name": "Vaccine A", "category": "Cold Storage"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "duplicate_name"

    r = client.post("/orders", json={"items": [{"product_id": p["id"], "quantity": 1}]})
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["code"] == "insufficient_stock"
    assert err["details"][0] == {"product_id": p["id"], "requested": 1, "available": 0, "short": 1}

    r = client.post("/batches", json={"product_id": p["id"], "batch_number": "HUGE",
                                      "expiry_date": "2099-01-01", "quantity": 1000})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "no_suitable_location"

    r = client.put("/orders/nope", json={"status": "Completed"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"

    r = client.get("/products/nope")
    assert r.status_code == 404


def test_invalid_status_and_request_body(client):
    p, _ = _setup_stock(client)
    client.post("/batches", json={"product_id": p["id"], "batch_number": "VAC-3",
                                  "expiry_date": "2099-01-01", "quantity": 5})
    order_id = client.post("/orders", json={"items": [{"product_id": p["id"], "quantity": 1}]}).json()["orderId"]

    r = client.put(f"/orders/{order_id}", json={"status": "Lost"})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "invalid_status"

    r = client.post("/orders", json={"items": []})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "validation_error"

    r = client.post("/batches", json={"product_id": p["id"], "batch_number": "X", "expiry_date": "soon",
                                      "quantity": 5})
    assert r.status_code == 422


def test_unknown_barcode(client):
    assert client.get("/verify-barcode/ZZZ").json() == {"isValid": False, "messages": ["Barcode not found."]}


def test_alert_endpoints(client):
    p, loc = _setup_stock(client)
    client.post("/batches", json={"product_id": p["id"], "batch_number": "OLD",
                                  "expiry_date": "2001-01-01", "quantity": 3})

    expiry = client.get("/alerts/expiry").json()
    assert [b["batch_number"] for b in expiry["expired"]] == ["OLD"]
    assert expiry["expiringSoon"] == []

    stock = client.get("/alerts/low_stock").json()
    assert [b["quantity"] for b in stock["lowStock"]] == [3]

    client.post("/temperature_logs", json={"location_id": loc["id"], "temperature_reading": 11})
    temps = client.get("/alerts/temperature").json()
    assert [(t["location_name"], t["alert_type"]) for t in temps] == [("C-1-1", "High Temperature")]


def test_subscription_admin(client):
    r = client.post("/admin/events/subscriptions", json={"topic_pattern": "storage.*",
                                                         "target_url": "http://hooks.test/x"})
    assert r.status_code == 201
    sub_id = r.json()["id"]

    assert client.post(f"/admin/events/subscriptions/{sub_id}/toggle").json()["is_active"] is False
    assert client.get("/admin/events/subscriptions").json()[0]["is_active"] is False
    assert client.post("/admin/events/subscriptions", json={"name": "x"}).status_code == 422
    assert client.delete(f"/admin/events/subscriptions/{sub_id}").json()["deleted"] is True
    assert client.get("/admin/events/outbox").json() == []


def test_unhandled_errors_are_opaque(settings, monkeypatch):
    from coldstore.services.catalog import service

    def boom(db):
        raise RuntimeError("secret detail")

    monkeypatch.setattr(service, "list_products", boom)
    app = create_app(settings)
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/products")

    assert r.status_code == 500
    err = r.json()["error"]
    assert err["code"] == "internal_error"
    assert "secret" not in err["message"]
    assert err["trace_id"].startswith("t_")


def test_outbox_filtered_by_subject(client):
    p, loc = _setup_stock(client)
    client.post("/batches", json={"product_id": p["id"], "batch_number": "VAC-9",
                                  "expiry_date": "2099-01-01", "quantity": 5})

    rows = client.get("/admin/events/outbox", params={"subject_id": loc["id"]}).json()
    assert [(e["topic"], e["priority"]) for e in rows] == [("storage.temperature.logged", 0)]
    assert rows[0]["payload"]["location_id"] == loc["id"]

    topics = {e["topic"] for e in client.get("/admin/events/outbox", params={"pending_only": True}).json()}
    assert topics == {"storage.temperature.logged", "stock.batch.received"}

    r = client.post("/admin/events/subscriptions", json={"topic_pattern": "storage.*",
                                                         "target_url": "http://hooks.test/x",
                                                         "max_failures": -1})
    assert r.status_code == 422
