from datetime import date, timedelta


def _seed(client):
    client.post("/master/suppliers", json={"supplier_code": "ACME", "name": "Acme Components", "lead_time_days": 4})
    part = client.post("/master/parts", json={
        "part_code": "RES-10K",
        "part_name": "Resistor 10k",
        "unit_price": "0.05",
        "safety_stock": 10,
        "min_order_qty": 500,
        "lead_time_days": 4,
        "supplier_code": "ACME",
    }).json()
    product = client.post("/master/products", json={"product_code": "BOARD", "product_name": "Control board"}).json()
    bom = client.post("/master/bom", json={"product_code": "BOARD", "part_code": "RES-10K", "quantity_per_unit": "12"})
    assert bom.status_code == 200
    return part, product


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_master_data_rejects_duplicates(client):
    _seed(client)
    r = client.post("/master/parts", json={"part_code": "RES-10K", "part_name": "again"})
    assert r.status_code == 409
    r = client.post("/master/parts", json={"part_code": "CAP-1", "part_name": "Cap", "supplier_code": "NOPE"})
    assert r.status_code == 409
    assert [p["part_code"] for p in client.get("/master/parts").json()] == ["RES-10K"]


def test_ledger_over_http(client):
    part, _ = _seed(client)

    r = client.post("/inventory/transactions", json={"part_id": part["id"], "transaction_type": "INBOUND", "quantity": 100})
    assert r.status_code == 200
    assert r.json()["inventory"]["current_qty"] == 100

    r = client.post("/inventory/transactions", json={"part_id": part["id"], "transaction_type": "OUTBOUND", "quantity": 500})
    assert r.status_code == 409
    assert "Insufficient stock" in r.json()["detail"]

    r = client.post("/inventory/adjust", json={"part_id": part["id"], "new_quantity": 90, "reason": "count"})
    adjustment = r.json()["transaction"]
    assert adjustment["quantity"] == -10

    r = client.put(f"/inventory/transactions/{adjustment['id']}", json={"quantity": -20})
    assert r.json()["inventory"]["current_qty"] == 80

    r = client.delete(f"/inventory/transactions/{adjustment['id']}")
    assert r.json()["current_qty"] == 100

    assert client.get(f"/inventory/parts/{part['id']}/chain").json()["consistent"] is True
    assert len(client.get("/inventory/transactions", params={"part_id": part["id"]}).json()) == 1
    assert client.get("/inventory/transactions/nope").status_code == 404


def test_reservations_over_http(client):
    part, _ = _seed(client)
    client.post("/inventory/transactions", json={"part_id": part["id"], "transaction_type": "INBOUND", "quantity": 10})

    r = client.post("/inventory/reserve", json={"part_id": part["id"], "quantity": 4, "reference_type": "SALES_ORDER", "reference_id": "SO-1"})
    assert r.json()["available_qty"] == 6
    r = client.post("/inventory/reserve", json={"part_id": part["id"], "quantity": 7, "reference_type": "SALES_ORDER", "reference_id": "SO-2"})
    assert r.status_code == 409
    r = client.post("/inventory/release", json={"part_id": part["id"], "quantity": 4})
    assert r.json()["reserved_qty"] == 0

    [record] = client.get("/inventory/records").json()
    assert record["is_low_stock"] is True
    assert client.get("/inventory/low-stock").json()[0]["shortage"] == 0


def test_order_to_receipt_flow(client):
    part, product = _seed(client)
    due = (date.today() + timedelta(days=3)).isoformat()

    r = client.post("/sales/orders", json={
        "order_code": "SO-100",
        "due_date": due,
        "lines": [{"product_id": product["id"], "order_qty": 50}],
    })
    assert r.status_code == 200
    so = r.json()
    assert so["mrp"]["summary"]["total_results"] == 1
    assert so["mrp"]["summary"]["high_count"] == 1

    [result] = client.get("/mrp/results", params={"only_needs_order": True}).json()
    assert result["gross_requirement"] == 600
    assert result["net_requirement"] == 600
    assert result["suggested_order_qty"] == 600
    assert result["current_urgency"] == "HIGH"
    assert result["sales_order_code"] == "SO-100"

    r = client.post("/purchasing/orders/from-mrp", json={
        "items": [{"part_id": part["id"], "order_qty": result["suggested_order_qty"]}],
        "sales_order_id": so["id"],
        "skip_draft": True,
    })
    body = r.json()
    assert body["total_orders"] == 1
    po = body["purchase_orders"][0]
    assert po["status"] == "ORDERED"
    assert client.get("/mrp/results").json()[0]["status"] == "ORDERED"

    r = client.post("/mrp/calculate", json={"sales_order_ids": [so["id"]]})
    rerun = r.json()["results"][0]
    assert rerun["incoming_qty"] == 600
    # safety stock still has to be covered on top of the open order
    assert rerun["net_requirement"] == 10
    assert rerun["suggested_order_qty"] == 500

    r = client.post(f"/purchasing/orders/{po['id']}/receive", json={"items": [{"line_id": po["lines"][0]["id"], "received_qty": 600}]})
    assert r.json()["status"] == "RECEIVED"
    [record] = client.get("/inventory/records").json()
    assert record["current_qty"] == 600

    runs = client.get("/mrp/runs").json()
    assert len(runs) == 2
    assert all(r["status"] == "DONE" for r in runs)


def test_result_status_update(client):
    _, product = _seed(client)
    client.post("/sales/orders", json={"order_code": "SO-1", "lines": [{"product_id": product["id"], "order_qty": 1}]})
    [result] = client.get("/mrp/results").json()

    r = client.patch(f"/mrp/results/{result['id']}", json={"status": "DISMISSED"})
    assert r.json()["status"] == "DISMISSED"
    assert client.patch("/mrp/results/nope", json={"status": "DISMISSED"}).status_code == 404
    assert client.patch(f"/mrp/results/{result['id']}", json={"status": "BOGUS"}).status_code == 422


def test_cancelled_order_drops_its_results(client):
    _, product = _seed(client)
    so = client.post("/sales/orders", json={"order_code": "SO-1", "lines": [{"product_id": product["id"], "order_qty": 5}]}).json()
    assert len(client.get("/mrp/results", params={"only_needs_order": True}).json()) == 1

    r = client.patch(f"/sales/orders/{so['id']}/status", json={"status": "CANCELLED"})
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"
    assert r.json()["mrp"]["summary"]["total_results"] == 0
    assert client.get("/mrp/results").json() == []


def test_sales_order_validation(client):
    r = client.post("/sales/orders", json={"order_code": "SO-1", "lines": [{"product_id": "ghost", "order_qty": 1}]})
    assert r.status_code == 409
    r = client.post("/sales/orders", json={"order_code": "SO-1", "lines": []})
    assert r.status_code == 422


def test_event_admin(client):
    part, _ = _seed(client)
    client.post("/inventory/transactions", json={"part_id": part["id"], "transaction_type": "INBOUND", "quantity": 1})

    events = client.get("/admin/events/outbox", params={"entity_type": "part", "entity_id": part["id"]}).json()
    assert {e["topic"] for e in events} == {"inventory.changed", "master.part.created"}

    sub = client.post("/admin/events/subscriptions", json={"topic_pattern": "mrp.*", "target_url": "http://hooks.test/mrp"}).json()
    assert sub["is_active"] is True
    r = client.post(f"/admin/events/subscriptions/{sub['id']}/toggle", json={})
    assert r.json()["is_active"] is False
    assert client.post("/admin/events/subscriptions/nope/toggle").status_code == 404
    assert len(client.get("/admin/events/subscriptions").json()) == 1
