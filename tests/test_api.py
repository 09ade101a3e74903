from sqlalchemy import select

from stockroom.models.audit_log import AuditLog


def _create_item(client, **overrides):
    payload = {"sku": "KF-650", "name": "Kingfisher 650ml", "mrp_price": 100, "reorder_level": 4}
    payload.update(overrides)
    res = client.post("/items", json=payload)
    assert res.status_code == 201, res.text
    return res.json()


def _stock_in(client, item_id: str, quantity: int, unit_cost: float, purchase_date: str = "2026-10-01"):
    res = client.post(
        "/purchases",
        json={
            "purchase_date": purchase_date,
            "line_items": [{"item_id": item_id, "quantity_units": quantity, "unit_cost_price": unit_cost}],
        },
    )
    assert res.status_code == 201, res.text
    return res.json()


def test_health_and_ready(test_context):
    client, _ = test_context
    assert client.get("/health").json() == {"ok": True}
    assert client.get("/ready").json() == {"ok": True, "database": "sqlite"}
    assert client.get("/").json()["docs"] == "/docs"


def test_error_envelope_for_missing_item(test_context):
    client, _ = test_context
    res = client.get("/items/missing", headers={"X-Request-ID": "req-123"})

    assert res.status_code == 404
    assert res.headers["X-Request-ID"] == "req-123"
    body = res.json()["error"]
    assert body["code"] == "not_found"
    assert body["request_id"] == "req-123"
    assert body["path"] == "/items/missing"


def test_validation_envelope(test_context):
    client, _ = test_context
    res = client.post("/items", json={"name": "No price"})

    assert res.status_code == 422
    body = res.json()["error"]
    assert body["code"] == "validation_error"
    assert any(detail["field"] == "mrp_price" for detail in body["details"])


def test_duplicate_sku_conflicts(test_context):
    client, _ = test_context
    _create_item(client)
    res = client.post("/items", json={"sku": "kf-650", "name": "Other", "mrp_price": 10})
    assert res.status_code == 409
    assert res.json()["error"]["code"] == "conflict"


def test_purchase_then_sale_flow(test_context):
    client, session_factory = test_context
    item = _create_item(client)
    purchase = _stock_in(client, item["id"], 5, 60)
    assert purchase["total_quantity"] == 5
    assert purchase["line_items"][0]["sku"] == "KF-650"

    res = client.get(f"/items/{item['id']}")
    assert res.json()["current_stock_units"] == 5
    assert float(res.json()["weighted_avg_cost_price"]) == 60.0

    report = {"report_date": "2026-10-18", "lines": [{"sku": "KF-650", "quantity_sold_units": 8}]}
    preview = client.post("/day-end/preview", json=report)
    assert preview.status_code == 200, preview.text
    assert preview.json()["shortages"] == [
        {"item_id": item["id"], "item_name": "Kingfisher 650ml", "required": 8, "available": 5}
    ]

    res = client.post("/day-end", json=report, headers={"X-Actor-Id": "clerk-1"})
    assert res.status_code == 409
    error = res.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["details"][0]["required"] == 8
    assert "Kingfisher 650ml (needs 8, has 5)" in error["message"]

    report["lines"][0]["quantity_sold_units"] = 3
    res = client.post("/day-end", json=report, headers={"X-Actor-Id": "clerk-1"})
    assert res.status_code == 201, res.text
    report_id = res.json()["id"]
    assert float(res.json()["total_sales_amount"]) == 300.0

    assert client.get(f"/items/{item['id']}").json()["current_stock_units"] == 2

    edit = client.post(
        f"/day-end/preview?editing_report_id={report_id}",
        json={"report_date": "2026-10-18", "lines": [{"sku": "KF-650", "quantity_sold_units": 5}]},
    )
    assert edit.json()["shortages"] == []

    res = client.put(
        f"/day-end/{report_id}",
        json={"report_date": "2026-10-18", "lines": [{"sku": "KF-650", "quantity_sold_units": 5}]},
    )
    assert res.status_code == 200, res.text
    assert client.get(f"/items/{item['id']}").json()["current_stock_units"] == 0

    assert client.delete(f"/day-end/{report_id}").json() == {"ok": True}
    assert client.get(f"/items/{item['id']}").json()["current_stock_units"] == 5

    with session_factory() as db:
        actions = db.execute(select(AuditLog.action).where(AuditLog.actor_id == "clerk-1")).scalars().all()
    assert actions == ["day_end.create"]


def test_purchase_edit_and_delete(test_context):
    client, _ = test_context
    item = _create_item(client)
    purchase = _stock_in(client, item["id"], 10, 100)

    res = client.put(
        f"/purchases/{purchase['id']}",
        json={
            "purchase_date": "2026-10-01",
            "line_items": [{"item_id": item["id"], "quantity_units": 4, "unit_cost_price": 100}],
        },
    )
    assert res.status_code == 200, res.text
    assert client.get(f"/items/{item['id']}").json()["current_stock_units"] == 4

    listing = client.get("/purchases").json()
    assert listing["pagination"]["total"] == 1
    assert listing["items"][0]["total_quantity"] == 4

    assert client.delete(f"/purchases/{purchase['id']}").status_code == 200
    assert client.get(f"/items/{item['id']}").json()["current_stock_units"] == 0
    assert client.get(f"/purchases/{purchase['id']}").status_code == 404


def test_purchase_line_validation(test_context):
    client, _ = test_context
    res = client.post(
        "/purchases",
        json={"purchase_date": "2026-10-01", "line_items": [{"name": "X", "cases_quantity": 2, "unit_cost_price": 5}]},
    )
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "validation_error"


def test_price_history_and_low_stock(test_context):
    client, _ = test_context
    item = _create_item(client)
    _stock_in(client, item["id"], 10, 100, "2026-10-01")
    _stock_in(client, item["id"], 10, 200, "2026-10-02")

    history = client.get(f"/items/{item['id']}/price-history").json()
    assert float(history["weighted_avg_cost"]) == 150.0
    assert [float(e["running_weighted_avg_cost"]) for e in history["entries"]] == [100.0, 150.0]

    low = client.get("/items/low-stock").json()
    assert low["items"] == []
    low = client.get("/items/low-stock?threshold=25").json()
    assert [row["sku"] for row in low["items"]] == ["KF-650"]
    assert low["items"][0]["reorder_level"] == 25


def test_adjustments(test_context):
    client, _ = test_context
    item = _create_item(client)
    _stock_in(client, item["id"], 3, 10)

    res = client.post("/adjustments", json={"item_id": item["id"], "adjustment_units": -2, "reason": "broken"})
    assert res.status_code == 201, res.text
    assert res.json()["stock_after"] == 1

    res = client.post("/adjustments", json={"item_id": item["id"], "adjustment_units": -2})
    assert res.status_code == 409

    res = client.post("/adjustments", json={"item_id": item["id"], "adjustment_units": 0})
    assert res.status_code == 422

    listing = client.get(f"/adjustments?item_id={item['id']}").json()
    assert listing["pagination"]["total"] == 1


def test_archive_hides_item_from_default_listing(test_context):
    client, _ = test_context
    item = _create_item(client)
    assert client.delete(f"/items/{item['id']}").json()["is_active"] is False
    assert client.get("/items").json()["pagination"]["total"] == 0
    assert client.get("/items?include_inactive=true").json()["pagination"]["total"] == 1


def test_purchase_import_endpoints(test_context):
    client, _ = test_context
    csv_content = (
        "Brand No,Size,Pack,Item Name,Units Per Pack,Cases,Case Cost,MRP\n"
        "5012,650,G,Kingfisher 650ml,12,10,80,9\n"
    ).encode("utf-8")

    parsed = client.post("/purchases/import/parse", files={"file": ("stock.csv", csv_content, "text/csv")})
    assert parsed.status_code == 200, parsed.text
    row = parsed.json()["rows"][0]
    assert row["issues"] == []
    assert row["payload"]["quantity_units"] == 120
    assert float(row["payload"]["unit_cost_price"]) == 6.6667

    res = client.post(
        "/purchases/import",
        files={"file": ("stock.csv", csv_content, "text/csv")},
        data={"purchase_date": "2026-10-01", "supplier_name": "Depot"},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["accepted"] is True
    assert body["rejected_rows"] == []
    assert body["purchase"]["line_items"][0]["sku"] == "5012-650-G"

    items = client.get("/items?search=5012").json()["items"]
    assert items[0]["current_stock_units"] == 120


def test_purchase_import_rejects_rows(test_context):
    client, _ = test_context
    csv_content = b"SKU,Name,Qty,Unit Cost\nA,Alpha,5,10\nB,Beta,,10\n"
    res = client.post(
        "/purchases/import",
        files={"file": ("stock.csv", csv_content, "text/csv")},
        data={"purchase_date": "2026-10-01"},
    )
    body = res.json()
    assert body["accepted"] is False
    assert body["rejected_rows"] == [{"row_number": 3, "reasons": ["Missing quantity"]}]
    assert client.get("/purchases").json()["pagination"]["total"] == 0


def test_day_end_import_parse(test_context):
    client, _ = test_context
    csv_content = b"SKU,Channel,Qty\nKF-650,belt,2\n,retail,1\n"
    res = client.post("/day-end/import/parse", files={"file": ("sales.csv", csv_content, "text/csv")})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["clean_rows"] == 1
    assert body["rows_with_issues"] == 1
    assert body["rows"][1]["issues"] == ["Need SKU"]


def test_unsupported_upload_type(test_context):
    client, _ = test_context
    res = client.post("/purchases/import/parse", files={"file": ("stock.txt", b"hello", "text/plain")})
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "validation_error"


def test_audit_log_listing(test_context):
    client, _ = test_context
    item = _create_item(client)
    purchase = client.post(
        "/purchases",
        json={
            "purchase_date": "2026-10-01",
            "line_items": [{"item_id": item["id"], "quantity_units": 2, "unit_cost_price": 10}],
        },
        headers={"X-Actor-Id": "clerk-2"},
    ).json()

    res = client.get("/audit-logs?actor_id=clerk-2")
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["pagination"]["total"] == 1
    entry = body["items"][0]
    assert (entry["action"], entry["target_type"], entry["target_id"]) == ("purchase.create", "purchase", purchase["id"])

    assert client.get(f"/audit-logs?target_type=item&target_id={item['id']}").json()["pagination"]["total"] == 1

    res = client.get("/audit-logs?start_date=2026-10-02&end_date=2026-10-01")
    assert res.status_code == 422
