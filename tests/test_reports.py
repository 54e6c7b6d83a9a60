from datetime import date, datetime, timedelta, timezone

from stockdesk.models.enums import Category
from stockdesk.models.serial import Serial
from stockdesk.schemas.bill import BillCreate
from stockdesk.schemas.master import PartCreate
from stockdesk.schemas.serial import SerialCreate
from stockdesk.services import (
    bill_service,
    categorization_service,
    master_data_service,
    report_service,
    serial_service,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _serial(db, actor, bill, number: str, price, *, part_code: str = "CAP-100"):
    return serial_service.create_serial(
        db,
        SerialCreate(bill_id=bill.id, serial_number=number, part_code=part_code, unit_price=price),
        actor,
    )


def _bill(db, actor, voucher_number: str, bill_date: date = date(2026, 2, 6), supplier_name: str | None = None):
    return bill_service.create_bill(
        db,
        BillCreate(bill_date=bill_date, voucher_number=voucher_number, supplier_name=supplier_name),
        actor,
    )


def _age(db, serial_id: str, days: int) -> None:
    db.get(Serial, serial_id).categorized_date = NOW - timedelta(days=days)
    db.flush()


def test_category_summary_lists_every_category_with_og_payments(db_session, actor):
    bill = _bill(db_session, actor, "VCH-1")
    a = _serial(db_session, actor, bill, "A", 100)
    b = _serial(db_session, actor, bill, "B", 50)
    c = _serial(db_session, actor, bill, "C", 25)
    _serial(db_session, actor, bill, "D", 10)
    categorization_service.categorize(db_session, a.id, Category.IN_STOCK, {}, actor)
    categorization_service.categorize(
        db_session, b.id, Category.OG, {"customerName": "X", "cashAmount": 300, "paymentStatus": "PAID"}, actor
    )
    categorization_service.categorize(
        db_session, c.id, Category.OG, {"customerName": "Y", "cashAmount": 120, "paymentStatus": "PARTIAL"}, actor
    )
    db_session.commit()

    report = report_service.category_summary(db_session)
    rows = {row["category"]: row for row in report["categories"]}
    assert set(rows) == {category.value for category in Category}
    assert rows["IN_STOCK"] == {"category": "IN_STOCK", "count": 1, "total_value": 100.0}
    assert rows["OG"]["count"] == 2
    assert rows["OG"]["total_value"] == 75.0
    assert rows["UNCATEGORIZED"]["count"] == 1
    assert rows["AMC"]["count"] == 0
    assert report["total_count"] == 4
    assert report["total_value"] == 185.0
    assert report["og_payments"] == {
        "paid_count": 1,
        "paid_amount": 300.0,
        "pending_count": 1,
        "pending_amount": 120.0,
        "total_count": 2,
        "total_amount": 420.0,
    }


def test_category_summary_date_window(test_context, actor_headers):
    client, _ = test_context
    bill = client.post("/bills", json={"bill_date": "2026-02-06", "voucher_number": "VCH-1"}, headers=actor_headers).json()
    client.post(
        "/serials",
        json={"bill_id": bill["id"], "serial_number": "A", "part_code": "CAP-100", "unit_price": 10},
        headers=actor_headers,
    )
    today = date.today()

    inside = client.get("/reports/summary", params={"start_date": str(today - timedelta(days=2))}).json()
    assert inside["total_count"] == 1
    outside = client.get("/reports/summary", params={"end_date": str(today - timedelta(days=2))}).json()
    assert outside["total_count"] == 0
    assert len(outside["categories"]) == len(Category)


def test_in_stock_report_groups_by_bill(db_session, actor):
    first = _bill(db_session, actor, "VCH-1", date(2026, 2, 1), "Acme")
    second = _bill(db_session, actor, "VCH-2", date(2026, 2, 3))
    for bill, number, price in ((first, "A", 10), (first, "B", 15), (second, "C", 7), (second, "D", 99)):
        serial = _serial(db_session, actor, bill, number, price)
        if number != "D":
            categorization_service.categorize(db_session, serial.id, Category.IN_STOCK, {}, actor)
    db_session.commit()

    report = report_service.in_stock_by_bill(db_session)
    assert [group["voucher_number"] for group in report["bills"]] == ["VCH-1", "VCH-2"]
    assert report["bills"][0]["supplier_name"] == "Acme"
    assert report["bills"][0]["count"] == 2
    assert report["bills"][0]["subtotal"] == 25.0
    assert [s["serial_number"] for s in report["bills"][1]["serials"]] == ["C"]
    assert report["total_count"] == 3
    assert report["grand_total"] == 32.0


def test_spu_report_groups_by_spu_id(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        bill = _bill(db, actor, "VCH-1")
        ids = [_serial(db, actor, bill, f"S-{i}", 100).id for i in range(3)]
        db.commit()

    contexts = [
        {"spuId": "SPU-1", "ticketId": "T-1", "customerName": "Acme", "spuDate": "2026-02-06"},
        {
            "spuId": "SPU-1",
            "ticketId": "T-1",
            "customerName": "Acme",
            "spuDate": "2026-02-06",
            "isChargeable": True,
            "chargeAmount": 40,
        },
        {"spuId": "SPU-2", "ticketId": "T-2", "customerName": "Globex", "spuDate": "2026-02-07"},
    ]
    for serial_id, context in zip(ids, contexts):
        res = client.put(
            f"/categories/categorize/{serial_id}",
            json={"category": "SPU_PENDING", "context": context},
            headers=actor_headers,
        )
        assert res.status_code == 200, res.text

    report = client.get("/reports/spu").json()
    assert report["category"] == "SPU_PENDING"
    groups = {group["spu_id"]: group for group in report["groups"]}
    assert groups["SPU-1"]["serial_count"] == 2
    assert groups["SPU-1"]["serial_total"] == 200.0
    assert groups["SPU-1"]["chargeable_total"] == 40.0
    assert groups["SPU-2"]["customer_name"] == "Globex"
    assert report["total_count"] == 3
    assert report["total_chargeable"] == 40.0

    assert client.get("/reports/spu", params={"category": "SPU_CLEARED"}).json()["groups"] == []
    wrong = client.get("/reports/spu", params={"category": "IN_STOCK"})
    assert wrong.status_code == 400
    assert wrong.json()["error"]["code"] == "bad_request"


def test_alerts_flag_overdue_items_and_low_stock(db_session, actor):
    master_data_service.create_part(db_session, PartCreate(name="Fan", code="FAN-1", reorder_level=2), actor)
    master_data_service.create_part(db_session, PartCreate(name="Belt", code="BELT-1", reorder_level=1), actor)
    bill = _bill(db_session, actor, "VCH-1")

    spu_old = _serial(db_session, actor, bill, "SPU-OLD", 10)
    spu_new = _serial(db_session, actor, bill, "SPU-NEW", 10)
    og_pending = _serial(db_session, actor, bill, "OG-PEND", 10)
    og_paid = _serial(db_session, actor, bill, "OG-PAID", 10)
    ret_old = _serial(db_session, actor, bill, "RET-OLD", 10)
    belt_a = _serial(db_session, actor, bill, "BELT-A", 10, part_code="BELT-1")
    belt_b = _serial(db_session, actor, bill, "BELT-B", 10, part_code="BELT-1")
    _serial(db_session, actor, bill, "LOOSE", 10)

    spu = {"spuId": "SPU-9", "ticketId": "T", "customerName": "Acme", "spuDate": "2026-01-01"}
    for serial in (spu_old, spu_new):
        categorization_service.categorize(db_session, serial.id, Category.SPU_PENDING, spu, actor)
    categorization_service.categorize(
        db_session, og_pending.id, Category.OG, {"customerName": "X", "cashAmount": 5, "paymentStatus": "PENDING"}, actor
    )
    categorization_service.categorize(
        db_session, og_paid.id, Category.OG, {"customerName": "X", "cashAmount": 5, "paymentStatus": "PAID"}, actor
    )
    categorization_service.categorize(db_session, ret_old.id, Category.RETURN, {"returnReason": "DOA"}, actor)
    for serial in (belt_a, belt_b):
        categorization_service.categorize(db_session, serial.id, Category.IN_STOCK, {}, actor)

    _age(db_session, spu_old.id, 31)
    _age(db_session, spu_new.id, 3)
    _age(db_session, og_pending.id, 16)
    _age(db_session, og_paid.id, 40)
    _age(db_session, ret_old.id, 8)
    db_session.commit()

    result = report_service.alerts(db_session, now=NOW)
    assert [item["serial_number"] for item in result["spu_pending_overdue"]] == ["SPU-OLD"]
    assert result["spu_pending_overdue"][0]["reference"] == "SPU-9"
    assert result["spu_pending_overdue"][0]["age_days"] == 31
    assert result["spu_pending_overdue"][0]["customer_name"] == "Acme"
    assert [item["serial_number"] for item in result["og_payment_pending"]] == ["OG-PEND"]
    assert [item["serial_number"] for item in result["return_overdue"]] == ["RET-OLD"]
    assert result["uncategorized_count"] == 1
    assert result["uncategorized_bill_count"] == 1
    assert [part["code"] for part in result["low_stock_parts"]] == ["FAN-1"]
    assert result["low_stock_parts"][0]["in_stock"] == 0


def test_recent_activity_and_bill_rollup_endpoints(test_context, actor_headers):
    client, _ = test_context
    bill = client.post("/bills", json={"bill_date": "2026-02-06", "voucher_number": "VCH-1"}, headers=actor_headers).json()
    ids = []
    for number, price in (("A", 10), ("B", 20), ("C", 30)):
        created = client.post(
            "/serials",
            json={"bill_id": bill["id"], "serial_number": number, "part_code": "CAP-100", "unit_price": price},
            headers=actor_headers,
        ).json()
        ids.append(created["id"])
    client.put(f"/categories/categorize/{ids[0]}", json={"category": "IN_STOCK", "context": {}}, headers=actor_headers)
    client.put(f"/categories/categorize/{ids[1]}", json={"category": "IN_STOCK", "context": {}}, headers=actor_headers)

    activity = client.get("/reports/activity", params={"limit": 2}).json()["items"]
    assert len(activity) == 2
    assert {entry["movement_type"] for entry in activity} <= {"CATEGORIZED", "INITIAL_ENTRY"}

    rollup = client.get(f"/reports/bills/{bill['id']}").json()
    assert rollup["voucher_number"] == "VCH-1"
    assert rollup["serial_count"] == 3
    assert rollup["total_value"] == 60.0
    assert {row["category"]: row["count"] for row in rollup["categories"]} == {"IN_STOCK": 2, "UNCATEGORIZED": 1}

    assert client.get("/reports/bills/missing").status_code == 404
