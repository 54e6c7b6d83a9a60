from datetime import date

from sqlalchemy import event, select
from sqlalchemy.exc import DataError

from stockdesk.models.audit_log import AuditLog
from stockdesk.models.movement import SerialMovement
from stockdesk.models.serial import Serial
from stockdesk.schemas.bill import BillCreate
from stockdesk.schemas.serial import SerialItemIn
from stockdesk.services import bill_service, serial_service


def _create_bill(client, headers, *, voucher_number: str = "VCH-1", **extra) -> dict:
    res = client.post(
        "/bills",
        json={"bill_date": "2026-02-06", "voucher_number": voucher_number, **extra},
        headers=headers,
    )
    assert res.status_code == 200, res.text
    return res.json()


def _create_serial(client, headers, bill_id: str, serial_number: str, **extra):
    body = {
        "bill_id": bill_id,
        "serial_number": serial_number,
        "part_code": "CAP-100",
        "part_name": "Capacitor 100uF",
        "unit_price": 150.0,
        **extra,
    }
    return client.post("/serials", json=body, headers=headers)


def test_create_serial_writes_initial_entry(test_context, actor_headers):
    client, session_local = test_context
    bill = _create_bill(client, actor_headers)

    res = _create_serial(client, actor_headers, bill["id"], " SN-0001 ", current_category="IN_STOCK")
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["serial_number"] == "SN-0001"
    assert body["voucher_number"] == "VCH-1"
    assert body["part_code"] == "CAP-100"
    assert body["current_category"] == "IN_STOCK"
    assert body["categorized_date"] is not None
    assert body["created_by"] == "user1"
    assert body["context"]["is_chargeable"] is False

    history = client.get(f"/categories/history/{body['id']}").json()
    assert history["serial_exists"] is True
    assert len(history["items"]) == 1
    entry = history["items"][0]
    assert entry["sequence"] == 1
    assert entry["from_category"] is None
    assert entry["to_category"] == "IN_STOCK"
    assert entry["movement_type"] == "INITIAL_ENTRY"
    assert entry["actor_id"] == "user1"
    assert entry["actor_name"] == "User One"
    assert entry["reason"] == "Received on VCH-1"


def test_serial_defaults_to_uncategorized_without_categorized_date(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)

    body = _create_serial(client, actor_headers, bill["id"], "SN-0002").json()
    assert body["current_category"] == "UNCATEGORIZED"
    assert body["categorized_date"] is None


def test_duplicate_serial_number_is_rejected(test_context, actor_headers):
    client, session_local = test_context
    bill = _create_bill(client, actor_headers)
    assert _create_serial(client, actor_headers, bill["id"], "SN-0001").status_code == 200

    dup = _create_serial(client, actor_headers, bill["id"], "SN-0001")
    assert dup.status_code == 409, dup.text
    error = dup.json()["error"]
    assert error["code"] == "duplicate_serial_number"
    assert "SN-0001" in error["message"]

    with session_local() as db:
        assert len(db.execute(select(Serial)).scalars().all()) == 1
        assert len(db.execute(select(SerialMovement)).scalars().all()) == 1


def test_serial_numbers_are_case_sensitive(test_context, actor_headers):
    client, session_local = test_context
    bill = _create_bill(client, actor_headers)

    assert _create_serial(client, actor_headers, bill["id"], "SN-0001").status_code == 200
    lower = _create_serial(client, actor_headers, bill["id"], "sn-0001")
    assert lower.status_code == 200, lower.text
    assert client.get("/serials/by-number/sn-0001").json()["id"] == lower.json()["id"]

    with session_local() as db:
        numbers = sorted(db.execute(select(Serial.serial_number)).scalars().all())
        assert numbers == ["SN-0001", "sn-0001"]
        types = db.execute(select(SerialMovement.movement_type)).scalars().all()
        assert types == ["INITIAL_ENTRY", "INITIAL_ENTRY"]


def test_unit_price_must_fit_the_price_column(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)

    res = _create_serial(client, actor_headers, bill["id"], "SN-0001", unit_price=1e12)
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "validation_error"
    assert _create_serial(client, actor_headers, bill["id"], "SN-0001", unit_price=9_999_999_999).status_code == 200


def test_serial_on_unknown_bill_is_404(test_context, actor_headers):
    client, _ = test_context
    res = _create_serial(client, actor_headers, "missing-bill", "SN-0001")
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"


def test_serial_requires_some_part_reference(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)
    res = client.post(
        "/serials",
        json={"bill_id": bill["id"], "serial_number": "SN-0001"},
        headers=actor_headers,
    )
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "validation_error"


def test_initial_context_is_type_checked(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)
    res = _create_serial(
        client,
        actor_headers,
        bill["id"],
        "SN-0001",
        current_category="OG",
        context={"cashAmount": "lots"},
    )
    assert res.status_code == 422
    details = res.json()["error"]["details"]
    assert {"field": "cash_amount", "type": "InvalidFieldType"}.items() <= details[0].items()


def test_bulk_create_reports_each_failure_and_keeps_the_rest(test_context, actor_headers):
    client, session_local = test_context
    bill = _create_bill(client, actor_headers)
    assert _create_serial(client, actor_headers, bill["id"], "SN-0002").status_code == 200

    res = client.post(
        "/serials/bulk",
        json={
            "bill_id": bill["id"],
            "items": [
                {"serial_number": "SN-0001", "part_code": "CAP-100", "unit_price": 100},
                {"serial_number": "SN-0002", "part_code": "CAP-100", "unit_price": 100},
                {"serial_number": "SN-0003", "part_code": "CAP-100", "unit_price": 200},
                {"serial_number": "SN-0003", "part_code": "CAP-100", "unit_price": 200},
            ],
        },
        headers=actor_headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["created_count"] == 2
    assert body["failed_count"] == 2
    assert [s["serial_number"] for s in body["created"]] == ["SN-0001", "SN-0003"]
    assert [f["serial_number"] for f in body["failed"]] == ["SN-0002", "SN-0003"]
    assert {f["code"] for f in body["failed"]} == {"duplicate_serial_number"}

    with session_local() as db:
        numbers = sorted(db.execute(select(Serial.serial_number)).scalars().all())
        assert numbers == ["SN-0001", "SN-0002", "SN-0003"]
        assert len(db.execute(select(SerialMovement)).scalars().all()) == 3


def test_bulk_create_rejects_oversized_batches(test_context, actor_headers, monkeypatch):
    from stockdesk.core.config import settings

    client, _ = test_context
    bill = _create_bill(client, actor_headers)
    monkeypatch.setattr(settings, "bulk_max_items", 2)

    res = client.post(
        "/serials/bulk",
        json={
            "bill_id": bill["id"],
            "items": [{"serial_number": f"SN-{i}", "part_code": "CAP-100"} for i in range(3)],
        },
        headers=actor_headers,
    )
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "batch_too_large"


def test_generate_preview_and_register(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)

    preview = client.get("/serials/generate/preview", params={"prefix": "SN-", "start_number": 9, "count": 3})
    assert preview.status_code == 200
    assert preview.json()["serial_numbers"] == ["SN-0009", "SN-0010", "SN-0011"]

    res = client.post(
        "/serials/generate",
        json={
            "bill_id": bill["id"],
            "prefix": "SN-",
            "start_number": 1,
            "count": 3,
            "part_name": "Capacitor 100uF",
            "unit_price": 10,
            "current_category": "IN_STOCK",
        },
        headers=actor_headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["created_count"] == 3
    assert [s["serial_number"] for s in body["created"]] == ["SN-0001", "SN-0002", "SN-0003"]
    assert {s["current_category"] for s in body["created"]} == {"IN_STOCK"}


def test_generate_refuses_counts_over_the_limit(test_context):
    client, _ = test_context
    res = client.get("/serials/generate/preview", params={"prefix": "SN-", "count": 101})
    assert res.status_code == 422
    assert res.json()["error"]["code"] == "batch_too_large"


def test_search_matches_serial_part_voucher_and_context(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers, voucher_number="VCH-ALPHA")
    other_bill = _create_bill(client, actor_headers, voucher_number="VCH-BETA")
    first = _create_serial(client, actor_headers, bill["id"], "AB-1").json()
    _create_serial(client, actor_headers, other_bill["id"], "XY-2", part_code="RES-10", part_name="Resistor")

    client.put(
        f"/categories/categorize/{first['id']}",
        json={
            "category": "SPU_PENDING",
            "context": {
                "spuId": "SPU-991",
                "ticketId": "T-1",
                "customerName": "Globex Ltd",
                "spuDate": "2026-02-06",
            },
        },
        headers=actor_headers,
    )

    def numbers(**params):
        res = client.get("/serials", params=params)
        assert res.status_code == 200, res.text
        return [item["serial_number"] for item in res.json()["items"]]

    assert numbers(q="ab-") == ["AB-1"]
    assert numbers(q="resistor") == ["XY-2"]
    assert numbers(q="vch-beta") == ["XY-2"]
    assert numbers(q="spu-991") == ["AB-1"]
    assert numbers(q="globex") == ["AB-1"]
    assert numbers(category="SPU_PENDING") == ["AB-1"]
    assert numbers(bill_id=other_bill["id"]) == ["XY-2"]
    assert sorted(numbers()) == ["AB-1", "XY-2"]

    page = client.get("/serials", params={"limit": 1}).json()
    assert page["pagination"]["total"] == 2
    assert page["pagination"]["has_next"] is True


def test_exists_and_lookup_by_number(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)
    created = _create_serial(client, actor_headers, bill["id"], "SN-0001").json()

    exists = client.get("/serials/exists", params={"serial_number": "SN-0001"}).json()
    assert exists == {"serial_number": "SN-0001", "exists": True, "serial_id": created["id"]}
    missing = client.get("/serials/exists", params={"serial_number": "SN-9999"}).json()
    assert missing["exists"] is False

    assert client.get("/serials/by-number/SN-0001").json()["id"] == created["id"]
    assert client.get("/serials/by-number/SN-9999").status_code == 404
    assert client.get("/serials/missing-id").status_code == 404


def test_update_serial_recomputes_part_average_and_audits(test_context, actor_headers):
    client, session_local = test_context
    bill = _create_bill(client, actor_headers)
    first = _create_serial(client, actor_headers, bill["id"], "SN-0001", unit_price=100).json()
    _create_serial(client, actor_headers, bill["id"], "SN-0002", unit_price=200)

    part = client.get(f"/parts/{first['part_id']}").json()
    assert part["avg_unit_price"] == 150.0

    res = client.patch(
        f"/serials/{first['id']}",
        json={"unit_price": 300, "notes": "re-priced"},
        headers=actor_headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["unit_price"] == 300.0
    assert res.json()["notes"] == "re-priced"
    assert res.json()["updated_by"] == "user1"
    assert client.get(f"/parts/{first['part_id']}").json()["avg_unit_price"] == 250.0

    with session_local() as db:
        actions = db.execute(select(AuditLog.action)).scalars().all()
        assert "serial.update" in actions


def test_category_cannot_be_edited_through_update(test_context, actor_headers):
    client, _ = test_context
    bill = _create_bill(client, actor_headers)
    created = _create_serial(client, actor_headers, bill["id"], "SN-0001").json()

    res = client.patch(
        f"/serials/{created['id']}",
        json={"current_category": "IN_STOCK"},
        headers=actor_headers,
    )
    assert res.status_code == 422


def test_delete_serial_keeps_history(test_context, actor_headers):
    client, session_local = test_context
    bill = _create_bill(client, actor_headers)
    created = _create_serial(client, actor_headers, bill["id"], "SN-0001").json()
    client.put(
        f"/categories/categorize/{created['id']}",
        json={"category": "IN_STOCK", "context": {"location": "Rack A"}},
        headers=actor_headers,
    )

    res = client.delete(f"/serials/{created['id']}", headers=actor_headers)
    assert res.status_code == 200
    assert res.json() == {"ok": True, "id": created["id"]}
    assert client.get(f"/serials/{created['id']}").status_code == 404
    assert client.delete(f"/serials/{created['id']}", headers=actor_headers).status_code == 404

    history = client.get(f"/categories/history/{created['id']}").json()
    assert history["serial_exists"] is False
    assert history["current_category"] is None
    assert [entry["movement_type"] for entry in history["items"]] == ["INITIAL_ENTRY", "CATEGORIZED"]

    with session_local() as db:
        assert db.execute(select(AuditLog).where(AuditLog.action == "serial.delete")).scalar_one()


def test_actor_header_can_be_required(test_context, monkeypatch):
    from stockdesk.core.config import settings

    client, _ = test_context
    monkeypatch.setattr(settings, "require_actor_header", True)
    res = client.post("/bills", json={"bill_date": "2026-02-06"})
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "unauthorized"


def test_default_actor_is_used_without_headers(test_context):
    client, _ = test_context
    res = client.post("/bills", json={"bill_date": "2026-02-06"})
    assert res.status_code == 200, res.text
    assert res.json()["created_by"] == "system"


def test_storage_failure_fails_only_its_own_item(db_session, actor):
    bill = bill_service.create_bill(
        db_session, BillCreate(bill_date=date(2026, 2, 6), voucher_number="VCH-1"), actor
    )

    @event.listens_for(db_session, "before_flush")
    def reject_bad_serial(session, flush_context, instances):
        if any(isinstance(obj, Serial) and obj.serial_number == "SN-BAD" for obj in session.new):
            raise DataError("INSERT INTO serials", {}, Exception("numeric field overflow"))

    items = [
        SerialItemIn(serial_number=number, part_code="CAP-100", unit_price=10)
        for number in ("SN-0001", "SN-BAD", "SN-0002")
    ]
    summary = serial_service.bulk_create_serials(db_session, bill.id, items, actor)
    db_session.commit()

    assert [s.serial_number for s in summary.created] == ["SN-0001", "SN-0002"]
    assert len(summary.failed) == 1
    failure = summary.failed[0]
    assert failure["serial_number"] == "SN-BAD"
    assert failure["code"] == "storage_error"
    assert "numeric field overflow" in failure["message"]

    numbers = sorted(db_session.execute(select(Serial.serial_number)).scalars().all())
    assert numbers == ["SN-0001", "SN-0002"]
    assert len(db_session.execute(select(SerialMovement)).scalars().all()) == 2
