from datetime import date

from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError

from stockdesk.models.enums import Category
from stockdesk.models.movement import SerialMovement
from stockdesk.models.serial import Serial
from stockdesk.schemas.bill import BillCreate
from stockdesk.schemas.serial import SerialCreate
from stockdesk.services import bill_service, categorization_service, serial_service
from stockdesk.services.errors import ContextValidationError, SerialNotFoundError

SPU_CONTEXT = {
    "spuId": "SPU-1",
    "ticketId": "T-1",
    "customerName": "Acme",
    "spuDate": "2026-02-06",
}


def _seed_serials(db, actor, count: int, *, voucher_number: str = "VCH-1") -> list:
    bill = bill_service.create_bill(
        db, BillCreate(bill_date=date(2026, 2, 6), voucher_number=voucher_number), actor
    )
    serials = [
        serial_service.create_serial(
            db,
            SerialCreate(
                bill_id=bill.id,
                serial_number=f"{voucher_number}-SN-{i:04d}",
                part_code="CAP-100",
                unit_price=100,
            ),
            actor,
        )
        for i in range(1, count + 1)
    ]
    db.commit()
    return serials


def _movement_count(db, serial_id: str) -> int:
    return int(
        db.execute(
            select(func.count(SerialMovement.id)).where(SerialMovement.serial_id == serial_id)
        ).scalar_one()
    )


def test_movement_type_for_each_transition():
    assert categorization_service.movement_type_for(None, Category.IN_STOCK).value == "INITIAL_ENTRY"
    assert categorization_service.movement_type_for("UNCATEGORIZED", Category.IN_STOCK).value == "CATEGORIZED"
    assert categorization_service.movement_type_for("IN_STOCK", Category.IN_STOCK).value == "CONTEXT_UPDATE"
    assert categorization_service.movement_type_for("IN_STOCK", Category.OG).value == "CATEGORY_CHANGE"


def test_in_stock_to_og_records_category_change(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        serial = _seed_serials(db, actor, 1)[0]
        serial_id = serial.id

    first = client.put(
        f"/categories/categorize/{serial_id}",
        json={"category": "IN_STOCK", "context": {"location": "Rack A"}},
        headers=actor_headers,
    )
    assert first.status_code == 200, first.text

    res = client.put(
        f"/categories/categorize/{serial_id}",
        json={
            "category": "OG",
            "context": {"customerName": "Acme", "cashAmount": 500, "paymentStatus": "PENDING"},
            "reason": "Sold over the counter",
        },
        headers=actor_headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["current_category"] == "OG"
    assert body["context"]["is_chargeable"] is True
    assert body["context"]["charge_amount"] == 500.0
    assert body["context"]["customer_name"] == "Acme"
    assert body["categorized_date"] is not None

    history = client.get(f"/categories/history/{serial_id}").json()
    assert [entry["movement_type"] for entry in history["items"]] == [
        "INITIAL_ENTRY",
        "CATEGORIZED",
        "CATEGORY_CHANGE",
    ]
    last = history["items"][-1]
    assert last["from_category"] == "IN_STOCK"
    assert last["to_category"] == "OG"
    assert last["reason"] == "Sold over the counter"
    assert last["actor_id"] == "user1"
    assert last["context_snapshot"]["cash_amount"] == 500.0
    assert [entry["sequence"] for entry in history["items"]] == [1, 2, 3]


def test_invalid_context_changes_nothing(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        serial_id = _seed_serials(db, actor, 1)[0].id

    body = dict(SPU_CONTEXT)
    body.pop("spuId")
    res = client.put(
        f"/categories/categorize/{serial_id}",
        json={"category": "SPU_PENDING", "context": body},
        headers=actor_headers,
    )
    assert res.status_code == 422
    error = res.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"] == [
        {"field": "spu_id", "message": "Field required", "type": "MissingRequiredField"}
    ]

    with session_local() as db:
        serial = db.get(Serial, serial_id)
        assert serial.current_category == "UNCATEGORIZED"
        assert serial.categorized_date is None
        assert _movement_count(db, serial_id) == 1


def test_categorize_unknown_serial_is_404(test_context, actor_headers):
    client, _ = test_context
    res = client.put(
        "/categories/categorize/missing",
        json={"category": "IN_STOCK", "context": {}},
        headers=actor_headers,
    )
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "serial_not_found"


def test_unknown_category_is_rejected_at_the_edge(test_context, actor_headers):
    client, _ = test_context
    res = client.put(
        "/categories/categorize/any",
        json={"category": "SCRAPPED", "context": {}},
        headers=actor_headers,
    )
    assert res.status_code == 422


def test_bulk_categorize_isolates_missing_ids(db_session, actor):
    serials = _seed_serials(db_session, actor, 8)
    ids = [s.id for s in serials]
    requested = ids[:4] + ["missing-1"] + ids[4:] + ["missing-2"]

    summary = categorization_service.bulk_categorize(
        db_session, requested, Category.SPU_PENDING, SPU_CONTEXT, actor
    )
    db_session.commit()

    assert len(summary.updated) == 8
    assert [f["serial_id"] for f in summary.failed] == ["missing-1", "missing-2"]
    assert {f["code"] for f in summary.failed} == {"serial_not_found"}
    for serial_id in ids:
        assert db_session.get(Serial, serial_id).current_category == "SPU_PENDING"
        assert _movement_count(db_session, serial_id) == 2


def test_bulk_categorize_storage_failure_stays_with_its_item(db_session, actor):
    serials = _seed_serials(db_session, actor, 3)
    ids = [s.id for s in serials]

    @event.listens_for(db_session, "before_flush")
    def reject_second_serial(session, flush_context, instances):
        if any(isinstance(obj, Serial) and obj.id == ids[1] for obj in session.dirty):
            raise OperationalError("UPDATE serials", {}, Exception("database is locked"))

    summary = categorization_service.bulk_categorize(db_session, ids, Category.IN_STOCK, {}, actor)
    db_session.commit()

    assert [s.id for s in summary.updated] == [ids[0], ids[2]]
    assert [(f["serial_id"], f["code"]) for f in summary.failed] == [(ids[1], "storage_error")]
    assert db_session.get(Serial, ids[1]).current_category == "UNCATEGORIZED"
    assert _movement_count(db_session, ids[1]) == 1
    assert _movement_count(db_session, ids[0]) == 2

def test_bulk_categorize_over_http(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        ids = [s.id for s in _seed_serials(db, actor, 3)]

    res = client.put(
        "/categories/bulk-categorize",
        json={"serial_ids": ids + ["nope"], "category": "RETURN", "context": {"returnReason": "DOA"}},
        headers=actor_headers,
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["updated_count"] == 3
    assert body["failed_count"] == 1
    assert body["failed"][0]["serial_id"] == "nope"
    assert {item["current_category"] for item in body["updated"]} == {"RETURN"}


def test_bulk_categorize_with_invalid_context_fails_every_item(db_session, actor):
    serials = _seed_serials(db_session, actor, 2)
    summary = categorization_service.bulk_categorize(
        db_session, [s.id for s in serials], Category.RETURN, {}, actor
    )
    assert summary.updated == []
    assert {f["code"] for f in summary.failed} == {"validation_error"}
    assert summary.failed[0]["details"][0]["field"] == "return_reason"


def test_history_tracks_every_call_and_ends_at_current_category(db_session, actor):
    serial = _seed_serials(db_session, actor, 1)[0]
    steps = [
        (Category.IN_STOCK, {}),
        (Category.IN_STOCK, {"location": "Rack B"}),
        (Category.SPU_PENDING, SPU_CONTEXT),
        (Category.SPU_CLEARED, SPU_CONTEXT),
        (Category.RETURN_PENDING, {}),
    ]
    for category, context in steps:
        categorization_service.categorize(db_session, serial.id, category, context, actor)
    db_session.commit()

    from stockdesk.services.movement_service import get_history

    history = get_history(db_session, serial.id)
    assert len(history) == len(steps) + 1
    assert [entry.sequence for entry in history] == list(range(1, len(steps) + 2))
    assert history[-1].to_category == db_session.get(Serial, serial.id).current_category
    assert [entry.movement_type for entry in history] == [
        "INITIAL_ENTRY",
        "CATEGORIZED",
        "CONTEXT_UPDATE",
        "CATEGORY_CHANGE",
        "CATEGORY_CHANGE",
        "CATEGORY_CHANGE",
    ]
    assert history[2].context_snapshot["location"] == "Rack B"
    for previous, current in zip(history, history[1:]):
        assert current.from_category == previous.to_category


def test_categorize_replaces_context_wholesale(db_session, actor):
    serial = _seed_serials(db_session, actor, 1)[0]
    categorization_service.categorize(db_session, serial.id, Category.SPU_PENDING, SPU_CONTEXT, actor)
    updated, _ = categorization_service.categorize(
        db_session, serial.id, Category.IN_STOCK, {"location": "Bin 4"}, actor
    )
    assert updated.context_json["location"] == "Bin 4"
    assert "spu_id" not in updated.context_json


def test_categorize_raises_for_missing_serial(db_session, actor):
    try:
        categorization_service.categorize(db_session, "missing", Category.IN_STOCK, {}, actor)
    except SerialNotFoundError as exc:
        assert exc.status_code == 404
    else:
        raise AssertionError("expected SerialNotFoundError")


def test_context_validation_error_carries_every_field(db_session, actor):
    serial = _seed_serials(db_session, actor, 1)[0]
    try:
        categorization_service.categorize(db_session, serial.id, Category.SPU_PENDING, {}, actor)
    except ContextValidationError as exc:
        assert [issue.field for issue in exc.issues] == ["spu_id", "ticket_id", "customer_name", "spu_date"]
    else:
        raise AssertionError("expected ContextValidationError")


def test_payment_update_on_chargeable_serial(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        serial_id = _seed_serials(db, actor, 1)[0].id

    client.put(
        f"/categories/categorize/{serial_id}",
        json={
            "category": "OG",
            "context": {"customerName": "Acme", "cashAmount": 500, "paymentStatus": "PENDING"},
        },
        headers=actor_headers,
    )
    res = client.put(
        f"/categories/payment/{serial_id}",
        json={"payment_status": "PAID", "payment_date": "2026-02-10", "payment_mode": "UPI"},
        headers=actor_headers,
    )
    assert res.status_code == 200, res.text
    context = res.json()["context"]
    assert context["payment_status"] == "PAID"
    assert context["payment_date"] == "2026-02-10"
    assert context["payment_mode"] == "UPI"
    assert context["customer_name"] == "Acme"
    assert res.json()["current_category"] == "OG"

    history = client.get(f"/categories/history/{serial_id}").json()["items"]
    assert history[-1]["movement_type"] == "PAYMENT_UPDATE"
    assert history[-1]["from_category"] == "OG"
    assert history[-1]["to_category"] == "OG"


def test_payment_update_refused_when_not_chargeable(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        serial_id = _seed_serials(db, actor, 1)[0].id

    client.put(
        f"/categories/categorize/{serial_id}",
        json={"category": "IN_STOCK", "context": {}},
        headers=actor_headers,
    )
    res = client.put(
        f"/categories/payment/{serial_id}",
        json={"payment_status": "PAID"},
        headers=actor_headers,
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "not_chargeable"

    with session_local() as db:
        assert _movement_count(db, serial_id) == 2


def test_list_by_category_with_summary(test_context, actor_headers, actor):
    client, session_local = test_context
    with session_local() as db:
        ids = [s.id for s in _seed_serials(db, actor, 3)]

    for serial_id in ids[:2]:
        client.put(
            f"/categories/categorize/{serial_id}",
            json={"category": "SPU_PENDING", "context": SPU_CONTEXT},
            headers=actor_headers,
        )

    res = client.get("/categories/SPU_PENDING/serials")
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["category"] == "SPU_PENDING"
    assert body["summary"] == {"count": 2, "total_value": 200.0}
    assert {item["id"] for item in body["items"]} == set(ids[:2])
    assert body["pagination"]["total"] == 2

    assert client.get("/categories/SPU_PENDING/serials", params={"q": "acme"}).json()["summary"]["count"] == 2
    assert client.get("/categories/SPU_PENDING/serials", params={"q": "zzz"}).json()["items"] == []
    assert client.get("/categories/UNCATEGORIZED/serials").json()["summary"]["count"] == 1
    assert client.get("/categories/NOPE/serials").status_code == 422


def test_schema_and_validate_endpoints(test_context):
    client, _ = test_context
    schema = client.get("/categories/schema").json()["items"]
    spu = next(entry for entry in schema if entry["category"] == "SPU_PENDING")
    assert spu["required"] == ["spu_id", "ticket_id", "customer_name", "spu_date"]

    ok = client.post("/categories/validate", json={"category": "spu_pending", "context": SPU_CONTEXT}).json()
    assert ok["valid"] is True
    assert ok["category"] == "SPU_PENDING"
    assert ok["context"]["spu_id"] == "SPU-1"

    bad = client.post("/categories/validate", json={"category": "OG", "context": {"cashAmount": "x"}})
    assert bad.status_code == 200
    body = bad.json()
    assert body["valid"] is False
    assert body["context"] is None
    kinds = {(issue["field"], issue["type"]) for issue in body["issues"]}
    assert ("cash_amount", "InvalidFieldType") in kinds
    assert ("customer_name", "MissingRequiredField") in kinds
