import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockdesk.core.config import settings
from stockdesk.core.id_utils import generate_id
from stockdesk.core.money import to_money
from stockdesk.core.observability import log_event
from stockdesk.core.security_current import Actor
from stockdesk.models.bill import Bill
from stockdesk.models.enums import Category, MovementType
from stockdesk.models.part import Part
from stockdesk.models.serial import Serial
from stockdesk.schemas.serial import SerialCreate, SerialGenerateIn, SerialItemIn, SerialOut, SerialUpdate
from stockdesk.services.audit_service import log_audit_event
from stockdesk.services.bill_service import get_bill
from stockdesk.services.category_registry import parse_category, validate_context
from stockdesk.services.errors import (
    BatchTooLargeError,
    DuplicateSerialNumberError,
    InvalidSerialNumberError,
    SerialNotFoundError,
    StockDeskError,
    StorageError,
)
from stockdesk.services.master_data_service import find_or_create_part, get_part, recompute_part_average
from stockdesk.services.movement_service import append_movement

logger = logging.getLogger("stockdesk.services.serials")

SERIAL_NUMBER_PAD = 4


@dataclass
class BulkCreateSummary:
    created: list[Serial] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def item_error(exc: Exception) -> StockDeskError:
    """Map a database failure inside one batch item to that item's own error."""
    if isinstance(exc, StockDeskError):
        return exc
    reason = getattr(exc, "orig", None) or exc
    return StorageError(f"Could not be stored: {reason}")


def failure_entry(
    exc: StockDeskError | SQLAlchemyError,
    *,
    serial_number: str | None = None,
    serial_id: str | None = None,
) -> dict[str, Any]:
    exc = item_error(exc)
    return {
        "serial_number": serial_number,
        "serial_id": serial_id,
        "code": exc.code,
        "message": exc.message,
        "details": exc.details,
    }


def check_batch_size(size: int, limit: int | None = None) -> None:
    limit = limit or settings.bulk_max_items
    if size > limit:
        raise BatchTooLargeError(size, limit)


# Reads

def get_serial(db: Session, serial_id: str) -> Serial:
    serial = db.get(Serial, serial_id)
    if serial is None:
        raise SerialNotFoundError(serial_id)
    return serial


def find_serial_by_number(db: Session, serial_number: str) -> Serial | None:
    return db.execute(
        select(Serial).where(Serial.serial_number == serial_number.strip())
    ).scalar_one_or_none()


def get_serial_by_number(db: Session, serial_number: str) -> Serial:
    serial = find_serial_by_number(db, serial_number)
    if serial is None:
        raise SerialNotFoundError(serial_number)
    return serial


def serial_exists(db: Session, serial_number: str) -> bool:
    return find_serial_by_number(db, serial_number) is not None


def list_serials_for_bill(db: Session, bill_id: str) -> list[Serial]:
    get_bill(db, bill_id)
    q = (
        select(Serial)
        .where(Serial.bill_id == bill_id)
        .order_by(Serial.created_at.asc(), Serial.serial_number.asc())
    )
    return list(db.execute(q).scalars().all())


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def search_serials(
    db: Session,
    *,
    q: str | None = None,
    category: Category | str | None = None,
    bill_id: str | None = None,
    part_id: str | None = None,
    created_from: date | None = None,
    created_to: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Serial], int]:
    """
    Case-insensitive substring search over serial number, part, voucher and
    the SPU id / customer name held in the context. Filters are ANDed.
    """
    conditions = []
    if q and q.strip():
        needle = q.strip().lower()
        searchable = [
            Serial.serial_number,
            Serial.part_name,
            Serial.part_code,
            Bill.voucher_number,
            Serial.context_json["spu_id"].as_string(),
            Serial.context_json["customer_name"].as_string(),
        ]
        conditions.append(
            or_(*(func.lower(func.coalesce(col, "")).contains(needle, autoescape=True) for col in searchable))
        )
    if category:
        conditions.append(Serial.current_category == parse_category(category).value)
    if bill_id:
        conditions.append(Serial.bill_id == bill_id)
    if part_id:
        conditions.append(Serial.part_id == part_id)
    if created_from:
        conditions.append(Serial.created_at >= _day_start(created_from))
    if created_to:
        conditions.append(Serial.created_at < _day_start(created_to + timedelta(days=1)))

    base = select(Serial).join(Bill, Bill.id == Serial.bill_id).where(*conditions)
    total = int(db.execute(select(func.count()).select_from(base.subquery())).scalar_one())
    rows = db.execute(
        base.order_by(Serial.created_at.desc(), Serial.serial_number.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), total


def serials_out(db: Session, serials: Iterable[Serial]) -> list[SerialOut]:
    serials = list(serials)
    bill_ids = {s.bill_id for s in serials}
    vouchers: dict[str, str] = {}
    if bill_ids:
        vouchers = dict(
            db.execute(select(Bill.id, Bill.voucher_number).where(Bill.id.in_(bill_ids))).all()
        )
    return [serial_out(s, voucher_number=vouchers.get(s.bill_id)) for s in serials]


def serial_out(serial: Serial, *, voucher_number: str | None = None) -> SerialOut:
    return SerialOut(
        id=serial.id,
        serial_number=serial.serial_number,
        bill_id=serial.bill_id,
        voucher_number=voucher_number,
        part_id=serial.part_id,
        part_name=serial.part_name,
        part_code=serial.part_code,
        unit_price=float(serial.unit_price or 0),
        current_category=serial.current_category,
        context=dict(serial.context_json or {}),
        categorized_date=serial.categorized_date,
        notes=serial.notes,
        created_by=serial.created_by,
        updated_by=serial.updated_by,
        created_at=serial.created_at,
        updated_at=serial.updated_at,
    )


# Writes

def _resolve_part(db: Session, item: SerialItemIn, actor: Actor) -> Part:
    if item.part_id:
        return get_part(db, item.part_id)
    part, _ = find_or_create_part(db, actor=actor, code=item.part_code, name=item.part_name)
    return part


def _check_serial_number(serial_number: str) -> str:
    cleaned = serial_number.strip()
    if not cleaned:
        raise InvalidSerialNumberError("Serial number is required")
    if len(cleaned) > settings.serial_number_max_length:
        raise InvalidSerialNumberError(
            f"Serial number exceeds {settings.serial_number_max_length} characters"
        )
    return cleaned


def create_serial(
    db: Session,
    item: SerialItemIn,
    actor: Actor,
    *,
    bill: Bill | None = None,
    part: Part | None = None,
    reason: str | None = None,
    update_part_average: bool = True,
) -> Serial:
    """
    Register one serial on a bill and write its INITIAL_ENTRY movement.

    The initial context only has its field types checked; required context
    fields are enforced when the serial is categorized.
    """
    if bill is None:
        if not isinstance(item, SerialCreate):
            raise InvalidSerialNumberError("bill_id is required")
        bill = get_bill(db, item.bill_id)

    serial_number = _check_serial_number(item.serial_number)
    if serial_exists(db, serial_number):
        raise DuplicateSerialNumberError(serial_number)

    category = parse_category(item.current_category)
    context = validate_context(category, item.context, enforce_required=False)
    if part is None:
        part = _resolve_part(db, item, actor)

    now = _utcnow()
    serial = Serial(
        id=generate_id(),
        serial_number=serial_number,
        bill_id=bill.id,
        part_id=part.id,
        part_name=part.name,
        part_code=part.code,
        unit_price=to_money(item.unit_price),
        current_category=category.value,
        context_json=context,
        categorized_date=now if category != Category.UNCATEGORIZED else None,
        notes=item.notes,
        created_by=actor.id,
    )
    try:
        with db.begin_nested():
            db.add(serial)
            db.flush()
    except IntegrityError as exc:
        if serial_exists(db, serial_number):
            raise DuplicateSerialNumberError(serial_number) from None
        raise item_error(exc) from exc
    except SQLAlchemyError as exc:
        raise item_error(exc) from exc

    append_movement(
        db,
        serial_id=serial.id,
        from_category=None,
        to_category=category,
        movement_type=MovementType.INITIAL_ENTRY,
        actor=actor,
        reason=reason or f"Received on {bill.voucher_number}",
        context_snapshot=context,
        created_at=now,
        serial=serial,
    )
    if update_part_average:
        recompute_part_average(db, part.id)
    return serial


def bulk_create_serials(
    db: Session,
    bill_id: str,
    items: list[SerialItemIn],
    actor: Actor,
) -> BulkCreateSummary:
    """Each item commits or fails on its own; failures never abort the batch."""
    check_batch_size(len(items))
    bill = get_bill(db, bill_id)
    summary = BulkCreateSummary()
    touched_parts: set[str] = set()
    for item in items:
        try:
            with db.begin_nested():
                serial = create_serial(db, item, actor, bill=bill, update_part_average=False)
        except (StockDeskError, SQLAlchemyError) as exc:
            summary.failed.append(failure_entry(exc, serial_number=item.serial_number))
            continue
        summary.created.append(serial)
        touched_parts.add(serial.part_id)

    for part_id in touched_parts:
        recompute_part_average(db, part_id)

    log_event(
        logger,
        "serials.bulk_create",
        bill_id=bill.id,
        created=len(summary.created),
        failed=len(summary.failed),
        actor_id=actor.id,
    )
    return summary


def generate_serial_numbers(prefix: str, start_number: int, count: int) -> list[str]:
    limit = settings.serial_autogen_max_count
    if count < 1:
        raise InvalidSerialNumberError("count must be at least 1")
    if count > limit:
        raise BatchTooLargeError(count, limit)
    if start_number < 0:
        raise InvalidSerialNumberError("start_number must not be negative")
    return [f"{prefix}{str(start_number + i).zfill(SERIAL_NUMBER_PAD)}" for i in range(count)]


def generate_serials(db: Session, payload: SerialGenerateIn, actor: Actor) -> BulkCreateSummary:
    numbers = generate_serial_numbers(payload.prefix, payload.start_number, payload.count)
    items = [
        SerialItemIn(
            serial_number=number,
            part_id=payload.part_id,
            part_code=payload.part_code,
            part_name=payload.part_name,
            unit_price=payload.unit_price,
            current_category=payload.current_category,
        )
        for number in numbers
    ]
    return bulk_create_serials(db, payload.bill_id, items, actor)


def update_serial(db: Session, serial_id: str, payload: SerialUpdate, actor: Actor) -> Serial:
    serial = get_serial(db, serial_id)
    changes = payload.model_dump(exclude_unset=True)
    parts_to_recompute = {serial.part_id}

    if changes.get("part_id") and changes["part_id"] != serial.part_id:
        part = get_part(db, changes["part_id"])
        serial.part_id = part.id
        serial.part_name = part.name
        serial.part_code = part.code
        parts_to_recompute.add(part.id)
    if changes.get("unit_price") is not None:
        serial.unit_price = to_money(changes["unit_price"])
    if "notes" in changes:
        serial.notes = changes["notes"]
    serial.updated_by = actor.id
    db.flush()

    for part_id in parts_to_recompute:
        recompute_part_average(db, part_id)
    log_audit_event(
        db,
        actor=actor,
        action="serial.update",
        target_type="serial",
        target_id=serial.id,
        metadata_json={"serial_number": serial.serial_number, "changes": sorted(changes)},
    )
    return serial


def delete_serial(db: Session, serial_id: str, actor: Actor) -> None:
    """Hard delete. The movement history of the serial stays in place."""
    serial = get_serial(db, serial_id)
    part_id = serial.part_id
    log_audit_event(
        db,
        actor=actor,
        action="serial.delete",
        target_type="serial",
        target_id=serial.id,
        metadata_json={
            "serial_number": serial.serial_number,
            "bill_id": serial.bill_id,
            "category": serial.current_category,
        },
    )
    db.delete(serial)
    db.flush()
    recompute_part_average(db, part_id)


def serial_value_total(serials: Iterable[Serial]) -> Decimal:
    return to_money(sum((Decimal(str(s.unit_price or 0)) for s in serials), Decimal("0")))
