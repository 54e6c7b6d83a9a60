from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockdesk.core.id_utils import generate_id, generate_voucher_number
from stockdesk.core.money import ZERO_MONEY, to_money
from stockdesk.core.security_current import Actor
from stockdesk.models.bill import Bill
from stockdesk.models.serial import Serial
from stockdesk.schemas.bill import BillCreate, BillUpdate
from stockdesk.services.audit_service import log_audit_event
from stockdesk.services.errors import (
    BillNotFoundError,
    DuplicateVoucherNumberError,
    ReferentialIntegrityError,
)
from stockdesk.services.master_data_service import get_supplier

MAX_VOUCHER_ATTEMPTS = 5


def get_bill(db: Session, bill_id: str) -> Bill:
    bill = db.get(Bill, bill_id)
    if bill is None:
        raise BillNotFoundError(bill_id)
    return bill


def find_bill_by_voucher(db: Session, voucher_number: str) -> Bill | None:
    return db.execute(
        select(Bill).where(Bill.voucher_number == voucher_number.strip())
    ).scalar_one_or_none()


def get_bill_by_voucher(db: Session, voucher_number: str) -> Bill:
    bill = find_bill_by_voucher(db, voucher_number)
    if bill is None:
        raise BillNotFoundError(voucher_number)
    return bill


def _unused_voucher_number(db: Session) -> str:
    for _ in range(MAX_VOUCHER_ATTEMPTS):
        candidate = generate_voucher_number()
        if find_bill_by_voucher(db, candidate) is None:
            return candidate
    raise DuplicateVoucherNumberError(candidate)


def create_bill(db: Session, payload: BillCreate, actor: Actor, *, source: str = "manual") -> Bill:
    supplier_name = payload.supplier_name
    if payload.supplier_id:
        supplier_name = get_supplier(db, payload.supplier_id).name

    if payload.voucher_number:
        voucher_number = payload.voucher_number
        if find_bill_by_voucher(db, voucher_number) is not None:
            raise DuplicateVoucherNumberError(voucher_number)
    else:
        voucher_number = _unused_voucher_number(db)

    bill = Bill(
        id=generate_id(),
        supplier_id=payload.supplier_id,
        supplier_name=supplier_name,
        voucher_number=voucher_number,
        company_bill_number=payload.company_bill_number,
        bill_date=payload.bill_date,
        total_amount=to_money(payload.total_amount),
        notes=payload.notes,
        source=source,
        created_by=actor.id,
    )
    try:
        with db.begin_nested():
            db.add(bill)
            db.flush()
    except IntegrityError:
        raise DuplicateVoucherNumberError(voucher_number) from None

    log_audit_event(
        db,
        actor=actor,
        action="bill.create",
        target_type="bill",
        target_id=bill.id,
        metadata_json={"voucher_number": voucher_number, "source": source},
    )
    return bill


def update_bill(db: Session, bill_id: str, payload: BillUpdate, actor: Actor) -> Bill:
    bill = get_bill(db, bill_id)
    changes = payload.model_dump(exclude_unset=True)
    if "supplier_id" in changes:
        supplier_id = changes["supplier_id"]
        bill.supplier_id = supplier_id
        if supplier_id:
            bill.supplier_name = get_supplier(db, supplier_id).name
    if changes.get("bill_date") is not None:
        bill.bill_date = changes["bill_date"]
    if "company_bill_number" in changes:
        bill.company_bill_number = changes["company_bill_number"]
    if changes.get("total_amount") is not None:
        bill.total_amount = to_money(changes["total_amount"])
    if "notes" in changes:
        bill.notes = changes["notes"]
    bill.updated_by = actor.id
    db.flush()
    log_audit_event(
        db,
        actor=actor,
        action="bill.update",
        target_type="bill",
        target_id=bill.id,
        metadata_json={"changes": sorted(changes)},
    )
    return bill


def bill_serial_count(db: Session, bill_id: str) -> int:
    return int(db.execute(select(func.count(Serial.id)).where(Serial.bill_id == bill_id)).scalar_one())


def delete_bill(db: Session, bill_id: str, actor: Actor) -> None:
    bill = get_bill(db, bill_id)
    serial_count = bill_serial_count(db, bill.id)
    if serial_count:
        raise ReferentialIntegrityError(
            f"Bill {bill.voucher_number} still has {serial_count} serial(s); delete them first"
        )
    log_audit_event(
        db,
        actor=actor,
        action="bill.delete",
        target_type="bill",
        target_id=bill.id,
        metadata_json={"voucher_number": bill.voucher_number},
    )
    db.delete(bill)
    db.flush()


def list_bills(
    db: Session,
    *,
    q: str | None = None,
    supplier_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Bill], int]:
    conditions = []
    if q:
        needle = q.strip().lower()
        conditions.append(
            or_(
                func.lower(Bill.voucher_number).contains(needle, autoescape=True),
                func.lower(func.coalesce(Bill.company_bill_number, "")).contains(needle, autoescape=True),
                func.lower(func.coalesce(Bill.supplier_name, "")).contains(needle, autoescape=True),
            )
        )
    if supplier_id:
        conditions.append(Bill.supplier_id == supplier_id)

    total = int(db.execute(select(func.count(Bill.id)).where(*conditions)).scalar_one())
    rows = db.execute(
        select(Bill)
        .where(*conditions)
        .order_by(Bill.bill_date.desc(), Bill.created_at.desc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    return list(rows), total


def bill_rollup(db: Session, bill_id: str) -> list[dict]:
    rows = db.execute(
        select(
            Serial.current_category,
            func.count(Serial.id),
            func.coalesce(func.sum(Serial.unit_price), 0),
        )
        .where(Serial.bill_id == bill_id)
        .group_by(Serial.current_category)
        .order_by(Serial.current_category.asc())
    ).all()
    return [
        {
            "category": category,
            "count": int(count),
            "total_value": float(to_money(Decimal(str(total or ZERO_MONEY)))),
        }
        for category, count, total in rows
    ]


def recompute_bill_total(db: Session, bill: Bill) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(Serial.unit_price), 0)).where(Serial.bill_id == bill.id)
    ).scalar_one()
    bill.total_amount = to_money(Decimal(str(total or 0)))
    db.flush()
    return bill.total_amount
