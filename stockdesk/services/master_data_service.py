from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockdesk.core.id_utils import generate_id, generate_shortuuid, slugify_code
from stockdesk.core.money import ZERO_MONEY, average_money, to_money
from stockdesk.core.security_current import Actor
from stockdesk.models.customer import Customer
from stockdesk.models.part import Part
from stockdesk.models.serial import Serial
from stockdesk.models.supplier import Supplier
from stockdesk.schemas.master import CustomerCreate, PartCreate, PartUpdate, SupplierCreate
from stockdesk.services.audit_service import log_audit_event
from stockdesk.services.errors import (
    CustomerNotFoundError,
    DuplicatePartCodeError,
    DuplicateSupplierError,
    PartNotFoundError,
    ReferentialIntegrityError,
    SupplierNotFoundError,
)

MAX_CODE_SUFFIX_ATTEMPTS = 50


# Parts

def get_part(db: Session, part_id: str) -> Part:
    part = db.get(Part, part_id)
    if part is None:
        raise PartNotFoundError(part_id)
    return part


def find_part_by_code(db: Session, code: str) -> Part | None:
    return db.execute(
        select(Part).where(func.lower(Part.code) == code.strip().lower())
    ).scalar_one_or_none()


def find_part_by_name(db: Session, name: str) -> Part | None:
    return db.execute(
        select(Part)
        .where(func.lower(Part.name) == name.strip().lower())
        .order_by(Part.created_at.asc())
        .limit(1)
    ).scalar_one_or_none()


def _available_code(db: Session, base: str) -> str:
    if find_part_by_code(db, base) is None:
        return base
    for suffix in range(2, MAX_CODE_SUFFIX_ATTEMPTS + 2):
        candidate = f"{base[:58]}-{suffix}"
        if find_part_by_code(db, candidate) is None:
            return candidate
    return f"{base[:55]}-{generate_shortuuid()[:8].upper()}"


def create_part(db: Session, payload: PartCreate, actor: Actor, *, auto_created: bool = False) -> Part:
    if payload.code:
        code = payload.code.upper()
        if find_part_by_code(db, code) is not None:
            raise DuplicatePartCodeError(code)
    else:
        code = _available_code(db, slugify_code(payload.name) or "PART")

    part = Part(
        id=generate_id(),
        code=code,
        name=payload.name,
        category=payload.category,
        unit=payload.unit,
        description=payload.description,
        reorder_level=payload.reorder_level,
        avg_unit_price=ZERO_MONEY,
        auto_created=auto_created,
        created_by=actor.id,
    )
    try:
        with db.begin_nested():
            db.add(part)
            db.flush()
    except IntegrityError:
        raise DuplicatePartCodeError(code) from None

    log_audit_event(
        db,
        actor=actor,
        action="part.create",
        target_type="part",
        target_id=part.id,
        metadata_json={"code": part.code, "name": part.name, "auto_created": auto_created},
    )
    return part


def find_or_create_part(
    db: Session,
    *,
    actor: Actor,
    code: str | None = None,
    name: str | None = None,
) -> tuple[Part, bool]:
    """
    Resolve a part by code (case-insensitive), falling back to name when no
    code is given. Returns (part, created).
    """
    if code:
        existing = find_part_by_code(db, code)
    elif name:
        existing = find_part_by_name(db, name)
    else:
        raise PartNotFoundError("<no code or name>")
    if existing is not None:
        return existing, False

    payload = PartCreate(name=name or code, code=code)
    try:
        return create_part(db, payload, actor, auto_created=True), True
    except DuplicatePartCodeError:
        # Lost a race on the code; the winner is now visible.
        existing = find_part_by_code(db, code or "")
        if existing is None:
            raise
        return existing, False


def update_part(db: Session, part_id: str, payload: PartUpdate, actor: Actor) -> Part:
    part = get_part(db, part_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    for field, value in changes.items():
        setattr(part, field, value)
    db.flush()
    log_audit_event(
        db,
        actor=actor,
        action="part.update",
        target_type="part",
        target_id=part.id,
        metadata_json={"changes": sorted(changes)},
    )
    return part


def delete_part(db: Session, part_id: str, actor: Actor) -> None:
    part = get_part(db, part_id)
    in_use = int(
        db.execute(select(func.count(Serial.id)).where(Serial.part_id == part.id)).scalar_one()
    )
    if in_use:
        raise ReferentialIntegrityError(
            f"Part {part.code} is referenced by {in_use} serial(s) and cannot be deleted"
        )
    log_audit_event(
        db,
        actor=actor,
        action="part.delete",
        target_type="part",
        target_id=part.id,
        metadata_json={"code": part.code},
    )
    db.delete(part)
    db.flush()


def list_parts(db: Session, *, q: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[Part], int]:
    stmt = select(Part)
    count_stmt = select(func.count(Part.id))
    if q:
        needle = q.strip().lower()
        cond = func.lower(Part.code).contains(needle, autoescape=True) | func.lower(Part.name).contains(
            needle, autoescape=True
        )
        stmt = stmt.where(cond)
        count_stmt = count_stmt.where(cond)
    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(stmt.order_by(Part.code.asc()).offset(offset).limit(limit)).scalars().all()
    return list(rows), total


def recompute_part_average(db: Session, part_id: str) -> Decimal:
    """
    Average unit price over the part's current serials. With no serials left
    the last known value is kept.
    """
    part = db.get(Part, part_id)
    if part is None:
        return ZERO_MONEY
    prices = [
        Decimal(str(value))
        for value in db.execute(select(Serial.unit_price).where(Serial.part_id == part_id)).scalars().all()
    ]
    if prices:
        part.avg_unit_price = average_money(prices)
        db.flush()
    return to_money(part.avg_unit_price or ZERO_MONEY)


# Suppliers

def get_supplier(db: Session, supplier_id: str) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if supplier is None:
        raise SupplierNotFoundError(supplier_id)
    return supplier


def find_supplier_by_name(db: Session, name: str) -> Supplier | None:
    return db.execute(
        select(Supplier).where(func.lower(Supplier.name) == name.strip().lower())
    ).scalar_one_or_none()


def create_supplier(db: Session, payload: SupplierCreate, actor: Actor) -> Supplier:
    if find_supplier_by_name(db, payload.name) is not None:
        raise DuplicateSupplierError(f"Supplier '{payload.name}' already exists")
    supplier = Supplier(
        id=generate_id(),
        name=payload.name,
        contact_person=payload.contact_person,
        phone=payload.phone,
        email=payload.email,
        address=payload.address,
        gst_number=payload.gst_number,
        created_by=actor.id,
    )
    try:
        with db.begin_nested():
            db.add(supplier)
            db.flush()
    except IntegrityError:
        raise DuplicateSupplierError(f"Supplier '{payload.name}' already exists") from None
    log_audit_event(
        db,
        actor=actor,
        action="supplier.create",
        target_type="supplier",
        target_id=supplier.id,
        metadata_json={"name": supplier.name},
    )
    return supplier


def find_or_create_supplier(db: Session, name: str, actor: Actor) -> tuple[Supplier, bool]:
    existing = find_supplier_by_name(db, name)
    if existing is not None:
        return existing, False
    try:
        return create_supplier(db, SupplierCreate(name=name), actor), True
    except DuplicateSupplierError:
        existing = find_supplier_by_name(db, name)
        if existing is None:
            raise
        return existing, False


def list_suppliers(db: Session, *, limit: int = 50, offset: int = 0) -> tuple[list[Supplier], int]:
    total = int(db.execute(select(func.count(Supplier.id))).scalar_one())
    rows = db.execute(
        select(Supplier).order_by(Supplier.name.asc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), total


# Customers

def get_customer(db: Session, customer_id: str) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFoundError(customer_id)
    return customer


def create_customer(db: Session, payload: CustomerCreate, actor: Actor) -> Customer:
    customer = Customer(
        id=generate_id(),
        created_by=actor.id,
        **payload.model_dump(),
    )
    db.add(customer)
    db.flush()
    log_audit_event(
        db,
        actor=actor,
        action="customer.create",
        target_type="customer",
        target_id=customer.id,
        metadata_json={"name": customer.name},
    )
    return customer


def lookup_customers_by_name(db: Session, name: str, *, limit: int = 20) -> list[Customer]:
    """Case-insensitive substring match, used to resolve free-text customer names in contexts."""
    needle = name.strip().lower()
    if not needle:
        return []
    q = (
        select(Customer)
        .where(func.lower(Customer.name).contains(needle, autoescape=True))
        .order_by(Customer.name.asc())
        .limit(limit)
    )
    return list(db.execute(q).scalars().all())
