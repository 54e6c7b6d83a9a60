import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockdesk.core.money import to_money
from stockdesk.core.observability import log_event
from stockdesk.core.security_current import Actor
from stockdesk.models.enums import Category, MovementType
from stockdesk.models.movement import SerialMovement
from stockdesk.models.serial import Serial
from stockdesk.schemas.categorization import PaymentUpdateIn
from stockdesk.services.category_registry import is_chargeable, parse_category, validate_context
from stockdesk.services.errors import NotChargeableError, StockDeskError
from stockdesk.services.movement_service import append_movement
from stockdesk.services.serial_service import check_batch_size, failure_entry, get_serial

logger = logging.getLogger("stockdesk.services.categorization")


@dataclass
class BulkCategorizeSummary:
    updated: list[Serial] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def movement_type_for(from_category: str | None, to_category: Category) -> MovementType:
    if from_category is None:
        return MovementType.INITIAL_ENTRY
    if from_category == Category.UNCATEGORIZED.value:
        return MovementType.CATEGORIZED
    if from_category == to_category.value:
        return MovementType.CONTEXT_UPDATE
    return MovementType.CATEGORY_CHANGE


def categorize(
    db: Session,
    serial_id: str,
    category: Category | str,
    context: Mapping[str, Any] | None,
    actor: Actor,
    *,
    reason: str | None = None,
) -> tuple[Serial, SerialMovement]:
    """
    Move a serial to ``category`` with a fully validated context and record
    the transition. The serial update and the ledger row share one savepoint,
    so either both land or neither does.
    """
    serial = get_serial(db, serial_id)
    target = parse_category(category)
    normalized = validate_context(target, context)

    from_category = serial.current_category
    movement_type = movement_type_for(from_category, target)
    now = _utcnow()
    with db.begin_nested():
        serial.current_category = target.value
        serial.context_json = normalized
        serial.categorized_date = now
        serial.updated_by = actor.id
        db.flush()
        movement = append_movement(
            db,
            serial_id=serial.id,
            from_category=from_category,
            to_category=target,
            movement_type=movement_type,
            actor=actor,
            reason=reason or f"Changed to {target.value}",
            context_snapshot=normalized,
            created_at=now,
            serial=serial,
        )

    log_event(
        logger,
        "serial.categorized",
        serial_id=serial.id,
        from_category=from_category,
        to_category=target.value,
        movement_type=movement_type.value,
        actor_id=actor.id,
    )
    return serial, movement


def bulk_categorize(
    db: Session,
    serial_ids: list[str],
    category: Category | str,
    context: Mapping[str, Any] | None,
    actor: Actor,
    *,
    reason: str | None = None,
) -> BulkCategorizeSummary:
    """
    Apply the same category and context to many serials. Each id succeeds or
    fails on its own and produces exactly one outcome, duplicates included.
    """
    check_batch_size(len(serial_ids))
    summary = BulkCategorizeSummary()
    for serial_id in serial_ids:
        try:
            with db.begin_nested():
                serial, _ = categorize(db, serial_id, category, context, actor, reason=reason)
        except (StockDeskError, SQLAlchemyError) as exc:
            summary.failed.append(failure_entry(exc, serial_id=serial_id))
            continue
        summary.updated.append(serial)

    log_event(
        logger,
        "serials.bulk_categorize",
        category=str(getattr(category, "value", category)),
        requested=len(serial_ids),
        updated=len(summary.updated),
        failed=len(summary.failed),
        actor_id=actor.id,
    )
    return summary


def update_payment(
    db: Session,
    serial_id: str,
    payment: PaymentUpdateIn,
    actor: Actor,
) -> tuple[Serial, SerialMovement]:
    serial = get_serial(db, serial_id)
    current = dict(serial.context_json or {})
    if not is_chargeable(current):
        raise NotChargeableError(f"Serial {serial.serial_number} is not chargeable")

    changes = payment.model_dump(mode="json", exclude_unset=True, exclude={"reason"})
    normalized = validate_context(serial.current_category, {**current, **changes})

    category = parse_category(serial.current_category)
    now = _utcnow()
    with db.begin_nested():
        serial.context_json = normalized
        serial.updated_by = actor.id
        db.flush()
        movement = append_movement(
            db,
            serial_id=serial.id,
            from_category=category,
            to_category=category,
            movement_type=MovementType.PAYMENT_UPDATE,
            actor=actor,
            reason=payment.reason or f"Payment {normalized.get('payment_status')}",
            context_snapshot=normalized,
            created_at=now,
            serial=serial,
        )

    log_event(
        logger,
        "serial.payment_updated",
        serial_id=serial.id,
        payment_status=normalized.get("payment_status"),
        actor_id=actor.id,
    )
    return serial, movement


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def list_by_category(
    db: Session,
    category: Category | str,
    *,
    q: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Serial], int, dict[str, Any]]:
    """Serials currently in ``category``, newest categorization first, plus a count/value summary."""
    resolved = parse_category(category)
    conditions = [Serial.current_category == resolved.value]
    if q and q.strip():
        needle = q.strip().lower()
        conditions.append(
            or_(
                func.lower(Serial.serial_number).contains(needle, autoescape=True),
                func.lower(Serial.part_name).contains(needle, autoescape=True),
                func.lower(func.coalesce(Serial.part_code, "")).contains(needle, autoescape=True),
                func.lower(func.coalesce(Serial.context_json["customer_name"].as_string(), "")).contains(
                    needle, autoescape=True
                ),
                func.lower(func.coalesce(Serial.context_json["spu_id"].as_string(), "")).contains(
                    needle, autoescape=True
                ),
            )
        )
    if date_from:
        conditions.append(Serial.categorized_date >= _day_start(date_from))
    if date_to:
        conditions.append(Serial.categorized_date < _day_start(date_to + timedelta(days=1)))

    count, total_value = db.execute(
        select(func.count(Serial.id), func.coalesce(func.sum(Serial.unit_price), 0)).where(*conditions)
    ).one()
    rows = db.execute(
        select(Serial)
        .where(*conditions)
        .order_by(Serial.categorized_date.desc(), Serial.serial_number.asc())
        .offset(offset)
        .limit(limit)
    ).scalars().all()
    summary = {
        "count": int(count),
        "total_value": float(to_money(Decimal(str(total_value or 0)))),
    }
    return list(rows), int(count), summary
