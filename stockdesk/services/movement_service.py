from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockdesk.core.id_utils import generate_id
from stockdesk.core.security_current import Actor
from stockdesk.models.enums import Category, MovementType
from stockdesk.models.movement import SerialMovement
from stockdesk.models.serial import Serial
from stockdesk.services.errors import SerialNotFoundError


def _value(item: Category | MovementType | str | None) -> str | None:
    if item is None:
        return None
    return item.value if isinstance(item, (Category, MovementType)) else str(item)


def _next_sequence(db: Session, serial_id: str) -> int:
    q = select(func.coalesce(func.max(SerialMovement.sequence), 0)).where(
        SerialMovement.serial_id == serial_id
    )
    return int(db.execute(q).scalar_one()) + 1


def append_movement(
    db: Session,
    *,
    serial_id: str,
    from_category: Category | str | None,
    to_category: Category | str,
    movement_type: MovementType | str,
    actor: Actor,
    reason: str | None = None,
    context_snapshot: dict[str, Any] | None = None,
    created_at: datetime | None = None,
    serial: Serial | None = None,
) -> SerialMovement:
    """
    Append one ledger row. Only checks that the serial exists; content was
    validated by the caller.
    """
    if serial is None:
        serial = db.get(Serial, serial_id)
    if serial is None:
        raise SerialNotFoundError(serial_id)

    entry = SerialMovement(
        id=generate_id(),
        serial_id=serial.id,
        serial_number=serial.serial_number,
        sequence=_next_sequence(db, serial.id),
        from_category=_value(from_category),
        to_category=_value(to_category),
        movement_type=_value(movement_type),
        actor_id=actor.id,
        actor_name=actor.name,
        reason=reason,
        context_snapshot=context_snapshot,
    )
    if created_at is not None:
        entry.created_at = created_at
    db.add(entry)
    db.flush()
    return entry


def get_history(db: Session, serial_id: str) -> list[SerialMovement]:
    q = (
        select(SerialMovement)
        .where(SerialMovement.serial_id == serial_id)
        .order_by(SerialMovement.sequence.asc(), SerialMovement.created_at.asc())
    )
    return list(db.execute(q).scalars().all())


def recent_movements(db: Session, *, limit: int = 20) -> list[SerialMovement]:
    q = (
        select(SerialMovement)
        .order_by(SerialMovement.created_at.desc(), SerialMovement.sequence.desc())
        .limit(limit)
    )
    return list(db.execute(q).scalars().all())
