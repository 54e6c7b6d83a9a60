from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockdesk.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SerialMovement(Base):
    """
    Append-only category transition log. serial_id is deliberately not a
    foreign key: entries outlive the serial they describe.
    """
    __tablename__ = "serial_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    serial_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    serial_number: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    from_category: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)  # null only for INITIAL_ENTRY
    to_category: Mapped[str] = mapped_column(String(40), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    context_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_serial_movements_serial_sequence", "serial_id", "sequence"),
        Index("ix_serial_movements_created_at", "created_at"),
        Index("ix_serial_movements_to_category_created_at", "to_category", "created_at"),
    )
