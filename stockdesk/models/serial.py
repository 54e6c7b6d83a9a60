from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockdesk.db.base import Base


class Serial(Base):
    """
    One physical unit. current_category and context_json change only through
    the categorization service so every change lands in serial_movements.
    """
    __tablename__ = "serials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # Case-sensitive; the unique constraint backs up the service pre-check.
    serial_number: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    bill_id: Mapped[str] = mapped_column(String(36), ForeignKey("bills.id"), nullable=False, index=True)
    part_id: Mapped[str] = mapped_column(String(36), ForeignKey("parts.id"), nullable=False, index=True)
    part_name: Mapped[str] = mapped_column(String(255), nullable=False)
    part_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00"), server_default="0"
    )
    current_category: Mapped[str] = mapped_column(
        String(40), nullable=False, default="UNCATEGORIZED", server_default="UNCATEGORIZED"
    )
    context_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    categorized_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_serials_category_categorized_date", "current_category", "categorized_date"),
        Index("ix_serials_bill_category", "bill_id", "current_category"),
        Index("ix_serials_part_category", "part_id", "current_category"),
    )
