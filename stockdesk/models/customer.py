from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockdesk.db.base import Base


class Customer(Base):
    """
    Customer master record. Serial contexts refer to customers by free-text
    name only; there is no foreign key from serials to this table.
    """
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    amc_contract_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    amc_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    amc_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_customers_name_lower", func.lower(name)),
    )
