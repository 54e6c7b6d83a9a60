from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockdesk.schemas.common import PaginationMeta


class BillCreate(BaseModel):
    bill_date: date
    voucher_number: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Internal voucher number. Assigned automatically when omitted.",
    )
    company_bill_number: Optional[str] = Field(default=None, max_length=100)
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = Field(default=None, max_length=255)
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None

    @field_validator("voucher_number", "company_bill_number", "supplier_id", "supplier_name", "notes")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "bill_date": "2026-02-06",
                "voucher_number": "VCH-1",
                "company_bill_number": "INV-7781",
                "supplier_name": "Acme Components",
                "total_amount": 1500.0,
                "notes": "Monthly restock",
            }
        }
    )


class BillUpdate(BaseModel):
    bill_date: Optional[date] = None
    company_bill_number: Optional[str] = Field(default=None, max_length=100)
    supplier_id: Optional[str] = None
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class BillCategoryRollupOut(BaseModel):
    category: str
    count: int
    total_value: float


class BillOut(BaseModel):
    id: str
    voucher_number: str
    company_bill_number: str | None = None
    bill_date: date
    supplier_id: str | None = None
    supplier_name: str | None = None
    total_amount: float
    notes: str | None = None
    source: str
    created_by: str
    created_at: datetime
    updated_at: datetime | None = None


class BillDetailOut(BillOut):
    serial_count: int
    serials_total: float
    categories: list[BillCategoryRollupOut]


class BillListOut(BaseModel):
    items: list[BillOut]
    pagination: PaginationMeta
