from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockdesk.core.money import MAX_MONEY
from stockdesk.models.enums import Category
from stockdesk.schemas.common import PaginationMeta


class SerialItemIn(BaseModel):
    """One unit on a bill. The part is picked by id, or found/created by code or name."""

    serial_number: str = Field(min_length=1, max_length=255)
    part_id: Optional[str] = None
    part_code: Optional[str] = Field(default=None, max_length=64)
    part_name: Optional[str] = Field(default=None, max_length=255)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_MONEY)
    current_category: Category = Category.UNCATEGORIZED
    context: Optional[dict[str, Any]] = None
    notes: Optional[str] = None

    @field_validator("serial_number")
    @classmethod
    def validate_serial_number(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("serial_number is required")
        return cleaned

    @field_validator("part_id", "part_code", "part_name", "notes")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @model_validator(mode="after")
    def validate_part_reference(self) -> "SerialItemIn":
        if not (self.part_id or self.part_code or self.part_name):
            raise ValueError("one of part_id, part_code or part_name is required")
        return self


class SerialCreate(SerialItemIn):
    bill_id: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "bill_id": "bill-id-here",
                "serial_number": "SN-0001",
                "part_name": "Capacitor 100uF",
                "part_code": "CAP-100",
                "unit_price": 150.0,
                "current_category": "IN_STOCK",
                "context": {"location": "Rack A"},
            }
        }
    )


class SerialBulkCreate(BaseModel):
    bill_id: str
    items: list[SerialItemIn] = Field(min_length=1)


class SerialGenerateIn(BaseModel):
    bill_id: str
    prefix: str = Field(min_length=1, max_length=50)
    start_number: int = Field(default=1, ge=1)
    count: int = Field(ge=1)
    part_id: Optional[str] = None
    part_code: Optional[str] = Field(default=None, max_length=64)
    part_name: Optional[str] = Field(default=None, max_length=255)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_MONEY)
    current_category: Category = Category.UNCATEGORIZED

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "bill_id": "bill-id-here",
                "prefix": "SN-",
                "start_number": 1,
                "count": 10,
                "part_name": "Capacitor 100uF",
                "unit_price": 150.0,
            }
        }
    )


class SerialUpdate(BaseModel):
    """Category and context are not editable here; use the categorize endpoints."""

    unit_price: Optional[Decimal] = Field(default=None, ge=0, le=MAX_MONEY)
    notes: Optional[str] = None
    part_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class SerialOut(BaseModel):
    id: str
    serial_number: str
    bill_id: str
    voucher_number: str | None = None
    part_id: str
    part_name: str
    part_code: str | None = None
    unit_price: float
    current_category: str
    context: dict[str, Any]
    categorized_date: datetime | None = None
    notes: str | None = None
    created_by: str
    updated_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class SerialListOut(BaseModel):
    items: list[SerialOut]
    pagination: PaginationMeta


class ItemFailureOut(BaseModel):
    serial_number: str | None = None
    serial_id: str | None = None
    code: str
    message: str
    details: list[dict[str, Any]] | None = None


class SerialBulkCreateOut(BaseModel):
    created: list[SerialOut]
    failed: list[ItemFailureOut]
    created_count: int
    failed_count: int


class SerialExistsOut(BaseModel):
    serial_number: str
    exists: bool
    serial_id: str | None = None


class BillSerialsOut(BaseModel):
    bill_id: str
    items: list[SerialOut]
    count: int
    total_value: float


class GeneratedNumbersOut(BaseModel):
    serial_numbers: list[str]
