from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockdesk.models.enums import Category, PaymentMode, PaymentStatus
from stockdesk.schemas.common import PaginationMeta, ValidationIssueOut
from stockdesk.schemas.serial import ItemFailureOut, SerialOut


class CategorizeIn(BaseModel):
    category: Category
    context: dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "category": "OG",
                "context": {"customerName": "Acme", "cashAmount": 500, "paymentStatus": "PENDING"},
                "reason": "sold OG",
            }
        }
    )


class BulkCategorizeIn(BaseModel):
    serial_ids: list[str] = Field(min_length=1)
    category: Category
    context: dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = Field(default=None, max_length=500)


class BulkCategorizeOut(BaseModel):
    updated: list[SerialOut]
    failed: list[ItemFailureOut]
    updated_count: int
    failed_count: int


class PaymentUpdateIn(BaseModel):
    payment_status: PaymentStatus
    payment_date: Optional[date] = None
    payment_mode: Optional[PaymentMode] = None
    charge_amount: Optional[Decimal] = Field(default=None, ge=0)
    reason: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "payment_status": "PAID",
                "payment_date": "2026-02-20",
                "payment_mode": "UPI",
            }
        }
    )


class MovementOut(BaseModel):
    id: str
    serial_id: str
    serial_number: str
    sequence: int
    from_category: str | None = None
    to_category: str
    movement_type: str
    actor_id: str
    actor_name: str | None = None
    reason: str | None = None
    context_snapshot: dict[str, Any] | None = None
    created_at: datetime


class MovementHistoryOut(BaseModel):
    serial_id: str
    serial_exists: bool
    current_category: str | None = None
    items: list[MovementOut]


class CategorySummaryOut(BaseModel):
    count: int
    total_value: float


class CategorySerialListOut(BaseModel):
    category: str
    items: list[SerialOut]
    summary: CategorySummaryOut
    pagination: PaginationMeta


class CategorySchemaOut(BaseModel):
    category: str
    required: list[str]
    optional: list[str]


class CategorySchemaListOut(BaseModel):
    items: list[CategorySchemaOut]


class ContextValidateIn(BaseModel):
    category: str
    context: dict[str, Any] = Field(default_factory=dict)


class ContextValidateOut(BaseModel):
    valid: bool
    category: str
    context: dict[str, Any] | None = None
    issues: list[ValidationIssueOut]
