from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockdesk.core.money import MAX_MONEY
from stockdesk.models.enums import Category


class ImportSerialIn(BaseModel):
    serial_number: str = Field(min_length=1, max_length=255)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_MONEY)
    category: Category = Category.UNCATEGORIZED
    notes: Optional[str] = None

    @field_validator("serial_number")
    @classmethod
    def strip_serial_number(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("serial_number is required")
        return cleaned


class ImportPartLineIn(BaseModel):
    part_code: str = Field(min_length=1, max_length=64)
    part_name: Optional[str] = Field(default=None, max_length=255)
    serials: list[ImportSerialIn] = Field(default_factory=list)

    @field_validator("part_code")
    @classmethod
    def normalize_part_code(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned:
            raise ValueError("part_code is required")
        return cleaned


class ImportBillIn(BaseModel):
    bill_date: date
    voucher_number: str = Field(min_length=1, max_length=100)
    supplier_name: Optional[str] = Field(default=None, max_length=255)
    items: list[ImportPartLineIn] = Field(default_factory=list)

    @field_validator("voucher_number")
    @classmethod
    def strip_voucher_number(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("voucher_number is required")
        return cleaned


class ImportPayloadIn(BaseModel):
    bills: list[ImportBillIn]

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "bills": [
                    {
                        "bill_date": "2026-02-06",
                        "voucher_number": "VCH-1",
                        "supplier_name": "Acme Components",
                        "items": [
                            {
                                "part_code": "CAP-100",
                                "part_name": "Capacitor 100uF",
                                "serials": [
                                    {"serial_number": "1962", "unit_price": 150.0, "category": "IN_STOCK"}
                                ],
                            }
                        ],
                    }
                ]
            }
        }
    )


class ImportParseOut(BaseModel):
    bills: list[ImportBillIn]
    total_bills: int
    total_parts: int
    total_serials: int
    warnings: list[str]


class ImportValidationOut(BaseModel):
    total_bills: int
    new_bills: int
    duplicate_bills: list[str]
    total_parts: int
    new_part_codes: list[str]
    total_serials: int
    duplicate_serial_numbers: list[str]
    total_value: float


class ImportErrorOut(BaseModel):
    voucher_number: str
    part_code: str | None = None
    serial_number: str | None = None
    code: str
    message: str


class ImportResultOut(BaseModel):
    bills_created: int
    bills_skipped: int
    parts_created: int
    serials_created: int
    serials_failed: int
    errors: list[ImportErrorOut]
