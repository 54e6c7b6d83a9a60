from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockdesk.schemas.common import PaginationMeta


def _required_text(value: str, field_name: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"{field_name} is required")
    return cleaned


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class PartCreate(BaseModel):
    name: str = Field(max_length=255)
    code: Optional[str] = Field(default=None, max_length=64)
    category: Optional[str] = Field(default=None, max_length=100)
    unit: Optional[str] = Field(default=None, max_length=30)
    description: Optional[str] = None
    reorder_level: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _required_text(value, "name")

    @field_validator("code", "category", "unit", "description")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _optional_text(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Capacitor 100uF",
                "code": "CAP-100",
                "category": "electrical",
                "unit": "pcs",
                "reorder_level": 5,
            }
        }
    )


class PartUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    unit: Optional[str] = Field(default=None, max_length=30)
    description: Optional[str] = None
    reorder_level: Optional[int] = Field(default=None, ge=0)

    @field_validator("name", "category", "unit", "description")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _optional_text(value)


class PartOut(BaseModel):
    id: str
    code: str
    name: str
    category: str | None = None
    unit: str | None = None
    description: str | None = None
    reorder_level: int
    avg_unit_price: float
    auto_created: bool
    created_at: datetime


class SupplierCreate(BaseModel):
    name: str = Field(max_length=255)
    contact_person: Optional[str] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = None
    gst_number: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _required_text(value, "name")

    @field_validator("contact_person", "phone", "email", "address", "gst_number")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _optional_text(value)


class SupplierOut(BaseModel):
    id: str
    name: str
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gst_number: str | None = None
    created_at: datetime


class CustomerCreate(BaseModel):
    name: str = Field(max_length=255)
    contact_person: Optional[str] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = None
    amc_contract_number: Optional[str] = Field(default=None, max_length=100)
    amc_start_date: Optional[date] = None
    amc_end_date: Optional[date] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _required_text(value, "name")

    @field_validator("contact_person", "phone", "email", "address", "amc_contract_number")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        return _optional_text(value)


class CustomerOut(BaseModel):
    id: str
    name: str
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    amc_contract_number: str | None = None
    amc_start_date: date | None = None
    amc_end_date: date | None = None
    created_at: datetime


class CustomerLookupOut(BaseModel):
    items: list[CustomerOut]


class PartListOut(BaseModel):
    items: list[PartOut]
    pagination: PaginationMeta


class SupplierListOut(BaseModel):
    items: list[SupplierOut]
    pagination: PaginationMeta
