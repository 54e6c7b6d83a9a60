from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stockdesk.models.enums import PaymentMode, PaymentStatus, TransferStatus

CHARGEABLE_FIELDS = (
    "charge_amount",
    "charge_reason",
    "payment_status",
    "payment_date",
    "payment_mode",
)


class CategoryContext(BaseModel):
    """
    Fields shared by every category: free-text remarks and the chargeable
    block. When is_chargeable is false the dependent fields are forced to
    null so aggregation can treat every category the same way.
    """

    remarks: str | None = None
    is_chargeable: bool = False
    charge_amount: float | None = Field(default=None, ge=0)
    charge_reason: str | None = None
    payment_status: PaymentStatus | None = None
    payment_date: date | None = None
    payment_mode: PaymentMode | None = None

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, use_enum_values=True)

    @model_validator(mode="after")
    def clear_charge_fields(self) -> "CategoryContext":
        if not self.is_chargeable:
            for name in CHARGEABLE_FIELDS:
                setattr(self, name, None)
        return self


class UncategorizedContext(CategoryContext):
    pass


class InStockContext(CategoryContext):
    location: str | None = None


class SpuContext(CategoryContext):
    spu_id: str
    ticket_id: str
    customer_name: str
    spu_date: date
    customer_contact: str | None = None
    product_model: str | None = None
    product_serial_number: str | None = None


class AmcContext(CategoryContext):
    customer_name: str
    customer_contact: str | None = None
    amc_number: str | None = None
    amc_service_date: date | None = None
    ticket_id: str | None = None


class OgContext(CategoryContext):
    """Out-of-guarantee sale. Always chargeable; the cash amount is the charge."""

    customer_name: str
    cash_amount: float = Field(ge=0)
    payment_status: PaymentStatus
    customer_contact: str | None = None
    ticket_id: str | None = None
    product_model: str | None = None
    product_serial_number: str | None = None

    @model_validator(mode="before")
    @classmethod
    def force_chargeable(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {**data, "is_chargeable": True}
        return data

    @model_validator(mode="after")
    def default_charge_amount(self) -> "OgContext":
        if self.charge_amount is None:
            self.charge_amount = self.cash_amount
        return self


class ReturnContext(CategoryContext):
    return_reason: str
    expected_return_date: date | None = None


class ReturnPendingContext(CategoryContext):
    return_reason: str | None = None
    expected_return_date: date | None = None


class PendingToCheckContext(CategoryContext):
    pass


class ReceivedForOthersContext(CategoryContext):
    received_for: str
    transfer_status: TransferStatus = TransferStatus.PENDING
