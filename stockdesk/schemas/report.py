from datetime import date, datetime

from pydantic import BaseModel

from stockdesk.schemas.bill import BillCategoryRollupOut
from stockdesk.schemas.categorization import MovementOut


class CategoryCountOut(BaseModel):
    category: str
    count: int
    total_value: float


class OgPaymentSummaryOut(BaseModel):
    paid_count: int
    paid_amount: float
    pending_count: int
    pending_amount: float
    total_count: int
    total_amount: float


class CategoryReportOut(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    categories: list[CategoryCountOut]
    total_count: int
    total_value: float
    og_payments: OgPaymentSummaryOut


class ReportSerialOut(BaseModel):
    id: str
    serial_number: str
    part_name: str
    part_code: str | None = None
    unit_price: float
    categorized_date: datetime | None = None


class InStockBillOut(BaseModel):
    bill_id: str
    voucher_number: str
    bill_date: date
    supplier_name: str | None = None
    count: int
    subtotal: float
    serials: list[ReportSerialOut]


class InStockReportOut(BaseModel):
    bills: list[InStockBillOut]
    total_count: int
    grand_total: float


class SpuGroupOut(BaseModel):
    spu_id: str | None = None
    ticket_id: str | None = None
    customer_name: str | None = None
    spu_date: date | None = None
    serial_count: int
    serial_total: float
    chargeable_total: float
    serials: list[ReportSerialOut]


class SpuReportOut(BaseModel):
    category: str
    groups: list[SpuGroupOut]
    total_count: int
    total_value: float
    total_chargeable: float


class AgedSerialOut(BaseModel):
    serial_id: str
    serial_number: str
    part_name: str
    customer_name: str | None = None
    reference: str | None = None
    categorized_date: datetime | None = None
    age_days: int


class LowStockPartOut(BaseModel):
    part_id: str
    code: str
    name: str
    reorder_level: int
    in_stock: int


class AlertsOut(BaseModel):
    generated_at: datetime
    spu_pending_overdue: list[AgedSerialOut]
    og_payment_pending: list[AgedSerialOut]
    return_overdue: list[AgedSerialOut]
    uncategorized_count: int
    uncategorized_bill_count: int
    low_stock_parts: list[LowStockPartOut]


class RecentActivityOut(BaseModel):
    items: list[MovementOut]


class BillRollupOut(BaseModel):
    bill_id: str
    voucher_number: str
    serial_count: int
    total_value: float
    categories: list[BillCategoryRollupOut]
