from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import get_db
from stockdesk.models.enums import Category
from stockdesk.routers.categories import movement_out
from stockdesk.schemas.report import (
    AlertsOut,
    BillRollupOut,
    CategoryReportOut,
    InStockReportOut,
    RecentActivityOut,
    SpuReportOut,
)
from stockdesk.services import report_service

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get(
    "/summary",
    response_model=CategoryReportOut,
    summary="Serial count and value per category",
    responses=error_responses(422, 500),
)
def category_summary(
    start_date: date | None = Query(default=None, description="Received on or after"),
    end_date: date | None = Query(default=None, description="Received on or before"),
    db: Session = Depends(get_db),
):
    return report_service.category_summary(db, start_date=start_date, end_date=end_date)


@router.get(
    "/in-stock",
    response_model=InStockReportOut,
    summary="IN_STOCK serials grouped by bill",
    responses=error_responses(500),
)
def in_stock_by_bill(db: Session = Depends(get_db)):
    return report_service.in_stock_by_bill(db)


@router.get(
    "/spu",
    response_model=SpuReportOut,
    summary="SPU serials grouped by SPU id",
    responses=error_responses(400, 422, 500),
)
def spu_report(
    category: Category = Query(default=Category.SPU_PENDING, description="SPU_PENDING or SPU_CLEARED"),
    db: Session = Depends(get_db),
):
    return report_service.spu_report(db, category)


@router.get(
    "/alerts",
    response_model=AlertsOut,
    summary="Overdue SPU, OG payment and return items, uncategorized and low stock",
    responses=error_responses(500),
)
def alerts(db: Session = Depends(get_db)):
    return report_service.alerts(db)


@router.get(
    "/activity",
    response_model=RecentActivityOut,
    summary="Latest movements across all serials",
    responses=error_responses(422, 500),
)
def recent_activity(
    limit: int = Query(default=20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return RecentActivityOut(items=[movement_out(entry) for entry in report_service.recent_activity(db, limit)])


@router.get(
    "/bills/{bill_id}",
    response_model=BillRollupOut,
    summary="Per-category rollup of one bill",
    responses=error_responses(404, 500),
)
def bill_rollup(bill_id: str, db: Session = Depends(get_db)):
    return report_service.bill_rollup(db, bill_id)
