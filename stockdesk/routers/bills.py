from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.models.bill import Bill
from stockdesk.schemas.bill import BillCreate, BillDetailOut, BillListOut, BillOut, BillUpdate
from stockdesk.schemas.common import DeletedOut, build_pagination
from stockdesk.schemas.serial import BillSerialsOut
from stockdesk.services import bill_service
from stockdesk.services.serial_service import list_serials_for_bill, serial_value_total, serials_out

router = APIRouter(prefix="/bills", tags=["bills"])
MAX_BILL_PAGE_SIZE = 200


def _bill_out(bill: Bill) -> BillOut:
    return BillOut(
        id=bill.id,
        voucher_number=bill.voucher_number,
        company_bill_number=bill.company_bill_number,
        bill_date=bill.bill_date,
        supplier_id=bill.supplier_id,
        supplier_name=bill.supplier_name,
        total_amount=float(bill.total_amount or 0),
        notes=bill.notes,
        source=bill.source,
        created_by=bill.created_by,
        created_at=bill.created_at,
        updated_at=bill.updated_at,
    )


def _bill_detail_out(db: Session, bill: Bill) -> BillDetailOut:
    categories = bill_service.bill_rollup(db, bill.id)
    return BillDetailOut(
        **_bill_out(bill).model_dump(),
        serial_count=sum(row["count"] for row in categories),
        serials_total=round(sum(row["total_value"] for row in categories), 2),
        categories=categories,
    )


@router.post(
    "",
    response_model=BillOut,
    summary="Create bill",
    description="The voucher number is assigned automatically when omitted.",
    responses=error_responses(401, 404, 409, 422, 500, 503),
)
def create_bill(
    payload: BillCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    bill = bill_service.create_bill(db, payload, actor)
    commit_or_rollback(db)
    return _bill_out(bill)


@router.get(
    "",
    response_model=BillListOut,
    summary="List bills",
    responses=error_responses(422, 500),
)
def list_bills(
    q: str | None = Query(default=None, max_length=200, description="Voucher, company bill no. or supplier"),
    supplier_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_BILL_PAGE_SIZE, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
):
    rows, total = bill_service.list_bills(db, q=q, supplier_id=supplier_id, limit=limit, offset=offset)
    items = [_bill_out(bill) for bill in rows]
    return BillListOut(
        items=items,
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.get(
    "/by-voucher/{voucher_number}",
    response_model=BillDetailOut,
    summary="Get bill by voucher number",
    responses=error_responses(404, 500),
)
def get_bill_by_voucher(voucher_number: str, db: Session = Depends(get_db)):
    return _bill_detail_out(db, bill_service.get_bill_by_voucher(db, voucher_number))


@router.get(
    "/{bill_id}",
    response_model=BillDetailOut,
    summary="Get bill with per-category rollup",
    responses=error_responses(404, 500),
)
def get_bill(bill_id: str, db: Session = Depends(get_db)):
    return _bill_detail_out(db, bill_service.get_bill(db, bill_id))


@router.get(
    "/{bill_id}/serials",
    response_model=BillSerialsOut,
    summary="Serials received on a bill",
    responses=error_responses(404, 500),
)
def bill_serials(bill_id: str, db: Session = Depends(get_db)):
    serials = list_serials_for_bill(db, bill_id)
    return BillSerialsOut(
        bill_id=bill_id,
        items=serials_out(db, serials),
        count=len(serials),
        total_value=float(serial_value_total(serials)),
    )


@router.patch(
    "/{bill_id}",
    response_model=BillOut,
    summary="Update bill header",
    responses=error_responses(401, 404, 422, 500, 503),
)
def update_bill(
    bill_id: str,
    payload: BillUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    bill = bill_service.update_bill(db, bill_id, payload, actor)
    commit_or_rollback(db)
    return _bill_out(bill)


@router.delete(
    "/{bill_id}",
    response_model=DeletedOut,
    summary="Delete bill",
    description="Refused while any serial still references the bill.",
    responses=error_responses(401, 404, 409, 500, 503),
)
def delete_bill(
    bill_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    bill_service.delete_bill(db, bill_id, actor)
    commit_or_rollback(db)
    return DeletedOut(id=bill_id)
