from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.models.supplier import Supplier
from stockdesk.schemas.common import build_pagination
from stockdesk.schemas.master import SupplierCreate, SupplierListOut, SupplierOut
from stockdesk.services import master_data_service

router = APIRouter(prefix="/suppliers", tags=["suppliers"])
MAX_SUPPLIER_PAGE_SIZE = 500


def _supplier_out(supplier: Supplier) -> SupplierOut:
    return SupplierOut(
        id=supplier.id,
        name=supplier.name,
        contact_person=supplier.contact_person,
        phone=supplier.phone,
        email=supplier.email,
        address=supplier.address,
        gst_number=supplier.gst_number,
        created_at=supplier.created_at,
    )


@router.post(
    "",
    response_model=SupplierOut,
    summary="Create supplier",
    responses=error_responses(401, 409, 422, 500, 503),
)
def create_supplier(
    payload: SupplierCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    supplier = master_data_service.create_supplier(db, payload, actor)
    commit_or_rollback(db)
    return _supplier_out(supplier)


@router.get(
    "",
    response_model=SupplierListOut,
    summary="List suppliers",
    responses=error_responses(422, 500),
)
def list_suppliers(
    limit: int = Query(default=50, ge=1, le=MAX_SUPPLIER_PAGE_SIZE, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
):
    rows, total = master_data_service.list_suppliers(db, limit=limit, offset=offset)
    items = [_supplier_out(supplier) for supplier in rows]
    return SupplierListOut(
        items=items,
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.get(
    "/{supplier_id}",
    response_model=SupplierOut,
    summary="Get supplier",
    responses=error_responses(404, 500),
)
def get_supplier(supplier_id: str, db: Session = Depends(get_db)):
    return _supplier_out(master_data_service.get_supplier(db, supplier_id))
