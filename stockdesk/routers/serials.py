from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.models.enums import Category
from stockdesk.schemas.common import DeletedOut, build_pagination
from stockdesk.schemas.serial import (
    GeneratedNumbersOut,
    SerialBulkCreate,
    SerialBulkCreateOut,
    SerialCreate,
    SerialExistsOut,
    SerialGenerateIn,
    SerialListOut,
    SerialOut,
    SerialUpdate,
)
from stockdesk.services import serial_service
from stockdesk.services.serial_service import BulkCreateSummary

router = APIRouter(prefix="/serials", tags=["serials"])
MAX_SERIAL_PAGE_SIZE = 200


def _bulk_out(db: Session, summary: BulkCreateSummary) -> SerialBulkCreateOut:
    return SerialBulkCreateOut(
        created=serial_service.serials_out(db, summary.created),
        failed=summary.failed,
        created_count=len(summary.created),
        failed_count=len(summary.failed),
    )


@router.post(
    "",
    response_model=SerialOut,
    summary="Register a serial on a bill",
    responses=error_responses(401, 404, 409, 422, 500, 503),
)
def create_serial(
    payload: SerialCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    serial = serial_service.create_serial(db, payload, actor)
    commit_or_rollback(db)
    return serial_service.serials_out(db, [serial])[0]


@router.post(
    "/bulk",
    response_model=SerialBulkCreateOut,
    summary="Register many serials on one bill",
    description="Each serial succeeds or fails on its own; failures name the offending serial number.",
    responses=error_responses(401, 404, 422, 500, 503),
)
def bulk_create_serials(
    payload: SerialBulkCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    summary = serial_service.bulk_create_serials(db, payload.bill_id, payload.items, actor)
    commit_or_rollback(db)
    return _bulk_out(db, summary)


@router.get(
    "/generate/preview",
    response_model=GeneratedNumbersOut,
    summary="Preview auto-generated serial numbers",
    responses=error_responses(422, 500),
)
def preview_generated_numbers(
    prefix: str = Query(min_length=1, max_length=50),
    start_number: int = Query(default=1, ge=1),
    count: int = Query(ge=1),
):
    return GeneratedNumbersOut(
        serial_numbers=serial_service.generate_serial_numbers(prefix, start_number, count)
    )


@router.post(
    "/generate",
    response_model=SerialBulkCreateOut,
    summary="Auto-generate and register a run of serial numbers",
    responses=error_responses(401, 404, 422, 500, 503),
)
def generate_serials(
    payload: SerialGenerateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    summary = serial_service.generate_serials(db, payload, actor)
    commit_or_rollback(db)
    return _bulk_out(db, summary)


@router.get(
    "",
    response_model=SerialListOut,
    summary="Search serials",
    description=(
        "Case-insensitive substring match on serial number, part name/code, voucher number, "
        "SPU id and customer name."
    ),
    responses=error_responses(422, 500),
)
def search_serials(
    q: str | None = Query(default=None, max_length=200),
    category: Category | None = Query(default=None),
    bill_id: str | None = Query(default=None),
    part_id: str | None = Query(default=None),
    created_from: date | None = Query(default=None),
    created_to: date | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_SERIAL_PAGE_SIZE, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
):
    rows, total = serial_service.search_serials(
        db,
        q=q,
        category=category,
        bill_id=bill_id,
        part_id=part_id,
        created_from=created_from,
        created_to=created_to,
        limit=limit,
        offset=offset,
    )
    items = serial_service.serials_out(db, rows)
    return SerialListOut(
        items=items,
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.get(
    "/exists",
    response_model=SerialExistsOut,
    summary="Check whether a serial number is already registered",
    responses=error_responses(422, 500),
)
def serial_exists(
    serial_number: str = Query(min_length=1, max_length=255),
    db: Session = Depends(get_db),
):
    serial = serial_service.find_serial_by_number(db, serial_number)
    return SerialExistsOut(
        serial_number=serial_number.strip(),
        exists=serial is not None,
        serial_id=serial.id if serial else None,
    )


@router.get(
    "/by-number/{serial_number}",
    response_model=SerialOut,
    summary="Get serial by serial number",
    responses=error_responses(404, 500),
)
def get_serial_by_number(serial_number: str, db: Session = Depends(get_db)):
    serial = serial_service.get_serial_by_number(db, serial_number)
    return serial_service.serials_out(db, [serial])[0]


@router.get(
    "/{serial_id}",
    response_model=SerialOut,
    summary="Get serial",
    responses=error_responses(404, 500),
)
def get_serial(serial_id: str, db: Session = Depends(get_db)):
    serial = serial_service.get_serial(db, serial_id)
    return serial_service.serials_out(db, [serial])[0]


@router.patch(
    "/{serial_id}",
    response_model=SerialOut,
    summary="Edit price, notes or part of a serial",
    description="Category and context can only change through the categorize endpoints.",
    responses=error_responses(401, 404, 422, 500, 503),
)
def update_serial(
    serial_id: str,
    payload: SerialUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    serial = serial_service.update_serial(db, serial_id, payload, actor)
    commit_or_rollback(db)
    return serial_service.serials_out(db, [serial])[0]


@router.delete(
    "/{serial_id}",
    response_model=DeletedOut,
    summary="Delete serial",
    description="Movement history of the serial is kept.",
    responses=error_responses(401, 404, 500, 503),
)
def delete_serial(
    serial_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    serial_service.delete_serial(db, serial_id, actor)
    commit_or_rollback(db)
    return DeletedOut(id=serial_id)
