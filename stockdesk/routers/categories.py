from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.models.enums import Category
from stockdesk.models.serial import Serial
from stockdesk.schemas.categorization import (
    BulkCategorizeIn,
    BulkCategorizeOut,
    CategorizeIn,
    CategorySchemaListOut,
    CategorySerialListOut,
    ContextValidateIn,
    ContextValidateOut,
    MovementHistoryOut,
    MovementOut,
    PaymentUpdateIn,
)
from stockdesk.schemas.common import build_pagination
from stockdesk.schemas.serial import SerialOut
from stockdesk.services import categorization_service
from stockdesk.services.category_registry import describe_categories, validate_context
from stockdesk.services.errors import ContextValidationError
from stockdesk.services.movement_service import get_history
from stockdesk.services.serial_service import serials_out

router = APIRouter(prefix="/categories", tags=["categories"])
MAX_CATEGORY_PAGE_SIZE = 200


def movement_out(entry) -> MovementOut:
    return MovementOut(
        id=entry.id,
        serial_id=entry.serial_id,
        serial_number=entry.serial_number,
        sequence=entry.sequence,
        from_category=entry.from_category,
        to_category=entry.to_category,
        movement_type=entry.movement_type,
        actor_id=entry.actor_id,
        actor_name=entry.actor_name,
        reason=entry.reason,
        context_snapshot=entry.context_snapshot,
        created_at=entry.created_at,
    )


@router.get(
    "/schema",
    response_model=CategorySchemaListOut,
    summary="Required and optional context fields per category",
    responses=error_responses(500),
)
def category_schema():
    return CategorySchemaListOut(items=describe_categories())


@router.post(
    "/validate",
    response_model=ContextValidateOut,
    summary="Validate a context payload without saving",
    description="Always answers 200; problems are listed in `issues`.",
    responses=error_responses(422, 500),
)
def validate_category_context(payload: ContextValidateIn):
    try:
        normalized = validate_context(payload.category, payload.context)
    except ContextValidationError as exc:
        return ContextValidateOut(
            valid=False,
            category=exc.category,
            context=None,
            issues=[issue.as_dict() for issue in exc.issues],
        )
    return ContextValidateOut(
        valid=True,
        category=payload.category.strip().upper(),
        context=normalized,
        issues=[],
    )


@router.put(
    "/categorize/{serial_id}",
    response_model=SerialOut,
    summary="Move a serial to a category",
    responses=error_responses(401, 404, 422, 500, 503),
)
def categorize_serial(
    serial_id: str,
    payload: CategorizeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    serial, _ = categorization_service.categorize(
        db, serial_id, payload.category, payload.context, actor, reason=payload.reason
    )
    commit_or_rollback(db)
    return serials_out(db, [serial])[0]


@router.put(
    "/bulk-categorize",
    response_model=BulkCategorizeOut,
    summary="Move many serials to a category",
    description="Each serial is validated and moved on its own; failures are listed per id.",
    responses=error_responses(401, 422, 500, 503),
)
def bulk_categorize(
    payload: BulkCategorizeIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    summary = categorization_service.bulk_categorize(
        db, payload.serial_ids, payload.category, payload.context, actor, reason=payload.reason
    )
    commit_or_rollback(db)
    return BulkCategorizeOut(
        updated=serials_out(db, summary.updated),
        failed=summary.failed,
        updated_count=len(summary.updated),
        failed_count=len(summary.failed),
    )


@router.put(
    "/payment/{serial_id}",
    response_model=SerialOut,
    summary="Record payment on a chargeable serial",
    responses=error_responses(400, 401, 404, 422, 500, 503),
)
def update_payment(
    serial_id: str,
    payload: PaymentUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    serial, _ = categorization_service.update_payment(db, serial_id, payload, actor)
    commit_or_rollback(db)
    return serials_out(db, [serial])[0]


@router.get(
    "/history/{serial_id}",
    response_model=MovementHistoryOut,
    summary="Movement history of a serial, oldest first",
    description="Also answers for deleted serials whose history was kept.",
    responses=error_responses(500),
)
def serial_history(serial_id: str, db: Session = Depends(get_db)):
    serial = db.get(Serial, serial_id)
    entries = get_history(db, serial_id)
    return MovementHistoryOut(
        serial_id=serial_id,
        serial_exists=serial is not None,
        current_category=serial.current_category if serial else None,
        items=[movement_out(entry) for entry in entries],
    )


@router.get(
    "/{category}/serials",
    response_model=CategorySerialListOut,
    summary="Serials currently in a category",
    responses=error_responses(422, 500),
)
def list_category_serials(
    category: Category,
    q: str | None = Query(default=None, max_length=200),
    date_from: date | None = Query(default=None, description="Categorized on or after"),
    date_to: date | None = Query(default=None, description="Categorized on or before"),
    limit: int = Query(default=50, ge=1, le=MAX_CATEGORY_PAGE_SIZE, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
):
    rows, total, summary = categorization_service.list_by_category(
        db, category, q=q, date_from=date_from, date_to=date_to, limit=limit, offset=offset
    )
    items = serials_out(db, rows)
    return CategorySerialListOut(
        category=category.value,
        items=items,
        summary=summary,
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(items)),
    )
