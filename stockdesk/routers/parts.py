from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.models.part import Part
from stockdesk.schemas.common import DeletedOut, build_pagination
from stockdesk.schemas.master import PartCreate, PartListOut, PartOut, PartUpdate
from stockdesk.services import master_data_service

router = APIRouter(prefix="/parts", tags=["parts"])
MAX_PART_PAGE_SIZE = 500


def _part_out(part: Part) -> PartOut:
    return PartOut(
        id=part.id,
        code=part.code,
        name=part.name,
        category=part.category,
        unit=part.unit,
        description=part.description,
        reorder_level=part.reorder_level,
        avg_unit_price=float(part.avg_unit_price or 0),
        auto_created=bool(part.auto_created),
        created_at=part.created_at,
    )


@router.post(
    "",
    response_model=PartOut,
    summary="Create part",
    description="The code defaults to an upper-case slug of the name.",
    responses=error_responses(401, 409, 422, 500, 503),
)
def create_part(
    payload: PartCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    part = master_data_service.create_part(db, payload, actor)
    commit_or_rollback(db)
    return _part_out(part)


@router.get(
    "",
    response_model=PartListOut,
    summary="List parts",
    responses=error_responses(422, 500),
)
def list_parts(
    q: str | None = Query(default=None, max_length=200, description="Code or name"),
    limit: int = Query(default=50, ge=1, le=MAX_PART_PAGE_SIZE, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
):
    rows, total = master_data_service.list_parts(db, q=q, limit=limit, offset=offset)
    items = [_part_out(part) for part in rows]
    return PartListOut(
        items=items,
        pagination=build_pagination(total=total, limit=limit, offset=offset, count=len(items)),
    )


@router.get(
    "/{part_id}",
    response_model=PartOut,
    summary="Get part",
    responses=error_responses(404, 500),
)
def get_part(part_id: str, db: Session = Depends(get_db)):
    return _part_out(master_data_service.get_part(db, part_id))


@router.patch(
    "/{part_id}",
    response_model=PartOut,
    summary="Update part",
    responses=error_responses(401, 404, 422, 500, 503),
)
def update_part(
    part_id: str,
    payload: PartUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    part = master_data_service.update_part(db, part_id, payload, actor)
    commit_or_rollback(db)
    return _part_out(part)


@router.delete(
    "/{part_id}",
    response_model=DeletedOut,
    summary="Delete part",
    description="Refused while any serial references the part.",
    responses=error_responses(401, 404, 409, 500, 503),
)
def delete_part(
    part_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    master_data_service.delete_part(db, part_id, actor)
    commit_or_rollback(db)
    return DeletedOut(id=part_id)
