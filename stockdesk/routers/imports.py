from dataclasses import asdict

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.config import settings
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.schemas.importing import (
    ImportParseOut,
    ImportPayloadIn,
    ImportResultOut,
    ImportValidationOut,
)
from stockdesk.services import excel_import_service

router = APIRouter(prefix="/import", tags=["import"])


@router.post(
    "/parse",
    response_model=ImportParseOut,
    summary="Parse a goods-receipt spreadsheet",
    description=(
        "Reads the first worksheet of an .xlsx file into a bill/part/serial tree. "
        "Nothing is saved; review the tree, then post it to /import/validate and /import/excel."
    ),
    responses=error_responses(400, 413, 422, 500),
)
def parse_spreadsheet(file: UploadFile = File(...)):
    limit = settings.import_max_file_bytes
    data = file.file.read(limit + 1)
    if len(data) > limit:
        raise HTTPException(status_code=413, detail=f"Uploaded file exceeds {limit} bytes")

    parsed = excel_import_service.parse_workbook(data)
    return ImportParseOut(
        bills=parsed.bills,
        total_bills=len(parsed.bills),
        total_parts=sum(len(bill.items) for bill in parsed.bills),
        total_serials=sum(len(item.serials) for bill in parsed.bills for item in bill.items),
        warnings=parsed.warnings,
    )


@router.post(
    "/validate",
    response_model=ImportValidationOut,
    summary="Dry-run an import",
    description="Flags bills whose voucher number is already on file and serial numbers that already exist.",
    responses=error_responses(422, 500),
)
def validate_import(payload: ImportPayloadIn, db: Session = Depends(get_db)):
    result = excel_import_service.validate_import(db, payload.bills)
    return ImportValidationOut(**asdict(result))


@router.post(
    "/excel",
    response_model=ImportResultOut,
    summary="Import a parsed bill tree",
    description=(
        "Bills with a voucher number already on file are skipped. Serials whose number already "
        "exists are reported in `errors` and do not stop the rest of the bill. Safe to re-run."
    ),
    responses=error_responses(401, 422, 500, 503),
)
def import_excel(
    payload: ImportPayloadIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    summary = excel_import_service.import_bills(db, payload.bills, actor)
    commit_or_rollback(db)
    return ImportResultOut(**asdict(summary))
