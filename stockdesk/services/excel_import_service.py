"""Goods-receipt spreadsheet import.

The sheet is one flat table with fixed column roles:

    1 date | 2 bill no. | 3 supplier | 4 part code | 5 amount | 6 item details |
    7-13 one amount column per category | 14 notes

A row with a date and a bill number opens a bill, a row with a part code opens
a part line under it, and every row with a positive amount becomes one serial
under the open part line. Parsing is pure; validation and import touch the
database but never commit.
"""

import logging
import re
import zipfile
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.datetime import from_excel
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockdesk.core.money import MAX_MONEY, parse_amount, to_money
from stockdesk.core.observability import log_event
from stockdesk.core.security_current import Actor
from stockdesk.models.bill import Bill
from stockdesk.models.enums import Category
from stockdesk.models.part import Part
from stockdesk.models.serial import Serial
from stockdesk.schemas.bill import BillCreate
from stockdesk.schemas.importing import ImportBillIn, ImportPartLineIn, ImportSerialIn
from stockdesk.schemas.serial import SerialItemIn
from stockdesk.services.audit_service import log_audit_event
from stockdesk.services.bill_service import create_bill, recompute_bill_total
from stockdesk.services.errors import SpreadsheetParseError, StockDeskError
from stockdesk.services.master_data_service import (
    find_or_create_part,
    find_or_create_supplier,
    recompute_part_average,
)
from stockdesk.services.serial_service import create_serial, item_error

logger = logging.getLogger("stockdesk.services.excel_import")

COL_DATE = 0
COL_BILL_NO = 1
COL_SUPPLIER = 2
COL_PART_CODE = 3
COL_AMOUNT = 4
COL_DETAILS = 5
COL_NOTES = 13
ROW_WIDTH = 14

# Evaluated in order; the first column holding a positive amount decides the category.
CATEGORY_COLUMNS: tuple[tuple[int, Category], ...] = (
    (6, Category.IN_STOCK),
    (7, Category.SPU_CLEARED),
    (8, Category.SPU_PENDING),
    (9, Category.RETURN),
    (10, Category.RETURN_PENDING),
    (11, Category.PENDING_TO_CHECK),
    (12, Category.OG),
)

MAX_PART_CODE_LENGTH = 64
MAX_TEXT_LENGTH = 255
SERIAL_LOOKUP_CHUNK = 500

# Slash or dash, one or two digits, always read day first (6/2/2026 is 6 February).
_DMY_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")
_LEADING_DOT_RE = re.compile(r"^\s*\.\s*")
# XML syntax errors from a damaged sheet subclass SyntaxError.
_UNREADABLE = (InvalidFileException, SyntaxError, zipfile.BadZipFile, EOFError, KeyError, TypeError, ValueError, OSError)


@dataclass
class ParsedWorkbook:
    bills: list[ImportBillIn]
    warnings: list[str] = field(default_factory=list)


@dataclass
class ImportValidation:
    total_bills: int = 0
    new_bills: int = 0
    duplicate_bills: list[str] = field(default_factory=list)
    total_parts: int = 0
    new_part_codes: list[str] = field(default_factory=list)
    total_serials: int = 0
    duplicate_serial_numbers: list[str] = field(default_factory=list)
    total_value: float = 0.0


@dataclass
class ImportSummary:
    bills_created: int = 0
    bills_skipped: int = 0
    parts_created: int = 0
    serials_created: int = 0
    serials_failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)


# Cell helpers

def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    return str(value).strip()


def clean_text(value: Any) -> str:
    return _LEADING_DOT_RE.sub("", cell_text(value)).strip()


def parse_cell_date(value: Any) -> date | None:
    """Native dates, Excel serial numbers, DD-MM-YYYY and ISO strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        try:
            converted = from_excel(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return converted.date() if isinstance(converted, datetime) else None

    text = str(value).strip()
    if not text:
        return None
    match = _DMY_RE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _positive_amount(value: Any) -> Decimal | None:
    amount = parse_amount(value)
    if amount is None or amount <= 0:
        return None
    return amount


def detect_category(row: Sequence[Any]) -> Category:
    for index, category in CATEGORY_COLUMNS:
        if index < len(row) and _positive_amount(row[index]) is not None:
            return category
    return Category.UNCATEGORIZED


def derive_serial_number(details: Any, part_code: str, position: int) -> str:
    """
    "1/1962" gives "1962". Empty text falls back to "<PARTCODE>-<position>",
    position being 1-based within the part line.
    """
    text = clean_text(details)
    if "/" in text:
        text = text.split("/")[1].strip()
    return (text or f"{part_code}-{position}")[:MAX_TEXT_LENGTH]


def is_sub_header_row(row: Sequence[Any]) -> bool:
    details = cell_text(row[COL_DETAILS]).lower()
    return "sr.no" in details or "sr. no" in details


# Parsing

@dataclass
class _OpenPart:
    part_code: str
    part_name: str | None
    serials: list[ImportSerialIn] = field(default_factory=list)


@dataclass
class _OpenBill:
    bill_date: date
    voucher_number: str
    supplier_name: str | None
    items: list[_OpenPart] = field(default_factory=list)


def parse_rows(rows: Iterable[Sequence[Any]], *, first_row_number: int = 2) -> ParsedWorkbook:
    bills: list[_OpenBill] = []
    warnings: list[str] = []
    current_bill: _OpenBill | None = None
    current_part: _OpenPart | None = None

    for row_number, raw in enumerate(rows, start=first_row_number):
        row = list(raw)[:ROW_WIDTH] + [None] * max(0, ROW_WIDTH - len(raw))

        date_text = cell_text(row[COL_DATE])
        bill_no = cell_text(row[COL_BILL_NO])
        if date_text and bill_no:
            bill_date = parse_cell_date(row[COL_DATE])
            if bill_date is None:
                warnings.append(f"Row {row_number}: unparseable date '{date_text}', bill {bill_no} not started")
            else:
                current_bill = _OpenBill(
                    bill_date=bill_date,
                    voucher_number=bill_no[:100],
                    supplier_name=cell_text(row[COL_SUPPLIER])[:MAX_TEXT_LENGTH] or None,
                )
                bills.append(current_bill)
                current_part = None

        if is_sub_header_row(row):
            continue

        part_code = cell_text(row[COL_PART_CODE]).upper()[:MAX_PART_CODE_LENGTH]
        if part_code:
            current_part = _OpenPart(
                part_code=part_code,
                part_name=clean_text(row[COL_DETAILS])[:MAX_TEXT_LENGTH] or None,
            )
            if current_bill is not None:
                current_bill.items.append(current_part)

        amount = _positive_amount(row[COL_AMOUNT])
        if amount is None or current_part is None or current_bill is None:
            continue
        if amount > MAX_MONEY:
            warnings.append(f"Row {row_number}: amount {amount} is too large, serial skipped")
            continue
        current_part.serials.append(
            ImportSerialIn(
                serial_number=derive_serial_number(
                    row[COL_DETAILS], current_part.part_code, len(current_part.serials) + 1
                ),
                unit_price=amount,
                category=detect_category(row),
                notes=cell_text(row[COL_NOTES]) or None,
            )
        )

    parsed: list[ImportBillIn] = []
    for bill in bills:
        items = [
            ImportPartLineIn(part_code=p.part_code, part_name=p.part_name, serials=p.serials)
            for p in bill.items
            if p.serials
        ]
        if not items:
            continue
        parsed.append(
            ImportBillIn(
                bill_date=bill.bill_date,
                voucher_number=bill.voucher_number,
                supplier_name=bill.supplier_name,
                items=items,
            )
        )
    return ParsedWorkbook(bills=parsed, warnings=warnings)


def parse_workbook(file_bytes: bytes) -> ParsedWorkbook:
    """Parse the first worksheet. Any unreadable input rejects the whole file."""
    if not file_bytes:
        raise SpreadsheetParseError("Failed to parse Excel: file is empty")
    try:
        workbook = load_workbook(BytesIO(file_bytes), read_only=True, data_only=True)
    except _UNREADABLE as exc:
        raise SpreadsheetParseError(f"Failed to parse Excel: {exc or type(exc).__name__}") from exc

    try:
        if not workbook.worksheets:
            raise SpreadsheetParseError("Failed to parse Excel: no worksheet found")
        sheet = workbook.worksheets[0]
        # Read-only sheets are decoded lazily, so a damaged worksheet only fails here.
        result = parse_rows(sheet.iter_rows(min_row=2, values_only=True))
    except SpreadsheetParseError:
        raise
    except _UNREADABLE as exc:
        raise SpreadsheetParseError(f"Failed to parse Excel: {exc or type(exc).__name__}") from exc
    finally:
        workbook.close()

    for warning in result.warnings:
        log_event(logger, "import.parse_warning", level=logging.WARNING, message=warning)
    log_event(
        logger,
        "import.parsed",
        bills=len(result.bills),
        serials=sum(len(item.serials) for bill in result.bills for item in bill.items),
        warnings=len(result.warnings),
    )
    return result


# Validation

def _existing_serial_numbers(db: Session, serial_numbers: list[str]) -> set[str]:
    found: set[str] = set()
    for start in range(0, len(serial_numbers), SERIAL_LOOKUP_CHUNK):
        chunk = serial_numbers[start : start + SERIAL_LOOKUP_CHUNK]
        found.update(
            db.execute(select(Serial.serial_number).where(Serial.serial_number.in_(chunk))).scalars().all()
        )
    return found


def validate_import(db: Session, bills: list[ImportBillIn]) -> ImportValidation:
    """Dry run: report what an import of ``bills`` would skip or create."""
    result = ImportValidation(total_bills=len(bills))

    vouchers = [bill.voucher_number for bill in bills]
    stored_vouchers = set()
    if vouchers:
        stored_vouchers = set(
            db.execute(select(Bill.voucher_number).where(Bill.voucher_number.in_(set(vouchers)))).scalars().all()
        )
    seen_vouchers: set[str] = set()
    for voucher in vouchers:
        if voucher in stored_vouchers or voucher in seen_vouchers:
            result.duplicate_bills.append(voucher)
        seen_vouchers.add(voucher)
    result.new_bills = result.total_bills - len(result.duplicate_bills)

    codes = sorted({item.part_code.upper() for bill in bills for item in bill.items})
    result.total_parts = len(codes)
    if codes:
        known = set(
            db.execute(
                select(func.upper(Part.code)).where(func.upper(Part.code).in_(codes))
            ).scalars().all()
        )
        result.new_part_codes = [code for code in codes if code not in known]

    serial_numbers: list[str] = []
    total_value = Decimal("0")
    for bill in bills:
        for item in bill.items:
            for serial in item.serials:
                serial_numbers.append(serial.serial_number)
                total_value += serial.unit_price
    result.total_serials = len(serial_numbers)
    result.total_value = float(to_money(total_value))

    stored_serials = _existing_serial_numbers(db, sorted(set(serial_numbers)))
    seen_serials: set[str] = set()
    duplicates: list[str] = []
    for number in serial_numbers:
        if (number in stored_serials or number in seen_serials) and number not in duplicates:
            duplicates.append(number)
        seen_serials.add(number)
    result.duplicate_serial_numbers = duplicates
    return result


# Import

def _import_error(
    exc: StockDeskError | SQLAlchemyError,
    *,
    voucher_number: str,
    part_code: str | None = None,
    serial_number: str | None = None,
) -> dict[str, Any]:
    exc = item_error(exc)
    return {
        "voucher_number": voucher_number,
        "part_code": part_code,
        "serial_number": serial_number,
        "code": exc.code,
        "message": exc.message,
    }


def _import_one_bill(db: Session, bill: ImportBillIn, actor: Actor, summary: ImportSummary) -> None:
    parts_created = 0
    serials_created = 0
    serials_failed = 0
    errors: list[dict[str, Any]] = []
    touched_parts: set[str] = set()

    with db.begin_nested():
        supplier_id = None
        if bill.supplier_name:
            supplier, _ = find_or_create_supplier(db, bill.supplier_name, actor)
            supplier_id = supplier.id
        bill_row = create_bill(
            db,
            BillCreate(
                bill_date=bill.bill_date,
                voucher_number=bill.voucher_number,
                supplier_id=supplier_id,
                supplier_name=bill.supplier_name,
            ),
            actor,
            source="import",
        )

        for line in bill.items:
            part, created = find_or_create_part(
                db, actor=actor, code=line.part_code, name=line.part_name or line.part_code
            )
            parts_created += int(created)
            touched_parts.add(part.id)
            for entry in line.serials:
                item = SerialItemIn(
                    serial_number=entry.serial_number,
                    part_id=part.id,
                    unit_price=entry.unit_price,
                    current_category=entry.category,
                    notes=entry.notes,
                )
                try:
                    with db.begin_nested():
                        create_serial(
                            db,
                            item,
                            actor,
                            bill=bill_row,
                            part=part,
                            reason=f"Imported from {bill.voucher_number}",
                            update_part_average=False,
                        )
                except (StockDeskError, SQLAlchemyError) as exc:
                    serials_failed += 1
                    errors.append(
                        _import_error(
                            exc,
                            voucher_number=bill.voucher_number,
                            part_code=line.part_code,
                            serial_number=entry.serial_number,
                        )
                    )
                    continue
                serials_created += 1

        recompute_bill_total(db, bill_row)
        for part_id in touched_parts:
            recompute_part_average(db, part_id)

    summary.bills_created += 1
    summary.parts_created += parts_created
    summary.serials_created += serials_created
    summary.serials_failed += serials_failed
    summary.errors.extend(errors)


def import_bills(db: Session, bills: list[ImportBillIn], actor: Actor) -> ImportSummary:
    """
    Create bills, parts and serials from a parsed tree. A voucher number
    already on file (or repeated in the tree) skips the whole bill; a serial
    number already on file fails that serial only. Safe to re-run.
    """
    summary = ImportSummary()
    seen_vouchers: set[str] = set()
    for bill in bills:
        voucher = bill.voucher_number
        already_stored = db.execute(
            select(Bill.id).where(Bill.voucher_number == voucher)
        ).scalar_one_or_none()
        if voucher in seen_vouchers or already_stored is not None:
            summary.bills_skipped += 1
            seen_vouchers.add(voucher)
            continue
        seen_vouchers.add(voucher)

        try:
            _import_one_bill(db, bill, actor, summary)
        except (StockDeskError, SQLAlchemyError) as exc:
            summary.bills_skipped += 1
            summary.errors.append(_import_error(exc, voucher_number=voucher))

    log_audit_event(
        db,
        actor=actor,
        action="import.excel",
        target_type="import",
        metadata_json={
            "bills_created": summary.bills_created,
            "bills_skipped": summary.bills_skipped,
            "parts_created": summary.parts_created,
            "serials_created": summary.serials_created,
            "serials_failed": summary.serials_failed,
        },
    )
    log_event(
        logger,
        "import.completed",
        bills_created=summary.bills_created,
        bills_skipped=summary.bills_skipped,
        parts_created=summary.parts_created,
        serials_created=summary.serials_created,
        serials_failed=summary.serials_failed,
        actor_id=actor.id,
    )
    return summary
