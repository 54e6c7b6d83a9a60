from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockdesk.core.config import settings
from stockdesk.core.money import ZERO_MONEY, to_money
from stockdesk.models.bill import Bill
from stockdesk.models.enums import Category, PaymentStatus
from stockdesk.models.part import Part
from stockdesk.models.serial import Serial
from stockdesk.services.bill_service import bill_rollup as _bill_categories
from stockdesk.services.bill_service import get_bill
from stockdesk.services.category_registry import parse_category
from stockdesk.services.errors import StockDeskError
from stockdesk.services.movement_service import recent_movements

SPU_CATEGORIES = (Category.SPU_PENDING, Category.SPU_CLEARED)
OG_PENDING_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.PARTIAL.value)


def _money(value: Any) -> Decimal:
    if value is None:
        return ZERO_MONEY
    return to_money(Decimal(str(value)))


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _report_serial(serial: Serial) -> dict:
    return {
        "id": serial.id,
        "serial_number": serial.serial_number,
        "part_name": serial.part_name,
        "part_code": serial.part_code,
        "unit_price": float(_money(serial.unit_price)),
        "categorized_date": serial.categorized_date,
    }


def category_summary(
    db: Session,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    stmt = select(
        Serial.current_category,
        func.count(Serial.id),
        func.coalesce(func.sum(Serial.unit_price), 0),
    ).group_by(Serial.current_category)
    og_stmt = select(Serial.context_json).where(Serial.current_category == Category.OG.value)
    if start_date:
        stmt = stmt.where(func.date(Serial.created_at) >= start_date)
        og_stmt = og_stmt.where(func.date(Serial.created_at) >= start_date)
    if end_date:
        stmt = stmt.where(func.date(Serial.created_at) <= end_date)
        og_stmt = og_stmt.where(func.date(Serial.created_at) <= end_date)

    by_category = {category: (int(count), _money(total)) for category, count, total in db.execute(stmt).all()}
    categories = []
    total_count = 0
    total_value = ZERO_MONEY
    for category in Category:
        count, value = by_category.get(category.value, (0, ZERO_MONEY))
        categories.append({"category": category.value, "count": count, "total_value": float(value)})
        total_count += count
        total_value += value

    og = {
        "paid_count": 0,
        "paid_amount": ZERO_MONEY,
        "pending_count": 0,
        "pending_amount": ZERO_MONEY,
        "total_count": 0,
        "total_amount": ZERO_MONEY,
    }
    for context in db.execute(og_stmt).scalars().all():
        context = context or {}
        amount = _money(context.get("cash_amount"))
        og["total_count"] += 1
        og["total_amount"] += amount
        status = context.get("payment_status")
        if status == PaymentStatus.PAID.value:
            og["paid_count"] += 1
            og["paid_amount"] += amount
        elif status in OG_PENDING_STATUSES:
            og["pending_count"] += 1
            og["pending_amount"] += amount

    return {
        "start_date": start_date,
        "end_date": end_date,
        "categories": categories,
        "total_count": total_count,
        "total_value": float(to_money(total_value)),
        "og_payments": {
            key: float(to_money(value)) if isinstance(value, Decimal) else value for key, value in og.items()
        },
    }


def in_stock_by_bill(db: Session) -> dict:
    rows = db.execute(
        select(Serial, Bill)
        .join(Bill, Bill.id == Serial.bill_id)
        .where(Serial.current_category == Category.IN_STOCK.value)
        .order_by(Bill.bill_date.asc(), Bill.voucher_number.asc(), Serial.serial_number.asc())
    ).all()

    bills: "OrderedDict[str, dict]" = OrderedDict()
    grand_total = ZERO_MONEY
    for serial, bill in rows:
        group = bills.get(bill.id)
        if group is None:
            group = bills[bill.id] = {
                "bill_id": bill.id,
                "voucher_number": bill.voucher_number,
                "bill_date": bill.bill_date,
                "supplier_name": bill.supplier_name,
                "count": 0,
                "subtotal": ZERO_MONEY,
                "serials": [],
            }
        price = _money(serial.unit_price)
        group["count"] += 1
        group["subtotal"] += price
        group["serials"].append(_report_serial(serial))
        grand_total += price

    out = []
    for group in bills.values():
        group["subtotal"] = float(to_money(group["subtotal"]))
        out.append(group)
    return {"bills": out, "total_count": len(rows), "grand_total": float(to_money(grand_total))}


def spu_report(db: Session, category: Category | str = Category.SPU_PENDING) -> dict:
    resolved = parse_category(category)
    if resolved not in SPU_CATEGORIES:
        raise StockDeskError(f"SPU report is only available for {', '.join(c.value for c in SPU_CATEGORIES)}")

    serials = db.execute(
        select(Serial)
        .where(Serial.current_category == resolved.value)
        .order_by(Serial.categorized_date.asc(), Serial.serial_number.asc())
    ).scalars().all()

    groups: "OrderedDict[str | None, dict]" = OrderedDict()
    total_value = ZERO_MONEY
    total_chargeable = ZERO_MONEY
    for serial in serials:
        context = serial.context_json or {}
        spu_id = context.get("spu_id")
        group = groups.get(spu_id)
        if group is None:
            group = groups[spu_id] = {
                "spu_id": spu_id,
                "ticket_id": context.get("ticket_id"),
                "customer_name": context.get("customer_name"),
                "spu_date": context.get("spu_date"),
                "serial_count": 0,
                "serial_total": ZERO_MONEY,
                "chargeable_total": ZERO_MONEY,
                "serials": [],
            }
        price = _money(serial.unit_price)
        charge = _money(context.get("charge_amount")) if context.get("is_chargeable") else ZERO_MONEY
        group["serial_count"] += 1
        group["serial_total"] += price
        group["chargeable_total"] += charge
        group["serials"].append(_report_serial(serial))
        total_value += price
        total_chargeable += charge

    out = []
    for group in groups.values():
        group["serial_total"] = float(to_money(group["serial_total"]))
        group["chargeable_total"] = float(to_money(group["chargeable_total"]))
        out.append(group)
    return {
        "category": resolved.value,
        "groups": out,
        "total_count": len(serials),
        "total_value": float(to_money(total_value)),
        "total_chargeable": float(to_money(total_chargeable)),
    }


def _aged(db: Session, category: Category, cutoff: datetime) -> list[Serial]:
    return list(
        db.execute(
            select(Serial)
            .where(
                Serial.current_category == category.value,
                Serial.categorized_date.is_not(None),
                Serial.categorized_date < cutoff,
            )
            .order_by(Serial.categorized_date.asc())
        ).scalars().all()
    )


def _aged_out(serial: Serial, now: datetime, *, reference: str | None) -> dict:
    context = serial.context_json or {}
    categorized = _aware(serial.categorized_date)
    return {
        "serial_id": serial.id,
        "serial_number": serial.serial_number,
        "part_name": serial.part_name,
        "customer_name": context.get("customer_name"),
        "reference": reference,
        "categorized_date": serial.categorized_date,
        "age_days": (now - categorized).days if categorized else 0,
    }


def alerts(db: Session, now: datetime | None = None) -> dict:
    now = _aware(now) or datetime.now(timezone.utc)

    spu_cutoff = now - timedelta(days=settings.spu_pending_alert_days)
    og_cutoff = now - timedelta(days=settings.og_payment_alert_days)
    return_cutoff = now - timedelta(days=settings.return_pending_alert_days)

    spu_pending = [
        _aged_out(s, now, reference=(s.context_json or {}).get("spu_id"))
        for s in _aged(db, Category.SPU_PENDING, spu_cutoff)
    ]
    og_pending = [
        _aged_out(s, now, reference=(s.context_json or {}).get("payment_status"))
        for s in _aged(db, Category.OG, og_cutoff)
        if (s.context_json or {}).get("payment_status") in OG_PENDING_STATUSES
    ]
    return_overdue = [
        _aged_out(s, now, reference=(s.context_json or {}).get("return_reason"))
        for s in _aged(db, Category.RETURN, return_cutoff)
    ]

    uncategorized_count, uncategorized_bills = db.execute(
        select(func.count(Serial.id), func.count(func.distinct(Serial.bill_id))).where(
            Serial.current_category == Category.UNCATEGORIZED.value
        )
    ).one()

    in_stock = (
        select(Serial.part_id, func.count(Serial.id).label("in_stock"))
        .where(Serial.current_category == Category.IN_STOCK.value)
        .group_by(Serial.part_id)
        .subquery()
    )
    stock_count = func.coalesce(in_stock.c.in_stock, 0)
    low_rows = db.execute(
        select(Part.id, Part.code, Part.name, Part.reorder_level, stock_count)
        .outerjoin(in_stock, in_stock.c.part_id == Part.id)
        .where(
            Part.reorder_level > settings.low_stock_default_threshold,
            stock_count <= Part.reorder_level,
        )
        .order_by(Part.code.asc())
    ).all()

    return {
        "generated_at": now,
        "spu_pending_overdue": spu_pending,
        "og_payment_pending": og_pending,
        "return_overdue": return_overdue,
        "uncategorized_count": int(uncategorized_count),
        "uncategorized_bill_count": int(uncategorized_bills),
        "low_stock_parts": [
            {
                "part_id": part_id,
                "code": code,
                "name": name,
                "reorder_level": int(reorder_level),
                "in_stock": int(count),
            }
            for part_id, code, name, reorder_level, count in low_rows
        ],
    }


def recent_activity(db: Session, limit: int = 20) -> list:
    return recent_movements(db, limit=limit)


def bill_rollup(db: Session, bill_id: str) -> dict:
    bill = get_bill(db, bill_id)
    categories = _bill_categories(db, bill.id)
    return {
        "bill_id": bill.id,
        "voucher_number": bill.voucher_number,
        "serial_count": sum(row["count"] for row in categories),
        "total_value": float(to_money(sum((Decimal(str(row["total_value"])) for row in categories), ZERO_MONEY))),
        "categories": categories,
    }
