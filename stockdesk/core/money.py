import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")
# Largest value a Numeric(12, 2) column holds.
MAX_MONEY = Decimal("9999999999.99")

_LEADING_NUMBER_RE = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def parse_amount(value: object) -> Decimal | None:
    """Read a spreadsheet amount cell.

    Numbers are taken as-is. Text is read up to the first non-numeric
    character after thousands separators and currency marks are dropped,
    so "1,250.50" and "150 /-" both parse. Anything else gives None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None
    text = str(value).strip().replace(",", "").lstrip("₹$ ")
    match = _LEADING_NUMBER_RE.match(text)
    if not match:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def average_money(values: list[Decimal]) -> Decimal:
    if not values:
        return ZERO_MONEY
    return to_money(sum(values, ZERO_MONEY) / len(values))
