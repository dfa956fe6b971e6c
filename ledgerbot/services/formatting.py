from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .errors import ValidationError

# Matches the Numeric(14, 2) amount columns.
AMOUNT_PRECISION = 14
AMOUNT_SCALE = 2
MAX_AMOUNT = Decimal(10) ** (AMOUNT_PRECISION - AMOUNT_SCALE)


def parse_amount_token(raw: str) -> Decimal:
    """Parse user supplied amount text, tolerating ``,`` and space separators."""
    cleaned = "".join((raw or "").split()).replace(",", "")
    try:
        value = Decimal(cleaned)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount '{raw}'.") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid amount '{raw}'.")
    return value


def parse_positive_amount(raw: str) -> Decimal:
    """Parse an amount that fits the stored columns without rounding."""
    value = parse_amount_token(raw)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero.")
    if value >= MAX_AMOUNT:
        raise ValidationError("Amount is too large.")
    if value.normalize().as_tuple().exponent < -AMOUNT_SCALE:
        raise ValidationError(f"Amount can have at most {AMOUNT_SCALE} decimal places.")
    return value.quantize(Decimal(1).scaleb(-AMOUNT_SCALE))


def plain_amount(value: Decimal) -> str:
    text = f"{value.normalize():f}"
    return "0" if text == "-0" else text


def format_amount_for_display(amount: Decimal, currency: str) -> str:
    return f"{plain_amount(amount)} {currency}".rstrip()
