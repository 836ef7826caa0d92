"""Money parsing and rounding helpers."""
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal('0.01')

BR_DECIMAL_PATTERN = re.compile(r"^(?:\d{1,3}(?:\.\d{3})+|\d+),\d{1,2}$")


def to_money(value) -> Decimal:
    """Convert to Decimal rounded to cents (half up)."""
    if isinstance(value, Decimal):
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_money(value) -> Decimal:
    """
    Parse an incoming monetary value to Decimal.

    Accepts numbers, plain decimal strings ("28.00") and Brazilian
    formatted strings ("1.234,56").

    Raises:
        ValueError: if the value is empty, malformed or negative.
    """
    if value is None or isinstance(value, bool):
        raise ValueError('Valor monetário inválido')

    if isinstance(value, str):
        cleaned = value.strip().replace('R$', '').strip()
        if not cleaned:
            raise ValueError('Valor monetário inválido')
        if BR_DECIMAL_PATTERN.match(cleaned):
            cleaned = cleaned.replace('.', '').replace(',', '.')
        value = cleaned

    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f'Valor monetário inválido: {value}')

    if not amount.is_finite():
        raise ValueError(f'Valor monetário inválido: {value}')
    if amount < 0:
        raise ValueError('O valor não pode ser negativo')

    return amount


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
