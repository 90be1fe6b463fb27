"""Fixed-point helpers. Every amount in the ledger carries 6 fractional digits."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

from stacksave.errors import ValidationError

QUANTUM = Decimal('0.000001')
ZERO = Decimal('0')
DAYS_PER_YEAR = Decimal('365')
HUNDRED = Decimal('100')
# Numeric(18, 6) leaves 12 integer digits
MAX_MONEY = Decimal('1e12')


def to_money(value, field='amount'):
    """Coerce `value` into a 6-digit Decimal, raising ValidationError on junk."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid {field}", field=field)
    try:
        # str() first so floats like 0.1 keep their printed value
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid {field}", field=field)
    if not amount.is_finite():
        raise ValidationError(f"Invalid {field}", field=field)
    if abs(amount) >= MAX_MONEY:
        raise ValidationError(f"Invalid {field}: out of range", field=field)
    try:
        return amount.quantize(QUANTUM, rounding=ROUND_HALF_EVEN)
    except InvalidOperation:
        raise ValidationError(f"Invalid {field}", field=field)


def positive_money(value, field='amount'):
    amount = to_money(value, field)
    if amount <= ZERO:
        raise ValidationError(f"Invalid {field}: must be greater than zero", field=field)
    return amount


def quantize(value):
    return Decimal(value).quantize(QUANTUM, rounding=ROUND_HALF_EVEN)


def daily_yield(amount, apy):
    """One day of simple yield: amount * apy / 365 / 100."""
    return quantize(Decimal(amount) * Decimal(apy) / DAYS_PER_YEAR / HUNDRED)
