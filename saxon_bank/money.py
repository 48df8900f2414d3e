"""
Money helpers

All monetary values are Decimal quantized to cents with ROUND_HALF_UP.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any, Optional

from .errors import InvalidAmount

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

# Per-operation ceiling when the caller does not supply one
MAX_AMOUNT = Decimal('1000000000.00')
# Largest balance an account may hold; keeps sums well inside prec 28
MAX_BALANCE = Decimal('999999999999999.99')


def quantize(amount: Decimal) -> Decimal:
    """Round to cents"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """Convert a stored or user-supplied value to Decimal without validation"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def parse_amount(value: Any, maximum: Optional[Decimal] = MAX_AMOUNT) -> Decimal:
    """
    Validate and normalize a user-supplied amount.

    Accepts Decimal, int, float and numeric strings. Booleans, non-numeric
    input, NaN, infinities, zero, negative values and values above
    ``maximum`` raise InvalidAmount. Floats go through str() so 0.1 becomes
    Decimal('0.1'), not its binary expansion.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount(f"Invalid amount: {value!r}")

    try:
        amount = to_decimal(value.strip() if isinstance(value, str) else value)
        if not amount.is_finite():
            raise InvalidAmount(f"Invalid amount: {value!r}")
        if maximum is not None and amount > maximum:
            raise InvalidAmount(f"Amount exceeds the maximum of {format_currency(maximum)}")
        # Quantizing a huge exponent overflows the context precision
        amount = quantize(amount)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"Invalid amount: {value!r}")

    if amount <= ZERO:
        raise InvalidAmount("Amount must be greater than zero")

    return amount


def format_currency(amount: Decimal, symbol: str = "$") -> str:
    """Format for display, e.g. $1,234.50"""
    amount = quantize(amount)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
