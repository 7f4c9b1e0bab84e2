from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

TWO_PLACES = Decimal("0.01")
ONE = Decimal("1.00")

# raw(t) = 1 + LINEAR * t + CURVE * t^EXPONENT
LINEAR = 0.1
CURVE = 0.05
EXPONENT = 1.5


def q2(value) -> Decimal:
    """Quantize to 2 decimal places. Used for every visible multiplier and amount."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_amount(value) -> Decimal:
    """
    Parse a wager/payout amount.

    Raises ValueError for anything that is not a finite number with at most
    two decimal places.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {value!r}")
        rounded = amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid amount: {value!r}") from None

    if amount != rounded:
        raise ValueError(f"Amount has more than 2 decimal places: {value!r}")
    return rounded


def raw_multiplier(elapsed: float) -> float:
    if elapsed <= 0:
        return 1.0
    return 1 + LINEAR * elapsed + CURVE * elapsed ** EXPONENT


def next_multiplier(elapsed: float, previous: Decimal, crash_target: Decimal) -> Decimal:
    """
    Live multiplier after `elapsed` seconds of flight.

    Never below `previous` (irregular ticks cannot make it go backwards) and
    never above `crash_target`.
    """
    value = max(previous, q2(raw_multiplier(elapsed)))
    return min(value, crash_target)


def payout(amount: Decimal, multiplier: Decimal) -> Decimal:
    return q2(amount * multiplier)
