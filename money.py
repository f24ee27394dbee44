from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from errors import InvalidArgument

CENT = Decimal("0.01")
# largest value a signed 64-bit INTEGER column holds
MAX_CENTS = 2**63 - 1


def amount_to_cents(amount: Decimal) -> int:
    """Convert a decimal amount to integer cents, rounding half-up."""
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidArgument(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise InvalidArgument(f"Invalid amount: {amount!r}")
    try:
        cents = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        # more digits than the decimal context can hold
        raise InvalidArgument("Amount is too large") from exc
    return check_cents(cents)


def check_cents(cents: int) -> int:
    if abs(cents) > MAX_CENTS:
        raise InvalidArgument("Amount is too large")
    return cents


def cents_to_amount(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)
