from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """
    Normalize a numeric value to a 2-decimal Decimal.

    - Accepts None, int, float, str, Decimal
    - Floats go through str() so 0.1 stays 0.10
    """
    if value is None:
        return ZERO

    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}")


def split_amount(total: Decimal, weights: list) -> list:
    """
    Split total across weights proportionally, rounded to cents.

    Every part is rounded down first, then the leftover cents go one at a
    time to the parts that lost the most in rounding (larger weight first on
    a tie). Parts are never negative and always sum exactly to total.
    """
    total = to_money(total)
    weight_sum = sum(weights, Decimal("0"))
    if not weights or weight_sum <= 0:
        raise ValueError("Weights must sum to a positive number")
    if any(w < 0 for w in weights):
        raise ValueError("Weights cannot be negative")

    exact = [total * w / weight_sum for w in weights]
    parts = [e.quantize(CENT, rounding=ROUND_DOWN) for e in exact]

    leftover = int((total - sum(parts, ZERO)) / CENT)
    order = sorted(
        range(len(weights)),
        key=lambda i: (exact[i] - parts[i], weights[i], -i),
        reverse=True,
    )
    for i in order[:leftover]:
        parts[i] += CENT
    return parts
