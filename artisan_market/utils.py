from decimal import Decimal, ROUND_HALF_UP


# Business rule: prices stored rounded to 2 decimals, non-negative
def round_amount(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
