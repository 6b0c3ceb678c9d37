from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value, default=ZERO):
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 0.1 from leaking binary noise into the result.
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid decimal value: {value!r}")


def round2(value):
    """Round half up to two decimal places, the precision every stored figure uses."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format2(value):
    return f"{round2(value):.2f}"
