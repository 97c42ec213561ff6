"""Human-readable impact values (``1.5k``, ``12.5%``)."""

import math
from decimal import ROUND_HALF_UP, Decimal

_UNITS = ["k", "M", "B", "T", "P", "E", "Z", "Y"]

# Magnitudes below this render in exponent notation (``1e-10``)
_EXPONENT_THRESHOLD = Decimal("1e-6")


def _is_blank(value: float | None) -> bool:
    return value is None or math.isnan(value) or value == 0


def _to_fixed(value: float, places: int) -> str:
    """Round half up on the exact binary value and drop trailing zeros."""
    rounded = Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    if rounded == 0:
        return "0"
    if abs(rounded) < _EXPONENT_THRESHOLD:
        mantissa, exponent = repr(float(rounded)).split("e")
        return f"{mantissa}e{int(exponent)}"
    return format(rounded.normalize(), "f")


def _small_value_places(abs_value: float) -> int:
    """Enough decimals for values below 0.1 not to render as 0.0."""
    return max(1, math.ceil(-math.log10(abs_value)) + 1)


def format_impact_value(value: float | None) -> str:
    """Format value with a thousands suffix and one decimal."""
    if _is_blank(value):
        return "0"
    if math.isinf(value):
        return "-Infinity" if value < 0 else "Infinity"

    abs_value = abs(value)
    unit = ""
    index = 0
    while abs_value >= 1000 and index < len(_UNITS):
        abs_value /= 1000
        unit = _UNITS[index]
        index += 1

    if 0 < abs_value < 0.1:
        number = _to_fixed(abs_value, _small_value_places(abs_value))
    else:
        number = _to_fixed(abs_value, 1)

    sign = "-" if value < 0 else ""
    return f"{sign}{number}{unit}"


def format_impact_percentage(value: float | None) -> str:
    """Format a fraction as a percentage with one decimal."""
    if _is_blank(value):
        return "0%"
    if math.isinf(value):
        return "-Infinity%" if value < 0 else "Infinity%"

    abs_pct_value = abs(value * 100)
    if 0 < abs_pct_value < 0.1:
        number = _to_fixed(abs_pct_value, _small_value_places(abs_pct_value))
    else:
        number = _to_fixed(abs_pct_value, 1)

    sign = "-" if value < 0 else ""
    return f"{sign}{number}%"
