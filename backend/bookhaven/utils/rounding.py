"""Rounding used for every stored rating aggregate."""
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float, digits: int = 1) -> float:
    """
    Round half away from zero, e.g. 3.25 -> 3.3.

    Built-in round() uses banker's rounding on the binary float, which would
    make the stored mean depend on representation noise.

    Example:
        round_half_up(10 / 3)  # 3.3
        round_half_up(3.25)    # 3.3
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
