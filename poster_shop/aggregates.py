from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple, Union


def summarize_ratings(stars: Iterable[int]) -> Tuple[Union[int, float], int]:
    """Return ``(average, total)`` for a collection of star values.

    The average is rounded half-up to one decimal place. An empty collection
    yields ``(0, 0)``.
    """
    values = [int(value) for value in stars]
    if not values:
        return 0, 0

    average = Decimal(sum(values)) / Decimal(len(values))
    rounded = average.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(rounded), len(values)
