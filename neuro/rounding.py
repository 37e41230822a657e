"""
rounding.py
~~~~~~~~~~~

Decimal rounding and the fixed-point encoding used by model documents.

Halves round towards positive infinity, matching ``Math.round`` in the
browser demo that reads the same documents.
"""

import math


def _scale(digits: int) -> int:
    if digits < 0:
        raise ValueError(f"digits must be non-negative, got {digits}")
    return 10 ** digits


def to_fixed_point(value: float, precision: int = 6) -> int:
    """
    Scale ``value`` by ``10**precision`` and round to the nearest integer.

    Raises:
        ValueError: ``value`` is NaN or too large to encode
    """
    scaled = value * _scale(precision)
    if not math.isfinite(scaled):
        raise ValueError(f"cannot encode non-finite value {value}")
    return int(math.floor(scaled + 0.5))


def from_fixed_point(value: int, precision: int = 6) -> float:
    return value / _scale(precision)


def round_half_up(value: float, digits: int = 2) -> float:
    """
    Round ``value`` to ``digits`` decimal places.

    >>> round_half_up(0.25, 1)
    0.3
    >>> round_half_up(1.23456)
    1.23
    """
    return from_fixed_point(to_fixed_point(value, digits), digits)
