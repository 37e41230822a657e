"""
initializers.py
~~~~~~~~~~~~~~~

Random distributions used to initialize weights and biases.

Every function takes an optional ``rng`` (a ``numpy.random.Generator``).
Without one, a module-level generator is used; pass a seeded generator to
make network construction reproducible.
"""

import math
from typing import Optional

import numpy as np

_default_rng = np.random.default_rng()


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return _default_rng if rng is None else rng


def seed(value: Optional[int]) -> None:
    """Reseed the module-level generator."""
    global _default_rng
    _default_rng = np.random.default_rng(value)


def random_normal(mean: float = 0.0, std_dev: float = 1.0,
                  rng: Optional[np.random.Generator] = None) -> float:
    return float(_rng(rng).normal(mean, std_dev))


def random_uniform(low: float = 0.0, high: float = 1.0,
                   rng: Optional[np.random.Generator] = None) -> float:
    """Sample from ``[low, high)``."""
    return float(_rng(rng).uniform(low, high))


def random_normal_he(fan_in: int,
                     rng: Optional[np.random.Generator] = None) -> float:
    """Kaiming He normal: ``N(0, sqrt(2 / fan_in))``."""
    return random_normal(0.0, math.sqrt(2.0 / fan_in), rng)


def random_normal_xavier(fan_in: int, fan_out: int,
                         rng: Optional[np.random.Generator] = None) -> float:
    """Glorot normal: ``N(0, sqrt(2 / (fan_in + fan_out)))``."""
    return random_normal(0.0, math.sqrt(2.0 / (fan_in + fan_out)), rng)


def random_uniform_he(fan_in: int,
                      rng: Optional[np.random.Generator] = None) -> float:
    limit = math.sqrt(6.0 / fan_in)
    return random_uniform(-limit, limit, rng)


def random_uniform_xavier(fan_in: int, fan_out: int,
                          rng: Optional[np.random.Generator] = None) -> float:
    """Glorot uniform: ``U(-sqrt(6 / (fan_in + fan_out)), +sqrt(...))``."""
    limit = math.sqrt(6.0 / (fan_in + fan_out))
    return random_uniform(-limit, limit, rng)


def random_int(low: int, high: int,
               rng: Optional[np.random.Generator] = None) -> int:
    """Sample an integer from ``[low, high]`` (both ends inclusive)."""
    return int(_rng(rng).integers(low, high, endpoint=True))
