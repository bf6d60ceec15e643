"""Deterministic pseudo-random helpers.

Every draw is a pure function of an integer seed, so the same logical inputs
always replay to the same outcome. This is a fairness/reproducibility device,
not a source of unpredictability: never use it where secrecy matters.
"""

import math
from typing import Sequence, TypeVar

T = TypeVar("T")


def seeded_random(seed: float) -> float:
    """Return a value in [0, 1) determined entirely by ``seed``.

    Computes ``frac(sin(seed) * 10000)``.

    Args:
        seed: Integer (or integral float) seed

    Returns:
        Float in [0, 1)
    """
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


def seeded_uniform(seed: float, lo: float, hi: float) -> float:
    """Draw from [lo, hi) using a single seeded value."""
    return lo + seeded_random(seed) * (hi - lo)


def seeded_index(seed: float, n: int) -> int:
    """Draw an index in [0, n)."""
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")
    return min(n - 1, math.floor(seeded_random(seed) * n))


def seeded_shuffle(items: Sequence[T], seed: int) -> list[T]:
    """Fisher-Yates shuffle driven by ``seed``.

    Position ``i`` (from the end down to 1) swaps with
    ``floor(r(seed + i) * (i + 1))``.

    Returns:
        New shuffled list; the input is not modified
    """
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = math.floor(seeded_random(seed + i) * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def stable_hash(text: str) -> int:
    """Position-weighted character sum, stable across processes.

    Python's built-in ``hash`` is salted per process and cannot feed a seed.
    """
    return sum((i + 1) * ord(ch) for i, ch in enumerate(text))
