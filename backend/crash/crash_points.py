from __future__ import annotations

import random
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence, Tuple

from .curve import ONE, q2


def _pool(*values: str) -> Tuple[Decimal, ...]:
    return tuple(Decimal(v) for v in values)


# Uniform draw from this pool == weighting by duplicate count.
# Most entries sit in [1.00, 5.00], a few in (5, 15], one rare 20x.
DEFAULT_CRASH_POINTS = _pool(
    "1.00", "1.02", "1.05", "1.08", "1.10", "1.13", "1.16", "1.19", "1.22", "1.25",
    "1.30", "1.35", "1.40", "1.45", "1.50", "1.60", "1.70", "1.80", "1.90", "2.00",
    "2.15", "2.30", "2.45", "2.60", "2.75", "2.90", "3.10", "3.30", "3.50", "3.75",
    "4.00", "4.25", "4.50", "4.75", "5.00",
    "1.00", "1.03", "1.06", "1.09", "1.11", "1.14", "1.17", "1.20", "1.23", "1.26",
    "1.31", "1.36", "1.41", "1.46", "1.51", "1.65", "1.75", "1.85", "1.95", "2.05",
    "2.20", "2.35", "2.50", "2.65", "2.80", "2.95", "3.15", "3.35", "3.55", "3.80",
    "4.05", "4.30", "4.55", "4.80", "5.00",
    # very low crashes
    "1.00", "1.00", "1.00", "1.00", "1.00",
    "1.50", "1.75", "2.25", "2.50", "2.75", "3.00", "3.25", "3.50", "3.75", "4.00",
    "4.25", "4.50", "4.75",
    "5.50", "6.00", "7.00", "8.00", "9.00", "10.00",
    "12.00", "15.00",
    "20.00",
)


def normalize_pool(values: Iterable) -> Tuple[Decimal, ...]:
    try:
        pool = tuple(q2(v) for v in values)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Crash point pool contains a non-numeric entry: {values!r}") from None
    if not pool:
        raise ValueError("Crash point pool must not be empty")
    below = [v for v in pool if v < ONE]
    if below:
        raise ValueError(f"Crash points must be >= 1.00, got {below[0]}")
    return pool


def share_at_most(pool: Sequence[Decimal], limit: Decimal) -> float:
    """Fraction of the pool that crashes at or below `limit`."""
    if not pool:
        return 0.0
    return sum(1 for v in pool if v <= limit) / len(pool)


class CrashPointGenerator:
    """Samples one crash target per round from a weighted pool."""

    def __init__(self, pool: Iterable = DEFAULT_CRASH_POINTS, rng: Optional[random.Random] = None):
        self.pool = normalize_pool(pool)
        self._rng = rng or random.SystemRandom()

    def draw(self) -> Decimal:
        return self._rng.choice(self.pool)
