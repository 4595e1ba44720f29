# src/assessment_engine/core/sampling.py
import random
from typing import Iterable, List, MutableSequence, Optional, TypeVar

T = TypeVar("T")


def shuffle_in_place(items: MutableSequence[T], rng: Optional[random.Random] = None) -> MutableSequence[T]:
    """
    Fisher-Yates shuffle. Pass a seeded random.Random for reproducible order.
    """
    rng = rng or random.Random()
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def sample_without_replacement(pool: Iterable[T], count: int, rng: Optional[random.Random] = None) -> List[T]:
    """
    Uniform random permutation of the pool, first `count` taken.
    The caller is responsible for checking count <= len(pool).
    """
    # Sorted first so a seeded rng gives the same draw regardless of set ordering
    items = sorted(pool)
    shuffle_in_place(items, rng)
    return items[:count]
