"""
Random selection of card ids.
"""

import random
from typing import Any, List, Optional, Sequence


def sample_card_ids(card_ids: Sequence[int], count: int, rng: Optional[Any] = None) -> List[int]:
    """Randomly select ``count`` ids from ``card_ids``.

    If ``count`` covers the whole input, the ids are returned in their
    original order. Otherwise a Fisher-Yates shuffle runs over a copy and the
    first ``count`` ids are returned. The input is never modified.

    Args:
        card_ids: Ids to choose from
        count: Number of ids wanted, at least 1
        rng: Source of randomness with a ``randint(a, b)`` method; defaults
            to the ``random`` module
    """
    if count < 1:
        raise ValueError(f"count must be a positive integer, got {count}")
    if count >= len(card_ids):
        return list(card_ids)

    rng = random if rng is None else rng
    shuffled = list(card_ids)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled[:count]
