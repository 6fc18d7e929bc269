"""
weighted_sampler.py
Weighted random selection over catalog items
"""

import logging
from typing import Optional, Sequence, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

FAVORITE_MULTIPLIER = 2.5
MAX_RATING = 5.0
RATING_OFFSET = 0.5

T = TypeVar('T')


def item_weight(item) -> float:
    """Sampling weight: favorites x2.5, rated items x(rating/5 + 0.5)"""
    weight = 1.0

    if item.is_favorite:
        weight *= FAVORITE_MULTIPLIER

    # Meals carry no rating
    rating = getattr(item, 'rating', None)
    if rating is not None and rating > 0:
        weight *= (rating / MAX_RATING) + RATING_OFFSET

    return weight


class WeightedSampler:
    """Picks one item from a candidate list, favoring favorites and high ratings"""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def sample(self, items: Sequence[T], weight_favorites: bool = True) -> T:
        if not items:
            raise ValueError("Cannot sample from an empty candidate list")

        if len(items) == 1:
            return items[0]

        if not weight_favorites:
            return items[int(self.rng.random() * len(items))]

        weights = np.array([item_weight(item) for item in items])
        total = weights.sum()
        target = self.rng.random() * total

        # First index whose running total reaches the target
        index = int(np.searchsorted(np.cumsum(weights), target, side='left'))
        if index >= len(items):
            logger.debug("Weighted walk overran the candidate list, using last item")
            return items[-1]

        return items[index]
