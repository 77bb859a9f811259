"""Online learning of facet weights from user ratings."""

import logging
from typing import Dict, Iterable, Mapping, Optional, Union

from .config import settings
from .models import (
    DEFAULT_WEIGHT, MAX_WEIGHT, MIN_WEIGHT, FacetType, MenuCatalog, MenuItem,
    WeightProfile
)

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 10
RATING_MIDPOINT = 5.5
RATING_HALF_RANGE = 4.5


def initialize_profile(
    known_keys: Union[MenuCatalog, Mapping[FacetType, Iterable[str]]]
) -> WeightProfile:
    """Create a neutral profile with every known facet key set to 1.0."""
    if isinstance(known_keys, MenuCatalog):
        known_keys = known_keys.facet_keys()

    return WeightProfile(**{
        facet.value: {key: DEFAULT_WEIGHT for key in known_keys.get(facet, ())}
        for facet in FacetType
    })


def rating_adjustment(rating: float) -> float:
    """Map a 1-10 rating onto roughly [-1, 1]."""
    return (rating - RATING_MIDPOINT) / RATING_HALF_RANGE


class WeightLearner:
    """Nudges facet weights toward or away from neutral after each rating."""

    def __init__(
        self,
        learning_rate: float = None,
        min_weight: float = MIN_WEIGHT,
        max_weight: float = MAX_WEIGHT
    ):
        self.learning_rate = settings.learning_rate if learning_rate is None else learning_rate
        self.min_weight = min_weight
        self.max_weight = max_weight

    def clamp(self, weight: float) -> float:
        return max(self.min_weight, min(self.max_weight, weight))

    def update(self, profile: Optional[WeightProfile], item: MenuItem, rating: float) -> WeightProfile:
        """Return a new profile with the delivered item's facets adjusted.

        Only the three keys the item carries change; the input profile is
        left untouched so callers can swap the whole value in one step.
        """
        profile = profile or WeightProfile()

        if not MIN_RATING <= rating <= MAX_RATING:
            logger.warning(f"Rating {rating} outside {MIN_RATING}-{MAX_RATING}, clamping")
            rating = max(MIN_RATING, min(MAX_RATING, rating))

        adjustment = rating_adjustment(rating)
        logger.debug(f"Rating {rating} -> adjustment {adjustment:.3f} (learning rate {self.learning_rate})")

        facet_keys: Dict[FacetType, Optional[str]] = {
            FacetType.CUISINE: item.cuisine,
            FacetType.FOOD_GROUP: item.group,
            FacetType.FOOD_CATEGORY: item.category,
        }

        updated = {}
        for facet, key in facet_keys.items():
            weights = dict(profile.weights_for(facet))
            if key:
                current = weights.get(key, DEFAULT_WEIGHT)
                new_weight = self.clamp(current + self.learning_rate * adjustment)
                logger.debug(f"{key}: {current:.3f} → {new_weight:.3f}")
                weights[key] = new_weight
            updated[facet.value] = weights

        return WeightProfile(**updated)


def learn_from_rating(profile: Optional[WeightProfile], item: MenuItem, rating: float) -> WeightProfile:
    """Apply one rating with the default learner."""
    return WeightLearner().update(profile, item, rating)
