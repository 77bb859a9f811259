"""Weighted-random menu recommendation."""

import logging
import random
from typing import List, Optional, Sequence, Tuple, Union

from .models import FacetType, MenuCatalog, MenuFilters, MenuItem, NoMatch, WeightProfile

logger = logging.getLogger(__name__)


def filter_menus(menus: Sequence[MenuItem], filters: Optional[MenuFilters]) -> List[MenuItem]:
    """Keep menus matching every filter that is set."""
    filters = filters or MenuFilters()
    candidates = list(menus)

    if filters.food_group:
        candidates = [menu for menu in candidates if menu.group == filters.food_group]
    if filters.food_category:
        candidates = [menu for menu in candidates if menu.category == filters.food_category]
    if filters.cuisine:
        candidates = [menu for menu in candidates if menu.cuisine == filters.cuisine]

    return candidates


def composite_score(menu: MenuItem, profile: WeightProfile) -> float:
    """Product of the menu's cuisine, group and category weights."""
    return (
        profile.weight(FacetType.CUISINE, menu.cuisine)
        * profile.weight(FacetType.FOOD_GROUP, menu.group)
        * profile.weight(FacetType.FOOD_CATEGORY, menu.category)
    )


class RecommendationSampler:
    """Picks one menu from the filtered catalog, biased by a weight profile."""

    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()

    def score_candidates(self, candidates: Sequence[MenuItem], profile: WeightProfile) -> List[Tuple[MenuItem, float]]:
        return [(menu, composite_score(menu, profile)) for menu in candidates]

    def weighted_choice(self, candidates: Sequence[MenuItem], profile: WeightProfile) -> MenuItem:
        """Draw a candidate with probability proportional to its composite score."""
        scored = self.score_candidates(candidates, profile)
        total = sum(score for _, score in scored)

        logger.debug(
            f"Weighted pick over {len(scored)} menus, total score {total:.3f}; "
            f"top: {[(menu.name, round(score, 3)) for menu, score in scored[:5]]}"
        )

        if total <= 0:
            return self.rng.choice(list(candidates))

        threshold = self.rng.random() * total
        cumulative = 0.0
        for menu, score in scored:
            cumulative += score
            if cumulative > threshold:
                return menu

        # Only reachable through floating point rounding
        return self.rng.choice(list(candidates))

    def recommend(
        self,
        catalog: Union[MenuCatalog, Sequence[MenuItem]],
        filters: Optional[MenuFilters] = None,
        profile: Optional[WeightProfile] = None
    ) -> Union[MenuItem, NoMatch]:
        """Recommend one menu, or ``NoMatch`` when the filters leave nothing."""
        menus = catalog.menus if isinstance(catalog, MenuCatalog) else catalog
        filters = filters or MenuFilters()
        candidates = filter_menus(menus, filters)

        if not candidates:
            logger.info(f"No menu matched filters {filters.model_dump(exclude_none=True)}")
            return NoMatch(filters=filters)

        if profile is None:
            return self.rng.choice(candidates)

        return self.weighted_choice(candidates, profile)
