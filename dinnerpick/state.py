"""Per-user session state."""

from typing import Dict, Mapping, Optional

from .models import MenuItem, WeightProfile
from .ranking import ProximityRanker


def merge_favorite_maps(
    stored: Optional[Mapping[str, bool]],
    pending: Optional[Mapping[str, bool]]
) -> Dict[str, bool]:
    """Combine two favorite maps; entries in ``pending`` win."""
    return {**(stored or {}), **(pending or {})}


class UserSession:
    """State container for one user.

    Every setter swaps in a whole new value, so readers never see a
    half-applied update.
    """

    def __init__(self, ranker: ProximityRanker, user_id: str = None, default_profile: WeightProfile = None):
        self.user_id = user_id
        self.ranker = ranker
        self._default_profile = default_profile or WeightProfile()
        self._profile: WeightProfile = self._default_profile
        self._favorites: Dict[str, bool] = {}
        self._last_recommendation: Optional[MenuItem] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def profile(self) -> WeightProfile:
        return self._profile

    def set_profile(self, profile: WeightProfile) -> None:
        self._profile = profile

    @property
    def favorites(self) -> Dict[str, bool]:
        return dict(self._favorites)

    def set_favorites(self, favorites: Mapping[str, bool]) -> None:
        self._favorites = dict(favorites)

    def set_favorite(self, restaurant_id: str, is_favorite: bool) -> None:
        self._favorites = merge_favorite_maps(self._favorites, {restaurant_id: is_favorite})

    @property
    def last_recommendation(self) -> Optional[MenuItem]:
        return self._last_recommendation

    def set_last_recommendation(self, item: Optional[MenuItem]) -> None:
        self._last_recommendation = item

    def clear(self) -> None:
        """Reset to defaults on logout; stored data is left alone."""
        self._profile = self._default_profile
        self._favorites = {}
        self._last_recommendation = None
