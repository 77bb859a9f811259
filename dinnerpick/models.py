"""Data models for the DinnerPick MCP Server."""

import math
from typing import Dict, List, Optional, Set
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum

DEFAULT_WEIGHT = 1.0
MIN_WEIGHT = 0.1
MAX_WEIGHT = 2.0


class FacetType(str, Enum):
    """Classification axes of a menu item."""
    CUISINE = "cuisine"
    FOOD_GROUP = "food_group"
    FOOD_CATEGORY = "food_category"


class LocationSource(str, Enum):
    """Where a user location came from."""
    DEVICE = "device"
    FALLBACK = "fallback"


class RankingPhase(str, Enum):
    """Lifecycle of a proximity ranking pass."""
    IDLE = "idle"
    FETCHING = "fetching"
    RANKED = "ranked"


def is_valid_coordinate(lat: Optional[float], lng: Optional[float]) -> bool:
    """Return True when lat/lng are finite and inside the valid degree ranges."""
    if lat is None or lng is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


class Coordinates(BaseModel):
    """Latitude/longitude pair in degrees."""
    lat: float
    lng: float


class GeocodeResult(Coordinates):
    """Successful geocoding response."""
    road_address: Optional[str] = None
    jibun_address: Optional[str] = None


class UserLocation(Coordinates):
    """User position used for one ranking pass."""
    model_config = ConfigDict(frozen=True)

    source: LocationSource = LocationSource.DEVICE


class RestaurantRecord(BaseModel):
    """Restaurant as fetched from the store source."""
    id: str
    name: str
    address: str = ""
    category: str = "기타"
    lat: Optional[float] = None
    lng: Optional[float] = None
    distance_m: Optional[float] = None
    is_favorite: bool = False
    telno: Optional[str] = None
    open_hours: Optional[str] = None
    representative_menu: Optional[str] = None
    menu_names: List[str] = []
    menu_prices: List[str] = []
    naver_url: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return is_valid_coordinate(self.lat, self.lng)


class MapMarker(BaseModel):
    """Map pin for a restaurant with known coordinates."""
    lat: float
    lng: float
    name: str
    address: str
    distance: float
    id: str


class RankingResult(BaseModel):
    """Output of a proximity ranking pass."""
    ranked: List[RestaurantRecord] = []
    markers: List[MapMarker] = []
    superseded: bool = False


class MenuItem(BaseModel):
    """A single menu entry with its three facet labels."""
    model_config = ConfigDict(frozen=True)

    name: str
    cuisine: Optional[str] = None
    group: Optional[str] = None
    category: Optional[str] = None


class MenuCatalog(BaseModel):
    """Menu reference data loaded once per session."""
    menus: List[MenuItem] = []
    categories: Dict[str, List[str]] = {}
    cuisine_types: List[str] = Field(default_factory=list, alias="cuisineTypes")

    model_config = ConfigDict(populate_by_name=True)

    def facet_keys(self) -> Dict[FacetType, Set[str]]:
        """Collect every known key per facet."""
        keys: Dict[FacetType, Set[str]] = {facet: set() for facet in FacetType}
        keys[FacetType.CUISINE].update(self.cuisine_types)
        for group, categories in self.categories.items():
            keys[FacetType.FOOD_GROUP].add(group)
            keys[FacetType.FOOD_CATEGORY].update(categories)
        for menu in self.menus:
            if menu.cuisine:
                keys[FacetType.CUISINE].add(menu.cuisine)
            if menu.group:
                keys[FacetType.FOOD_GROUP].add(menu.group)
            if menu.category:
                keys[FacetType.FOOD_CATEGORY].add(menu.category)
        return keys

    def categories_for(self, group: str) -> List[str]:
        return list(self.categories.get(group, []))


class MenuFilters(BaseModel):
    """Optional exact-match facet selections."""
    cuisine: Optional[str] = None
    food_group: Optional[str] = None
    food_category: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.cuisine or self.food_group or self.food_category)


class NoMatch(BaseModel):
    """Recommendation outcome when no menu survives the filters."""
    filters: MenuFilters = Field(default_factory=MenuFilters)
    message: str = "No menu matches the selected filters."


class WeightProfile(BaseModel):
    """Per-user multiplicative weights for each facet."""
    cuisine: Dict[str, float] = {}
    food_group: Dict[str, float] = {}
    food_category: Dict[str, float] = {}

    @field_validator("cuisine", "food_group", "food_category")
    @classmethod
    def _sanitize_weights(cls, value: Dict[str, float]) -> Dict[str, float]:
        sanitized = {}
        for key, weight in value.items():
            if weight is None or not math.isfinite(weight):
                sanitized[key] = DEFAULT_WEIGHT
            else:
                sanitized[key] = min(MAX_WEIGHT, max(MIN_WEIGHT, float(weight)))
        return sanitized

    def weights_for(self, facet: FacetType) -> Dict[str, float]:
        return getattr(self, facet.value)

    def weight(self, facet: FacetType, key: Optional[str]) -> float:
        """Weight for a facet key; unseen keys are neutral."""
        if not key:
            return DEFAULT_WEIGHT
        return self.weights_for(facet).get(key, DEFAULT_WEIGHT)


class RatingOutcome(BaseModel):
    """Result of applying a user rating to a recommendation."""
    profile: WeightProfile
    persisted: bool = True
    notice: Optional[str] = None
