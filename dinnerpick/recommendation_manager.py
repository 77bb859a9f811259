"""Recommendation manager tying ranking, sampling and learning to user sessions."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from .catalog import load_catalog
from .config import Settings, settings as default_settings
from .errors import CatalogLoadError, ProfileStoreError
from .geocoding import GeocodeResolver, get_geocode_resolver
from .models import (
    LocationSource, MenuCatalog, MenuFilters, MenuItem, NoMatch, RankingResult,
    RatingOutcome, RestaurantRecord, UserLocation, is_valid_coordinate
)
from .profile_store import ProfileStore, get_profile_store
from .ranking import ProximityRanker, build_markers, reconcile_favorites
from .sampler import RecommendationSampler
from .state import UserSession, merge_favorite_maps
from .store_client import StoreClient
from .weights import WeightLearner, initialize_profile

logger = logging.getLogger(__name__)

ANONYMOUS = ""


class RecommendationManager:
    """Manages user sessions, nearby restaurant ranking and menu recommendations."""

    def __init__(
        self,
        resolver: GeocodeResolver,
        profile_store: ProfileStore,
        store_client: StoreClient,
        catalog: MenuCatalog,
        sampler: RecommendationSampler = None,
        learner: WeightLearner = None,
        settings: Settings = None
    ):
        """Initialize recommendation manager."""
        self.settings = settings or default_settings
        self.resolver = resolver
        self.profile_store = profile_store
        self.store_client = store_client
        self.catalog = catalog
        self.sampler = sampler or RecommendationSampler()
        self.learner = learner or WeightLearner(learning_rate=self.settings.learning_rate)
        self._sessions: Dict[str, UserSession] = {}
        self._restaurants: List[RestaurantRecord] = []
        self._restaurants_version = 0
        self._ranked_versions: Dict[str, int] = {}

    # Sessions

    def _new_ranker(self) -> ProximityRanker:
        return ProximityRanker(
            self.resolver,
            max_results=self.settings.max_ranked_results,
            geocode_delay=self.settings.geocode_delay_seconds
        )

    def get_session(self, user_id: Optional[str] = None) -> UserSession:
        """Session for ``user_id``; ``None`` or empty is the anonymous session."""
        key = user_id or ANONYMOUS
        session = self._sessions.get(key)
        if session is None:
            session = UserSession(self._new_ranker(), user_id=user_id or None)
            self._sessions[key] = session
        return session

    async def login(self, user_id: str) -> UserSession:
        """Load (or create) the user's profile and favorites into their session."""
        if not user_id:
            raise ValueError("user_id is required to log in")

        session = self.get_session(user_id)

        try:
            profile = await self.profile_store.load_profile(user_id)
        except ProfileStoreError as e:
            logger.error(f"Failed to load profile for {user_id}: {e}")
            profile = None

        if profile is None:
            profile = initialize_profile(self.catalog)
            logger.info(f"Initialized neutral weight profile for {user_id}")
            try:
                await self.profile_store.save_profile(user_id, profile)
            except ProfileStoreError as e:
                logger.warning(f"Failed to persist initial profile for {user_id}: {e}")
        session.set_profile(profile)

        try:
            stored_favorites = await self.profile_store.load_favorites(user_id)
        except ProfileStoreError as e:
            logger.error(f"Failed to load favorites for {user_id}: {e}")
            stored_favorites = {}
        # Toggles made while the stored map was loading take precedence
        session.set_favorites(merge_favorite_maps(stored_favorites, session.favorites))

        return session

    async def ensure_session(self, user_id: Optional[str] = None) -> UserSession:
        """Session for ``user_id``, logging the user in on first use."""
        if user_id and user_id not in self._sessions:
            return await self.login(user_id)
        return self.get_session(user_id)

    def logout(self, user_id: str) -> None:
        """Drop the user's in-memory state; persisted data is kept."""
        session = self._sessions.pop(user_id, None)
        self._ranked_versions.pop(user_id, None)
        if session:
            session.clear()
            logger.info(f"Logged out {user_id}")

    # Ranking

    def resolve_location(self, latitude: Optional[float] = None, longitude: Optional[float] = None) -> UserLocation:
        """Device location when usable, the configured fallback otherwise."""
        if is_valid_coordinate(latitude, longitude):
            return UserLocation(lat=latitude, lng=longitude, source=LocationSource.DEVICE)
        if latitude is not None or longitude is not None:
            logger.warning(f"Ignoring invalid device location ({latitude}, {longitude})")
        return UserLocation(
            lat=self.settings.fallback_latitude,
            lng=self.settings.fallback_longitude,
            source=LocationSource.FALLBACK
        )

    async def refresh_restaurants(self) -> List[RestaurantRecord]:
        """Fetch the restaurant list from the store source."""
        self._restaurants = await self.store_client.fetch_restaurants_or_fallback()
        self._restaurants_version += 1
        return list(self._restaurants)

    async def rank_nearby(
        self,
        records: Optional[Sequence[RestaurantRecord]] = None,
        location: Optional[UserLocation] = None,
        favorites: Optional[Dict[str, bool]] = None,
        user_id: Optional[str] = None
    ) -> RankingResult:
        """Rank restaurants around ``location`` for the user's session.

        Without explicit records, the last fetched restaurant list is used.
        When that list has already been ranked for this session at the same
        location, the previous ranking is fed back in and the pass is a
        no-op; a new location ranks the full list again, reusing the
        ranker's known coordinates.
        """
        session = self.get_session(user_id)
        location = location or self.resolve_location()
        key = user_id or ANONYMOUS

        if records is None:
            if not self._restaurants:
                await self.refresh_restaurants()
            version = self._restaurants_version
            previous = session.ranker.result.ranked
            if (
                previous
                and self._ranked_versions.get(key) == version
                and session.ranker.last_location == location
            ):
                records = previous
            else:
                records = self._restaurants
        else:
            version = None

        if favorites is None:
            favorites = session.favorites

        result = await session.ranker.rank(records, location, favorites)
        if version is not None and not result.superseded:
            self._ranked_versions[key] = version
        return result

    def current_ranking(self, user_id: Optional[str] = None) -> RankingResult:
        """Last applied ranking with the session's current favorite flags."""
        session = self.get_session(user_id)
        ranked = reconcile_favorites(session.ranker.result.ranked, session.favorites)
        return RankingResult(ranked=ranked, markers=build_markers(ranked))

    # Recommendations

    def recommend(
        self,
        filters: Optional[MenuFilters] = None,
        user_id: Optional[str] = None
    ) -> Union[MenuItem, NoMatch]:
        """Recommend a menu; signed-in users get their weights applied."""
        session = self.get_session(user_id)
        profile = session.profile if session.is_authenticated else None

        result = self.sampler.recommend(self.catalog, filters, profile)
        session.set_last_recommendation(result if isinstance(result, MenuItem) else None)
        return result

    async def rate_recommendation(
        self,
        rating: float,
        user_id: Optional[str] = None,
        item: Optional[MenuItem] = None
    ) -> RatingOutcome:
        """Learn from a rating and persist the new profile.

        A persistence failure keeps the updated in-memory profile and is
        reported through ``RatingOutcome.notice``.
        """
        session = self.get_session(user_id)
        item = item or session.last_recommendation
        if item is None:
            raise ValueError("No recommendation to rate")

        if not session.is_authenticated:
            return RatingOutcome(
                profile=session.profile,
                persisted=False,
                notice="Log in to have ratings shape future recommendations."
            )

        profile = self.learner.update(session.profile, item, rating)
        session.set_profile(profile)

        try:
            await self.profile_store.save_profile(session.user_id, profile)
        except ProfileStoreError as e:
            logger.error(f"Error updating weights for {session.user_id}: {e}")
            return RatingOutcome(
                profile=profile,
                persisted=False,
                notice="Your rating was applied but could not be saved."
            )

        return RatingOutcome(profile=profile)

    # Favorites

    async def toggle_favorite(self, restaurant_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Flip a restaurant's favorite flag, rolling back if it cannot be saved."""
        session = self.get_session(user_id)
        if not session.is_authenticated:
            return {"success": False, "error": "Login required to save favorites"}

        ranked_flag = next(
            (record.is_favorite for record in session.ranker.result.ranked if record.id == restaurant_id),
            False
        )
        previous = session.favorites.get(restaurant_id, ranked_flag)
        new_status = not previous
        session.set_favorite(restaurant_id, new_status)

        try:
            await self.profile_store.save_favorite(session.user_id, restaurant_id, new_status)
        except ProfileStoreError as e:
            logger.error(f"Failed to save favorite {restaurant_id} for {session.user_id}: {e}")
            session.set_favorite(restaurant_id, previous)
            return {"success": False, "error": str(e), "is_favorite": previous}

        return {"success": True, "restaurant_id": restaurant_id, "is_favorite": new_status}

    def favorite_count(self, user_id: Optional[str] = None) -> int:
        return sum(1 for record in self.current_ranking(user_id).ranked if record.is_favorite)

    # Diagnostics

    async def test_connections(self) -> Dict[str, Any]:
        """Check each external collaborator."""
        results: Dict[str, Any] = {}

        resolver_test = getattr(self.resolver, "test_connection", None)
        results["geocoder"] = (
            await asyncio.to_thread(resolver_test) if resolver_test
            else {"success": False, "error": "Resolver has no connection test"}
        )
        results["store_api"] = await asyncio.to_thread(self.store_client.test_connection)

        store_test = getattr(self.profile_store, "test_connection", None)
        results["profile_store"] = (
            await store_test() if store_test
            else {"success": False, "error": "Profile store has no connection test"}
        )
        return results


def build_manager(config: Settings = None) -> RecommendationManager:
    """Wire a manager from configuration."""
    config = config or default_settings

    try:
        catalog = load_catalog(config.menu_catalog_path)
    except CatalogLoadError as e:
        logger.error(f"Failed to load menu catalog: {e}")
        catalog = MenuCatalog()

    return RecommendationManager(
        resolver=get_geocode_resolver(config),
        profile_store=get_profile_store(config),
        store_client=StoreClient(
            base_url=config.store_api_url,
            region_keyword=config.store_region_keyword,
            limit=config.store_fetch_limit,
            timeout=config.request_timeout_seconds
        ),
        catalog=catalog,
        settings=config
    )
