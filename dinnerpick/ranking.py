"""Distance ranking of restaurant records around a user location."""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .config import settings
from .distance import haversine_distance
from .errors import GeocodeServiceError
from .geocoding import GeocodeResolver
from .models import (
    MapMarker, RankingPhase, RankingResult, RestaurantRecord, UserLocation,
    is_valid_coordinate
)

logger = logging.getLogger(__name__)


def sort_records(records: Sequence[RestaurantRecord], by: str = "distance") -> List[RestaurantRecord]:
    """Order records by distance (unknown distances last) or by name."""
    if by == "name":
        return sorted(records, key=lambda r: r.name)
    if by != "distance":
        raise ValueError(f"Unknown sort key: {by}")
    return sorted(
        records,
        key=lambda r: (r.distance_m is None, r.distance_m if r.distance_m is not None else 0.0)
    )


def reconcile_favorites(
    records: Sequence[RestaurantRecord],
    favorites: Optional[Dict[str, bool]]
) -> List[RestaurantRecord]:
    """Return copies of ``records`` carrying the favorite flags from ``favorites``.

    Records whose id is not in the map keep their own flag.
    """
    favorites = favorites or {}
    return [
        record.model_copy(update={"is_favorite": bool(favorites.get(record.id, record.is_favorite))})
        for record in records
    ]


def build_markers(records: Sequence[RestaurantRecord]) -> List[MapMarker]:
    """Map markers for the records whose distance is known, in list order."""
    return [
        MapMarker(
            lat=record.lat,
            lng=record.lng,
            name=record.name,
            address=record.address,
            distance=record.distance_m,
            id=record.id,
        )
        for record in records
        if record.has_coordinates and record.distance_m is not None
    ]


class ProximityRanker:
    """Ranks restaurant batches by distance from the user.

    A ranker remembers the last pass it applied and every address it has
    geocoded. Re-ranking its own output at the same location is a no-op,
    and a pass that finishes after a newer one started is reported as
    superseded and never replaces the current result.
    """

    def __init__(
        self,
        resolver: GeocodeResolver,
        max_results: int = None,
        geocode_delay: float = None
    ):
        self.resolver = resolver
        self.max_results = max_results or settings.max_ranked_results
        self.geocode_delay = settings.geocode_delay_seconds if geocode_delay is None else geocode_delay
        self._phase = RankingPhase.IDLE
        self._result = RankingResult()
        self._last_location: Optional[UserLocation] = None
        self._generation = 0
        self._geocoded: Dict[str, Tuple[float, float]] = {}

    @property
    def phase(self) -> RankingPhase:
        return self._phase

    @property
    def result(self) -> RankingResult:
        return self._result

    @property
    def last_location(self) -> Optional[UserLocation]:
        return self._last_location

    def _is_already_ranked(self, batch: List[RestaurantRecord], location: UserLocation) -> bool:
        """True when ``batch`` is this ranker's last output at an unchanged location."""
        if self._last_location is None or self._last_location != location:
            return False
        if not any(record.distance_m is not None for record in batch):
            return False
        applied_ids = {record.id for record in self._result.ranked}
        return all(record.id in applied_ids for record in batch)

    async def rank(
        self,
        records: Sequence[RestaurantRecord],
        location: UserLocation,
        favorites: Optional[Dict[str, bool]] = None
    ) -> RankingResult:
        """Rank ``records`` around ``location`` and reconcile favorite flags."""
        batch = [record.model_copy(deep=True) for record in records]
        location = location.model_copy()

        if not batch:
            self._generation += 1
            result = RankingResult()
            self._apply(result, location)
            return result

        if self._is_already_ranked(batch, location):
            logger.debug("Batch already ranked at this location, skipping pass")
            ranked = reconcile_favorites(sort_records(batch)[:self.max_results], favorites)
            return RankingResult(ranked=ranked, markers=build_markers(ranked))

        self._generation += 1
        generation = self._generation
        self._phase = RankingPhase.FETCHING

        located = await self._locate(batch)
        with_distance = [self._with_distance(record, location) for record in located]
        ranked = sort_records(with_distance)[:self.max_results]
        ranked = reconcile_favorites(ranked, favorites)

        resolved = sum(1 for record in ranked if record.distance_m is not None)
        logger.info(f"Ranked {len(ranked)} of {len(batch)} restaurants ({resolved} with distance)")

        result = RankingResult(ranked=ranked, markers=build_markers(ranked))

        if generation != self._generation:
            logger.info(f"Ranking pass {generation} superseded by pass {self._generation}, discarding")
            return result.model_copy(update={"superseded": True})

        self._apply(result, location)
        return result

    def _apply(self, result: RankingResult, location: UserLocation) -> None:
        self._result = result
        self._last_location = location
        self._phase = RankingPhase.RANKED

    async def _locate(self, batch: List[RestaurantRecord]) -> List[RestaurantRecord]:
        """Fill in missing coordinates one record at a time."""
        located = []
        last_index = len(batch) - 1

        for index, record in enumerate(batch):
            if record.has_coordinates:
                located.append(record)
                continue

            if record.lat is not None or record.lng is not None:
                logger.warning(f"Ignoring invalid coordinates for {record.name}: ({record.lat}, {record.lng})")

            cached = self._geocoded.get(record.address)
            if cached:
                lat, lng = cached
                located.append(record.model_copy(update={"lat": lat, "lng": lng}))
                continue

            coordinates = await self._resolve(record)
            if coordinates:
                self._geocoded[record.address] = coordinates
                lat, lng = coordinates
                located.append(record.model_copy(update={"lat": lat, "lng": lng}))
            else:
                located.append(record.model_copy(update={"lat": None, "lng": None, "distance_m": None}))

            if index != last_index and self.geocode_delay > 0:
                await asyncio.sleep(self.geocode_delay)

        return located

    async def _resolve(self, record: RestaurantRecord) -> Optional[Tuple[float, float]]:
        logger.debug(f"Geocoding {record.name} - {record.address}")
        try:
            result = await self.resolver.resolve(record.address)
        except GeocodeServiceError as e:
            logger.warning(f"Geocoding service error for {record.name}: {e}")
            return None

        if result is None:
            logger.warning(f"Failed to geocode: {record.name} - {record.address}")
            return None
        if not is_valid_coordinate(result.lat, result.lng):
            logger.warning(f"Geocoder returned invalid coordinates for {record.name}: ({result.lat}, {result.lng})")
            return None

        return result.lat, result.lng

    @staticmethod
    def _with_distance(record: RestaurantRecord, location: UserLocation) -> RestaurantRecord:
        if not record.has_coordinates:
            return record.model_copy(update={"distance_m": None})
        distance = haversine_distance(location.lat, location.lng, record.lat, record.lng)
        return record.model_copy(update={"distance_m": distance})
