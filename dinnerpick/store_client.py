"""Client for the public restaurant store API."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from .config import settings
from .errors import StoreFetchError
from .models import RestaurantRecord

logger = logging.getLogger(__name__)

# Keys the store API has been seen to wrap its record list in
ENVELOPE_KEYS = ("results", "data", "stores", "list")

FALLBACK_RESTAURANTS = [
    RestaurantRecord(
        id="1",
        name="보배반점",
        address="대전광역시 서구 둔산동 1491 1층",
        category="중식",
        lat=36.3501,
        lng=127.3847,
    ),
    RestaurantRecord(
        id="2",
        name="고봉민김밥",
        address="대전광역시 서구 둔산로 133 (둔산동, 109호)",
        category="한식",
        lat=36.3505,
        lng=127.3842,
    ),
]


def _parse_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def unwrap_store_list(payload: Any) -> List[Dict[str, Any]]:
    """Extract the raw record list from whatever envelope the API used."""
    if isinstance(payload, dict):
        for key in ENVELOPE_KEYS:
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
    if isinstance(payload, list):
        return [store for store in payload if isinstance(store, dict)]
    logger.warning(f"Unexpected store API response structure: {type(payload).__name__}")
    return []


def map_store_record(data: Dict[str, Any], index: int) -> RestaurantRecord:
    """Convert a raw store API entry into a ``RestaurantRecord``."""
    return RestaurantRecord(
        id=_text(data.get("REST_ID")) or str(index),
        name=_text(data.get("REST_NM")) or "상호명 없음",
        address=_text(data.get("ADDR")) or "주소 정보 없음",
        category=_text(data.get("TOB_INFO")) or "기타",
        lat=_parse_float(data.get("LAT")),
        lng=_parse_float(data.get("LOT")),
        telno=_text(data.get("TELNO")),
        open_hours=_text(data.get("OPEN_HR_INFO")),
        representative_menu=_text(data.get("RPRS_MENU_NM")),
        menu_names=_as_list(data.get("MENU_KORN_NM")),
        menu_prices=_as_list(data.get("MENU_AMT")),
        naver_url=_text(data.get("SD_URL")),
    )


class StoreClient:
    """Fetches restaurant records from the store API."""

    def __init__(
        self,
        base_url: str = None,
        region_keyword: str = None,
        limit: int = None,
        timeout: float = None,
        session: requests.Session = None
    ):
        self.base_url = base_url or settings.store_api_url
        self.region_keyword = settings.store_region_keyword if region_keyword is None else region_keyword
        self.limit = limit or settings.store_fetch_limit
        self.timeout = timeout or settings.request_timeout_seconds
        self.session = session or requests.Session()

    def _get_payload(self) -> Any:
        try:
            response = self.session.get(
                self.base_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise StoreFetchError(f"Store API request failed: {e}") from e
        except ValueError as e:
            raise StoreFetchError(f"Store API returned invalid JSON: {e}") from e

    def test_connection(self) -> Dict[str, Any]:
        """Test store API connection."""
        try:
            stores = unwrap_store_list(self._get_payload())
            return {"success": True, "message": "Store API connection successful", "records": len(stores)}
        except StoreFetchError as e:
            logger.error(f"Store API connection test failed: {e}")
            return {"success": False, "error": str(e)}

    async def fetch_restaurants(self) -> List[RestaurantRecord]:
        """Fetch, region-filter and map store records."""
        payload = await asyncio.to_thread(self._get_payload)
        stores = unwrap_store_list(payload)
        logger.info(f"Store API returned {len(stores)} records")

        if self.region_keyword:
            regional = [store for store in stores if self.region_keyword in (_text(store.get("ADDR")) or "")]
            logger.info(f"Region filter '{self.region_keyword}' kept {len(regional)} records")
            if regional:
                stores = regional

        return [map_store_record(store, index) for index, store in enumerate(stores[:self.limit])]

    async def fetch_restaurants_or_fallback(self) -> List[RestaurantRecord]:
        """Fetch restaurants, falling back to the built-in sample list on failure."""
        try:
            return await self.fetch_restaurants()
        except StoreFetchError as e:
            logger.error(f"Failed to load restaurant data, using fallback list: {e}")
            return [record.model_copy() for record in FALLBACK_RESTAURANTS]
