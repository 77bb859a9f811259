"""Geocoding providers that turn a free-text address into coordinates."""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import googlemaps
import requests
from googlemaps.exceptions import ApiError, HTTPError, Timeout, TransportError

from .config import Settings, settings as default_settings
from .errors import GeocodeServiceError
from .models import GeocodeResult

logger = logging.getLogger(__name__)

NAVER_GEOCODE_URL = "https://naveropenapi.apigw.ntruss.com/map-geocode/v2/geocode"


class GeocodeResolver(Protocol):
    """Resolve an address to coordinates.

    ``resolve`` returns ``None`` when the address cannot be found (or the
    provider did not answer in time) and raises ``GeocodeServiceError`` when
    the provider itself failed.
    """

    async def resolve(self, address: str) -> Optional[GeocodeResult]:
        ...


class GoogleGeocodeResolver:
    """Geocoder backed by the Google Maps Geocoding API."""

    def __init__(self, api_key: str = None, client: googlemaps.Client = None):
        """Initialize Google geocoder; the client is created on first use."""
        self.api_key = api_key or default_settings.google_maps_api_key
        self._client = client

    @property
    def client(self) -> googlemaps.Client:
        if self._client is None:
            self._client = googlemaps.Client(key=self.api_key)
        return self._client

    def test_connection(self) -> Dict[str, Any]:
        """Test Google Maps API connection."""
        if self._client is None and not self.api_key:
            return {"success": False, "error": "Google Maps API key not configured"}
        try:
            result = self.client.geocode("Seoul City Hall")
            return {
                "success": True,
                "message": "Google Maps API connection successful",
                "test_result": len(result) > 0
            }
        except (ApiError, TransportError, ValueError) as e:
            logger.error(f"Google Maps API connection test failed: {e}")
            return {"success": False, "error": str(e)}

    async def resolve(self, address: str) -> Optional[GeocodeResult]:
        """Resolve an address with the Geocoding API."""
        if not address or not address.strip():
            return None
        if self._client is None and not self.api_key:
            raise GeocodeServiceError("Google Maps API key not configured")
        try:
            results = await asyncio.to_thread(self.client.geocode, address)
        except Timeout:
            logger.warning(f"Google geocoding timed out for '{address}'")
            return None
        except (ApiError, HTTPError, TransportError) as e:
            raise GeocodeServiceError(f"Google geocoding failed for '{address}': {e}") from e

        if not results:
            return None

        location = results[0].get("geometry", {}).get("location", {})
        if "lat" not in location or "lng" not in location:
            return None

        return GeocodeResult(
            lat=float(location["lat"]),
            lng=float(location["lng"]),
            road_address=results[0].get("formatted_address"),
        )


class NaverGeocodeResolver:
    """Geocoder backed by the Naver Cloud Platform map geocode API."""

    def __init__(
        self,
        client_id: str = None,
        client_secret: str = None,
        timeout: float = None,
        session: requests.Session = None
    ):
        self.client_id = client_id or default_settings.naver_client_id
        self.client_secret = client_secret or default_settings.naver_client_secret
        self.timeout = timeout or default_settings.request_timeout_seconds
        self.session = session or requests.Session()

    def _get(self, address: str) -> requests.Response:
        return self.session.get(
            NAVER_GEOCODE_URL,
            params={"query": address},
            headers={
                "X-NCP-APIGW-API-KEY-ID": self.client_id or "",
                "X-NCP-APIGW-API-KEY": self.client_secret or "",
            },
            timeout=self.timeout,
        )

    def test_connection(self) -> Dict[str, Any]:
        """Test Naver geocode API connection."""
        if not (self.client_id and self.client_secret):
            return {"success": False, "error": "Naver API credentials not configured"}
        try:
            response = self._get("대전광역시청")
            response.raise_for_status()
            return {
                "success": True,
                "message": "Naver geocode API connection successful",
                "test_result": bool(response.json().get("addresses"))
            }
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Naver geocode API connection test failed: {e}")
            return {"success": False, "error": str(e)}

    async def resolve(self, address: str) -> Optional[GeocodeResult]:
        """Resolve an address with the Naver geocode API."""
        if not address or not address.strip():
            return None
        if not (self.client_id and self.client_secret):
            raise GeocodeServiceError("Naver API credentials not configured")

        try:
            response = await asyncio.to_thread(self._get, address)
        except requests.Timeout:
            logger.warning(f"Naver geocoding timed out for '{address}'")
            return None
        except requests.RequestException as e:
            raise GeocodeServiceError(f"Naver geocoding failed for '{address}': {e}") from e

        if response.status_code == 404:
            return None
        if not response.ok:
            raise GeocodeServiceError(
                f"Naver geocoding returned HTTP {response.status_code} for '{address}'"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GeocodeServiceError(f"Naver geocoding returned invalid JSON: {e}") from e

        addresses = data.get("addresses") if isinstance(data, dict) else None
        addresses = addresses or []
        if not addresses:
            return None

        first = addresses[0]
        try:
            # Naver reports x as longitude and y as latitude
            return GeocodeResult(
                lat=float(first["y"]),
                lng=float(first["x"]),
                road_address=first.get("roadAddress"),
                jibun_address=first.get("jibunAddress"),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Malformed Naver geocode entry for '{address}': {first}")
            return None


def get_geocode_resolver(settings: Settings = None) -> GeocodeResolver:
    """Build the resolver named by ``settings.geocode_provider``."""
    settings = settings or default_settings
    if settings.geocode_provider == "google":
        return GoogleGeocodeResolver(api_key=settings.google_maps_api_key)
    if settings.geocode_provider == "naver":
        return NaverGeocodeResolver(
            client_id=settings.naver_client_id,
            client_secret=settings.naver_client_secret,
            timeout=settings.request_timeout_seconds,
        )
    raise ValueError(f"Unknown geocode provider: {settings.geocode_provider}")
