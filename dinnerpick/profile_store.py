"""Persistence of per-user weight profiles and favorites."""

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from notion_client import AsyncClient
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from .config import Settings, settings
from .errors import ProfileStoreError
from .models import WeightProfile

logger = logging.getLogger(__name__)

# Notion caps a single rich text object at 2000 characters
RICH_TEXT_CHUNK = 2000


class ProfileStore(Protocol):
    """Per-user storage for weight profiles and favorite maps."""

    async def load_profile(self, user_id: str) -> Optional[WeightProfile]:
        ...

    async def save_profile(self, user_id: str, profile: WeightProfile) -> None:
        ...

    async def load_favorites(self, user_id: str) -> Dict[str, bool]:
        ...

    async def save_favorite(self, user_id: str, restaurant_id: str, is_favorite: bool) -> None:
        ...


class InMemoryProfileStore:
    """Profile store kept in process memory."""

    def __init__(self):
        self._profiles: Dict[str, WeightProfile] = {}
        self._favorites: Dict[str, Dict[str, bool]] = {}

    async def test_connection(self) -> Dict[str, Any]:
        return {"success": True, "message": "In-memory profile store", "users": len(self._profiles)}

    async def load_profile(self, user_id: str) -> Optional[WeightProfile]:
        return self._profiles.get(user_id)

    async def save_profile(self, user_id: str, profile: WeightProfile) -> None:
        self._profiles[user_id] = profile

    async def load_favorites(self, user_id: str) -> Dict[str, bool]:
        return dict(self._favorites.get(user_id, {}))

    async def save_favorite(self, user_id: str, restaurant_id: str, is_favorite: bool) -> None:
        self._favorites[user_id] = {**self._favorites.get(user_id, {}), restaurant_id: is_favorite}


class NotionProfileStore:
    """Profile store keeping one Notion database page per user.

    Expected database properties: ``User ID`` (title), ``Weights`` (text)
    and ``Favorites`` (text). Both text properties hold JSON documents.
    """

    def __init__(self, api_key: str = None, database_id: str = None, client: AsyncClient = None):
        """Initialize Notion client."""
        self.api_key = api_key or settings.notion_api_key
        self.database_id = database_id or settings.notion_database_id
        self.client = client or AsyncClient(auth=self.api_key)

    async def test_connection(self) -> Dict[str, Any]:
        """Test Notion API connection."""
        try:
            database = await self.client.databases.retrieve(self.database_id)
            return {
                "success": True,
                "database_title": (database.get("title") or [{}])[0].get("plain_text", "Unknown"),
                "database_id": self.database_id
            }
        except (HTTPResponseError, RequestTimeoutError) as e:
            logger.error(f"Notion connection test failed: {e}")
            return {"success": False, "error": str(e)}

    async def load_profile(self, user_id: str) -> Optional[WeightProfile]:
        page = await self._find_user_page(user_id)
        if page is None:
            return None
        document = self._read_json_property(page, "Weights")
        if document is None:
            return None
        return WeightProfile(**document)

    async def save_profile(self, user_id: str, profile: WeightProfile) -> None:
        await self._upsert(user_id, {"Weights": self._rich_text(profile.model_dump_json())})

    async def load_favorites(self, user_id: str) -> Dict[str, bool]:
        page = await self._find_user_page(user_id)
        if page is None:
            return {}
        document = self._read_json_property(page, "Favorites") or {}
        return {str(key): bool(value) for key, value in document.items()}

    async def save_favorite(self, user_id: str, restaurant_id: str, is_favorite: bool) -> None:
        # Merge a single key so other favorites on the page are kept
        favorites = await self.load_favorites(user_id)
        favorites[restaurant_id] = is_favorite
        await self._upsert(
            user_id,
            {"Favorites": self._rich_text(json.dumps(favorites, ensure_ascii=False))}
        )

    async def _find_user_page(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self.client.databases.query(
                database_id=self.database_id,
                filter={
                    "property": "User ID",
                    "title": {"equals": user_id}
                },
                page_size=1
            )
        except (HTTPResponseError, RequestTimeoutError) as e:
            raise ProfileStoreError(f"Failed to look up profile page for {user_id}: {e}") from e

        results = response.get("results", [])
        return results[0] if results else None

    async def _upsert(self, user_id: str, properties: Dict[str, Any]) -> None:
        page = await self._find_user_page(user_id)
        try:
            if page:
                await self.client.pages.update(page_id=page["id"], properties=properties)
            else:
                await self.client.pages.create(
                    parent={"database_id": self.database_id},
                    properties={
                        "User ID": {"title": [{"text": {"content": user_id}}]},
                        **properties
                    }
                )
        except (HTTPResponseError, RequestTimeoutError) as e:
            raise ProfileStoreError(f"Failed to save profile page for {user_id}: {e}") from e

    @staticmethod
    def _rich_text(content: str) -> Dict[str, Any]:
        chunks = [content[i:i + RICH_TEXT_CHUNK] for i in range(0, len(content), RICH_TEXT_CHUNK)] or [""]
        return {"rich_text": [{"text": {"content": chunk}} for chunk in chunks]}

    @staticmethod
    def _read_json_property(page: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
        fragments: List[Dict[str, Any]] = page.get("properties", {}).get(name, {}).get("rich_text", [])
        text = "".join(fragment.get("plain_text", "") for fragment in fragments)
        if not text:
            return None
        try:
            document = json.loads(text)
        except json.JSONDecodeError:
            logger.error(f"Unreadable {name} JSON on Notion page {page.get('id')}")
            return None
        return document if isinstance(document, dict) else None


def get_profile_store(config: Settings = None) -> ProfileStore:
    """Notion-backed store when Notion is configured, in-memory otherwise."""
    config = config or settings
    if config.notion_configured:
        return NotionProfileStore(api_key=config.notion_api_key, database_id=config.notion_database_id)
    logger.info("Notion not configured, using in-memory profile store")
    return InMemoryProfileStore()
