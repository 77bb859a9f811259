"""Main MCP server implementation for DinnerPick."""

import json
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from mcp.server.fastmcp import FastMCP

from . import __version__
from .config import settings, validate_configuration
from .distance import format_distance
from .models import MenuFilters, NoMatch
from .ranking import sort_records
from .recommendation_manager import build_manager

logger = logging.getLogger(__name__)

# Initialize MCP server
mcp = FastMCP("DinnerPick Recommendation Server", host=settings.mcp_server_host, port=settings.mcp_server_port)

# Initialize components
manager = build_manager(settings)


def _dumps(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _restaurant_entry(record) -> dict:
    return {
        "id": record.id,
        "name": record.name,
        "address": record.address,
        "category": record.category,
        "distance": format_distance(record.distance_m) if record.distance_m is not None else None,
        "distance_m": round(record.distance_m, 1) if record.distance_m is not None else None,
        "is_favorite": record.is_favorite,
        "telno": record.telno,
        "representative_menu": record.representative_menu,
    }


# Server startup and status
@mcp.resource("config://status")
def get_server_status() -> str:
    """Get the current server status and configuration."""
    config_status = validate_configuration()

    status_info = {
        "server": "DinnerPick Recommendation Server",
        "version": __version__,
        "status": "running",
        "timestamp": datetime.now().isoformat(),
        "configuration": config_status,
        "catalog": {
            "menus": len(manager.catalog.menus),
            "food_groups": len(manager.catalog.categories),
            "cuisines": len(manager.catalog.cuisine_types),
        }
    }

    return _dumps(status_info)


@mcp.tool()
async def login_user(user_id: str) -> str:
    """Load a user's taste profile and favorites.

    Args:
        user_id: Opaque user identifier
    """
    try:
        session = await manager.login(user_id)
        return _dumps({
            "user_id": session.user_id,
            "favorites": session.favorites,
            "profile": session.profile.model_dump()
        })
    except Exception as e:
        logger.error(f"Failed to log in {user_id}: {e}")
        return f"Error logging in: {str(e)}"


@mcp.tool()
def logout_user(user_id: str) -> str:
    """Discard a user's in-memory session. Stored data is kept.

    Args:
        user_id: Opaque user identifier
    """
    manager.logout(user_id)
    return _dumps({"user_id": user_id, "logged_out": True})


@mcp.tool()
async def rank_nearby_restaurants(
    user_id: str = None,
    latitude: float = None,
    longitude: float = None,
    sort_by: str = "distance",
    refresh: bool = False
) -> str:
    """Rank nearby restaurants by distance from the user.

    Args:
        user_id: User identifier; omit for an anonymous session
        latitude: Device latitude; the default city centre is used when missing
        longitude: Device longitude; the default city centre is used when missing
        sort_by: "distance" or "name"
        refresh: Re-fetch the restaurant list before ranking
    """
    try:
        await manager.ensure_session(user_id)
        if refresh:
            await manager.refresh_restaurants()

        location = manager.resolve_location(latitude, longitude)
        result = await manager.rank_nearby(location=location, user_id=user_id)

        restaurants = [_restaurant_entry(record) for record in sort_records(result.ranked, by=sort_by)]

        return _dumps({
            "location": {"lat": location.lat, "lng": location.lng, "source": location.source.value},
            "total": len(restaurants),
            "favorites": sum(1 for r in restaurants if r["is_favorite"]),
            "restaurants": restaurants,
            "markers": [marker.model_dump() for marker in result.markers],
        })
    except Exception as e:
        logger.error(f"Failed to rank nearby restaurants: {e}")
        return f"Error ranking restaurants: {str(e)}"


@mcp.tool()
async def list_favorite_restaurants(user_id: str) -> str:
    """List favorite restaurants from the user's current nearby ranking.

    Args:
        user_id: User identifier
    """
    try:
        await manager.ensure_session(user_id)
        ranking = manager.current_ranking(user_id)
        return _dumps({
            "user_id": user_id,
            "total": manager.favorite_count(user_id),
            "restaurants": [_restaurant_entry(record) for record in ranking.ranked if record.is_favorite],
        })
    except Exception as e:
        logger.error(f"Failed to list favorites for {user_id}: {e}")
        return f"Error listing favorites: {str(e)}"


@mcp.tool()
async def recommend_menu(
    user_id: str = None,
    cuisine: str = None,
    food_group: str = None,
    food_category: str = None
) -> str:
    """Recommend a single menu, biased by the user's taste profile.

    Args:
        user_id: User identifier; anonymous sessions get a uniform pick
        cuisine: Optional cuisine filter (e.g. 한식)
        food_group: Optional food group filter (e.g. 면류)
        food_category: Optional food category filter within the group
    """
    try:
        await manager.ensure_session(user_id)
        filters = MenuFilters(cuisine=cuisine, food_group=food_group, food_category=food_category)
        result = manager.recommend(filters, user_id=user_id)

        if isinstance(result, NoMatch):
            return _dumps({"matched": False, "message": result.message, "filters": result.filters.model_dump()})

        return _dumps({
            "matched": True,
            "menu": result.model_dump(),
            "map_search_url": f"https://map.naver.com/v5/search/{quote(result.name)}"
        })
    except Exception as e:
        logger.error(f"Failed to recommend menu: {e}")
        return f"Error recommending menu: {str(e)}"


@mcp.tool()
async def rate_recommendation(rating: float, user_id: str = None) -> str:
    """Rate the last recommended menu from 1 to 10 to tune future picks.

    Args:
        rating: Score between 1 (disliked) and 10 (loved)
        user_id: User identifier
    """
    try:
        await manager.ensure_session(user_id)
        outcome = await manager.rate_recommendation(rating, user_id=user_id)
        return _dumps(outcome.model_dump())
    except Exception as e:
        logger.error(f"Failed to rate recommendation: {e}")
        return f"Error rating recommendation: {str(e)}"


@mcp.tool()
async def toggle_favorite(restaurant_id: str, user_id: str = None) -> str:
    """Toggle a restaurant's favorite flag.

    Args:
        restaurant_id: Restaurant identifier from rank_nearby_restaurants
        user_id: User identifier
    """
    try:
        await manager.ensure_session(user_id)
        result = await manager.toggle_favorite(restaurant_id, user_id=user_id)
        return _dumps(result)
    except Exception as e:
        logger.error(f"Failed to toggle favorite: {e}")
        return f"Error toggling favorite: {str(e)}"


@mcp.tool()
async def get_taste_profile(user_id: str) -> str:
    """Show a user's facet weights, strongest first.

    Args:
        user_id: User identifier
    """
    try:
        session = await manager.ensure_session(user_id)
        profile = session.profile.model_dump()
        return _dumps({
            facet: dict(sorted(weights.items(), key=lambda item: item[1], reverse=True))
            for facet, weights in profile.items()
        })
    except Exception as e:
        logger.error(f"Failed to get taste profile: {e}")
        return f"Error retrieving taste profile: {str(e)}"


@mcp.tool()
def list_menu_filters(food_group: Optional[str] = None) -> str:
    """List the cuisines, food groups and (for a group) food categories.

    Args:
        food_group: Group whose categories to list
    """
    catalog = manager.catalog
    info = {
        "cuisines": catalog.cuisine_types,
        "food_groups": list(catalog.categories),
    }
    if food_group:
        info["food_categories"] = catalog.categories_for(food_group)
    return _dumps(info)


@mcp.tool()
async def test_connections() -> str:
    """Test connections to the geocoder, store API and profile store."""
    try:
        results = await manager.test_connections()
        results["timestamp"] = datetime.now().isoformat()
        return _dumps(results)
    except Exception as e:
        logger.error(f"Failed to test connections: {e}")
        return f"Error testing connections: {str(e)}"


def main():
    """Main function to run the MCP server."""
    logger.info("Starting DinnerPick MCP Server...")

    # Validate configuration
    config_status = validate_configuration()
    if not config_status["valid"]:
        logger.error(f"Configuration error: {config_status['message']}")
        return

    logger.info("Configuration validated successfully")
    logger.info(f"Geocoder configured: {config_status['settings']['geocoder_configured']}")
    logger.info(f"Notion configured: {config_status['settings']['notion_configured']}")

    logger.info("MCP Server ready to accept connections")
    mcp.run()


if __name__ == "__main__":
    main()
