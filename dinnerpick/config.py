"""Configuration management for the DinnerPick MCP Server."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file
import pathlib
project_root = pathlib.Path(__file__).parent.parent
load_dotenv(project_root / ".env")

DEFAULT_CATALOG_PATH = pathlib.Path(__file__).parent / "data" / "food_classification.csv"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Geocoding providers
    geocode_provider: str = Field(default="naver", description="naver or google")
    google_maps_api_key: Optional[str] = None
    naver_client_id: Optional[str] = None
    naver_client_secret: Optional[str] = None
    
    # Notion profile store (optional, in-memory store is used otherwise)
    notion_api_key: Optional[str] = None
    notion_database_id: Optional[str] = None
    
    # Restaurant source
    store_api_url: str = "https://bigdata.daejeon.go.kr/api/stores/"
    store_region_keyword: str = "대전"
    store_fetch_limit: int = Field(default=100, ge=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    
    # Ranking
    geocode_delay_seconds: float = Field(default=0.3, ge=0)
    max_ranked_results: int = Field(default=50, ge=1)
    fallback_latitude: float = Field(default=36.3504, ge=-90, le=90)
    fallback_longitude: float = Field(default=127.3845, ge=-180, le=180)
    
    # Recommendation
    learning_rate: float = Field(default=0.05, gt=0)
    menu_catalog_path: str = str(DEFAULT_CATALOG_PATH)
    
    # MCP Server Configuration
    mcp_server_host: str = "localhost"
    mcp_server_port: int = 8000
    debug: bool = False
    
    model_config = {"env_file": str(project_root / ".env"), "case_sensitive": False, "extra": "ignore"}

    @property
    def notion_configured(self) -> bool:
        return bool(self.notion_api_key and self.notion_database_id)

    @property
    def geocoder_configured(self) -> bool:
        if self.geocode_provider == "google":
            return bool(self.google_maps_api_key)
        return bool(self.naver_client_id and self.naver_client_secret)


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


def validate_configuration() -> dict:
    """Validate the configuration and report which collaborators are usable."""
    try:
        settings = get_settings()
        if settings.geocode_provider not in ("naver", "google"):
            raise ValueError(f"Unknown geocode provider: {settings.geocode_provider}")
        return {
            "valid": True,
            "message": "Configuration valid",
            "settings": {
                "geocode_provider": settings.geocode_provider,
                "geocoder_configured": settings.geocoder_configured,
                "notion_configured": settings.notion_configured,
                "debug_mode": settings.debug,
            }
        }
    except Exception as e:
        return {
            "valid": False,
            "message": f"Configuration error: {str(e)}",
            "settings": {}
        }


# Global settings instance
settings = get_settings()
