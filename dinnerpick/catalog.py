"""Loading of the menu classification catalog."""

import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd
from pydantic import ValidationError

from .errors import CatalogLoadError
from .models import MenuCatalog, MenuItem

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["food_name", "food_group", "food_category", "cuisine"]


def build_catalog(menus: List[MenuItem]) -> MenuCatalog:
    """Derive the group → categories hierarchy and cuisine list from menus."""
    categories: Dict[str, List[str]] = {}
    cuisine_types: List[str] = []

    for menu in menus:
        if menu.group:
            group_categories = categories.setdefault(menu.group, [])
            if menu.category and menu.category not in group_categories:
                group_categories.append(menu.category)
        if menu.cuisine and menu.cuisine not in cuisine_types:
            cuisine_types.append(menu.cuisine)

    return MenuCatalog(menus=menus, categories=categories, cuisine_types=cuisine_types)


def load_catalog_csv(path: Union[str, Path]) -> MenuCatalog:
    """Load ``food_name,food_group,food_category,cuisine`` rows into a catalog."""
    try:
        df = pd.read_csv(path, dtype=str, skipinitialspace=True, on_bad_lines="warn")
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise CatalogLoadError(f"Failed to read menu catalog {path}: {e}") from e

    df.columns = [str(column).strip() for column in df.columns]
    missing = [column for column in CSV_COLUMNS if column not in df.columns]
    if missing:
        raise CatalogLoadError(f"Menu catalog {path} is missing columns: {missing}")

    df = df[CSV_COLUMNS].apply(lambda column: column.str.strip())

    malformed = df["food_name"].isna() | (df["food_name"] == "")
    if malformed.any():
        logger.warning(f"Skipping {int(malformed.sum())} malformed catalog rows in {path}")
    df = df.loc[~malformed]

    menus = [
        MenuItem(
            name=row["food_name"],
            group=row["food_group"] if pd.notna(row["food_group"]) else None,
            category=row["food_category"] if pd.notna(row["food_category"]) else None,
            cuisine=row["cuisine"] if pd.notna(row["cuisine"]) else None,
        )
        for _, row in df.iterrows()
    ]

    return build_catalog(menus)


def load_catalog_json(path: Union[str, Path]) -> MenuCatalog:
    """Load a pre-built ``food_data.json`` catalog."""
    try:
        return MenuCatalog.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise CatalogLoadError(f"Failed to read menu catalog {path}: {e}") from e
    except ValidationError as e:
        raise CatalogLoadError(f"Malformed menu catalog {path}: {e}") from e


def load_catalog(path: Union[str, Path]) -> MenuCatalog:
    """Load a catalog from CSV or JSON depending on the file suffix."""
    path = Path(path)
    if path.suffix.lower() == ".json":
        catalog = load_catalog_json(path)
    else:
        catalog = load_catalog_csv(path)

    logger.info(
        f"Loaded {len(catalog.menus)} menus, {len(catalog.categories)} food groups, "
        f"{len(catalog.cuisine_types)} cuisines from {path.name}"
    )
    return catalog
