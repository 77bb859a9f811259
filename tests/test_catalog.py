"""Tests for menu catalog loading."""

import json

import pytest

from dinnerpick.catalog import build_catalog, load_catalog, load_catalog_csv
from dinnerpick.config import DEFAULT_CATALOG_PATH
from dinnerpick.errors import CatalogLoadError
from dinnerpick.models import MenuItem


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_load_csv_builds_hierarchy(tmp_path):
    """Test rows become menus and the group → categories map."""
    path = write(tmp_path / "menus.csv", (
        "food_name,food_group,food_category,cuisine\n"
        "김치찌개,국물요리,찌개,한식\n"
        "짜장면,면류,중화면,중식\n"
        "짬뽕,면류,중화면,중식\n"
        "라멘,면류,일본면,일식\n"
    ))

    catalog = load_catalog_csv(path)

    assert [m.name for m in catalog.menus] == ["김치찌개", "짜장면", "짬뽕", "라멘"]
    assert catalog.categories == {"국물요리": ["찌개"], "면류": ["중화면", "일본면"]}
    assert catalog.cuisine_types == ["한식", "중식", "일식"]
    assert catalog.menus[0] == MenuItem(name="김치찌개", cuisine="한식", group="국물요리", category="찌개")


def test_whitespace_is_stripped(tmp_path):
    """Test padded cells are trimmed."""
    path = write(tmp_path / "menus.csv", (
        "food_name, food_group, food_category, cuisine\n"
        " 비빔밥 , 밥류 , 비빔밥류 , 한식 \n"
    ))

    catalog = load_catalog_csv(path)

    assert catalog.menus == [MenuItem(name="비빔밥", cuisine="한식", group="밥류", category="비빔밥류")]


@pytest.mark.filterwarnings("ignore")
def test_malformed_rows_are_skipped(tmp_path):
    """Test rows without a name or with extra fields are dropped."""
    path = write(tmp_path / "menus.csv", (
        "food_name,food_group,food_category,cuisine\n"
        "김밥,분식,김밥류,한식\n"
        ",면류,중화면,중식\n"
        "라면,면류,라면류,한식,extra,fields\n"
        "떡볶이,분식,떡볶이류\n"
    ))

    catalog = load_catalog_csv(path)

    assert [m.name for m in catalog.menus] == ["김밥", "떡볶이"]
    assert catalog.menus[1].cuisine is None


def test_missing_columns_raise(tmp_path):
    """Test a catalog without the expected header is rejected."""
    path = write(tmp_path / "menus.csv", "name,group\n김밥,분식\n")

    with pytest.raises(CatalogLoadError):
        load_catalog_csv(path)


def test_missing_file_raises(tmp_path):
    """Test an absent catalog file is reported as a load error."""
    with pytest.raises(CatalogLoadError):
        load_catalog(tmp_path / "absent.csv")


def test_load_json_catalog(tmp_path):
    """Test the pre-built JSON catalog layout."""
    path = write(tmp_path / "food_data.json", json.dumps({
        "categories": {"면류": ["중화면"]},
        "cuisineTypes": ["중식"],
        "menus": [{"name": "짜장면", "cuisine": "중식", "group": "면류", "category": "중화면"}],
    }, ensure_ascii=False))

    catalog = load_catalog(path)

    assert catalog.cuisine_types == ["중식"]
    assert catalog.categories_for("면류") == ["중화면"]
    assert catalog.menus[0].name == "짜장면"


def test_malformed_json_raises(tmp_path):
    """Test a JSON catalog with the wrong shape is rejected."""
    path = write(tmp_path / "food_data.json", json.dumps({"menus": [{"cuisine": "중식"}]}))

    with pytest.raises(CatalogLoadError):
        load_catalog(path)


def test_bundled_catalog_loads():
    """Test the packaged catalog is usable."""
    catalog = load_catalog(DEFAULT_CATALOG_PATH)

    assert len(catalog.menus) == 35
    assert set(catalog.cuisine_types) == {"한식", "중식", "일식", "양식", "아시안"}
    assert all(menu.group and menu.category and menu.cuisine for menu in catalog.menus)


def test_build_catalog_skips_missing_facets():
    """Test menus without labels do not create empty entries."""
    catalog = build_catalog([
        MenuItem(name="미분류"),
        MenuItem(name="우동", group="면류", cuisine="일식"),
    ])

    assert catalog.categories == {"면류": []}
    assert catalog.cuisine_types == ["일식"]
