"""Pytest configuration and fixtures."""

import random

import pytest

from decision_trail.catalog import CatalogItem, InMemoryCatalog, ReferenceItem
from decision_trail.storage import InMemoryStorage, JsonFileStorage, SQLStorage

WATER_BOTTLES = {"category": "Sports & Outdoors", "subcategory": "Water Bottles"}


@pytest.fixture
def reference_item() -> ReferenceItem:
    """Reference product used by the competitor detection tests."""
    return ReferenceItem(
        id="B0REF00001",
        title="Stainless Steel Water Bottle 32oz Insulated",
        price=29.99,
        rating=4.3,
        review_count=1500,
        **WATER_BOTTLES,
    )


@pytest.fixture
def catalog_items() -> list[CatalogItem]:
    """Small catalog exercising every stage outcome.

    Funnel against ``reference_item``:
    - 9 items in the reference category/subcategory (2 more outside it)
    - 8 keyword candidates (the reference itself is skipped)
    - 4 pass the rule filters
    - 3 confirmed competitors (the lid is an accessory)
    - Hydro Flask wins
    """
    return [
        CatalogItem(
            id="B0REF00001",
            title="Stainless Steel Water Bottle 32oz Insulated",
            price=29.99, rating=4.3, review_count=1500, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0HYDRO001",
            title="Hydro Flask Water Bottle 32oz Wide Mouth",
            price=44.99, rating=4.5, review_count=8932,
            features=["TempShield insulation", "BPA-free"],
            **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0YETI0001",
            title="YETI Rambler Insulated Bottle 26oz",
            price=39.99, rating=4.7, review_count=4210, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0LID00001",
            title="Replacement Lid for Water Bottle",
            price=19.99, rating=4.1, review_count=320, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0CHEAP001",
            title="Budget Plastic Water Bottle",
            price=5.99, rating=3.2, review_count=150, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0LUX00001",
            title="Luxury Titanium Water Bottle",
            price=129.99, rating=4.8, review_count=85, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0BAD00001",
            title="Leaky Steel Water Bottle",
            price=24.99, rating=2.1, review_count=40, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0NEW00001",
            title="Steel Water Bottle New Arrival",
            price=27.99, rating=4.0, review_count=0, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0STARTER1",
            title="Steel Bottle Starter",
            price=29.99, rating=5.0, review_count=1, **WATER_BOTTLES,
        ),
        CatalogItem(
            id="B0MUG00001",
            title="Insulated Travel Mug Stainless",
            price=22.99, rating=4.4, review_count=2100,
            category="Kitchen & Dining", subcategory="Travel Mugs",
        ),
        CatalogItem(
            id="B0YOGA0001",
            title="Yoga Mat Non Slip",
            price=25.99, rating=4.6, review_count=3000,
            category="Sports & Outdoors", subcategory="Yoga",
        ),
    ]


@pytest.fixture
def catalog(catalog_items) -> InMemoryCatalog:
    return InMemoryCatalog(catalog_items)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture(params=["memory", "sql", "files"])
def storage(request, tmp_path):
    """Every storage adapter, for contract tests."""
    if request.param == "memory":
        yield InMemoryStorage()
    elif request.param == "sql":
        adapter = SQLStorage(f"sqlite:///{tmp_path / 'executions.db'}")
        yield adapter
        adapter.close()
    else:
        yield JsonFileStorage(tmp_path / "executions")
