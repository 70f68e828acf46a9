"""Read-only catalog sources for the selection pipeline."""

import json
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import aiofiles
import structlog

from decision_trail.catalog.models import CatalogItem

logger = structlog.get_logger(__name__)


@runtime_checkable
class Catalog(Protocol):
    """Anything that can list catalog items, optionally by category."""

    async def list_items(
        self,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> list[CatalogItem]:
        ...


def _filter_items(
    items: list[CatalogItem],
    category: Optional[str],
    subcategory: Optional[str],
) -> list[CatalogItem]:
    return [
        item for item in items
        if (category is None or item.category == category)
        and (subcategory is None or item.subcategory == subcategory)
    ]


class InMemoryCatalog:
    """A fixed list of items."""

    def __init__(self, items: list[CatalogItem]):
        self._items = list(items)

    async def list_items(
        self,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> list[CatalogItem]:
        return _filter_items(self._items, category, subcategory)


class JsonFileCatalog:
    """Items loaded from a JSON file.

    The file holds either a list of items or an object with an ``items`` list.
    It is read on every call, so edits are picked up without a restart.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def list_items(
        self,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> list[CatalogItem]:
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            content = await f.read()

        data = json.loads(content)
        raw_items = data.get("items", []) if isinstance(data, dict) else data
        items = [CatalogItem.model_validate(raw) for raw in raw_items]

        logger.debug("catalog_loaded", path=str(self.path), items=len(items))
        return _filter_items(items, category, subcategory)
