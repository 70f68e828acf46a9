"""
FastAPI dependencies for storage, catalog and settings.

Tests replace these through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException, status

from decision_trail.catalog.source import Catalog, JsonFileCatalog
from decision_trail.config.settings import Settings, get_settings
from decision_trail.storage import StorageAdapter, create_storage


@lru_cache
def get_storage() -> StorageAdapter:
    """Process-wide storage adapter built from settings."""
    return create_storage(get_settings())


def get_catalog(settings: Settings = Depends(get_settings)) -> Catalog:
    if settings.catalog_path is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No catalog configured (set CATALOG_PATH)",
        )
    return JsonFileCatalog(settings.catalog_path)


__all__ = ["get_settings", "get_storage", "get_catalog"]
