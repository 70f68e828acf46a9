"""Catalog collaborator consumed by the selection pipeline."""

from .models import CatalogItem, ReferenceItem
from .source import Catalog, InMemoryCatalog, JsonFileCatalog

__all__ = [
    "CatalogItem",
    "ReferenceItem",
    "Catalog",
    "InMemoryCatalog",
    "JsonFileCatalog",
]
