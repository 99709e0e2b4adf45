"""Catalogue loading, selection and offline merge."""

from speakdrill.services.catalog.loader import (
    CatalogLoader,
    CatalogResult,
    CatalogSource,
    CatalogStatus,
    resolve_media_path,
)
from speakdrill.services.catalog.selection import FilterCriteria, SelectionStore, facets

__all__ = [
    "CatalogLoader",
    "CatalogResult",
    "CatalogSource",
    "CatalogStatus",
    "resolve_media_path",
    "FilterCriteria",
    "SelectionStore",
    "facets",
]
