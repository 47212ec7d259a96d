"""Curated shoe catalogue."""

from .shoe_catalog import ShoeCatalog, CatalogShoe, CatalogMatch, get_default_catalog

__all__ = [
    'ShoeCatalog',
    'CatalogShoe',
    'CatalogMatch',
    'get_default_catalog',
]
