"""Catalog persistence."""

from craft_reconciler.persistence.catalog_store import CatalogStore, CatalogStoreError

__all__ = ["CatalogStore", "CatalogStoreError"]
