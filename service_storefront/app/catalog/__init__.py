"""
Catalog layer for the Storefront service.

An in-memory stand-in for the relational store: products, categories,
occasions, banners and reels with the filters and orderings the storefront
list pages use.
"""

from .store import CatalogStore, slugify
from .models import ProductSort

__all__ = ["CatalogStore", "ProductSort", "slugify"]
