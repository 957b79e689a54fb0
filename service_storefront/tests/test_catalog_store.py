"""
Unit tests for the in-memory catalog store.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_storefront.app.catalog import CatalogStore, ProductSort, slugify
from service_storefront.app.catalog.models import CategoryIn, OccasionIn, ProductIn, ReelIn, SizeOption
from shared.errors import ConflictError, NotFoundError, ValidationError


class TestCatalogStore:
    """Test cases for CatalogStore."""

    @pytest.fixture
    def store(self):
        return CatalogStore()

    @pytest.fixture
    def mugs(self, store):
        return store.create_category(CategoryIn(name="Mugs"))

    def _product(self, store, name, price=None, **kwargs):
        sizes = [SizeOption(label="S", price=price)] if price is not None else []
        return store.create_product(ProductIn(name=name, sizes=sizes, **kwargs))

    def test_slugify(self):
        assert slugify("  Tea & Coffee Mugs ") == "tea-coffee-mugs"
        assert slugify("!!!") == "item"

    def test_filters(self, store, mugs):
        diwali = store.create_occasion(OccasionIn(name="Diwali"))
        self._product(store, "Blue Mug", category_id=mugs["id"], is_new=True)
        self._product(store, "Lamp", is_festival=True, occasion_ids=[diwali["id"]], keywords=["brass"])

        assert [p["name"] for p in store.list_products(category="mugs")] == ["Blue Mug"]
        assert [p["name"] for p in store.list_products(occasion="diwali")] == ["Lamp"]
        assert [p["name"] for p in store.list_products(is_new=True)] == ["Blue Mug"]
        assert [p["name"] for p in store.list_products(is_festival=True)] == ["Lamp"]
        assert [p["name"] for p in store.list_products(search="BRASS")] == ["Lamp"]

    def test_price_sorting_puts_unpriced_last(self, store):
        self._product(store, "Cheap", price=5)
        self._product(store, "Free text")
        self._product(store, "Pricey", price=50)

        ascending = [p["name"] for p in store.list_products(sort=ProductSort.PRICE_ASC)]
        descending = [p["name"] for p in store.list_products(sort=ProductSort.PRICE_DESC)]

        assert ascending == ["Cheap", "Pricey", "Free text"]
        assert descending == ["Pricey", "Cheap", "Free text"]

    def test_newest_first_by_default(self, store):
        self._product(store, "First")
        self._product(store, "Second")

        assert [p["name"] for p in store.list_products()] == ["Second", "First"]

    def test_random_sort_returns_same_items(self, store):
        for i in range(5):
            self._product(store, f"P{i}")

        shuffled = store.list_products(sort=ProductSort.RANDOM)

        assert sorted(p["name"] for p in shuffled) == [f"P{i}" for i in range(5)]

    def test_wire_format_uses_camel_case(self, store, mugs):
        product = self._product(store, "Mug", price=9.5, category_id=mugs["id"], is_new=True)

        assert product["isNew"] is True
        assert product["categoryId"] == mugs["id"]
        assert product["category"]["slug"] == "mugs"
        assert product["sizes"] == [{"label": "S", "price": 9.5}]

    def test_unknown_category_rejected(self, store):
        with pytest.raises(ValidationError):
            self._product(store, "Orphan", category_id=42)

    def test_missing_product_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.get_product(1)
        with pytest.raises(NotFoundError):
            store.delete_product(1)

    def test_reorder(self, store):
        first = self._product(store, "A")
        second = self._product(store, "B")

        ordered = store.reorder_products([second["id"], first["id"]])

        assert [p["name"] for p in ordered] == ["B", "A"]

    def test_reorder_rejects_unknown_and_duplicate_ids(self, store):
        product = self._product(store, "A")
        with pytest.raises(ValidationError):
            store.reorder_products([product["id"], 99])
        with pytest.raises(ValidationError):
            store.reorder_products([product["id"], product["id"]])

    def test_duplicate_slug_conflicts(self, store, mugs):
        with pytest.raises(ConflictError):
            store.create_category(CategoryIn(name="MUGS"))

    def test_category_with_products_cannot_be_deleted(self, store, mugs):
        self._product(store, "Mug", category_id=mugs["id"])
        with pytest.raises(ConflictError):
            store.delete_category(mugs["id"])

    def test_category_counts_and_detail(self, store, mugs):
        self._product(store, "Mug", category_id=mugs["id"])

        listing = store.list_categories()
        detail = store.get_category(mugs["id"])

        assert listing[0]["productCount"] == 1
        assert [p["name"] for p in detail["products"]] == ["Mug"]

    def test_deleting_occasion_detaches_products(self, store):
        diwali = store.create_occasion(OccasionIn(name="Diwali"))
        product = self._product(store, "Lamp", occasion_ids=[diwali["id"]])

        store.delete_occasion(diwali["id"])

        assert store.get_product(product["id"])["occasionIds"] == []

    def test_reel_embeds_product_and_counts_views(self, store):
        product = self._product(store, "Mug")
        reel = store.create_reel(ReelIn(url="https://example.com/r.mp4", product_id=product["id"]))

        assert store.record_reel_view(reel["id"]) == {"id": reel["id"], "viewCount": 1}
        assert store.list_reels()[0]["product"]["name"] == "Mug"

    def test_deleting_product_detaches_reels(self, store):
        product = self._product(store, "Mug")
        store.create_reel(ReelIn(url="https://example.com/r.mp4", product_id=product["id"]))

        store.delete_product(product["id"])

        assert store.list_reels()[0]["product"] is None

    def test_inactive_reels_hidden_from_public_list(self, store):
        store.create_reel(ReelIn(url="https://example.com/a.mp4", is_active=False))

        assert store.list_reels() == []
        assert len(store.list_reels(active_only=False)) == 1
