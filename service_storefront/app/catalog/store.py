"""
In-memory catalog store backing the Storefront read and admin routes.
"""

import random
import re
import threading
from typing import Any, Dict, Iterable, List, Optional

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger
from .models import (
    Banner,
    BannerIn,
    Category,
    CategoryIn,
    Occasion,
    OccasionIn,
    Product,
    ProductIn,
    ProductSort,
    Reel,
    ReelIn,
)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "item"


class CatalogStore:
    """Thread-safe catalog of products, categories, occasions, banners and reels."""

    def __init__(self):
        self.logger = get_logger("storefront.catalog")
        self._lock = threading.RLock()
        self._products: Dict[int, Product] = {}
        self._categories: Dict[int, Category] = {}
        self._occasions: Dict[int, Occasion] = {}
        self._banners: Dict[int, Banner] = {}
        self._reels: Dict[int, Reel] = {}
        self._ids: Dict[str, int] = {}

    def _next_id(self, kind: str) -> int:
        self._ids[kind] = self._ids.get(kind, 0) + 1
        return self._ids[kind]

    # Products

    def list_products(
        self,
        category: Optional[str] = None,
        occasion: Optional[str] = None,
        is_new: Optional[bool] = None,
        is_festival: Optional[bool] = None,
        search: Optional[str] = None,
        sort: ProductSort = ProductSort.NEWEST,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            products = list(self._products.values())

            if category:
                category_ids = {c.id for c in self._categories.values() if c.slug == category}
                products = [p for p in products if p.category_id in category_ids]
            if occasion:
                occasion_ids = {o.id for o in self._occasions.values() if o.slug == occasion}
                products = [p for p in products if occasion_ids.intersection(p.occasion_ids)]
            if is_new is not None:
                products = [p for p in products if p.is_new == is_new]
            if is_festival is not None:
                products = [p for p in products if p.is_festival == is_festival]
            if search:
                needle = search.strip().lower()
                products = [
                    p for p in products
                    if needle in p.name.lower() or any(needle in kw.lower() for kw in p.keywords)
                ]

            products = self._sort_products(products, sort)
            return [self._product_view(p) for p in products]

    def _sort_products(self, products: List[Product], sort: ProductSort) -> List[Product]:
        if sort == ProductSort.RANDOM:
            shuffled = list(products)
            random.shuffle(shuffled)
            return shuffled
        if sort == ProductSort.ORDER:
            return sorted(products, key=lambda p: (p.order, p.id))
        if sort in (ProductSort.PRICE_ASC, ProductSort.PRICE_DESC):
            priced = [p for p in products if p.min_price is not None]
            unpriced = [p for p in products if p.min_price is None]
            priced.sort(key=lambda p: (p.min_price, p.id), reverse=sort == ProductSort.PRICE_DESC)
            return priced + unpriced
        return sorted(products, key=lambda p: (p.created_at, p.id), reverse=True)

    def _product_view(self, product: Product) -> Dict[str, Any]:
        view = product.to_wire()
        category = self._categories.get(product.category_id) if product.category_id else None
        view["category"] = category.to_wire() if category else None
        return view

    def get_product(self, product_id: int) -> Dict[str, Any]:
        with self._lock:
            return self._product_view(self._require(self._products, product_id, "Product"))

    def create_product(self, payload: ProductIn) -> Dict[str, Any]:
        with self._lock:
            self._check_product_refs(payload)
            product_id = self._next_id("product")
            product = Product(id=product_id, order=len(self._products), **payload.model_dump())
            self._products[product_id] = product
            self.logger.info("Product created", product_id=product_id)
            return self._product_view(product)

    def update_product(self, product_id: int, payload: ProductIn) -> Dict[str, Any]:
        with self._lock:
            existing = self._require(self._products, product_id, "Product")
            self._check_product_refs(payload)
            product = Product(
                id=product_id,
                order=existing.order,
                created_at=existing.created_at,
                **payload.model_dump(),
            )
            self._products[product_id] = product
            return self._product_view(product)

    def delete_product(self, product_id: int) -> None:
        with self._lock:
            self._require(self._products, product_id, "Product")
            del self._products[product_id]
            for reel_id, reel in list(self._reels.items()):
                if reel.product_id == product_id:
                    self._reels[reel_id] = reel.model_copy(update={"product_id": None})

    def reorder_products(self, ids: Iterable[int]) -> List[Dict[str, Any]]:
        """Assign display order from the position of each id."""
        ordered = list(ids)
        with self._lock:
            unknown = [pid for pid in ordered if pid not in self._products]
            if unknown:
                raise ValidationError("Unknown product ids in reorder", {"ids": unknown})
            if len(set(ordered)) != len(ordered):
                raise ValidationError("Duplicate product ids in reorder")
            for position, pid in enumerate(ordered):
                self._products[pid] = self._products[pid].model_copy(update={"order": position})
            return self.list_products(sort=ProductSort.ORDER)

    def _check_product_refs(self, payload: ProductIn) -> None:
        if payload.category_id is not None and payload.category_id not in self._categories:
            raise ValidationError("Unknown category", {"categoryId": payload.category_id})
        missing = [oid for oid in payload.occasion_ids if oid not in self._occasions]
        if missing:
            raise ValidationError("Unknown occasions", {"occasionIds": missing})

    # Categories

    def list_categories(self) -> List[Dict[str, Any]]:
        with self._lock:
            categories = sorted(self._categories.values(), key=lambda c: (c.order, c.name))
            views = []
            for category in categories:
                view = category.to_wire()
                view["productCount"] = sum(1 for p in self._products.values() if p.category_id == category.id)
                views.append(view)
            return views

    def get_category(self, category_id: int) -> Dict[str, Any]:
        with self._lock:
            category = self._require(self._categories, category_id, "Category")
            view = category.to_wire()
            view["products"] = [
                p.to_wire() for p in self._products.values() if p.category_id == category_id
            ]
            return view

    def create_category(self, payload: CategoryIn) -> Dict[str, Any]:
        with self._lock:
            slug = payload.slug or slugify(payload.name)
            self._check_unique_slug(self._categories, slug)
            category_id = self._next_id("category")
            data = payload.model_dump()
            data["slug"] = slug
            category = Category(id=category_id, **data)
            self._categories[category_id] = category
            return category.to_wire()

    def update_category(self, category_id: int, payload: CategoryIn) -> Dict[str, Any]:
        with self._lock:
            self._require(self._categories, category_id, "Category")
            slug = payload.slug or slugify(payload.name)
            self._check_unique_slug(self._categories, slug, exclude_id=category_id)
            data = payload.model_dump()
            data["slug"] = slug
            category = Category(id=category_id, **data)
            self._categories[category_id] = category
            return category.to_wire()

    def delete_category(self, category_id: int) -> None:
        with self._lock:
            self._require(self._categories, category_id, "Category")
            in_use = [p.id for p in self._products.values() if p.category_id == category_id]
            if in_use:
                raise ConflictError("Category still has products", {"productIds": in_use})
            del self._categories[category_id]

    # Occasions

    def list_occasions(self) -> List[Dict[str, Any]]:
        with self._lock:
            occasions = sorted(self._occasions.values(), key=lambda o: (o.order, o.name))
            return [o.to_wire() for o in occasions]

    def create_occasion(self, payload: OccasionIn) -> Dict[str, Any]:
        with self._lock:
            slug = payload.slug or slugify(payload.name)
            self._check_unique_slug(self._occasions, slug)
            occasion_id = self._next_id("occasion")
            data = payload.model_dump()
            data["slug"] = slug
            occasion = Occasion(id=occasion_id, **data)
            self._occasions[occasion_id] = occasion
            return occasion.to_wire()

    def update_occasion(self, occasion_id: int, payload: OccasionIn) -> Dict[str, Any]:
        with self._lock:
            self._require(self._occasions, occasion_id, "Occasion")
            slug = payload.slug or slugify(payload.name)
            self._check_unique_slug(self._occasions, slug, exclude_id=occasion_id)
            data = payload.model_dump()
            data["slug"] = slug
            occasion = Occasion(id=occasion_id, **data)
            self._occasions[occasion_id] = occasion
            return occasion.to_wire()

    def delete_occasion(self, occasion_id: int) -> None:
        with self._lock:
            self._require(self._occasions, occasion_id, "Occasion")
            del self._occasions[occasion_id]
            for pid, product in list(self._products.items()):
                if occasion_id in product.occasion_ids:
                    remaining = [oid for oid in product.occasion_ids if oid != occasion_id]
                    self._products[pid] = product.model_copy(update={"occasion_ids": remaining})

    # Banners

    def list_banners(self, active_only: bool = True) -> List[Dict[str, Any]]:
        with self._lock:
            banners = [b for b in self._banners.values() if b.is_active or not active_only]
            if active_only:
                banners.sort(key=lambda b: (b.order, b.id))
            else:
                banners.sort(key=lambda b: (b.order, -b.created_at.timestamp(), -b.id))
            return [b.to_wire() for b in banners]

    def get_banner(self, banner_id: int) -> Dict[str, Any]:
        with self._lock:
            return self._require(self._banners, banner_id, "Banner").to_wire()

    def create_banner(self, payload: BannerIn) -> Dict[str, Any]:
        with self._lock:
            banner_id = self._next_id("banner")
            banner = Banner(id=banner_id, **payload.model_dump())
            self._banners[banner_id] = banner
            return banner.to_wire()

    def update_banner(self, banner_id: int, payload: BannerIn) -> Dict[str, Any]:
        with self._lock:
            existing = self._require(self._banners, banner_id, "Banner")
            banner = Banner(id=banner_id, created_at=existing.created_at, **payload.model_dump())
            self._banners[banner_id] = banner
            return banner.to_wire()

    def delete_banner(self, banner_id: int) -> None:
        with self._lock:
            self._require(self._banners, banner_id, "Banner")
            del self._banners[banner_id]

    # Reels

    def list_reels(self, active_only: bool = True) -> List[Dict[str, Any]]:
        with self._lock:
            reels = [r for r in self._reels.values() if r.is_active or not active_only]
            reels.sort(key=lambda r: (r.order, r.id))
            return [self._reel_view(r) for r in reels]

    def _reel_view(self, reel: Reel) -> Dict[str, Any]:
        view = reel.to_wire()
        product = self._products.get(reel.product_id) if reel.product_id else None
        view["product"] = self._product_view(product) if product else None
        return view

    def create_reel(self, payload: ReelIn) -> Dict[str, Any]:
        with self._lock:
            self._check_reel_refs(payload)
            reel_id = self._next_id("reel")
            reel = Reel(id=reel_id, **payload.model_dump())
            self._reels[reel_id] = reel
            return reel.to_wire()

    def update_reel(self, reel_id: int, payload: ReelIn) -> Dict[str, Any]:
        with self._lock:
            existing = self._require(self._reels, reel_id, "Reel")
            self._check_reel_refs(payload)
            reel = Reel(
                id=reel_id,
                view_count=existing.view_count,
                created_at=existing.created_at,
                **payload.model_dump(),
            )
            self._reels[reel_id] = reel
            return reel.to_wire()

    def delete_reel(self, reel_id: int) -> None:
        with self._lock:
            self._require(self._reels, reel_id, "Reel")
            del self._reels[reel_id]

    def record_reel_view(self, reel_id: int) -> Dict[str, Any]:
        with self._lock:
            reel = self._require(self._reels, reel_id, "Reel")
            reel = reel.model_copy(update={"view_count": reel.view_count + 1})
            self._reels[reel_id] = reel
            return {"id": reel.id, "viewCount": reel.view_count}

    def _check_reel_refs(self, payload: ReelIn) -> None:
        if payload.product_id is not None and payload.product_id not in self._products:
            raise ValidationError("Unknown product", {"productId": payload.product_id})

    # Helpers

    @staticmethod
    def _require(collection: Dict[int, Any], item_id: int, resource: str) -> Any:
        item = collection.get(item_id)
        if item is None:
            raise NotFoundError(resource, item_id)
        return item

    @staticmethod
    def _check_unique_slug(collection: Dict[int, Any], slug: str, exclude_id: Optional[int] = None) -> None:
        for item_id, item in collection.items():
            if item.slug == slug and item_id != exclude_id:
                raise ConflictError("Slug already in use", {"slug": slug})
