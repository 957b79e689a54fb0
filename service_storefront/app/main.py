"""
Storefront API service.

Public list/detail routes for products, categories, occasions, banners and
reels sit behind the in-process response cache; admin writes invalidate
the affected cache families before they respond.
"""

import hmac
from typing import Optional

from fastapi import Depends, Query, Request

from shared.base_service import BaseService
from shared.errors import AuthenticationError
from .caching import (
    CacheRule,
    CacheStatsReporter,
    CacheStatsResponse,
    CacheSweeper,
    InvalidationMap,
    ResponseCache,
    ResponseCacheAdapter,
    ResponseCacheMiddleware,
)
from .catalog import CatalogStore, ProductSort
from .catalog.models import BannerIn, CategoryIn, OccasionIn, ProductIn, ReelIn, ReorderRequest


# Family -> cached families whose payloads include its data, mirroring the
# catalog views: category counts and details list products, reels embed
# their product, products embed their category and carry occasion ids.
EMBEDDED_IN = {
    "/products": ("/categories", "/reels"),
    "/categories": ("/products",),
    "/occasions": ("/products",),
    "/banners": (),
    "/reels": (),
}

INVALIDATION_RULES = InvalidationMap.from_embeddings(EMBEDDED_IN).rules


def is_shuffled_listing(request: Request) -> bool:
    """Randomly ordered product lists must be recomputed on every call."""
    return request.query_params.get("sort") == ProductSort.RANDOM.value


class StorefrontService(BaseService):
    """Storefront API service implementation."""

    def __init__(
        self,
        catalog: Optional[CatalogStore] = None,
        response_cache: Optional[ResponseCache] = None,
        **config_overrides,
    ):
        self.catalog = catalog or CatalogStore()
        self._injected_cache = response_cache
        super().__init__("storefront", 3000, **config_overrides)

        self.stats_reporter = CacheStatsReporter(self.response_cache)
        self.sweeper: Optional[CacheSweeper] = None
        if self.config.cache_sweep_interval_seconds > 0:
            self.sweeper = CacheSweeper(self.response_cache, self.config.cache_sweep_interval_seconds)

        @self.app.on_event("startup")
        async def _startup():
            if self.sweeper:
                await self.sweeper.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            if self.sweeper:
                await self.sweeper.stop()

        self._setup_storefront_routes()
        self._setup_catalog_routes()
        self._setup_cache_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.storefront_service = self

    def _setup_middleware(self):
        """Install the response cache inside CORS and request timing."""
        ttl_ms = self.config.cache_default_ttl_ms
        self.response_cache = self._injected_cache or ResponseCache(
            max_entries=self.config.cache_max_entries
        )
        self.cache_rules = [
            CacheRule("/products", ttl_ms, bypass=is_shuffled_listing),
            CacheRule("/categories", ttl_ms),
            CacheRule("/occasions", ttl_ms),
            # Banner detail and /banners/all are admin-only.
            CacheRule("/banners", ttl_ms, exclude=("/banners/",)),
            CacheRule("/reels", ttl_ms, exclude=("/reels/all",)),
        ]
        self.cache_adapter = ResponseCacheAdapter(
            self.response_cache,
            self.cache_rules,
            InvalidationMap(INVALIDATION_RULES),
            metrics=self.metrics,
            header_name=self.config.cache_header_name,
            enabled=self.config.cache_enabled,
        )
        self.app.add_middleware(ResponseCacheMiddleware, adapter=self.cache_adapter)
        super()._setup_middleware()

    async def _check_dependencies(self):
        return {"response_cache": "ok", "catalog": "ok"}

    def _require_admin(self, request: Request) -> None:
        """Bearer-token gate for admin routes."""
        authorization = request.headers.get("Authorization", "")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise AuthenticationError("Missing bearer token")
        if not hmac.compare_digest(token.strip().encode(), self.config.admin_token.encode()):
            raise AuthenticationError("Invalid admin token")

    def _setup_storefront_routes(self):
        @self.app.get("/")
        async def root():
            return {"service": self.service_name, "message": "Storefront API"}

    def _setup_catalog_routes(self):
        """Set up product, category, occasion, banner and reel routes."""
        catalog = self.catalog
        admin = Depends(self._require_admin)

        # Products
        @self.app.get("/products")
        async def list_products(
            category: Optional[str] = None,
            occasion: Optional[str] = None,
            is_new: Optional[bool] = Query(default=None, alias="isNew"),
            is_festival: Optional[bool] = Query(default=None, alias="isFestival"),
            search: Optional[str] = None,
            sort: ProductSort = ProductSort.NEWEST,
        ):
            return catalog.list_products(
                category=category,
                occasion=occasion,
                is_new=is_new,
                is_festival=is_festival,
                search=search,
                sort=sort,
            )

        @self.app.get("/products/{product_id}")
        async def get_product(product_id: int):
            return catalog.get_product(product_id)

        @self.app.post("/products", dependencies=[admin])
        async def create_product(payload: ProductIn):
            return catalog.create_product(payload)

        @self.app.put("/products/reorder", dependencies=[admin])
        async def reorder_products(payload: ReorderRequest):
            return catalog.reorder_products(payload.ids)

        @self.app.put("/products/{product_id}", dependencies=[admin])
        async def update_product(product_id: int, payload: ProductIn):
            return catalog.update_product(product_id, payload)

        @self.app.delete("/products/{product_id}", dependencies=[admin])
        async def delete_product(product_id: int):
            catalog.delete_product(product_id)
            return {"message": "Product deleted successfully"}

        # Categories
        @self.app.get("/categories")
        async def list_categories():
            return catalog.list_categories()

        @self.app.get("/categories/{category_id}")
        async def get_category(category_id: int):
            return catalog.get_category(category_id)

        @self.app.post("/categories", dependencies=[admin])
        async def create_category(payload: CategoryIn):
            return catalog.create_category(payload)

        @self.app.put("/categories/{category_id}", dependencies=[admin])
        async def update_category(category_id: int, payload: CategoryIn):
            return catalog.update_category(category_id, payload)

        @self.app.delete("/categories/{category_id}", dependencies=[admin])
        async def delete_category(category_id: int):
            catalog.delete_category(category_id)
            return {"message": "Category deleted successfully"}

        # Occasions
        @self.app.get("/occasions")
        async def list_occasions():
            return catalog.list_occasions()

        @self.app.post("/occasions", dependencies=[admin])
        async def create_occasion(payload: OccasionIn):
            return catalog.create_occasion(payload)

        @self.app.put("/occasions/{occasion_id}", dependencies=[admin])
        async def update_occasion(occasion_id: int, payload: OccasionIn):
            return catalog.update_occasion(occasion_id, payload)

        @self.app.delete("/occasions/{occasion_id}", dependencies=[admin])
        async def delete_occasion(occasion_id: int):
            catalog.delete_occasion(occasion_id)
            return {"message": "Occasion deleted successfully"}

        # Banners
        @self.app.get("/banners")
        async def list_banners():
            return catalog.list_banners(active_only=True)

        @self.app.get("/banners/all", dependencies=[admin])
        async def list_all_banners():
            return catalog.list_banners(active_only=False)

        @self.app.get("/banners/{banner_id}", dependencies=[admin])
        async def get_banner(banner_id: int):
            return catalog.get_banner(banner_id)

        @self.app.post("/banners", dependencies=[admin])
        async def create_banner(payload: BannerIn):
            return catalog.create_banner(payload)

        @self.app.put("/banners/{banner_id}", dependencies=[admin])
        async def update_banner(banner_id: int, payload: BannerIn):
            return catalog.update_banner(banner_id, payload)

        @self.app.delete("/banners/{banner_id}", dependencies=[admin])
        async def delete_banner(banner_id: int):
            catalog.delete_banner(banner_id)
            return {"message": "Banner deleted successfully"}

        # Reels
        @self.app.get("/reels")
        async def list_reels():
            return catalog.list_reels(active_only=True)

        @self.app.get("/reels/all", dependencies=[admin])
        async def list_all_reels():
            return catalog.list_reels(active_only=False)

        @self.app.post("/reels", dependencies=[admin])
        async def create_reel(payload: ReelIn):
            return catalog.create_reel(payload)

        @self.app.put("/reels/{reel_id}", dependencies=[admin])
        async def update_reel(reel_id: int, payload: ReelIn):
            return catalog.update_reel(reel_id, payload)

        @self.app.post("/reels/{reel_id}/view")
        async def record_reel_view(reel_id: int):
            return catalog.record_reel_view(reel_id)

        @self.app.delete("/reels/{reel_id}", dependencies=[admin])
        async def delete_reel(reel_id: int):
            catalog.delete_reel(reel_id)
            return {"message": "Reel deleted successfully"}

    def _setup_cache_routes(self):
        """Set up operational cache routes."""
        admin = Depends(self._require_admin)

        @self.app.get("/cache/stats", response_model=CacheStatsResponse)
        async def cache_stats():
            """Point-in-time response cache counters."""
            return self.stats_reporter.snapshot()

        @self.app.post("/cache/clear", dependencies=[admin])
        async def clear_cache():
            """Drop every cached response."""
            removed = self.response_cache.clear()
            self.logger.info("Response cache cleared via admin endpoint", removed=removed)
            return {"removed": removed}


def create_app(**kwargs):
    """Create FastAPI application."""
    service = StorefrontService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = StorefrontService()
    service.run()
