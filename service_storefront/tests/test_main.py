"""
Integration tests for the Storefront service.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_storefront.app.main import StorefrontService, create_app
from service_storefront.app.caching.response_cache import ResponseCache


ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestStorefrontService:
    """Test cases for StorefrontService."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def service(self, clock):
        """Fresh service with an isolated cache per test."""
        return StorefrontService(
            response_cache=ResponseCache(clock=clock),
            admin_token=ADMIN_TOKEN,
            cache_sweep_interval_seconds=0,
        )

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    @pytest.fixture
    def admin_headers(self):
        return {"Authorization": f"Bearer {ADMIN_TOKEN}"}

    @pytest.fixture
    def seeded(self, client, admin_headers):
        """Two categories, an occasion and three products."""
        mugs = client.post("/categories", json={"name": "Mugs"}, headers=admin_headers).json()
        bowls = client.post("/categories", json={"name": "Bowls", "order": 1}, headers=admin_headers).json()
        diwali = client.post("/occasions", json={"name": "Diwali"}, headers=admin_headers).json()
        products = [
            client.post("/products", json={
                "name": "Blue Mug",
                "categoryId": mugs["id"],
                "isNew": True,
                "keywords": ["ceramic"],
                "sizes": [{"label": "S", "price": 12.5}],
            }, headers=admin_headers).json(),
            client.post("/products", json={
                "name": "Festival Bowl",
                "categoryId": bowls["id"],
                "isFestival": True,
                "occasionIds": [diwali["id"]],
                "sizes": [{"label": "M", "price": 30}],
            }, headers=admin_headers).json(),
            client.post("/products", json={
                "name": "Red Mug",
                "categoryId": mugs["id"],
                "sizes": [{"label": "S", "price": 8}],
            }, headers=admin_headers).json(),
        ]
        return {"mugs": mugs, "bowls": bowls, "diwali": diwali, "products": products}

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "storefront"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["response_cache"] == "ok"

    def test_metrics_endpoint_exposes_cache_counters(self, client, seeded):
        client.get("/products")
        client.get("/products")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "response_cache_lookups_total" in response.text

    def test_create_app_returns_fastapi_app(self):
        app = create_app(cache_sweep_interval_seconds=0)
        assert app.state.storefront_service.response_cache is not None

    def test_product_list_is_cached(self, client, seeded, service):
        first = client.get("/products?category=mugs")
        second = client.get("/products?category=mugs")

        assert first.headers["X-Cache"] == "MISS"
        assert second.headers["X-Cache"] == "HIT"
        assert [p["name"] for p in second.json()] == [p["name"] for p in first.json()]
        assert "/products?category=mugs" in service.response_cache

    def test_cache_hit_is_indistinguishable(self, client, seeded):
        first = client.get("/categories")
        second = client.get("/categories")

        assert second.status_code == first.status_code
        assert second.content == first.content
        assert second.headers["content-type"] == first.headers["content-type"]

    def test_product_create_invalidates_lists(self, client, seeded, admin_headers):
        client.get("/products")
        client.get("/products?category=mugs")
        client.get("/categories")

        client.post("/products", json={"name": "Green Mug", "categoryId": seeded["mugs"]["id"]}, headers=admin_headers)

        products = client.get("/products?category=mugs")
        categories = client.get("/categories")
        assert products.headers["X-Cache"] == "MISS"
        assert "Green Mug" in [p["name"] for p in products.json()]
        assert categories.headers["X-Cache"] == "MISS"
        mugs = next(c for c in categories.json() if c["slug"] == "mugs")
        assert mugs["productCount"] == 3

    def test_read_after_write_sees_update(self, client, seeded, admin_headers):
        product = seeded["products"][0]
        client.get(f"/products/{product['id']}")

        client.put(
            f"/products/{product['id']}",
            json={"name": "Renamed Mug", "categoryId": seeded["mugs"]["id"]},
            headers=admin_headers,
        )

        response = client.get(f"/products/{product['id']}")
        assert response.json()["name"] == "Renamed Mug"

    def test_category_update_invalidates_products(self, client, seeded, admin_headers):
        client.get("/products")

        client.put(
            f"/categories/{seeded['mugs']['id']}",
            json={"name": "Coffee Mugs", "slug": "coffee-mugs"},
            headers=admin_headers,
        )

        response = client.get("/products")
        assert response.headers["X-Cache"] == "MISS"
        names = {p["category"]["name"] for p in response.json() if p["category"]}
        assert "Coffee Mugs" in names

    def test_reorder_invalidates_products(self, client, seeded, admin_headers):
        ids = [p["id"] for p in seeded["products"]]
        client.get("/products?sort=order")

        response = client.put("/products/reorder", json={"ids": list(reversed(ids))}, headers=admin_headers)
        assert response.status_code == 200

        ordered = client.get("/products?sort=order")
        assert ordered.headers["X-Cache"] == "MISS"
        assert [p["id"] for p in ordered.json()] == list(reversed(ids))

    def test_random_sort_is_never_cached(self, client, seeded, service):
        first = client.get("/products?sort=random")
        second = client.get("/products?sort=random")

        assert first.headers["X-Cache"] == second.headers["X-Cache"] == "BYPASS"
        assert len(service.response_cache) == 0

    def test_not_found_is_not_cached(self, client, service):
        first = client.get("/products/999")
        second = client.get("/products/999")

        assert first.status_code == second.status_code == 404
        assert second.json()["code"] == "NOT_FOUND"
        assert second.headers["X-Cache"] == "MISS"
        assert "/products/999" not in service.response_cache

    def test_entries_expire_after_ttl(self, client, seeded, clock, service):
        client.get("/banners")
        clock.now = service.config.cache_default_ttl_ms - 1
        assert client.get("/banners").headers["X-Cache"] == "HIT"

        clock.now = service.config.cache_default_ttl_ms
        assert client.get("/banners").headers["X-Cache"] == "MISS"

    def test_admin_routes_require_token(self, client):
        response = client.post("/categories", json={"name": "Plates"})
        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

        wrong = client.post("/categories", json={"name": "Plates"}, headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

    def test_failed_write_does_not_invalidate(self, client, seeded, service):
        client.get("/products")

        client.post("/products", json={"name": "Sneaky"})

        assert "/products" in service.response_cache

    def test_admin_listing_is_not_cached(self, client, admin_headers, service):
        client.post("/banners", json={"image": "a.jpg", "isActive": False}, headers=admin_headers)

        response = client.get("/banners/all", headers=admin_headers)

        assert response.status_code == 200
        assert len(response.json()) == 1
        assert "X-Cache" not in response.headers
        assert "/banners/all" not in service.response_cache

    def test_banner_lifecycle(self, client, admin_headers):
        assert client.get("/banners").json() == []

        created = client.post("/banners", json={"image": "hero.jpg", "title": "Sale"}, headers=admin_headers).json()
        assert [b["id"] for b in client.get("/banners").json()] == [created["id"]]

        client.put(
            f"/banners/{created['id']}",
            json={"image": "hero.jpg", "title": "Sale", "isActive": False},
            headers=admin_headers,
        )
        assert client.get("/banners").json() == []

        client.delete(f"/banners/{created['id']}", headers=admin_headers)
        assert client.get(f"/banners/{created['id']}", headers=admin_headers).status_code == 404

    def test_reel_view_invalidates_reels(self, client, seeded, admin_headers):
        product = seeded["products"][0]
        reel = client.post(
            "/reels",
            json={"url": "https://example.com/r.mp4", "productId": product["id"]},
            headers=admin_headers,
        ).json()
        listing = client.get("/reels").json()
        assert listing[0]["product"]["id"] == product["id"]

        client.post(f"/reels/{reel['id']}/view")

        response = client.get("/reels")
        assert response.headers["X-Cache"] == "MISS"
        assert response.json()[0]["viewCount"] == 1

    def test_product_update_refreshes_reels(self, client, seeded, admin_headers):
        product = seeded["products"][0]
        client.post("/reels", json={"url": "https://example.com/r.mp4", "productId": product["id"]}, headers=admin_headers)
        client.get("/reels")

        client.put(
            f"/products/{product['id']}",
            json={"name": "Updated Mug", "categoryId": seeded["mugs"]["id"]},
            headers=admin_headers,
        )

        assert client.get("/reels").json()[0]["product"]["name"] == "Updated Mug"

    def test_category_update_refreshes_reels(self, client, seeded, admin_headers):
        product = seeded["products"][0]
        client.post("/reels", json={"url": "https://example.com/r.mp4", "productId": product["id"]}, headers=admin_headers)
        assert client.get("/reels").json()[0]["product"]["category"]["name"] == "Mugs"

        client.put(f"/categories/{seeded['mugs']['id']}", json={"name": "Coffee Mugs"}, headers=admin_headers)

        response = client.get("/reels")
        assert response.headers["X-Cache"] == "MISS"
        assert response.json()[0]["product"]["category"]["name"] == "Coffee Mugs"

    def test_occasion_delete_refreshes_category_detail(self, client, seeded, admin_headers):
        bowls_id = seeded["bowls"]["id"]
        diwali_id = seeded["diwali"]["id"]
        assert client.get(f"/categories/{bowls_id}").json()["products"][0]["occasionIds"] == [diwali_id]

        client.delete(f"/occasions/{diwali_id}", headers=admin_headers)

        response = client.get(f"/categories/{bowls_id}")
        assert response.headers["X-Cache"] == "MISS"
        assert response.json()["products"][0]["occasionIds"] == []

    def test_occasion_delete_refreshes_reels(self, client, seeded, admin_headers):
        bowl = seeded["products"][1]
        client.post("/reels", json={"url": "https://example.com/b.mp4", "productId": bowl["id"]}, headers=admin_headers)
        client.get("/reels")

        client.delete(f"/occasions/{seeded['diwali']['id']}", headers=admin_headers)

        assert client.get("/reels").json()[0]["product"]["occasionIds"] == []

    def test_banner_detail_is_admin_only_and_uncached(self, client, admin_headers, service):
        banner = client.post("/banners", json={"image": "a.jpg", "isActive": False}, headers=admin_headers).json()

        anonymous = client.get(f"/banners/{banner['id']}")
        assert anonymous.status_code == 401

        response = client.get(f"/banners/{banner['id']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["isActive"] is False
        assert "X-Cache" not in response.headers
        assert f"/banners/{banner['id']}" not in service.response_cache

    def test_cache_stats_endpoint(self, client, seeded):
        client.get("/occasions")
        client.get("/occasions")

        response = client.get("/cache/stats")

        assert response.status_code == 200
        data = response.json()
        assert set(data) >= {"entryCount", "hits", "misses", "approxSizeBytes"}
        assert data["entryCount"] == 1
        assert data["hits"] == 1
        assert data["misses"] == 1
        assert data["approxSizeBytes"] > 0

    def test_cache_stats_are_not_cached(self, client):
        client.get("/cache/stats")
        response = client.get("/cache/stats")
        assert "X-Cache" not in response.headers

    def test_cache_clear_endpoint(self, client, seeded, admin_headers, service):
        client.get("/products")
        client.get("/categories")

        assert client.post("/cache/clear").status_code == 401
        response = client.post("/cache/clear", headers=admin_headers)

        assert response.json() == {"removed": 2}
        assert len(service.response_cache) == 0

    def test_cache_can_be_disabled(self):
        service = StorefrontService(cache_enabled=False, cache_sweep_interval_seconds=0)
        client = TestClient(service.app)

        response = client.get("/products")

        assert response.status_code == 200
        assert "X-Cache" not in response.headers
        assert len(service.response_cache) == 0

    def test_invalid_ttl_fails_fast(self):
        from shared.errors import CacheConfigurationError

        with pytest.raises(CacheConfigurationError):
            StorefrontService(cache_default_ttl_ms=0, cache_sweep_interval_seconds=0)

    def test_sweeper_runs_with_app_lifespan(self, clock):
        service = StorefrontService(
            response_cache=ResponseCache(clock=clock),
            cache_sweep_interval_seconds=30,
        )

        with TestClient(service.app):
            assert service.sweeper.running

        assert not service.sweeper.running
