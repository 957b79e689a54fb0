"""
Storefront API Service package.

Serves the public catalog (products, categories, occasions, banners,
reels) and the admin write surface, fronted by an in-process response
cache with TTL expiry and family-level invalidation.

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.caching: Response store, HTTP adapter, invalidation map, stats, sweeper.
- app.catalog: In-memory catalog store and models.
"""
