"""
HTTP adapter that puts the response cache in front of read routes.

GET requests under a cached family are answered from the store when a
fresh entry exists; otherwise the downstream handler runs and a 200 body
is written through. Successful writes invalidate every affected family
before their response leaves the process.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TYPE_CHECKING
from urllib.parse import urlencode

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shared.errors import CacheConfigurationError
from shared.logging import get_logger
from .invalidation import InvalidationMap, MUTATING_METHODS, path_in_family
from .response_cache import CacheEntry, ResponseCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_MS = 5 * 60 * 1000
CACHE_HEADER = "X-Cache"


def build_cache_key(path: str, query_items: Iterable[Tuple[str, str]] = ()) -> str:
    """Canonical key: path plus query parameters sorted by name then value."""
    if not path:
        raise CacheConfigurationError("Cannot derive a cache key from an empty path")
    items = sorted((str(name), str(value)) for name, value in query_items)
    if not items:
        return path
    return f"{path}?{urlencode(items)}"


@dataclass(frozen=True)
class CacheRule:
    """Cache policy for one resource family."""

    prefix: str
    ttl_ms: float = DEFAULT_TTL_MS
    bypass: Optional[Callable[[Request], bool]] = None
    exclude: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.prefix or not self.prefix.startswith("/"):
            raise CacheConfigurationError("Cache rule prefix must be an absolute path", {"prefix": self.prefix})
        if isinstance(self.ttl_ms, bool) or not isinstance(self.ttl_ms, (int, float)) or self.ttl_ms <= 0:
            raise CacheConfigurationError("Cache rule ttl_ms must be > 0", {"prefix": self.prefix, "ttl_ms": self.ttl_ms})

    def covers(self, path: str) -> bool:
        if not path_in_family(path, self.prefix):
            return False
        return not any(path_in_family(path, excluded) for excluded in self.exclude)


class ResponseCacheAdapter:
    """Key derivation, cacheability decisions and store wiring."""

    def __init__(
        self,
        cache: ResponseCache,
        rules: Sequence[CacheRule],
        invalidation_map: InvalidationMap,
        *,
        metrics: Optional["MetricsCollector"] = None,
        header_name: str = CACHE_HEADER,
        enabled: bool = True,
    ):
        self.cache = cache
        self.rules: List[CacheRule] = sorted(rules, key=lambda rule: len(rule.prefix), reverse=True)
        self.invalidation_map = invalidation_map
        self.metrics = metrics
        self.header_name = header_name
        self.enabled = enabled
        self.logger = get_logger("storefront.cache_adapter")

        invalidation_map.validate(self.cached_prefixes)

    @property
    def cached_prefixes(self) -> List[str]:
        return [rule.prefix for rule in self.rules]

    def match_rule(self, method: str, path: str) -> Optional[CacheRule]:
        """Rule for a cacheable request, or None when it must pass through."""
        if not self.enabled or method.upper() != "GET":
            return None
        for rule in self.rules:
            if rule.covers(path):
                return rule
        return None

    def should_bypass(self, rule: CacheRule, request: Request) -> bool:
        return bool(rule.bypass and rule.bypass(request))

    def key_for(self, request: Request) -> str:
        return build_cache_key(request.url.path, request.query_params.multi_items())

    def lookup(self, rule: CacheRule, key: str) -> Optional[CacheEntry]:
        entry = self.cache.get(key)
        result = "hit" if entry is not None else "miss"
        self.logger.debug("Response cache lookup", key=key, result=result)
        self._record_lookup(rule, result)
        return entry

    def generation_for(self, key: str) -> int:
        return self.cache.generation(key)

    def store(
        self,
        rule: CacheRule,
        key: str,
        status_code: int,
        body: bytes,
        content_type: Optional[str],
        generation: Optional[int] = None,
    ) -> bool:
        """Write a response through; only 200s computed since the last
        invalidation of their family are stored."""
        if status_code != 200:
            return False
        meta: Dict[str, Any] = {"status_code": status_code, "content_type": content_type}
        if self.cache.set(key, body, meta, rule.ttl_ms, generation=generation) is None:
            return False
        self._record_size()
        return True

    def invalidate_for(self, method: str, path: str) -> int:
        """Invalidate families affected by a successful write to ``path``."""
        families = self.invalidation_map.families_for(method, path, self.cached_prefixes)
        removed = 0
        for family in families:
            try:
                removed += self.cache.invalidate(family)
            except Exception as exc:
                # A half-finished invalidation could leave stale data behind.
                self.logger.error(
                    "Cache invalidation failed, clearing store",
                    family=family,
                    method=method,
                    path=path,
                    error=str(exc),
                    exc_info=True,
                )
                removed += self.cache.clear()
                break
            if self.metrics:
                self.metrics.increment_counter("response_cache_invalidations_total", family=family)
        self._record_size()
        return removed

    def replay(self, entry: CacheEntry) -> Response:
        """Rebuild the stored response exactly as it was first sent."""
        headers = {self.header_name: "HIT"}
        content_type = entry.content_meta.get("content_type")
        if content_type:
            headers["content-type"] = content_type
        return Response(
            content=entry.payload,
            status_code=entry.content_meta.get("status_code", 200),
            headers=headers,
        )

    def record_bypass(self, rule: CacheRule) -> None:
        self.logger.debug("Response cache bypassed", family=rule.prefix)
        self._record_lookup(rule, "bypass")

    def _record_lookup(self, rule: CacheRule, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("response_cache_lookups_total", family=rule.prefix, result=result)

    def _record_size(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("response_cache_entries", len(self.cache))


def _opts_out(response: Response) -> bool:
    cache_control = response.headers.get("cache-control", "")
    return "no-store" in cache_control.lower()


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """Starlette middleware driving a ResponseCacheAdapter."""

    def __init__(self, app, adapter: ResponseCacheAdapter):
        super().__init__(app)
        self.adapter = adapter

    async def dispatch(self, request: Request, call_next):
        adapter = self.adapter
        method = request.method.upper()
        path = request.url.path

        if method in MUTATING_METHODS:
            response = await call_next(request)
            if 200 <= response.status_code < 300:
                adapter.invalidate_for(method, path)
            return response

        rule = adapter.match_rule(method, path)
        if rule is None:
            return await call_next(request)

        if adapter.should_bypass(rule, request):
            adapter.record_bypass(rule)
            response = await call_next(request)
            response.headers[adapter.header_name] = "BYPASS"
            return response

        key = adapter.key_for(request)
        entry = adapter.lookup(rule, key)
        if entry is not None:
            return adapter.replay(entry)

        generation = adapter.generation_for(key)
        response = await call_next(request)
        if response.status_code != 200:
            response.headers[adapter.header_name] = "MISS"
            return response
        if _opts_out(response):
            response.headers[adapter.header_name] = "BYPASS"
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        content_type = response.headers.get("content-type")
        adapter.store(rule, key, response.status_code, body, content_type, generation=generation)

        fresh = Response(content=body, status_code=response.status_code)
        # Raw pairs keep repeated headers such as set-cookie.
        fresh.raw_headers = [
            (name, value) for name, value in response.raw_headers if name.lower() != b"content-length"
        ] + [(b"content-length", str(len(body)).encode("latin-1"))]
        fresh.headers[adapter.header_name] = "MISS"
        return fresh
