"""
Read-only projection of response cache counters for the operational endpoint.
"""

from pydantic import BaseModel, ConfigDict, Field

from .response_cache import ResponseCache


class CacheStatsResponse(BaseModel):
    """Wire shape of ``GET /cache/stats``."""

    model_config = ConfigDict(populate_by_name=True)

    entry_count: int = Field(alias="entryCount")
    hits: int
    misses: int
    approx_size_bytes: int = Field(alias="approxSizeBytes")
    evictions: int = 0


class CacheStatsReporter:
    """Snapshot the cache without mutating it."""

    def __init__(self, cache: ResponseCache):
        self.cache = cache

    def snapshot(self) -> CacheStatsResponse:
        stats = self.cache.stats()
        return CacheStatsResponse(
            entry_count=stats.entry_count,
            hits=stats.hits,
            misses=stats.misses,
            approx_size_bytes=stats.approx_size_bytes,
            evictions=stats.evictions,
        )

    def as_dict(self) -> dict:
        return self.snapshot().model_dump(by_alias=True)
