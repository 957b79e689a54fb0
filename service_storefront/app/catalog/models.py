"""
Catalog data models for the Storefront service.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CatalogModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ProductSort(str, Enum):
    """Supported product list orderings."""
    NEWEST = "newest"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    ORDER = "order"
    RANDOM = "random"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SizeOption(CatalogModel):
    label: str
    price: float = Field(default=0.0, ge=0)


class ProductIn(CatalogModel):
    """Create/update payload for a product."""
    name: str = Field(min_length=1)
    description: str = ""
    badge: Optional[str] = None
    is_new: bool = False
    is_festival: bool = False
    category_id: Optional[int] = None
    occasion_ids: List[int] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    sizes: List[SizeOption] = Field(default_factory=list)


class Product(ProductIn):
    id: int
    order: int = 0
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def min_price(self) -> Optional[float]:
        return min((size.price for size in self.sizes), default=None)


class CategoryIn(CatalogModel):
    name: str = Field(min_length=1)
    slug: Optional[str] = None
    image: Optional[str] = None
    order: int = 0


class Category(CategoryIn):
    id: int
    slug: str


class OccasionIn(CatalogModel):
    name: str = Field(min_length=1)
    slug: Optional[str] = None
    order: int = 0


class Occasion(OccasionIn):
    id: int
    slug: str


class BannerIn(CatalogModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    cta_text: Optional[str] = None
    cta_link: Optional[str] = None
    image: str = Field(min_length=1)
    is_active: bool = True
    order: int = 0


class Banner(BannerIn):
    id: int
    created_at: datetime = Field(default_factory=utc_now)


class ReelIn(CatalogModel):
    title: Optional[str] = None
    url: str = Field(min_length=1)
    thumbnail: Optional[str] = None
    platform: str = "native"
    product_id: Optional[int] = None
    is_trending: bool = False
    discount_pct: Optional[float] = Field(default=None, ge=0, le=100)
    is_active: bool = True
    order: int = 0


class Reel(ReelIn):
    id: int
    view_count: int = 0
    created_at: datetime = Field(default_factory=utc_now)


class ReorderRequest(CatalogModel):
    """Product ids in their new display order."""
    ids: List[int] = Field(min_length=1)
