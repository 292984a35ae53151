"""
Ranking Schemas

Pydantic models for aggregation output, ranked entries, query envelopes and
recompute reports. The query envelope doubles as the cached payload.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from bestsellers.ranking.exceptions import PartialRecomputeFailure


class SalesFilters(BaseModel):
    """Optional conjunctive narrowing of an aggregation"""
    model_config = ConfigDict(frozen=True)

    vendor_id: Optional[int] = None
    category_id: Optional[int] = None


class AggregatedProductMetric(BaseModel):
    """Sales summary for one product within a window"""
    product_id: int
    name: Optional[str] = None
    vendor_id: Optional[int] = None
    price: Optional[float] = None
    total_quantity_sold: int
    total_revenue: float
    average_unit_price: Optional[float] = None
    unique_buyer_count: int
    order_count: int = 0
    first_sale_at: Optional[datetime] = None
    last_sale_at: Optional[datetime] = None


class RankedProductEntry(AggregatedProductMetric):
    """Aggregated metric with its dense 1-based rank"""
    rank: int = Field(ge=1)
    is_best_seller: bool = False


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class QueryStats(BaseModel):
    """Totals over every ranked product matching the query"""
    total_products: int
    total_revenue: float
    total_quantity_sold: int
    average_order_value: float = 0.0
    period: str
    period_label: str
    window_from: datetime
    window_to: datetime


class CacheInfo(BaseModel):
    cached: bool
    age_seconds: float = 0.0


class BestSellersResponse(BaseModel):
    """Paginated ranked list"""
    items: List[RankedProductEntry]
    pagination: Pagination
    stats: QueryStats
    cache: CacheInfo = Field(default_factory=lambda: CacheInfo(cached=False))


class CacheEntryStats(BaseModel):
    key: str
    age_seconds: float
    expires_in_seconds: float


class CacheStats(BaseModel):
    size: int
    keys: List[str]
    entries: List[CacheEntryStats] = Field(default_factory=list)
    soft_cap: int
    over_soft_cap: bool
    ttl_seconds: int


class FlaggedProduct(BaseModel):
    """Catalog product carrying persisted best-seller state"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    sku: str
    name: str
    vendor_id: int
    price: float
    best_seller_rank: int
    is_best_seller: bool


class FlaggedListResponse(BaseModel):
    items: List[FlaggedProduct]
    pagination: Pagination


class FlaggedStats(BaseModel):
    total_best_sellers: int
    vendors_count: int
    categories_count: int


class VendorPerformance(BaseModel):
    vendor_id: int
    product_count: int
    total_quantity_sold: int
    total_revenue: float


class CategoryPerformance(BaseModel):
    category_id: int
    name: str
    product_count: int
    total_quantity_sold: int
    total_revenue: float
    average_unit_price: Optional[float] = None


class PerformanceReport(BaseModel):
    """Ranked window broken down by vendor and category"""
    stats: QueryStats
    top_products: List[RankedProductEntry]
    top_vendors: List[VendorPerformance]
    categories: List[CategoryPerformance]
    best_sellers: FlaggedStats


class DashboardOverview(BaseModel):
    """Headline stats for the short windows plus persisted flags"""
    periods: Dict[str, QueryStats]
    best_sellers: FlaggedStats


class RecomputeFailure(BaseModel):
    product_id: int
    error: str


class RecomputeResult(BaseModel):
    """Summary of one full recompute"""
    products_updated: int = 0
    catalog_size: int = 0
    ranked_count: int = 0
    best_seller_threshold: Optional[int] = None
    failures: List[RecomputeFailure] = Field(default_factory=list)
    skipped: int = 0
    timed_out: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def status(self) -> str:
        if self.failures or self.timed_out:
            return "partial"
        return "completed"

    def raise_for_failures(self) -> None:
        """Raise PartialRecomputeFailure if any product write failed"""
        if self.failures:
            raise PartialRecomputeFailure(self)

    def summary(self) -> dict:
        """Serializable report including the derived status"""
        data = self.model_dump(mode="json")
        data["status"] = self.status
        data["failed"] = len(self.failures)
        return data
