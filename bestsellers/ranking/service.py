"""
Best-Sellers Query Service

Entry point for ranked queries:
- normalizes and clamps caller parameters
- serves repeated queries from the result cache
- on a miss aggregates, ranks and slices one page, then stores it

Also serves the cheap listing of products flagged by the last recompute.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from bestsellers.database.repositories import CatalogRepository
from bestsellers.ranking.aggregator import SalesAggregator
from bestsellers.ranking.engine import RankingEngine
from bestsellers.ranking.exceptions import OperationTimeout
from bestsellers.ranking.reports import category_breakdown, vendor_breakdown
from bestsellers.ranking.schemas import (
    BestSellersResponse,
    CacheInfo,
    DashboardOverview,
    FlaggedListResponse,
    FlaggedProduct,
    FlaggedStats,
    Pagination,
    PerformanceReport,
    QueryStats,
    RankedProductEntry,
    SalesFilters,
)
from bestsellers.ranking.windows import TimeRange, Window, utcnow, window_label
from bestsellers.serving.cache import ResultCache
from bestsellers.serving.metrics import CACHE_LOOKUPS, QUERY_COMPUTE_TIME

logger = structlog.get_logger(__name__)

CACHE_KEY_PREFIX = "best-sellers"

DASHBOARD_WINDOWS = (Window.DAY, Window.WEEK, Window.MONTH)


@dataclass(frozen=True)
class BestSellersQuery:
    """Normalized query parameters"""
    window: Window
    limit: int
    offset: int
    vendor_id: Optional[int] = None
    category_id: Optional[int] = None
    min_sales: int = 1

    @property
    def filters(self) -> SalesFilters:
        return SalesFilters(vendor_id=self.vendor_id, category_id=self.category_id)

    def cache_key(self) -> str:
        """Deterministic key: equal normalized queries map to one entry"""
        return ":".join(
            [
                CACHE_KEY_PREFIX,
                self.window.value,
                str(self.limit),
                str(self.offset),
                str(self.vendor_id) if self.vendor_id is not None else "all",
                str(self.category_id) if self.category_id is not None else "all",
                str(self.min_sales),
            ]
        )


def _positive_or_none(value: Optional[int]) -> Optional[int]:
    return value if value is not None and value > 0 else None


def _clamp(value: int, lower: int, upper: Optional[int] = None) -> int:
    value = max(lower, value)
    return min(value, upper) if upper is not None else value


def build_stats(
    ranked: List[RankedProductEntry],
    window: Window,
    time_range: TimeRange,
) -> QueryStats:
    revenue = sum(entry.total_revenue for entry in ranked)
    orders = sum(entry.order_count for entry in ranked)

    return QueryStats(
        total_products=len(ranked),
        total_revenue=round(revenue, 2),
        total_quantity_sold=sum(entry.total_quantity_sold for entry in ranked),
        # orders spanning several ranked products count once per product
        average_order_value=round(revenue / orders, 2) if orders else 0.0,
        period=window.value,
        period_label=window_label(window, time_range),
        window_from=time_range.start,
        window_to=time_range.end,
    )


class BestSellersService:
    """
    Cache-or-compute façade over the aggregator and ranking engine.

    Args:
        aggregator: Sales aggregator
        engine: Ranking engine
        cache: Result cache instance
        catalog: Catalog repository, for the flagged listing
        default_page_size: Page size when none is given
        max_page_size: Upper clamp for the page size
        default_min_sales: Minimum quantity when none is given
        query_timeout: Default deadline in seconds, None for no limit
        clock: Source of the current naive UTC time
    """

    def __init__(
        self,
        aggregator: SalesAggregator,
        engine: RankingEngine,
        cache: ResultCache,
        catalog: CatalogRepository,
        default_page_size: int = 10,
        max_page_size: int = 100,
        default_min_sales: int = 1,
        query_timeout: Optional[float] = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.aggregator = aggregator
        self.engine = engine
        self.cache = cache
        self.catalog = catalog
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.default_min_sales = default_min_sales
        self.query_timeout = query_timeout
        self._clock = clock

    def normalize(
        self,
        period: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        page: Optional[int] = None,
        vendor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        min_sales: Optional[int] = None,
    ) -> BestSellersQuery:
        """
        Clamp and default raw parameters.

        page, when given, wins over offset: offset = page * limit.

        Raises:
            InvalidArgument: If the period is unknown
        """
        window = Window.parse(period)
        limit = _clamp(self.default_page_size if limit is None else limit, 1, self.max_page_size)

        if page is not None:
            offset = _clamp(page, 0) * limit
        else:
            offset = _clamp(offset or 0, 0)

        return BestSellersQuery(
            window=window,
            limit=limit,
            offset=offset,
            vendor_id=_positive_or_none(vendor_id),
            category_id=_positive_or_none(category_id),
            min_sales=_clamp(self.default_min_sales if min_sales is None else min_sales, 1),
        )

    async def query(
        self,
        period: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        page: Optional[int] = None,
        vendor_id: Optional[int] = None,
        category_id: Optional[int] = None,
        min_sales: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> BestSellersResponse:
        """
        Ranked, paginated best sellers for a window and filters.

        Args:
            period: day, week, month, year or all (default all)
            limit: Page size, clamped to [1, max_page_size]
            offset: Entries to skip
            page: Zero-based page number, overrides offset
            vendor_id: Restrict to one vendor
            category_id: Restrict to one category
            min_sales: Minimum quantity sold to be ranked
            timeout: Deadline in seconds, defaults to the service timeout

        Returns:
            BestSellersResponse with cache metadata

        Raises:
            InvalidArgument: If the period is unknown
            DataSourceError: If the order ledger cannot be read
            OperationTimeout: If the deadline elapses before the page is ready
        """
        normalized = self.normalize(
            period=period,
            limit=limit,
            offset=offset,
            page=page,
            vendor_id=vendor_id,
            category_id=category_id,
            min_sales=min_sales,
        )
        key = normalized.cache_key()

        hit = await self.cache.get(key)
        if hit is not None:
            CACHE_LOOKUPS.labels(result="hit").inc()
            age = round(hit.age_seconds, 3)
            logger.info("Cache hit", key=key, age_seconds=age)
            response = BestSellersResponse.model_validate(hit.payload)
            response.cache = CacheInfo(cached=True, age_seconds=age)
            return response

        CACHE_LOOKUPS.labels(result="miss").inc()
        logger.info("Cache miss", key=key)

        timeout = self.query_timeout if timeout is None else timeout
        try:
            with QUERY_COMPUTE_TIME.labels(period=normalized.window.value).time():
                response = await asyncio.wait_for(self._compute(normalized), timeout)
        except asyncio.TimeoutError:
            logger.warning("Best-sellers query timed out", key=key, timeout=timeout)
            raise OperationTimeout(f"Best-sellers query exceeded {timeout}s") from None

        await self.cache.put(key, response.model_dump(mode="json"))
        return response

    async def _compute(self, query: BestSellersQuery) -> BestSellersResponse:
        time_range = self.aggregator.resolve(query.window, self._clock())
        metrics = await self.aggregator.aggregate_range(time_range, query.filters)
        ranked = self.engine.rank(metrics, min_sales=query.min_sales)

        total = len(ranked)
        return BestSellersResponse(
            items=ranked[query.offset:query.offset + query.limit],
            pagination=Pagination(
                total=total,
                limit=query.limit,
                offset=query.offset,
                has_more=query.offset + query.limit < total,
            ),
            stats=build_stats(ranked, query.window, time_range),
            cache=CacheInfo(cached=False),
        )

    async def list_flagged(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        page: Optional[int] = None,
        vendor_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> FlaggedListResponse:
        """Products flagged by the last recompute, ordered by persisted rank"""
        normalized = self.normalize(
            limit=limit,
            offset=offset,
            page=page,
            vendor_id=vendor_id,
            category_id=category_id,
        )

        products, total = await self.catalog.list_flagged_best_sellers(
            limit=normalized.limit,
            offset=normalized.offset,
            vendor_id=normalized.vendor_id,
            category_id=normalized.category_id,
        )

        return FlaggedListResponse(
            items=[FlaggedProduct.model_validate(p) for p in products],
            pagination=Pagination(
                total=total,
                limit=normalized.limit,
                offset=normalized.offset,
                has_more=normalized.offset + normalized.limit < total,
            ),
        )

    async def flagged_stats(self) -> FlaggedStats:
        return FlaggedStats(**await self.catalog.flagged_best_seller_stats())

    async def performance_report(
        self,
        period: Optional[str] = None,
        vendor_id: Optional[int] = None,
        top_products: int = 10,
        top_vendors: int = 10,
        top_categories: int = 5,
        timeout: Optional[float] = None,
    ) -> PerformanceReport:
        """
        Admin performance report for one window.

        Aggregates the full ranked list, never a cached page, so vendor and
        category totals cover every ranked product.

        Raises:
            InvalidArgument: If the period is unknown
            DataSourceError: If the order ledger or catalog cannot be read
            OperationTimeout: If the deadline elapses
        """
        normalized = self.normalize(period=period, vendor_id=vendor_id)
        timeout = self.query_timeout if timeout is None else timeout

        async def build() -> PerformanceReport:
            time_range = self.aggregator.resolve(normalized.window, self._clock())
            metrics = await self.aggregator.aggregate_range(time_range, normalized.filters)
            ranked = self.engine.rank(metrics, min_sales=normalized.min_sales)
            memberships = await self.catalog.category_memberships(
                [entry.product_id for entry in ranked]
            )

            return PerformanceReport(
                stats=build_stats(ranked, normalized.window, time_range),
                top_products=ranked[:top_products],
                top_vendors=vendor_breakdown(ranked, top=top_vendors),
                categories=category_breakdown(ranked, memberships, top=top_categories),
                best_sellers=await self.flagged_stats(),
            )

        try:
            report = await asyncio.wait_for(build(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Performance report timed out", period=normalized.window.value, timeout=timeout)
            raise OperationTimeout(f"Performance report exceeded {timeout}s") from None

        logger.info(
            "Performance report built",
            period=normalized.window.value,
            vendor_id=normalized.vendor_id,
            products=report.stats.total_products,
        )
        return report

    async def dashboard(self) -> DashboardOverview:
        """Day, week and month totals alongside the flagged counts"""
        now = self._clock()
        periods = {}

        for window in DASHBOARD_WINDOWS:
            time_range = self.aggregator.resolve(window, now)
            metrics = await self.aggregator.aggregate_range(time_range, SalesFilters())
            ranked = self.engine.rank(metrics, min_sales=self.default_min_sales)
            periods[window.value] = build_stats(ranked, window, time_range)

        return DashboardOverview(periods=periods, best_sellers=await self.flagged_stats())
