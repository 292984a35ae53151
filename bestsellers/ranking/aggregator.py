"""
Sales Aggregator

Computes per-product sales totals for a window and optional vendor/category
filters. Grouping happens in the database: sale volume is orders of magnitude
larger than product count, so rows are never summed in process.
"""

import time
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bestsellers.database.models import Order, OrderItem, Product
from bestsellers.database.repositories import data_source_session
from bestsellers.ranking.filters import build_sales_predicates
from bestsellers.ranking.schemas import AggregatedProductMetric, SalesFilters
from bestsellers.ranking.windows import TimeRange, Window, resolve_window

logger = structlog.get_logger(__name__)


def build_aggregation_query(
    start: datetime,
    end: datetime,
    filters: SalesFilters,
) -> Select:
    """
    Grouped sales query for one window and filter set.

    Rows come back ordered by product id so that identical calls return
    identical sequences.
    """
    line_revenue = OrderItem.quantity * OrderItem.unit_price

    return (
        select(
            Product.id.label("product_id"),
            Product.name.label("name"),
            Product.vendor_id.label("vendor_id"),
            Product.price.label("price"),
            func.sum(OrderItem.quantity).label("total_quantity_sold"),
            func.sum(line_revenue).label("total_revenue"),
            func.count(func.distinct(Order.buyer_id)).label("unique_buyer_count"),
            func.count(func.distinct(Order.id)).label("order_count"),
            func.min(Order.created_at).label("first_sale_at"),
            func.max(Order.created_at).label("last_sale_at"),
        )
        .select_from(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(and_(*build_sales_predicates(start, end, filters)))
        .group_by(Product.id, Product.name, Product.vendor_id, Product.price)
        .order_by(Product.id)
    )


def _to_metric(row) -> AggregatedProductMetric:
    quantity = int(row.total_quantity_sold or 0)
    revenue = float(row.total_revenue or 0)

    return AggregatedProductMetric(
        product_id=row.product_id,
        name=row.name,
        vendor_id=row.vendor_id,
        price=float(row.price) if row.price is not None else None,
        total_quantity_sold=quantity,
        total_revenue=round(revenue, 2),
        average_unit_price=round(revenue / quantity, 2) if quantity else None,
        unique_buyer_count=int(row.unique_buyer_count or 0),
        order_count=int(row.order_count or 0),
        first_sale_at=row.first_sale_at,
        last_sale_at=row.last_sale_at,
    )


class SalesAggregator:
    """
    Read-only aggregation over the order ledger.

    Example:
        aggregator = SalesAggregator(session_factory)
        metrics = await aggregator.aggregate(Window.MONTH, SalesFilters(vendor_id=3))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        all_time_epoch: datetime = datetime(2020, 1, 1),
    ):
        self.session_factory = session_factory
        self.all_time_epoch = all_time_epoch

    def resolve(self, window: Window, now: Optional[datetime] = None) -> TimeRange:
        """Absolute bounds of a window anchored at now"""
        return resolve_window(window, self.all_time_epoch, now)

    async def aggregate(
        self,
        window: Window,
        filters: Optional[SalesFilters] = None,
        now: Optional[datetime] = None,
    ) -> List[AggregatedProductMetric]:
        """Aggregate a named window, see aggregate_delivered_sales"""
        return await self.aggregate_range(self.resolve(window, now), filters)

    async def aggregate_range(
        self,
        time_range: TimeRange,
        filters: Optional[SalesFilters] = None,
    ) -> List[AggregatedProductMetric]:
        return await self.aggregate_delivered_sales(time_range.start, time_range.end, filters)

    async def aggregate_delivered_sales(
        self,
        window_from: datetime,
        window_to: datetime,
        filters: Optional[SalesFilters] = None,
    ) -> List[AggregatedProductMetric]:
        """
        Aggregate delivered sales per product.

        Args:
            window_from: Window start (inclusive)
            window_to: Window end (inclusive)
            filters: Optional vendor/category narrowing

        Returns:
            One metric per product with at least one qualifying sale

        Raises:
            DataSourceError: If the ledger cannot be read
        """
        filters = filters or SalesFilters()
        query = build_aggregation_query(window_from, window_to, filters)

        started = time.perf_counter()
        async with data_source_session(self.session_factory, "aggregate_sales") as session:
            result = await session.execute(query)
            rows = result.all()

        metrics = [_to_metric(row) for row in rows]

        logger.info(
            "Sales aggregated",
            window_from=window_from.isoformat(),
            window_to=window_to.isoformat(),
            vendor_id=filters.vendor_id,
            category_id=filters.category_id,
            products=len(metrics),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return metrics
