"""
Sales Filter Predicates

A small, fixed set of composable, parameterized predicates over the order
ledger. The aggregator combines them with AND; values are always bound
parameters, never spliced into SQL text.
"""

from datetime import datetime
from typing import List

from sqlalchemy import and_, exists, select
from sqlalchemy.sql.elements import ColumnElement

from bestsellers.database.models import (
    Order,
    OrderStatus,
    Product,
    ProductStatus,
    product_categories,
)
from bestsellers.ranking.schemas import SalesFilters


def delivered_only() -> ColumnElement[bool]:
    """Only delivered orders count as sales"""
    return Order.status == OrderStatus.DELIVERED


def occurred_between(start: datetime, end: datetime) -> ColumnElement[bool]:
    """Sale timestamp within the closed interval [start, end]"""
    return and_(Order.created_at >= start, Order.created_at <= end)


def listed_products() -> ColumnElement[bool]:
    """Published, non-deleted catalog products"""
    return and_(Product.status == ProductStatus.PUBLISHED, Product.is_deleted.is_(False))


def sold_by_vendor(vendor_id: int) -> ColumnElement[bool]:
    return Product.vendor_id == vendor_id


def in_category(category_id: int) -> ColumnElement[bool]:
    return exists(
        select(product_categories.c.product_id).where(
            and_(
                product_categories.c.product_id == Product.id,
                product_categories.c.category_id == category_id,
            )
        )
    )


def build_sales_predicates(
    start: datetime,
    end: datetime,
    filters: SalesFilters,
) -> List[ColumnElement[bool]]:
    """
    Compose the predicates for one aggregation.

    Args:
        start: Window start (inclusive)
        end: Window end (inclusive)
        filters: Optional vendor/category narrowing

    Returns:
        Predicates to AND together
    """
    conditions = [
        delivered_only(),
        occurred_between(start, end),
        listed_products(),
    ]

    if filters.vendor_id is not None:
        conditions.append(sold_by_vendor(filters.vendor_id))
    if filters.category_id is not None:
        conditions.append(in_category(filters.category_id))

    return conditions
