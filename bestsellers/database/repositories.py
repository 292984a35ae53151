"""
Catalog Repository

Catalog-side operations used by the ranking engine: product lookups, catalog
counts, category memberships for reports, the flagged listing and the two
ranking-state columns. No other product column is ever written from here.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bestsellers.database.models import Category, Product, product_categories
from bestsellers.ranking.exceptions import DataSourceError
from bestsellers.ranking.filters import in_category, listed_products, sold_by_vendor

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def data_source_session(
    session_factory: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """
    Open a session, translating driver and connection errors.

    Raises:
        DataSourceError: On any SQLAlchemy or OS level failure
    """
    try:
        async with session_factory() as session:
            yield session
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "Data source operation failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise DataSourceError(f"{operation} failed: {e}") from e


class CatalogRepository:
    """Catalog access over an async session factory"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_product(self, product_id: int) -> Optional[Product]:
        async with data_source_session(self.session_factory, "get_product") as session:
            result = await session.execute(select(Product).where(Product.id == product_id))
            return result.scalar_one_or_none()

    async def list_all_product_ids(self) -> List[int]:
        """Every product id, listed or not"""
        async with data_source_session(self.session_factory, "list_all_product_ids") as session:
            result = await session.execute(select(Product.id).order_by(Product.id))
            return list(result.scalars().all())

    async def count_listed_products(self) -> int:
        """Size of the published catalog, used by the best-seller threshold"""
        async with data_source_session(self.session_factory, "count_listed_products") as session:
            result = await session.execute(
                select(func.count(Product.id)).where(listed_products())
            )
            return result.scalar() or 0

    async def reset_ranking_state(self) -> int:
        """
        Clear ranking state on every product in a single committed statement.

        Returns:
            Number of rows touched
        """
        async with data_source_session(self.session_factory, "reset_ranking_state") as session:
            result = await session.execute(
                update(Product)
                .values(best_seller_rank=None, is_best_seller=False)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0

    async def update_ranking_state(
        self,
        product_id: int,
        rank: Optional[int],
        is_best_seller: bool,
    ) -> bool:
        """
        Write the ranking state of one product in its own transaction.

        Returns:
            False when no product has this id
        """
        async with data_source_session(self.session_factory, "update_ranking_state") as session:
            result = await session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(best_seller_rank=rank, is_best_seller=is_best_seller)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return bool(result.rowcount)

    async def list_flagged_best_sellers(
        self,
        limit: int,
        offset: int,
        vendor_id: Optional[int] = None,
        category_id: Optional[int] = None,
    ) -> Tuple[List[Product], int]:
        """
        Listed products flagged by the last recompute, by persisted rank.

        Returns:
            (page of products, total matching)
        """
        conditions = [Product.is_best_seller.is_(True), listed_products()]
        if vendor_id is not None:
            conditions.append(sold_by_vendor(vendor_id))
        if category_id is not None:
            conditions.append(in_category(category_id))

        async with data_source_session(self.session_factory, "list_flagged_best_sellers") as session:
            total = (
                await session.execute(select(func.count(Product.id)).where(and_(*conditions)))
            ).scalar() or 0

            result = await session.execute(
                select(Product)
                .where(and_(*conditions))
                .order_by(Product.best_seller_rank, Product.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all()), total

    async def flagged_best_seller_stats(self) -> dict:
        """Counts of flagged products and of the vendors/categories they span"""
        flagged = and_(Product.is_best_seller.is_(True), listed_products())

        async with data_source_session(self.session_factory, "flagged_best_seller_stats") as session:
            total = (
                await session.execute(select(func.count(Product.id)).where(flagged))
            ).scalar() or 0
            vendors = (
                await session.execute(
                    select(func.count(func.distinct(Product.vendor_id))).where(flagged)
                )
            ).scalar() or 0
            categories = (
                await session.execute(
                    select(func.count(func.distinct(product_categories.c.category_id)))
                    .select_from(product_categories)
                    .join(Product, Product.id == product_categories.c.product_id)
                    .where(flagged)
                )
            ).scalar() or 0

        return {
            "total_best_sellers": total,
            "vendors_count": vendors,
            "categories_count": categories,
        }

    async def category_memberships(
        self,
        product_ids: Sequence[int],
    ) -> Dict[int, List[Tuple[int, str]]]:
        """
        Categories of each given product.

        Returns:
            product id -> [(category id, category name)], products without
            categories omitted
        """
        if not product_ids:
            return {}

        async with data_source_session(self.session_factory, "category_memberships") as session:
            result = await session.execute(
                select(product_categories.c.product_id, Category.id, Category.name)
                .join(Category, Category.id == product_categories.c.category_id)
                .where(product_categories.c.product_id.in_(list(product_ids)))
                .order_by(product_categories.c.product_id, Category.id)
            )
            rows = result.all()

        memberships: Dict[int, List[Tuple[int, str]]] = {}
        for product_id, category_id, name in rows:
            memberships.setdefault(product_id, []).append((category_id, name))
        return memberships
