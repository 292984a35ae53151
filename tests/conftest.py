"""
Test Suite Configuration
"""
from datetime import datetime, timedelta
from decimal import Decimal
from itertools import count
from typing import AsyncGenerator, Dict, Iterable, Optional, Tuple

import pytest
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bestsellers.config.settings import CacheSettings, RankingSettings, Settings
from bestsellers.database.connection import build_session_factory
from bestsellers.database.models import (
    Base,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductStatus,
    product_categories,
)
from bestsellers.ranking.aggregator import SalesAggregator
from bestsellers.ranking.engine import RankingEngine
from bestsellers.ranking.schemas import AggregatedProductMetric
from bestsellers.serving.cache import InMemoryResultCache

# Fixed anchor for window tests
NOW = datetime(2024, 6, 15, 12, 0, 0)


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_metric(
    product_id: int,
    quantity: int,
    revenue: float,
    buyers: int = 1,
) -> AggregatedProductMetric:
    """Aggregated metric with just the ranking keys set"""
    return AggregatedProductMetric(
        product_id=product_id,
        total_quantity_sold=quantity,
        total_revenue=revenue,
        average_unit_price=round(revenue / quantity, 2) if quantity else None,
        unique_buyer_count=buyers,
    )


class Ledger:
    """Writes catalog and order rows straight into the test database"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._order_ids = count(1)

    async def add_category(self, category_id: int, name: Optional[str] = None) -> None:
        async with self.session_factory() as session:
            session.add(Category(id=category_id, name=name or f"Category {category_id}"))
            await session.commit()

    async def add_product(
        self,
        product_id: int,
        vendor_id: int = 1,
        price: float = 10.0,
        status: ProductStatus = ProductStatus.PUBLISHED,
        is_deleted: bool = False,
        category_ids: Iterable[int] = (),
        best_seller_rank: Optional[int] = None,
        is_best_seller: bool = False,
    ) -> None:
        async with self.session_factory() as session:
            session.add(
                Product(
                    id=product_id,
                    sku=f"SKU-{product_id:05d}",
                    name=f"Product {product_id}",
                    vendor_id=vendor_id,
                    price=Decimal(str(price)),
                    status=status,
                    is_deleted=is_deleted,
                    best_seller_rank=best_seller_rank,
                    is_best_seller=is_best_seller,
                    updated_at=datetime(2021, 1, 1),
                )
            )
            await session.flush()
            for category_id in category_ids:
                await session.execute(
                    insert(product_categories).values(product_id=product_id, category_id=category_id)
                )
            await session.commit()

    async def add_sale(
        self,
        product_id: int,
        quantity: int,
        unit_price: float = 10.0,
        buyer_id: int = 1,
        created_at: Optional[datetime] = None,
        status: OrderStatus = OrderStatus.DELIVERED,
    ) -> None:
        order_id = next(self._order_ids)
        async with self.session_factory() as session:
            session.add(
                Order(
                    id=order_id,
                    order_number=f"ORD-{order_id:06d}",
                    buyer_id=buyer_id,
                    status=status,
                    created_at=created_at or NOW - timedelta(hours=1),
                )
            )
            await session.flush()
            session.add(
                OrderItem(
                    order_id=order_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=Decimal(str(unit_price)),
                )
            )
            await session.commit()

    async def ranking_state(self) -> Dict[int, Tuple[Optional[int], bool]]:
        """product id -> (best_seller_rank, is_best_seller)"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Product.id, Product.best_seller_rank, Product.is_best_seller).order_by(Product.id)
            )
            return {row.id: (row.best_seller_rank, row.is_best_seller) for row in result}


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
        cache=CacheSettings(backend="memory", sweep_interval_seconds=0),
        ranking=RankingSettings(recompute_enabled=False),
    )


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test SQLite database file"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bestsellers.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest.fixture
def broken_session_factory(tmp_path) -> async_sessionmaker[AsyncSession]:
    """Session factory whose database cannot be opened"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
    return build_session_factory(engine)


@pytest.fixture
def ledger(session_factory) -> Ledger:
    return Ledger(session_factory)


@pytest.fixture
def aggregator(session_factory) -> SalesAggregator:
    return SalesAggregator(session_factory, all_time_epoch=datetime(2020, 1, 1))


@pytest.fixture
def ranking_engine() -> RankingEngine:
    return RankingEngine()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock) -> InMemoryResultCache:
    return InMemoryResultCache(ttl_seconds=600, soft_cap=80, clock=clock)
