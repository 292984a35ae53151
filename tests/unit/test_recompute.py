"""
Unit Tests - Best-Seller Recompute
"""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from bestsellers.database.models import Product, ProductStatus
from bestsellers.database.repositories import CatalogRepository
from bestsellers.ranking.exceptions import (
    DataSourceError,
    OperationTimeout,
    PartialRecomputeFailure,
    RecomputeInProgress,
)
from bestsellers.ranking.recompute import RecomputeService

QUANTITIES = {1: 20, 2: 18, 3: 16, 4: 14, 5: 12, 6: 12, 7: 3, 8: 1}


@pytest.fixture
def catalog(session_factory) -> CatalogRepository:
    return CatalogRepository(session_factory)


@pytest.fixture
def recompute(aggregator, catalog, ranking_engine) -> RecomputeService:
    return RecomputeService(aggregator, catalog, ranking_engine, write_concurrency=3)


@pytest.fixture
async def seeded(ledger):
    """12 listed products, 8 with sales, 1 unlisted product carrying stale state"""
    for pid in range(1, 13):
        await ledger.add_product(pid)
    for pid, quantity in QUANTITIES.items():
        await ledger.add_sale(pid, quantity=quantity, unit_price=5.0)

    # stale state from a previous run
    await ledger.add_product(20, best_seller_rank=1, is_best_seller=True)
    await ledger.add_product(21, status=ProductStatus.ARCHIVED, best_seller_rank=2, is_best_seller=True)
    await ledger.add_sale(21, quantity=500)
    return ledger


class FlakyCatalog(CatalogRepository):
    """Fails the ranking write for selected products"""

    def __init__(self, session_factory, failing_ids):
        super().__init__(session_factory)
        self.failing_ids = set(failing_ids)

    async def update_ranking_state(self, product_id, rank, is_best_seller):
        if product_id in self.failing_ids:
            raise DataSourceError(f"write failed for {product_id}")
        return await super().update_ranking_state(product_id, rank, is_best_seller)


class SlowCatalog(CatalogRepository):
    """Each ranking write takes `delay` seconds"""

    def __init__(self, session_factory, delay):
        super().__init__(session_factory)
        self.delay = delay

    async def update_ranking_state(self, product_id, rank, is_best_seller):
        await asyncio.sleep(self.delay)
        return await super().update_ranking_state(product_id, rank, is_best_seller)


class TestRecomputeRun:
    """Tests for RecomputeService.run"""

    async def test_flags_products_at_or_above_threshold(self, seeded, recompute):
        result = await recompute.run()

        assert result.status == "completed"
        assert result.catalog_size == 13
        assert result.ranked_count == 8
        assert result.best_seller_threshold == 12
        assert result.products_updated == 6

        state = await seeded.ranking_state()
        assert [state[pid] for pid in range(1, 7)] == [(rank, True) for rank in range(1, 7)]

    async def test_reset_clears_every_other_product(self, seeded, recompute):
        await recompute.run()

        state = await seeded.ranking_state()
        for pid in (7, 8, 9, 10, 11, 12, 20, 21):
            assert state[pid] == (None, False)

    async def test_second_run_is_idempotent(self, seeded, recompute):
        await recompute.run()
        first = await seeded.ranking_state()

        await recompute.run()

        assert await seeded.ranking_state() == first

    async def test_only_ranking_columns_written(self, seeded, recompute, session_factory):
        await recompute.run()

        async with session_factory() as session:
            updated = (await session.execute(select(Product.updated_at))).scalars().all()

        assert set(updated) == {datetime(2021, 1, 1)}

    async def test_empty_ledger_resets_everything(self, ledger, recompute):
        await ledger.add_product(1, best_seller_rank=3, is_best_seller=True)

        result = await recompute.run()

        assert result.products_updated == 0
        assert result.best_seller_threshold is None
        assert await ledger.ranking_state() == {1: (None, False)}

    async def test_summary_reports_status(self, seeded, recompute):
        summary = (await recompute.run()).summary()

        assert summary["status"] == "completed"
        assert summary["failed"] == 0
        assert summary["products_updated"] == 6


class TestRecomputeFailures:
    """Tests for abort and continue-on-error behaviour"""

    async def test_aggregation_failure_aborts_before_reset(self, seeded, catalog, ranking_engine):
        aggregator = MagicMock()
        aggregator.aggregate = AsyncMock(side_effect=DataSourceError("ledger down"))
        recompute = RecomputeService(aggregator, catalog, ranking_engine)

        with pytest.raises(DataSourceError):
            await recompute.run()

        state = await seeded.ranking_state()
        assert state[20] == (1, True)
        assert state[21] == (2, True)

    async def test_failed_write_is_reported_and_skipped(
        self, seeded, session_factory, aggregator, ranking_engine
    ):
        catalog = FlakyCatalog(session_factory, failing_ids={2})
        recompute = RecomputeService(aggregator, catalog, ranking_engine, write_concurrency=2)

        result = await recompute.run()

        assert result.status == "partial"
        assert result.products_updated == 5
        assert [f.product_id for f in result.failures] == [2]
        assert "write failed" in result.failures[0].error

        state = await seeded.ranking_state()
        assert state[2] == (None, False)
        assert state[3] == (3, True)

        with pytest.raises(PartialRecomputeFailure) as exc_info:
            result.raise_for_failures()
        assert exc_info.value.result is result

    async def test_update_of_missing_product_returns_false(self, catalog):
        assert await catalog.update_ranking_state(999, 1, True) is False


class TestRecomputeConcurrency:
    """Tests for the non-reentrant guard and deadlines"""

    async def test_concurrent_run_rejected(self, seeded, catalog, ranking_engine, aggregator):
        release = asyncio.Event()
        original = aggregator.aggregate

        async def blocked_aggregate(*args, **kwargs):
            await release.wait()
            return await original(*args, **kwargs)

        aggregator.aggregate = blocked_aggregate
        recompute = RecomputeService(aggregator, catalog, ranking_engine)

        first = asyncio.create_task(recompute.run())
        await asyncio.sleep(0)
        assert recompute.is_running

        with pytest.raises(RecomputeInProgress):
            await recompute.run()

        release.set()
        result = await first
        assert result.products_updated == 6
        assert not recompute.is_running

    async def test_timeout_before_reset_keeps_state(self, seeded, catalog, ranking_engine, aggregator):
        async def slow_aggregate(*args, **kwargs):
            await asyncio.sleep(1)
            return []

        aggregator.aggregate = slow_aggregate
        recompute = RecomputeService(aggregator, catalog, ranking_engine)

        with pytest.raises(OperationTimeout):
            await recompute.run(timeout=0.05)

        state = await seeded.ranking_state()
        assert state[20] == (1, True)
        assert not recompute.is_running

    async def test_timeout_during_apply_stops_after_batch(
        self, seeded, session_factory, aggregator, ranking_engine
    ):
        catalog = SlowCatalog(session_factory, delay=0.2)
        recompute = RecomputeService(aggregator, catalog, ranking_engine, write_concurrency=1)

        result = await recompute.run(timeout=0.3)

        assert result.timed_out is True
        assert result.status == "partial"
        assert 0 < result.products_updated < 6
        assert result.products_updated + result.skipped == 6

        # the reset ran for the whole catalog
        state = await seeded.ranking_state()
        assert state[20] == (None, False)
