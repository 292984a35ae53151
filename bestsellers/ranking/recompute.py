"""
Best-Seller Recompute

Full replace of the persisted ranking state:

1. aggregate every delivered sale since the epoch
2. rank the whole catalog
3. reset rank and flag on every product (single committed statement)
4. write rank and flag for each selected best seller

A failure before step 3 leaves the previous state untouched. Failed writes in
step 4 are reported in the result and do not stop the run.
"""

import asyncio
from typing import List, Optional, Tuple

import structlog

from bestsellers.database.repositories import CatalogRepository
from bestsellers.ranking.aggregator import SalesAggregator
from bestsellers.ranking.engine import RankingEngine
from bestsellers.ranking.exceptions import OperationTimeout, RecomputeInProgress
from bestsellers.ranking.schemas import RankedProductEntry, RecomputeFailure, RecomputeResult
from bestsellers.ranking.windows import Window, utcnow
from bestsellers.serving.metrics import FLAGGED_PRODUCTS, RECOMPUTE_RUNS

logger = structlog.get_logger(__name__)


class RecomputeService:
    """
    Runs the recompute; at most one run at a time per instance.

    Args:
        aggregator: Sales aggregator over the order ledger
        catalog: Catalog repository receiving the ranking state
        engine: Ranking engine holding the threshold policy
        write_concurrency: Product writes in flight per batch
    """

    def __init__(
        self,
        aggregator: SalesAggregator,
        catalog: CatalogRepository,
        engine: RankingEngine,
        write_concurrency: int = 10,
    ):
        self.aggregator = aggregator
        self.catalog = catalog
        self.engine = engine
        self.write_concurrency = max(1, write_concurrency)
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self, timeout: Optional[float] = None) -> RecomputeResult:
        """
        Recompute and persist best-seller state for the whole catalog.

        Args:
            timeout: Deadline in seconds for the whole run, None for no limit

        Returns:
            RecomputeResult, status "partial" when writes failed or the
            deadline cut step 4 short

        Raises:
            RecomputeInProgress: If another run is in flight
            OperationTimeout: If the deadline passed before the reset
            DataSourceError: If aggregation or the reset failed
        """
        if self._lock.locked():
            logger.warning("Recompute rejected, another run is in progress")
            raise RecomputeInProgress("A best-seller recompute is already running")

        async with self._lock:
            return await self._run(timeout)

    async def _rank_catalog(self) -> Tuple[List[RankedProductEntry], List[RankedProductEntry], int]:
        metrics = await self.aggregator.aggregate(Window.ALL)
        ranked = self.engine.rank(metrics, min_sales=1)
        catalog_size = await self.catalog.count_listed_products()
        selected = self.engine.select_best_sellers(ranked, catalog_size)
        return ranked, selected, catalog_size

    async def _run(self, timeout: Optional[float]) -> RecomputeResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        started_at = utcnow()

        logger.info("Best-seller recompute started", timeout=timeout)

        try:
            ranked, selected, catalog_size = await asyncio.wait_for(self._rank_catalog(), timeout)
        except asyncio.TimeoutError:
            RECOMPUTE_RUNS.labels(status="aborted").inc()
            logger.error("Recompute timed out before reset", timeout=timeout)
            raise OperationTimeout(
                f"Recompute did not finish ranking within {timeout}s; ranking state unchanged"
            ) from None

        result = RecomputeResult(
            started_at=started_at,
            catalog_size=catalog_size,
            ranked_count=len(ranked),
            best_seller_threshold=self.engine.best_seller_threshold(ranked, catalog_size),
        )

        reset = await self.catalog.reset_ranking_state()
        logger.info("Ranking state reset", products=reset)

        for start in range(0, len(selected), self.write_concurrency):
            if deadline is not None and loop.time() >= deadline:
                result.timed_out = True
                result.skipped = len(selected) - start
                logger.warning(
                    "Recompute deadline reached, remaining writes skipped",
                    written=start,
                    skipped=result.skipped,
                )
                break

            batch = selected[start:start + self.write_concurrency]
            await self._apply_batch(batch, result)

        result.finished_at = utcnow()
        RECOMPUTE_RUNS.labels(status=result.status).inc()
        FLAGGED_PRODUCTS.set(result.products_updated)

        log = logger.warning if result.status == "partial" else logger.info
        log(
            "Best-seller recompute finished",
            status=result.status,
            products_updated=result.products_updated,
            failed=len(result.failures),
            skipped=result.skipped,
            threshold=result.best_seller_threshold,
            catalog_size=catalog_size,
            duration_seconds=round((result.finished_at - started_at).total_seconds(), 3),
        )
        return result

    async def _apply_batch(self, batch: List[RankedProductEntry], result: RecomputeResult) -> None:
        outcomes = await asyncio.gather(
            *(
                self.catalog.update_ranking_state(entry.product_id, entry.rank, True)
                for entry in batch
            ),
            return_exceptions=True,
        )

        for entry, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                error = str(outcome)
            elif outcome is True:
                result.products_updated += 1
                continue
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                error = "product not found"

            logger.error(
                "Failed to persist best-seller state",
                product_id=entry.product_id,
                rank=entry.rank,
                error=error,
            )
            result.failures.append(RecomputeFailure(product_id=entry.product_id, error=error))
