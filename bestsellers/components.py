"""
Engine Components

Wires the aggregator, ranking engine, cache, recompute and query service
together from settings. The API lifespan, the Prefect flow and the CLI
scripts all build their components here.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bestsellers.config.settings import Settings
from bestsellers.database.repositories import CatalogRepository
from bestsellers.ranking.aggregator import SalesAggregator
from bestsellers.ranking.engine import RankingEngine
from bestsellers.ranking.recompute import RecomputeService
from bestsellers.ranking.scheduler import RecomputeScheduler
from bestsellers.ranking.service import BestSellersService
from bestsellers.serving.cache import ResultCache, build_result_cache

logger = structlog.get_logger(__name__)


@dataclass
class EngineComponents:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    catalog: CatalogRepository
    aggregator: SalesAggregator
    engine: RankingEngine
    cache: ResultCache
    service: BestSellersService
    recompute: RecomputeService
    scheduler: RecomputeScheduler


def build_components(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    cache: Optional[ResultCache] = None,
) -> EngineComponents:
    """
    Build every engine component over one session factory.

    Args:
        settings: Application settings
        session_factory: Async session factory for the ledger and catalog
        cache: Cache instance to use instead of the configured backend
    """
    ranking = settings.ranking

    catalog = CatalogRepository(session_factory)
    aggregator = SalesAggregator(session_factory, all_time_epoch=ranking.all_time_epoch)
    engine = RankingEngine(
        best_seller_ratio=ranking.best_seller_ratio,
        best_seller_min_count=ranking.best_seller_min_count,
        best_seller_cap=ranking.best_seller_cap,
    )
    if cache is None:
        cache = build_result_cache(settings.cache, settings.redis)

    service = BestSellersService(
        aggregator=aggregator,
        engine=engine,
        cache=cache,
        catalog=catalog,
        default_page_size=ranking.default_page_size,
        max_page_size=ranking.max_page_size,
        default_min_sales=ranking.default_min_sales,
        query_timeout=ranking.query_timeout_seconds,
    )
    recompute = RecomputeService(
        aggregator=aggregator,
        catalog=catalog,
        engine=engine,
        write_concurrency=ranking.write_concurrency,
    )
    scheduler = RecomputeScheduler(
        recompute,
        hour_utc=ranking.recompute_hour_utc,
        timeout=ranking.recompute_timeout_seconds,
    )

    logger.debug(
        "Engine components built",
        cache_backend=type(cache).__name__,
        write_concurrency=ranking.write_concurrency,
    )

    return EngineComponents(
        settings=settings,
        session_factory=session_factory,
        catalog=catalog,
        aggregator=aggregator,
        engine=engine,
        cache=cache,
        service=service,
        recompute=recompute,
        scheduler=scheduler,
    )
