"""
Admin API Endpoints

Operational controls for the best-seller engine: manual recompute, performance
reports and result cache inspection. Authorization is enforced upstream of
this service.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from bestsellers.ranking.recompute import RecomputeService
from bestsellers.ranking.schemas import CacheEntryStats, DashboardOverview, PerformanceReport
from bestsellers.ranking.service import BestSellersService
from bestsellers.serving.api.deps import get_cache, get_recompute, get_service
from bestsellers.serving.cache import ResultCache

router = APIRouter()


class CacheStatsResponse(BaseModel):
    """Cache introspection with an operator hint"""
    size: int
    keys: List[str]
    entries: List[CacheEntryStats]
    soft_cap: int
    over_soft_cap: bool
    ttl_seconds: int
    recommendation: str


class CacheInvalidationResponse(BaseModel):
    key: Optional[str]
    removed: int


class CacheSweepResponse(BaseModel):
    evicted: int


@router.post("/recompute")
async def recompute_best_sellers(
    request: Request,
    timeout: Optional[float] = Query(None, gt=0, description="Deadline in seconds"),
    recompute: RecomputeService = Depends(get_recompute),
) -> Dict[str, Any]:
    """
    Run a full best-seller recompute now and wait for it.

    Returns 409 if a run is already in progress. Partial failures are
    reported in the body with status "partial".
    """
    if timeout is None:
        timeout = request.app.state.components.settings.ranking.recompute_timeout_seconds

    result = await recompute.run(timeout=timeout)
    return result.summary()


@router.get("/cache", response_model=CacheStatsResponse)
async def get_cache_stats(cache: ResultCache = Depends(get_cache)) -> CacheStatsResponse:
    stats = await cache.stats()
    if stats.over_soft_cap:
        recommendation = "Cache is above its soft cap; consider clearing it"
    else:
        recommendation = "Cache size is within limits"

    return CacheStatsResponse(**stats.model_dump(), recommendation=recommendation)


@router.delete("/cache", response_model=CacheInvalidationResponse)
async def clear_cache(
    key: Optional[str] = Query(None, description="Single key to drop; omit to clear everything"),
    cache: ResultCache = Depends(get_cache),
) -> CacheInvalidationResponse:
    removed = await cache.invalidate(key)
    return CacheInvalidationResponse(key=key, removed=removed)


@router.post("/cache/sweep", response_model=CacheSweepResponse)
async def sweep_cache(cache: ResultCache = Depends(get_cache)) -> CacheSweepResponse:
    """Evict expired entries"""
    return CacheSweepResponse(evicted=await cache.sweep())


@router.get("/reports/performance", response_model=PerformanceReport)
async def get_performance_report(
    period: Optional[str] = Query(None, description="Time window: day, week, month, year or all"),
    vendor_id: Optional[int] = None,
    top_vendors: int = Query(10, ge=1, le=100),
    top_categories: int = Query(5, ge=1, le=100),
    service: BestSellersService = Depends(get_service),
) -> PerformanceReport:
    """
    Totals, top products, top vendors by revenue and a category breakdown
    for one window.
    """
    return await service.performance_report(
        period=period,
        vendor_id=vendor_id,
        top_vendors=top_vendors,
        top_categories=top_categories,
    )


@router.get("/dashboard", response_model=DashboardOverview)
async def get_dashboard(service: BestSellersService = Depends(get_service)) -> DashboardOverview:
    return await service.dashboard()
