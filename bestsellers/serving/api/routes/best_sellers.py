"""
Best-Sellers API Endpoints

Ranked best-seller queries over a time window, plus the listing of products
flagged by the daily recompute.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from bestsellers.ranking.schemas import BestSellersResponse, FlaggedListResponse, FlaggedStats
from bestsellers.ranking.service import BestSellersService
from bestsellers.serving.api.deps import get_service

router = APIRouter()

PERIOD_DESCRIPTION = "Time window: day, week, month, year or all"


@router.get("", response_model=BestSellersResponse)
async def get_best_sellers(
    period: Optional[str] = Query(None, description=PERIOD_DESCRIPTION),
    limit: Optional[int] = Query(None, description="Page size, clamped to [1, 100]"),
    offset: Optional[int] = Query(None, description="Entries to skip"),
    page: Optional[int] = Query(None, description="Zero-based page, overrides offset"),
    vendor_id: Optional[int] = None,
    category_id: Optional[int] = None,
    min_sales: Optional[int] = Query(None, description="Minimum quantity sold"),
    service: BestSellersService = Depends(get_service),
) -> BestSellersResponse:
    """
    Ranked best sellers for a window.

    Repeated identical queries are served from the result cache for up to
    the cache TTL; the `cache` field reports whether this response was.
    """
    return await service.query(
        period=period,
        limit=limit,
        offset=offset,
        page=page,
        vendor_id=vendor_id,
        category_id=category_id,
        min_sales=min_sales,
    )


@router.get("/vendor/{vendor_id}", response_model=BestSellersResponse)
async def get_vendor_best_sellers(
    vendor_id: int = Path(..., gt=0),
    period: Optional[str] = Query(None, description=PERIOD_DESCRIPTION),
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    page: Optional[int] = None,
    category_id: Optional[int] = None,
    min_sales: Optional[int] = None,
    service: BestSellersService = Depends(get_service),
) -> BestSellersResponse:
    """Best sellers of a single vendor"""
    return await service.query(
        period=period,
        limit=limit,
        offset=offset,
        page=page,
        vendor_id=vendor_id,
        category_id=category_id,
        min_sales=min_sales,
    )


@router.get("/flagged", response_model=FlaggedListResponse)
async def get_flagged_best_sellers(
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    page: Optional[int] = None,
    vendor_id: Optional[int] = None,
    category_id: Optional[int] = None,
    service: BestSellersService = Depends(get_service),
) -> FlaggedListResponse:
    """
    Products flagged by the last recompute, ordered by their persisted rank.

    Reads catalog state only; no aggregation runs.
    """
    return await service.list_flagged(
        limit=limit,
        offset=offset,
        page=page,
        vendor_id=vendor_id,
        category_id=category_id,
    )


@router.get("/stats", response_model=FlaggedStats)
async def get_best_seller_stats(
    service: BestSellersService = Depends(get_service),
) -> FlaggedStats:
    return await service.flagged_stats()


@router.get("/category/{category_id}", response_model=BestSellersResponse)
async def get_category_best_sellers(
    category_id: int = Path(..., gt=0),
    period: Optional[str] = Query(None, description=PERIOD_DESCRIPTION),
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    page: Optional[int] = None,
    vendor_id: Optional[int] = None,
    min_sales: Optional[int] = None,
    service: BestSellersService = Depends(get_service),
) -> BestSellersResponse:
    """Best sellers within a single category"""
    return await service.query(
        period=period,
        limit=limit,
        offset=offset,
        page=page,
        vendor_id=vendor_id,
        category_id=category_id,
        min_sales=min_sales,
    )
