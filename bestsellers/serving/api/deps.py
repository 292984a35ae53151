"""
API Dependencies

Route handlers reach the engine components through the application state
set up by the lifespan (or injected by tests).
"""

from fastapi import HTTPException, Request

from bestsellers.components import EngineComponents
from bestsellers.ranking.recompute import RecomputeService
from bestsellers.ranking.service import BestSellersService
from bestsellers.serving.cache import ResultCache


def get_components(request: Request) -> EngineComponents:
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return components


def get_service(request: Request) -> BestSellersService:
    return get_components(request).service


def get_recompute(request: Request) -> RecomputeService:
    return get_components(request).recompute


def get_cache(request: Request) -> ResultCache:
    return get_components(request).cache
