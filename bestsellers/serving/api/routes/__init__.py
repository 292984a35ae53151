"""
API Routes Module
"""
from .admin import router as admin_router
from .best_sellers import router as best_sellers_router
from .health import router as health_router

__all__ = [
    "admin_router",
    "best_sellers_router",
    "health_router",
]
