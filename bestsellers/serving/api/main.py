"""
FastAPI Application Factory

Creates and configures the API application: middleware, error handlers and
routers. Lifecycle (database, cache, scheduler) lives in bestsellers.main.
"""

from typing import Callable, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from bestsellers.config.settings import Settings
from bestsellers.serving.api.errors import register_exception_handlers
from bestsellers.serving.api.middleware import RequestLoggingMiddleware
from bestsellers.serving.api.routes import admin_router, best_sellers_router, health_router

API_PREFIX = "/api/v1"


def create_api_app(settings: Settings, lifespan: Optional[Callable] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings
        lifespan: Optional lifespan context manager factory

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="Best-Sellers Ranking API",
        description="Ranked best-seller lists with cached queries and daily recompute",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router, prefix=API_PREFIX, tags=["Health"])
    app.include_router(best_sellers_router, prefix=f"{API_PREFIX}/best-sellers", tags=["Best Sellers"])
    app.include_router(admin_router, prefix=f"{API_PREFIX}/admin/best-sellers", tags=["Admin"])

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Prometheus scrape endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
