"""
FastAPI Production Application

Main entry point for the Best-Sellers Ranking API.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import structlog

from bestsellers.components import EngineComponents, build_components
from bestsellers.config import Settings, get_settings
from bestsellers.config.logging import configure_logging
from bestsellers.database.connection import close_database, get_session_factory, init_database
from bestsellers.serving.api.main import create_api_app
from bestsellers.serving.cache import sweep_periodically

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    components: Optional[EngineComponents] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use, defaults to get_settings()
        components: Prebuilt engine components; when given, the lifespan
            neither opens nor closes the database

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        logger.info("Starting Best-Sellers Ranking API", environment=settings.app_env)

        owns_database = app.state.components is None
        if owns_database:
            await init_database()
            app.state.components = build_components(settings, get_session_factory())

        engine_components: EngineComponents = app.state.components

        sweeper = None
        if settings.cache.sweep_interval_seconds > 0:
            sweeper = asyncio.create_task(
                sweep_periodically(engine_components.cache, settings.cache.sweep_interval_seconds),
                name="cache-sweep",
            )

        if settings.ranking.recompute_enabled:
            engine_components.scheduler.start()

        yield

        logger.info("Shutting down...")
        try:
            await engine_components.scheduler.stop()
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper
        finally:
            await engine_components.cache.close()
            if owns_database:
                await close_database()
                app.state.components = None

    app = create_api_app(settings, lifespan=lifespan)
    app.state.components = components

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
