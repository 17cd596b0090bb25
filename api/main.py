"""
Main FastAPI application for the lead intelligence engine.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .routes import events, journeys, conversations
from .services import Services
from .middleware.metrics import MetricsMiddleware, metrics_endpoint
from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Lead intelligence engine starting up...")
        services = Services(settings)
        await services.initialize()
        app.state.services = services
        logger.info("Lead intelligence engine ready")
        yield
        logger.info("Lead intelligence engine shutting down...")
        await services.shutdown()

    app = FastAPI(
        title=settings.api_title,
        description="Lead journey tracking and conversational intelligence for automotive sales.",
        version=settings.api_version,
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Prometheus metrics middleware
    app.add_middleware(MetricsMiddleware)

    # --- Core routers ---
    app.include_router(events.router, prefix="/api/v1", tags=["Events"])
    app.include_router(journeys.router, prefix="/api/v1", tags=["Journeys"])
    app.include_router(conversations.router, prefix="/api/v1", tags=["Conversations"])

    # --- Prometheus metrics endpoint ---
    app.get("/metrics", tags=["Monitoring"])(metrics_endpoint)

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "service": "Lead Intelligence Engine",
            "version": settings.api_version,
            "status": "operational",
            "docs": "/docs",
        }

    # Health check
    @app.get("/health")
    async def health():
        services = app.state.services
        return {
            "status": "healthy" if services.is_ready else "degraded",
            "services": services.health(),
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
