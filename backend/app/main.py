import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from app.startup import run_startup_checks
from core.cache import ReviewCache
from core.config import Settings, get_settings
from core.database import Base, engine as default_engine
from core.exceptions import register_exception_handlers
from core.metrics_registry import MetricsRegistry
from core.response_models import StandardResponse

# ========== Reviews ==========
from modules.reviews import __version__
from modules.reviews.models import review_models  # noqa: F401  registers tables
from modules.reviews.routers.google_router import router as google_router
from modules.reviews.routers.hostaway_router import router as hostaway_router
from modules.reviews.routers.listings_router import router as listings_router
from modules.reviews.routers.reviews_router import router as reviews_router
from modules.reviews.services.channel_client import HostawayClient
from modules.reviews.services.feed_service import ReviewFeedService
from modules.reviews.services.google_client import GoogleReviewsClient

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    run_checks: bool = True,
) -> FastAPI:
    """
    Build the review service application.

    Shared state (metrics registry, cache, channel client and feed service)
    is created on startup and stored on ``app.state``; routes reach it
    through dependencies.
    """
    app_settings = app_settings or get_settings()
    engine = engine or default_engine

    logging.basicConfig(
        level=app_settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Guest Reviews API",
        description="""
    Ingests guest reviews from Hostaway, normalizes them into one canonical
    shape and serves them with filtering, sorting and pagination.

    - `/api/reviews/hostaway`: cached view over the live feed (mock fallback)
    - `/api/reviews/google`: Google Places and Business Profile imports
    - `/api/reviews`: persisted reviews with the manager approval workflow
    - `/api/listings`: listings with review statistics
    """,
        version=__version__,
    )

    # Register exception handlers for consistent error responses
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Provider routes first so "/api/reviews/hostaway" never reaches "/{review_id}"
    app.include_router(hostaway_router)
    app.include_router(google_router)
    app.include_router(reviews_router)
    app.include_router(listings_router)

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on application startup"""
        Base.metadata.create_all(bind=engine)
        if run_checks:
            run_startup_checks(app_settings, engine)

        metrics = MetricsRegistry()
        cache = ReviewCache.from_settings(app_settings, metrics)
        await cache.start()
        client = HostawayClient(app_settings, metrics, transport=transport)

        app.state.metrics_registry = metrics
        app.state.review_cache = cache
        app.state.channel_client = client
        app.state.feed_service = ReviewFeedService(client, cache)
        app.state.google_client = GoogleReviewsClient(app_settings, transport=transport)
        logger.info("Review services started")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on application shutdown"""
        await app.state.review_cache.stop()
        await app.state.channel_client.close()
        await app.state.google_client.close()
        logger.info("Review services stopped")

    @app.get("/")
    def read_root():
        return {"message": "Guest reviews service is running"}

    @app.get("/health")
    async def health(request: Request):
        client_health = request.app.state.channel_client.health()
        cache_health = request.app.state.review_cache.health_check()
        healthy = client_health["healthy"]
        body = StandardResponse.success(
            data={
                "status": "healthy" if healthy else "unhealthy",
                "client": client_health,
                "cache": cache_health,
            }
        )
        return JSONResponse(
            status_code=200 if healthy else 503, content=body.model_dump(mode="json")
        )

    return app


app = create_app()
