# backend/modules/reviews/routers/hostaway_router.py

from fastapi import APIRouter, Depends, Query, Body
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from core.cache import ReviewCache
from core.deps import get_metrics_registry, get_review_cache
from core.metrics_registry import MetricsRegistry
from core.response_models import StandardResponse
from modules.reviews.schemas.review_schemas import CacheInvalidationRequest, ReviewQuery
from modules.reviews.services.channel_client import HostawayClient
from modules.reviews.services.feed_service import ReviewFeedService
from modules.reviews.services.review_service import ReviewService
from .dependencies import (
    get_channel_client,
    get_feed_service,
    get_review_service,
    pagination_meta,
    review_query,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews/hostaway", tags=["Hostaway Reviews"])


@router.get("")
async def list_hostaway_reviews(
    query: ReviewQuery = Depends(review_query),
    feed: ReviewFeedService = Depends(get_feed_service),
):
    """
    Normalized reviews from the Hostaway feed.

    Served from the cache when possible. `meta.source` tells whether the
    data came from the live API or the mock dataset, and `meta.cache_status`
    whether it was a cache HIT, MISS or BYPASS.
    """
    feed_result = await feed.list_reviews(query)
    page = feed_result.result
    return StandardResponse.success(
        data={
            "reviews": page.reviews,
            "skipped": feed_result.skipped,
            "issues": feed_result.issues,
        },
        meta={"source": feed_result.source, "cache_status": feed_result.cache_status},
        pagination=pagination_meta(page),
    )


@router.post("/import")
async def import_hostaway_reviews(
    listing_id: Optional[str] = Query(None, alias="listingId"),
    feed: ReviewFeedService = Depends(get_feed_service),
    service: ReviewService = Depends(get_review_service),
):
    """Normalize the current feed into the review store"""
    fetched, batch = await feed.fetch_normalized(listing_id)
    summary = service.import_reviews(batch.reviews, fetched.source.value)
    summary.skipped += batch.skipped
    summary.issues = batch.issues + summary.issues
    return StandardResponse.success(
        data=summary,
        meta={"source": fetched.source.value},
        message=f"Imported {summary.created + summary.updated} reviews",
    )


@router.get("/health")
async def hostaway_health(
    client: HostawayClient = Depends(get_channel_client),
    cache: ReviewCache = Depends(get_review_cache),
):
    client_health = client.health()
    cache_health = cache.health_check()
    healthy = client_health["healthy"]
    body = StandardResponse.success(
        data={"healthy": healthy, "client": client_health, "cache": cache_health},
        message="healthy" if healthy else "unhealthy",
    )
    return JSONResponse(
        status_code=200 if healthy else 503, content=body.model_dump(mode="json")
    )


@router.get("/metrics")
async def get_metrics(registry: MetricsRegistry = Depends(get_metrics_registry)):
    return StandardResponse.success(data=registry.snapshot().to_dict())


@router.post("/metrics/reset")
async def reset_metrics(registry: MetricsRegistry = Depends(get_metrics_registry)):
    registry.reset()
    logger.info("Review metrics reset")
    return StandardResponse.success(
        data=registry.snapshot().to_dict(), message="Metrics reset"
    )


@router.post("/cache/invalidate")
async def invalidate_cache(
    request: CacheInvalidationRequest = Body(...),
    cache: ReviewCache = Depends(get_review_cache),
):
    """Drop cached feed pages by exact key, listing id or glob pattern"""
    removed = cache.invalidate(
        key=request.key, listing_id=request.listing_id, pattern=request.pattern
    )
    return StandardResponse.success(
        data={"invalidated": removed},
        message=f"Invalidated {removed} cache entries",
    )


@router.get("/cache/stats")
async def get_cache_stats(cache: ReviewCache = Depends(get_review_cache)):
    return StandardResponse.success(data=cache.info())
