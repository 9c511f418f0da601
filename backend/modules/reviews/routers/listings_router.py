# backend/modules/reviews/routers/listings_router.py

from fastapi import APIRouter, Depends, Path, Query
from typing import List, Optional
import logging

from core.response_models import StandardResponse
from modules.reviews.models.review_models import ReviewChannel
from modules.reviews.schemas.review_schemas import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ListingQuery,
    ListingSortField,
    ListingStatsFilters,
    SortOrder,
    parse_model,
)
from modules.reviews.services.listing_service import ListingService
from .dependencies import get_listing_service, pagination_meta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/listings", tags=["Listings"])


@router.get("")
async def list_listings(
    search: Optional[str] = Query(None, description="Match name, slug or Hostaway id"),
    name: Optional[str] = Query(None),
    slug: Optional[str] = Query(None),
    include_stats: bool = Query(False, alias="includeStats"),
    sort_by: ListingSortField = Query(ListingSortField.NAME, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.ASC, alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: ListingService = Depends(get_listing_service),
):
    """List listings with optional review statistics"""
    query = parse_model(
        ListingQuery,
        {
            "search": search,
            "name": name,
            "slug": slug,
            "include_stats": include_stats,
            "sort_by": sort_by,
            "sort_order": sort_order,
            "page": page,
            "limit": limit,
        },
    )
    result = service.list_listings(query)
    return StandardResponse.success(
        data={"listings": result.listings},
        meta={"source": "database"},
        pagination=pagination_meta(result),
    )


@router.get("/search")
async def search_listings(
    q: str = Query(..., max_length=255, description="Search term"),
    include_stats: bool = Query(False, alias="includeStats"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: ListingService = Depends(get_listing_service),
):
    result = service.search_listings(q, page=page, limit=limit, include_stats=include_stats)
    return StandardResponse.success(
        data={"listings": result.listings, "query": q.strip()},
        meta={"source": "database"},
        pagination=pagination_meta(result),
    )


@router.get("/with-stats")
async def list_listings_with_stats(
    min_reviews: int = Query(0, ge=0, alias="minReviews"),
    min_rating: Optional[float] = Query(None, ge=0, le=10, alias="minRating"),
    max_rating: Optional[float] = Query(None, ge=0, le=10, alias="maxRating"),
    channels: Optional[List[ReviewChannel]] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    service: ListingService = Depends(get_listing_service),
):
    """Listings filtered on review aggregates, best rated first"""
    filters = parse_model(
        ListingStatsFilters,
        {
            "min_reviews": min_reviews,
            "min_rating": min_rating,
            "max_rating": max_rating,
            "channels": channels or [],
        },
    )
    result = service.get_listings_with_stats(filters, page=page, limit=limit)
    return StandardResponse.success(
        data={"listings": result.listings},
        meta={"source": "database"},
        pagination=pagination_meta(result),
    )


@router.get("/slug/{slug}")
async def get_listing_by_slug(
    slug: str = Path(..., description="Listing slug"),
    include_stats: bool = Query(True, alias="includeStats"),
    service: ListingService = Depends(get_listing_service),
):
    return StandardResponse.success(data=service.get_listing_by_slug(slug, include_stats))


@router.get("/hostaway/{hostaway_id}")
async def get_listing_by_hostaway_id(
    hostaway_id: str = Path(..., description="Hostaway listing id"),
    include_stats: bool = Query(True, alias="includeStats"),
    service: ListingService = Depends(get_listing_service),
):
    return StandardResponse.success(
        data=service.get_listing_by_hostaway_id(hostaway_id, include_stats)
    )
