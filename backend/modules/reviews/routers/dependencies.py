# backend/modules/reviews/routers/dependencies.py

from datetime import datetime
from typing import Optional

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session

from core.deps import get_db, get_review_cache
from core.cache import ReviewCache
from core.response_models import PaginationMeta
from modules.reviews.models.review_models import ApprovalStatus, ReviewChannel, ReviewType
from modules.reviews.schemas.review_schemas import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PageResult,
    ReviewFilters,
    ReviewQuery,
    SortField,
    SortOrder,
    parse_model,
)
from modules.reviews.services.approval_service import ApprovalService
from modules.reviews.services.channel_client import HostawayClient
from modules.reviews.services.feed_service import ReviewFeedService
from modules.reviews.services.google_client import GoogleReviewsClient
from modules.reviews.services.listing_service import ListingService
from modules.reviews.services.review_service import ReviewService


def get_channel_client(request: Request) -> HostawayClient:
    return request.app.state.channel_client


def get_feed_service(request: Request) -> ReviewFeedService:
    return request.app.state.feed_service


def get_google_client(request: Request) -> GoogleReviewsClient:
    return request.app.state.google_client


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService(db)


def get_listing_service(db: Session = Depends(get_db)) -> ListingService:
    return ListingService(db)


def get_approval_service(
    db: Session = Depends(get_db),
    cache: ReviewCache = Depends(get_review_cache),
) -> ApprovalService:
    return ApprovalService(db, cache=cache)


def review_filters(
    listing_id: Optional[str] = Query(None, alias="listingId", description="Upstream listing id"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    channel: Optional[ReviewChannel] = Query(None),
    approval_status: Optional[ApprovalStatus] = Query(None, alias="status"),
    review_type: Optional[ReviewType] = Query(None, alias="reviewType"),
    guest_name: Optional[str] = Query(None, alias="guestName"),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=10),
    max_rating: Optional[float] = Query(None, alias="maxRating", ge=0, le=10),
    has_response: Optional[bool] = Query(None, alias="hasResponse"),
    search: Optional[str] = Query(None, description="Search guest name and comment"),
) -> ReviewFilters:
    return parse_model(
        ReviewFilters,
        {
            "listing_id": listing_id,
            "date_from": date_from,
            "date_to": date_to,
            "channel": channel,
            "approval_status": approval_status,
            "review_type": review_type,
            "guest_name": guest_name,
            "min_rating": min_rating,
            "max_rating": max_rating,
            "has_response": has_response,
            "search": search,
        },
    )


def review_query(
    filters: ReviewFilters = Depends(review_filters),
    sort_by: SortField = Query(SortField.SUBMITTED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Items per page"),
) -> ReviewQuery:
    return ReviewQuery(
        filters=filters,
        sort={"sort_by": sort_by, "sort_order": sort_order},
        page={"page": page, "limit": limit},
    )


def pagination_meta(result: PageResult) -> PaginationMeta:
    return PaginationMeta(
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
        has_next=result.has_next,
        has_prev=result.has_prev,
    )
