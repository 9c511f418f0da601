# backend/modules/reviews/services/listing_service.py

"""
Listing read service.

Listings are created as a side effect of review imports; this service only
reads them back, optionally with aggregates over their stored reviews.
"""

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import and_, case, func, or_
from typing import List, Optional
from collections import Counter
import logging
import math

from core.exceptions import NotFoundError, ValidationError
from modules.reviews.models.review_models import Listing, Review, ReviewChannel
from modules.reviews.schemas.review_schemas import (
    ListingPage,
    ListingQuery,
    ListingResponse,
    ListingSortField,
    ListingStats,
    ListingStatsFilters,
    SortOrder,
)
from .normalizer import round_rating
from .review_service import rating_distribution

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


def compute_listing_stats(
    reviews: List[Review], channels: Optional[List[ReviewChannel]] = None
) -> ListingStats:
    """Aggregate one listing's reviews, optionally restricted to some channels"""
    if channels:
        reviews = [r for r in reviews if r.channel in channels]
    ratings = [r.rating for r in reviews if r.rating is not None]
    return ListingStats(
        total_reviews=len(reviews),
        approved_reviews=sum(1 for r in reviews if r.approved),
        average_rating=round_rating(math.fsum(ratings) / len(ratings)) if ratings else None,
        rating_distribution=rating_distribution(ratings),
        channel_distribution=dict(Counter(r.channel.value for r in reviews)),
        last_review_date=max((r.submitted_at for r in reviews), default=None),
    )


def listing_to_response(
    listing: Listing,
    include_stats: bool = False,
    channels: Optional[List[ReviewChannel]] = None,
) -> ListingResponse:
    response = ListingResponse.model_validate(listing)
    if include_stats:
        response.stats = compute_listing_stats(listing.reviews, channels)
    return response


class ListingService:
    """Read operations over stored listings"""

    def __init__(self, db: Session):
        self.db = db

    def list_listings(self, query: ListingQuery) -> ListingPage:
        """Filter, sort and paginate listings"""
        filtered = self._apply_filters(self.db.query(Listing), query)
        total = filtered.count()

        ordered = self._apply_sort(filtered, query.sort_by, query.sort_order)
        if query.include_stats:
            ordered = ordered.options(selectinload(Listing.reviews))
        rows = ordered.offset((query.page - 1) * query.limit).limit(query.limit).all()

        logger.info(
            f"Listed {len(rows)} of {total} listings "
            f"(sort={query.sort_by.value} {query.sort_order.value})"
        )
        return _page(
            [listing_to_response(row, query.include_stats) for row in rows],
            query.page,
            query.limit,
            total,
        )

    def search_listings(
        self, term: str, page: int = 1, limit: int = 20, include_stats: bool = False
    ) -> ListingPage:
        term = (term or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            raise ValidationError(f"Search term must be at least {MIN_SEARCH_LENGTH} characters")
        return self.list_listings(
            ListingQuery(search=term, page=page, limit=limit, include_stats=include_stats)
        )

    def get_listings_with_stats(
        self, filters: ListingStatsFilters, page: int = 1, limit: int = 20
    ) -> ListingPage:
        """
        Listings whose review aggregates pass ``filters``, best rated first.

        Only reviews on ``filters.channels`` (all channels when empty) count
        towards the aggregates.
        """
        join_on = Review.listing_id == Listing.id
        if filters.channels:
            join_on = and_(join_on, Review.channel.in_(filters.channels))

        review_count = func.count(Review.id)
        average_rating = func.avg(Review.rating)

        having = [review_count >= filters.min_reviews]
        if filters.min_rating is not None:
            having.append(average_rating >= filters.min_rating)
        if filters.max_rating is not None:
            having.append(average_rating <= filters.max_rating)

        grouped = (
            self.db.query(Listing.id)
            .outerjoin(Review, join_on)
            .group_by(Listing.id)
            .having(and_(*having))
        )
        total = grouped.count()

        ids = [
            row.id
            for row in grouped.order_by(
                case((average_rating.is_(None), 1), else_=0),
                average_rating.desc(),
                review_count.desc(),
                Listing.id,
            )
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        ]

        listings = {
            listing.id: listing
            for listing in self.db.query(Listing)
            .options(selectinload(Listing.reviews))
            .filter(Listing.id.in_(ids))
            .all()
        }
        responses = [
            listing_to_response(listings[listing_id], True, filters.channels)
            for listing_id in ids
        ]
        return _page(responses, page, limit, total)

    def get_listing_by_slug(self, slug: str, include_stats: bool = False) -> ListingResponse:
        listing = self._load(Listing.slug == slug, include_stats)
        if listing is None:
            raise NotFoundError(f"Listing '{slug}' not found")
        return listing_to_response(listing, include_stats)

    def get_listing_by_hostaway_id(
        self, hostaway_listing_id: str, include_stats: bool = False
    ) -> ListingResponse:
        listing = self._load(Listing.hostaway_listing_id == str(hostaway_listing_id), include_stats)
        if listing is None:
            raise NotFoundError(f"Listing with Hostaway id {hostaway_listing_id} not found")
        return listing_to_response(listing, include_stats)

    def _load(self, criterion, include_stats: bool) -> Optional[Listing]:
        query = self.db.query(Listing).filter(criterion)
        if include_stats:
            query = query.options(selectinload(Listing.reviews))
        return query.first()

    def _apply_filters(self, query, params: ListingQuery):
        if params.search:
            term = f"%{params.search}%"
            query = query.filter(
                or_(
                    Listing.name.ilike(term),
                    Listing.slug.ilike(term),
                    Listing.hostaway_listing_id.ilike(term),
                )
            )
        if params.name:
            query = query.filter(Listing.name.ilike(f"%{params.name}%"))
        if params.slug:
            query = query.filter(Listing.slug.ilike(f"%{params.slug}%"))
        return query

    def _apply_sort(self, query, sort_by: ListingSortField, sort_order: SortOrder):
        def direction(column):
            return column.asc() if sort_order == SortOrder.ASC else column.desc()

        if sort_by == ListingSortField.NAME:
            return query.order_by(direction(Listing.name), Listing.id)
        if sort_by == ListingSortField.CREATED_AT:
            return query.order_by(direction(Listing.created_at), Listing.id)

        aggregates = (
            self.db.query(
                Review.listing_id.label("listing_id"),
                func.count(Review.id).label("review_count"),
                func.avg(Review.rating).label("average_rating"),
            )
            .group_by(Review.listing_id)
            .subquery()
        )
        query = query.outerjoin(aggregates, aggregates.c.listing_id == Listing.id)

        if sort_by == ListingSortField.REVIEW_COUNT:
            return query.order_by(
                direction(func.coalesce(aggregates.c.review_count, 0)), Listing.id
            )
        # Unrated listings always go last
        return query.order_by(
            case((aggregates.c.average_rating.is_(None), 1), else_=0),
            direction(aggregates.c.average_rating),
            Listing.id,
        )


def _page(listings: List[ListingResponse], page: int, limit: int, total: int) -> ListingPage:
    total_pages = (total + limit - 1) // limit
    return ListingPage(
        listings=listings,
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )
