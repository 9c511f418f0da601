# backend/modules/reviews/services/review_service.py

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from typing import Optional, List, Dict
from datetime import datetime
from collections import Counter, defaultdict
import logging
import math
import re

from core.exceptions import NotFoundError
from core.mixins import utcnow
from modules.reviews.models.review_models import (
    Listing,
    Review,
    ReviewAuditLog,
    ReviewCategory,
    ReviewCategoryName,
    ApprovalStatus,
)
from modules.reviews.schemas.review_schemas import (
    ApprovalHistoryResponse,
    AuditEntryResponse,
    ImportSummary,
    MonthlyTrend,
    NormalizationIssue,
    NormalizedReview,
    PageResult,
    ReviewFilters,
    ReviewQuery,
    ReviewStats,
)
from .normalizer import round_rating
from .query_engine import apply_filters, query_reviews

logger = logging.getLogger(__name__)

TREND_MONTHS = 12


def review_to_normalized(review: Review) -> NormalizedReview:
    """Map a stored review onto the canonical shape"""
    return NormalizedReview(
        id=str(review.id),
        external_id=review.hostaway_review_id,
        listing_id=review.listing.hostaway_listing_id if review.listing else None,
        guest_name=review.guest_name,
        comment=review.public_review or "",
        language=review.language,
        rating=review.rating,
        categories={c.category.value: c.rating for c in review.categories},
        review_type=review.review_type,
        channel=review.channel,
        created_at=review.created_at,
        updated_at=review.updated_at,
        submitted_at=review.submitted_at,
        check_in=review.check_in_date,
        check_out=review.check_out_date,
        approval_status=review.approval_status,
        response=review.response,
        response_date=review.response_date,
        source=review.source,
        raw_json=review.raw_json,
    )


class ReviewService:
    """Read operations and imports against the persisted review store"""

    def __init__(self, db: Session):
        self.db = db

    def get_review(self, review_id: int) -> NormalizedReview:
        return review_to_normalized(self._get_review_or_404(review_id))

    def _get_review_or_404(self, review_id: int) -> Review:
        review = self.db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise NotFoundError(f"Review {review_id} not found")
        return review

    def list_reviews(self, query: ReviewQuery) -> PageResult:
        """List stored reviews; always live, never cached"""
        rows = self._build_reviews_query(query.filters).all()
        reviews = [review_to_normalized(row) for row in rows]
        return query_reviews(reviews, query)

    def _build_reviews_query(self, filters: Optional[ReviewFilters]):
        """Build base query with the filters the database can evaluate"""
        query = self.db.query(Review).options(
            selectinload(Review.categories), selectinload(Review.listing)
        )

        if not filters:
            return query

        query = self._apply_basic_filters(query, filters)
        query = self._apply_date_filters(query, filters)
        query = self._apply_text_filters(query, filters)
        return query

    def _apply_basic_filters(self, query, filters: ReviewFilters):
        if filters.listing_id:
            query = query.join(Listing, Review.listing_id == Listing.id).filter(
                Listing.hostaway_listing_id == filters.listing_id
            )
        if filters.channel:
            query = query.filter(Review.channel == filters.channel)
        if filters.review_type:
            query = query.filter(Review.review_type == filters.review_type)
        if filters.approval_status == ApprovalStatus.PENDING:
            query = query.filter(Review.approved.is_(None))
        elif filters.approval_status is not None:
            query = query.filter(
                Review.approved == (filters.approval_status == ApprovalStatus.APPROVED)
            )
        if filters.min_rating is not None:
            query = query.filter(Review.rating >= filters.min_rating)
        if filters.max_rating is not None:
            query = query.filter(Review.rating <= filters.max_rating)
        return query

    def _apply_date_filters(self, query, filters: ReviewFilters):
        if filters.date_from:
            query = query.filter(Review.submitted_at >= filters.date_from)
        if filters.date_to:
            query = query.filter(Review.submitted_at <= filters.date_to)
        return query

    def _apply_text_filters(self, query, filters: ReviewFilters):
        if filters.guest_name:
            query = query.filter(Review.guest_name.ilike(f"%{filters.guest_name}%"))
        if filters.search:
            term = f"%{filters.search}%"
            query = query.filter(
                or_(Review.guest_name.ilike(term), Review.public_review.ilike(term))
            )
        return query

    def get_approval_history(self, review_id: int) -> ApprovalHistoryResponse:
        """Audit entries for a review, newest first"""
        self._get_review_or_404(review_id)
        entries = (
            self.db.query(ReviewAuditLog)
            .filter(ReviewAuditLog.review_id == review_id)
            .order_by(ReviewAuditLog.timestamp.desc(), ReviewAuditLog.id.desc())
            .all()
        )
        return ApprovalHistoryResponse(
            review_id=review_id,
            history=[AuditEntryResponse.model_validate(entry) for entry in entries],
        )

    def get_stats(
        self, filters: Optional[ReviewFilters] = None, now: Optional[datetime] = None
    ) -> ReviewStats:
        rows = self._build_reviews_query(filters).all()
        reviews = [review_to_normalized(row) for row in rows]
        if filters:
            reviews = apply_filters(reviews, filters)
        return compute_review_stats(reviews, now or utcnow())

    # Import

    def import_reviews(self, reviews: List[NormalizedReview], source: str) -> ImportSummary:
        """
        Upsert normalized reviews into the store.

        Existing reviews keep their approval decision and host response;
        only channel-owned content is refreshed.
        """
        summary = ImportSummary(source=source)
        listings: Dict[str, Listing] = {}
        seen: set = set()

        for index, normalized in enumerate(reviews):
            if not normalized.listing_id:
                summary.skipped += 1
                summary.issues.append(
                    NormalizationIssue(
                        index=index, external_id=normalized.external_id, reason="missing listing id"
                    )
                )
                continue

            if normalized.id in seen:
                summary.skipped += 1
                summary.issues.append(
                    NormalizationIssue(
                        index=index, external_id=normalized.external_id, reason="duplicate review"
                    )
                )
                continue
            seen.add(normalized.id)

            listing = listings.get(normalized.listing_id)
            if listing is None:
                listing, created = self._get_or_create_listing(normalized)
                listings[normalized.listing_id] = listing
                if created:
                    summary.listings_created += 1

            existing = (
                self.db.query(Review)
                .filter(Review.hostaway_review_id == normalized.id)
                .first()
            )
            if existing:
                self._update_imported_review(existing, normalized, listing)
                summary.updated += 1
            else:
                self.db.add(self._build_review(normalized, listing))
                summary.created += 1

        self.db.commit()
        logger.info(
            f"Imported {source} reviews: {summary.created} created, "
            f"{summary.updated} updated, {summary.skipped} skipped"
        )
        return summary

    def _get_or_create_listing(self, normalized: NormalizedReview):
        listing = (
            self.db.query(Listing)
            .filter(Listing.hostaway_listing_id == normalized.listing_id)
            .first()
        )
        if listing:
            return listing, False

        raw = normalized.raw_json or {}
        name = raw.get("listingName") or f"Listing {normalized.listing_id}"
        listing = Listing(
            hostaway_listing_id=normalized.listing_id,
            name=name,
            slug=f"{_slugify(name)}-{normalized.listing_id}",
        )
        self.db.add(listing)
        self.db.flush()
        return listing, True

    def _build_review(self, normalized: NormalizedReview, listing: Listing) -> Review:
        review = Review(
            hostaway_review_id=normalized.id,
            listing=listing,
            approved=normalized.approved,
            response=normalized.response,
            response_date=normalized.response_date,
            categories=_build_categories(normalized),
        )
        self._copy_channel_fields(review, normalized)
        return review

    def _update_imported_review(
        self, review: Review, normalized: NormalizedReview, listing: Listing
    ) -> None:
        review.listing = listing
        self._copy_channel_fields(review, normalized)
        # Flush the removals first so the unique (review, category) pairs can be reinserted
        review.categories.clear()
        self.db.flush()
        review.categories.extend(_build_categories(normalized))

    def _copy_channel_fields(self, review: Review, normalized: NormalizedReview) -> None:
        review.review_type = normalized.review_type
        review.channel = normalized.channel
        review.rating = normalized.rating
        review.public_review = normalized.comment
        review.guest_name = normalized.guest_name
        review.language = normalized.language
        review.source = normalized.source
        review.submitted_at = normalized.submitted_at
        review.check_in_date = normalized.check_in
        review.check_out_date = normalized.check_out
        review.raw_json = normalized.raw_json


def _build_categories(normalized: NormalizedReview) -> List[ReviewCategory]:
    return [
        ReviewCategory(category=ReviewCategoryName(name), rating=rating)
        for name, rating in normalized.categories.items()
    ]


def compute_review_stats(reviews: List[NormalizedReview], now: datetime) -> ReviewStats:
    """Aggregate counts, distributions and a monthly trend"""
    status_counts = Counter(r.approval_status for r in reviews)
    ratings = [r.rating for r in reviews if r.rating is not None]

    channel_distribution = dict(Counter(r.channel.value for r in reviews))

    months = _trailing_months(now, TREND_MONTHS)
    by_month: Dict[str, List[Optional[float]]] = defaultdict(list)
    for r in reviews:
        key = r.submitted_at.strftime("%Y-%m")
        if key in months:
            by_month[key].append(r.rating)

    trends = []
    for month in months:
        month_ratings = [v for v in by_month.get(month, []) if v is not None]
        trends.append(
            MonthlyTrend(
                month=month,
                count=len(by_month.get(month, [])),
                average_rating=_average(month_ratings),
            )
        )

    return ReviewStats(
        total=len(reviews),
        approved=status_counts.get(ApprovalStatus.APPROVED, 0),
        pending=status_counts.get(ApprovalStatus.PENDING, 0),
        rejected=status_counts.get(ApprovalStatus.REJECTED, 0),
        average_rating=_average(ratings),
        rating_distribution=rating_distribution(ratings),
        channel_distribution=channel_distribution,
        monthly_trends=trends,
    )


def rating_distribution(ratings: List[float]) -> Dict[str, int]:
    """Count ratings into whole-point buckets "0" to "10"."""
    buckets = {str(bucket): 0 for bucket in range(11)}
    for rating in ratings:
        buckets[str(min(10, int(math.floor(rating))))] += 1
    return buckets


def _average(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return round_rating(math.fsum(values) / len(values))


def _trailing_months(now: datetime, count: int) -> List[str]:
    """YYYY-MM keys for the ``count`` months ending with ``now``'s month, oldest first"""
    year, month = now.year, now.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "listing"
