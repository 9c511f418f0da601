# backend/modules/reviews/services/query_engine.py

"""
In-memory filtering, sorting and pagination over normalized reviews.

The engine is pure: it never mutates its input and holds no state, so the
same function backs both the cached upstream feed and the live store view.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple

from modules.reviews.schemas.review_schemas import (
    NormalizedReview,
    PageRequest,
    PageResult,
    ReviewFilters,
    ReviewQuery,
    ReviewSort,
    SortField,
    SortOrder,
)


def _id_sort_key(review_id: str) -> Tuple[int, int, str]:
    # Numeric ids compare numerically and sort before non-numeric ones
    if review_id.isdigit():
        return (0, int(review_id), "")
    return (1, 0, review_id)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle in haystack.lower()


def build_predicates(filters: ReviewFilters) -> List[Callable[[NormalizedReview], bool]]:
    """One predicate per set filter; a review must satisfy all of them"""
    predicates: List[Callable[[NormalizedReview], bool]] = []

    if filters.listing_id is not None:
        listing_id = str(filters.listing_id)
        predicates.append(lambda r: r.listing_id is not None and str(r.listing_id) == listing_id)
    if filters.date_from is not None:
        predicates.append(lambda r: r.submitted_at >= filters.date_from)
    if filters.date_to is not None:
        predicates.append(lambda r: r.submitted_at <= filters.date_to)
    if filters.channel is not None:
        predicates.append(lambda r: r.channel == filters.channel)
    if filters.approval_status is not None:
        predicates.append(lambda r: r.approval_status == filters.approval_status)
    if filters.review_type is not None:
        predicates.append(lambda r: r.review_type == filters.review_type)
    if filters.guest_name:
        name = filters.guest_name.lower()
        predicates.append(lambda r: _contains(r.guest_name, name))
    if filters.min_rating is not None:
        predicates.append(lambda r: r.rating is not None and r.rating >= filters.min_rating)
    if filters.max_rating is not None:
        predicates.append(lambda r: r.rating is not None and r.rating <= filters.max_rating)
    if filters.has_response is not None:
        predicates.append(lambda r: r.has_response == filters.has_response)
    if filters.search:
        term = filters.search.lower()
        predicates.append(lambda r: _contains(r.guest_name, term) or _contains(r.comment, term))

    return predicates


def apply_filters(
    reviews: Sequence[NormalizedReview], filters: ReviewFilters
) -> List[NormalizedReview]:
    predicates = build_predicates(filters)
    return [r for r in reviews if all(p(r) for p in predicates)]


def _sort_value(review: NormalizedReview, field: SortField) -> Any:
    if field == SortField.RATING:
        return review.rating
    if field == SortField.SUBMITTED_AT:
        return review.submitted_at
    if field == SortField.CREATED_AT:
        return review.created_at
    if field == SortField.GUEST_NAME:
        return review.guest_name.lower()
    return review.channel.value


def apply_sort(reviews: Sequence[NormalizedReview], sort: ReviewSort) -> List[NormalizedReview]:
    """
    Sort by the requested field, ties broken by id ascending.

    Reviews without a value for the sort field (only possible for rating)
    always come last regardless of direction.
    """
    # Stable sorts: order by the tiebreaker first, then by the primary key
    ordered = sorted(reviews, key=lambda r: _id_sort_key(r.id))
    present = [r for r in ordered if _sort_value(r, sort.sort_by) is not None]
    missing = [r for r in ordered if _sort_value(r, sort.sort_by) is None]
    present.sort(
        key=lambda r: _sort_value(r, sort.sort_by),
        reverse=sort.sort_order == SortOrder.DESC,
    )
    return present + missing


def paginate(reviews: Sequence[NormalizedReview], page: PageRequest) -> PageResult:
    total = len(reviews)
    total_pages = (total + page.limit - 1) // page.limit
    offset = (page.page - 1) * page.limit
    return PageResult(
        reviews=list(reviews[offset:offset + page.limit]),
        page=page.page,
        limit=page.limit,
        total=total,
        total_pages=total_pages,
        has_next=page.page < total_pages,
        has_prev=page.page > 1,
    )


def query_reviews(reviews: Sequence[NormalizedReview], query: ReviewQuery) -> PageResult:
    """Filter, sort and paginate ``reviews`` according to ``query``"""
    matched = apply_filters(reviews, query.filters)
    return paginate(apply_sort(matched, query.sort), query.page)
