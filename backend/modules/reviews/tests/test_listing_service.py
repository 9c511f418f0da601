# backend/modules/reviews/tests/test_listing_service.py

from datetime import datetime

import pytest

from core.exceptions import NotFoundError, ValidationError
from modules.reviews.models.review_models import Listing, ReviewChannel
from modules.reviews.schemas.review_schemas import (
    ListingQuery,
    ListingSortField,
    ListingStatsFilters,
    SortOrder,
)
from modules.reviews.services.listing_service import ListingService


@pytest.fixture
def listing_service(db_session) -> ListingService:
    return ListingService(db_session)


@pytest.fixture
def unreviewed_listing(db_session) -> Listing:
    listing = Listing(hostaway_listing_id="789", name="Angel Loft", slug="angel-loft-789")
    db_session.add(listing)
    db_session.commit()
    return listing


def _names(page):
    return [listing.name for listing in page.listings]


class TestListListings:
    def test_sorted_by_name_by_default(self, listing_service, sample_reviews, unreviewed_listing):
        page = listing_service.list_listings(ListingQuery())

        assert _names(page) == ["Angel Loft", "Camden Studio", "Shoreditch Heights"]
        assert page.total == 3
        assert all(listing.stats is None for listing in page.listings)

    @pytest.mark.parametrize(
        "term,expected",
        [
            ("shore", ["Shoreditch Heights"]),
            ("CAMDEN", ["Camden Studio"]),
            ("456", ["Camden Studio"]),
            ("loft-789", ["Angel Loft"]),
        ],
    )
    def test_search_matches_name_slug_or_hostaway_id(
        self, listing_service, sample_reviews, unreviewed_listing, term, expected
    ):
        assert _names(listing_service.list_listings(ListingQuery(search=term))) == expected

    def test_name_and_slug_filters_combine(self, listing_service, sample_reviews):
        page = listing_service.list_listings(ListingQuery(name="studio", slug="camden"))
        assert _names(page) == ["Camden Studio"]

        page = listing_service.list_listings(ListingQuery(name="studio", slug="shoreditch"))
        assert page.total == 0

    def test_stats_are_aggregated_per_listing(self, listing_service, sample_reviews):
        page = listing_service.list_listings(ListingQuery(include_stats=True))
        stats = {listing.hostaway_listing_id: listing.stats for listing in page.listings}

        shoreditch = stats["123"]
        assert shoreditch.total_reviews == 2
        assert shoreditch.approved_reviews == 1
        assert shoreditch.average_rating == 7.8
        assert shoreditch.rating_distribution["9"] == 1
        assert shoreditch.rating_distribution["6"] == 1
        assert shoreditch.channel_distribution == {"airbnb": 1, "booking.com": 1}
        assert shoreditch.last_review_date == datetime(2024, 3, 1, 12, 0)

        assert stats["456"].average_rating == 7.4
        assert stats["456"].approved_reviews == 0

    @pytest.mark.parametrize(
        "order,expected",
        [
            (SortOrder.DESC, ["Shoreditch Heights", "Camden Studio", "Angel Loft"]),
            (SortOrder.ASC, ["Camden Studio", "Shoreditch Heights", "Angel Loft"]),
        ],
    )
    def test_sort_by_average_rating_keeps_unrated_last(
        self, listing_service, sample_reviews, unreviewed_listing, order, expected
    ):
        page = listing_service.list_listings(
            ListingQuery(sort_by=ListingSortField.AVERAGE_RATING, sort_order=order)
        )
        assert _names(page) == expected

    def test_sort_by_review_count(self, listing_service, sample_reviews, unreviewed_listing):
        page = listing_service.list_listings(
            ListingQuery(sort_by=ListingSortField.REVIEW_COUNT, sort_order=SortOrder.DESC)
        )
        assert _names(page) == ["Shoreditch Heights", "Camden Studio", "Angel Loft"]

    def test_pagination(self, listing_service, sample_reviews, unreviewed_listing):
        page = listing_service.list_listings(ListingQuery(page=2, limit=2))

        assert _names(page) == ["Shoreditch Heights"]
        assert (page.total, page.total_pages) == (3, 2)
        assert page.has_prev is True
        assert page.has_next is False


class TestSearchListings:
    def test_search_delegates_to_listing_query(self, listing_service, sample_reviews):
        page = listing_service.search_listings("  heights ", include_stats=True)

        assert _names(page) == ["Shoreditch Heights"]
        assert page.listings[0].stats.total_reviews == 2

    def test_short_search_term_is_rejected(self, listing_service):
        with pytest.raises(ValidationError):
            listing_service.search_listings(" a ")


class TestListingsWithStats:
    def test_best_rated_first_with_unrated_last(
        self, listing_service, sample_reviews, unreviewed_listing
    ):
        page = listing_service.get_listings_with_stats(ListingStatsFilters())

        assert _names(page) == ["Shoreditch Heights", "Camden Studio", "Angel Loft"]
        assert page.listings[-1].stats.total_reviews == 0
        assert page.listings[-1].stats.average_rating is None

    def test_review_count_and_rating_thresholds(
        self, listing_service, sample_reviews, unreviewed_listing
    ):
        reviewed = listing_service.get_listings_with_stats(ListingStatsFilters(min_reviews=1))
        assert reviewed.total == 2

        rated = listing_service.get_listings_with_stats(ListingStatsFilters(min_rating=7.5))
        assert _names(rated) == ["Shoreditch Heights"]

        capped = listing_service.get_listings_with_stats(ListingStatsFilters(max_rating=7.5))
        assert _names(capped) == ["Camden Studio"]

    def test_channel_filter_restricts_aggregates(self, listing_service, sample_reviews):
        page = listing_service.get_listings_with_stats(
            ListingStatsFilters(min_reviews=1, channels=[ReviewChannel.BOOKING_COM])
        )

        assert _names(page) == ["Shoreditch Heights"]
        stats = page.listings[0].stats
        assert stats.total_reviews == 1
        assert stats.average_rating == 6.0
        assert stats.channel_distribution == {"booking.com": 1}

    def test_inverted_rating_range_is_invalid(self):
        with pytest.raises(ValueError):
            ListingStatsFilters(min_rating=9, max_rating=2)


class TestListingLookup:
    def test_by_slug_includes_stats(self, listing_service, sample_reviews):
        listing = listing_service.get_listing_by_slug("camden-studio-456", include_stats=True)

        assert listing.hostaway_listing_id == "456"
        assert listing.stats.total_reviews == 1

    def test_by_hostaway_id(self, listing_service, sample_listing):
        listing = listing_service.get_listing_by_hostaway_id(123)

        assert listing.slug == "shoreditch-heights-123"
        assert listing.stats is None

    def test_unknown_listing_raises_not_found(self, listing_service):
        with pytest.raises(NotFoundError):
            listing_service.get_listing_by_slug("nowhere")
        with pytest.raises(NotFoundError):
            listing_service.get_listing_by_hostaway_id("999")
