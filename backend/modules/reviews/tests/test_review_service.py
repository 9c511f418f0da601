# backend/modules/reviews/tests/test_review_service.py

from datetime import datetime

import pytest

from core.exceptions import NotFoundError
from modules.reviews.models.review_models import ApprovalStatus, Listing, Review, ReviewChannel
from modules.reviews.schemas.review_schemas import (
    PageRequest,
    ReviewFilters,
    ReviewQuery,
    ReviewSort,
    SortField,
    SortOrder,
)
from modules.reviews.services.normalizer import ReviewNormalizer
from modules.reviews.services.review_service import compute_review_stats
from modules.reviews.tests.factories import hostaway_review


class TestReviewQueries:
    def test_get_review(self, review_service, sample_reviews):
        review = review_service.get_review(sample_reviews[0].id)

        assert review.external_id == "101"
        assert review.listing_id == "123"
        assert review.categories == {"cleanliness": 10.0}
        assert review.approval_status == ApprovalStatus.PENDING

    def test_get_missing_review(self, review_service, sample_reviews):
        with pytest.raises(NotFoundError):
            review_service.get_review(4242)

    def test_list_filters_by_upstream_listing(self, review_service, sample_reviews):
        page = review_service.list_reviews(ReviewQuery(filters=ReviewFilters(listing_id="123")))

        assert page.total == 2
        assert {r.guest_name for r in page.reviews} == {"Alice", "Bob"}

    def test_list_filters_by_status(self, review_service, sample_reviews):
        for status, expected in (
            (ApprovalStatus.PENDING, ["Alice"]),
            (ApprovalStatus.APPROVED, ["Bob"]),
            (ApprovalStatus.REJECTED, ["Carol"]),
        ):
            page = review_service.list_reviews(ReviewQuery(filters=ReviewFilters(approval_status=status)))
            assert [r.guest_name for r in page.reviews] == expected

    def test_list_sorts_and_paginates(self, review_service, sample_reviews):
        query = ReviewQuery(
            sort=ReviewSort(sort_by=SortField.RATING, sort_order=SortOrder.ASC),
            page=PageRequest(page=1, limit=2),
        )
        page = review_service.list_reviews(query)

        assert [r.rating for r in page.reviews] == [6.0, 7.4]
        assert page.total_pages == 2
        assert page.has_next is True

    def test_list_search_and_response_filters(self, review_service, sample_reviews):
        page = review_service.list_reviews(ReviewQuery(filters=ReviewFilters(search="noisy")))
        assert [r.guest_name for r in page.reviews] == ["Carol"]

        page = review_service.list_reviews(ReviewQuery(filters=ReviewFilters(has_response=True)))
        assert [r.guest_name for r in page.reviews] == ["Bob"]

    def test_history_of_untouched_review_is_empty(self, review_service, sample_reviews):
        history = review_service.get_approval_history(sample_reviews[0].id)
        assert history.review_id == sample_reviews[0].id
        assert history.history == []

    def test_history_of_missing_review(self, review_service, sample_reviews):
        with pytest.raises(NotFoundError):
            review_service.get_approval_history(4242)


class TestReviewStats:
    def test_counts_and_distributions(self, review_service, sample_reviews):
        stats = review_service.get_stats(now=datetime(2024, 3, 15))

        assert stats.total == 3
        assert (stats.approved, stats.pending, stats.rejected) == (1, 1, 1)
        assert stats.average_rating == 7.6
        assert stats.rating_distribution["9"] == 1
        assert stats.rating_distribution["7"] == 1
        assert stats.rating_distribution["6"] == 1
        assert stats.channel_distribution == {"airbnb": 1, "booking.com": 1, "vrbo": 1}

    def test_monthly_trend_covers_twelve_months(self, review_service, sample_reviews):
        trends = review_service.get_stats(now=datetime(2024, 3, 15)).monthly_trends

        assert len(trends) == 12
        assert trends[0].month == "2023-04"
        assert trends[-1].month == "2024-03"
        by_month = {t.month: t for t in trends}
        assert by_month["2024-01"].count == 1
        assert by_month["2024-01"].average_rating == 7.4
        assert by_month["2023-12"].count == 0
        assert by_month["2023-12"].average_rating is None

    def test_stats_respect_filters(self, review_service, sample_reviews):
        stats = review_service.get_stats(ReviewFilters(listing_id="456"), now=datetime(2024, 3, 15))
        assert stats.total == 1
        assert stats.rejected == 1

    def test_empty_store(self):
        stats = compute_review_stats([], datetime(2024, 3, 15))
        assert stats.total == 0
        assert stats.average_rating is None
        assert sum(stats.rating_distribution.values()) == 0


class TestImport:
    @pytest.fixture
    def normalized(self):
        batch = ReviewNormalizer().normalize_batch(
            [
                hostaway_review(
                    id=501,
                    listingId=777,
                    listingName="Canary Wharf Loft",
                    rating=None,
                    reviewCategory=[
                        {"category": "cleanliness", "rating": 9},
                        {"category": "value", "rating": 7},
                    ],
                ),
                hostaway_review(id=502, listingId=777, listingName="Canary Wharf Loft", rating=8.0),
                hostaway_review(id=503, listingId=888, rating=6.0, status="approved"),
            ]
        )
        return batch.reviews

    def test_creates_reviews_and_listings(self, review_service, db_session, normalized):
        summary = review_service.import_reviews(normalized, "upstream")

        assert (summary.created, summary.updated, summary.skipped) == (3, 0, 0)
        assert summary.listings_created == 2
        listing = db_session.query(Listing).filter(Listing.hostaway_listing_id == "777").one()
        assert listing.name == "Canary Wharf Loft"
        assert listing.slug == "canary-wharf-loft-777"

        stored = db_session.query(Review).filter(Review.hostaway_review_id == "501").one()
        assert stored.rating == 8.0
        assert {c.category.value for c in stored.categories} == {"cleanliness", "value"}
        approved = db_session.query(Review).filter(Review.hostaway_review_id == "503").one()
        assert approved.approved is True

    def test_reimport_updates_content_and_keeps_decisions(
        self, review_service, approval_service, db_session, normalized
    ):
        review_service.import_reviews(normalized, "upstream")
        stored = db_session.query(Review).filter(Review.hostaway_review_id == "502").one()
        approval_service.set_approval(stored.id, False, response="Handled offline")

        changed = [
            r.model_copy(update={"comment": "Edited on the channel"}) if r.id == "502" else r
            for r in normalized
        ]
        summary = review_service.import_reviews(changed, "upstream")

        assert (summary.created, summary.updated) == (0, 3)
        assert summary.listings_created == 0
        db_session.refresh(stored)
        assert stored.public_review == "Edited on the channel"
        assert stored.approved is False
        assert stored.response == "Handled offline"
        assert db_session.query(Review).count() == 3

    def test_reimport_replaces_categories(self, review_service, db_session, normalized):
        review_service.import_reviews(normalized, "upstream")
        first = normalized[0].model_copy(update={"categories": {"cleanliness": 5.0}})

        review_service.import_reviews([first], "upstream")

        stored = db_session.query(Review).filter(Review.hostaway_review_id == "501").one()
        assert {c.category.value: c.rating for c in stored.categories} == {"cleanliness": 5.0}

    def test_skips_reviews_without_listing_and_duplicates(self, review_service, normalized):
        orphan = normalized[0].model_copy(update={"listing_id": None})

        summary = review_service.import_reviews([orphan, normalized[1], normalized[1]], "mock")

        assert summary.created == 1
        assert summary.skipped == 2
        assert [issue.reason for issue in summary.issues] == ["missing listing id", "duplicate review"]

    def test_stored_channel_round_trips(self, review_service, db_session, normalized):
        review_service.import_reviews(normalized, "upstream")
        stored = db_session.query(Review).filter(Review.hostaway_review_id == "501").one()
        assert stored.channel == ReviewChannel.AIRBNB
        assert review_service.get_review(stored.id).channel == ReviewChannel.AIRBNB
