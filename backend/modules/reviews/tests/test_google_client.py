# backend/modules/reviews/tests/test_google_client.py

from datetime import datetime
from typing import List

import httpx
import pytest

from core.config import Settings
from core.exceptions import (
    NormalizationError,
    NotFoundError,
    UpstreamUnavailableError,
    ValidationError,
)
from modules.reviews.models.review_models import ApprovalStatus, ReviewChannel
from modules.reviews.services.google_client import (
    GoogleReviewsClient,
    business_review_payload,
    places_review_payload,
)
from modules.reviews.services.normalizer import ReviewNormalizer
from modules.reviews.tests.factories import (
    LOCATION_NAME,
    PLACE_ID,
    FakeGoogle,
    business_review,
    places_review,
)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def google_settings(settings) -> Settings:
    return settings.model_copy(
        update={
            "google_places_api_key": "places-key",
            "google_business_access_token": "oauth-token",
            "google_places_base_url": "https://maps.googleapis.test/maps/api/place",
            "google_business_base_url": "https://mybusiness.googleapis.test/v4",
            "google_request_interval": 0,
        }
    )


@pytest.fixture
def make_google(google_settings):
    def _make(fake: FakeGoogle, client_settings: Settings = None, sleep=None) -> GoogleReviewsClient:
        kwargs = {"sleep": sleep} if sleep is not None else {}
        return GoogleReviewsClient(
            client_settings or google_settings, transport=fake.transport, **kwargs
        )

    return _make


class TestPlacesApi:
    @pytest.mark.asyncio
    async def test_search_sends_key_and_location(self, make_google):
        fake = FakeGoogle()
        client = make_google(fake)

        places = await client.search_places("shoreditch heights", lat=51.52, lng=-0.08, radius=500)

        assert places[0]["place_id"] == PLACE_ID
        params = fake.requests[0].url.params
        assert params["key"] == "places-key"
        assert params["location"] == "51.52,-0.08"
        assert params["radius"] == "500"
        assert client.request_count == 1
        assert client.last_request_at is not None

    @pytest.mark.asyncio
    async def test_zero_results_is_an_empty_list(self, make_google):
        client = make_google(FakeGoogle(places_status="ZERO_RESULTS"))
        assert await client.search_places("nowhere at all") == []

    @pytest.mark.asyncio
    async def test_details_request_includes_reviews_field(self, make_google):
        fake = FakeGoogle()
        details = await make_google(fake).place_details(PLACE_ID)

        assert details["name"] == "Shoreditch Heights"
        assert len(details["reviews"]) == 1
        assert "reviews" in fake.requests[0].url.params["fields"].split(",")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [
            ("NOT_FOUND", NotFoundError),
            ("INVALID_REQUEST", ValidationError),
            ("REQUEST_DENIED", UpstreamUnavailableError),
            ("ZERO_RESULTS", UpstreamUnavailableError),
        ],
    )
    async def test_details_status_errors(self, make_google, status, error):
        with pytest.raises(error):
            await make_google(FakeGoogle(places_status=status)).place_details(PLACE_ID)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,error",
        [
            (400, ValidationError),
            (403, UpstreamUnavailableError),
            (429, UpstreamUnavailableError),
            (500, UpstreamUnavailableError),
        ],
    )
    async def test_http_errors(self, make_google, status_code, error):
        with pytest.raises(error):
            await make_google(FakeGoogle(status_code=status_code)).search_places("hotel")

    @pytest.mark.asyncio
    async def test_transport_failure_is_unavailable(self, google_settings):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        client = GoogleReviewsClient(google_settings, transport=httpx.MockTransport(refuse))

        with pytest.raises(UpstreamUnavailableError):
            await client.search_places("hotel")

    @pytest.mark.asyncio
    async def test_unconfigured_key_never_calls_out(self, make_google, google_settings):
        fake = FakeGoogle()
        client = make_google(
            fake, client_settings=google_settings.model_copy(update={"google_places_api_key": None})
        )

        with pytest.raises(UpstreamUnavailableError):
            await client.search_places("hotel")
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_requests_are_spaced_out(self, make_google, google_settings):
        sleep = RecordingSleep()
        client = make_google(
            FakeGoogle(),
            client_settings=google_settings.model_copy(update={"google_request_interval": 1.0}),
            sleep=sleep,
        )

        await client.search_places("hotel")
        await client.search_places("hotel")

        assert len(sleep.delays) == 1
        assert 0 < sleep.delays[0] <= 1.0


class TestBusinessProfileApi:
    @pytest.mark.asyncio
    async def test_reviews_use_bearer_token(self, make_google):
        fake = FakeGoogle()

        reviews = await make_google(fake).business_reviews(LOCATION_NAME)

        assert reviews[0]["reviewId"] == "r1"
        request = fake.requests[0]
        assert request.url.path == f"/v4/{LOCATION_NAME}/reviews"
        assert request.headers["Authorization"] == "Bearer oauth-token"
        assert request.url.params["pageSize"] == "50"

    @pytest.mark.asyncio
    async def test_missing_token_is_unavailable(self, make_google, google_settings):
        client = make_google(
            FakeGoogle(),
            client_settings=google_settings.model_copy(update={"google_business_access_token": None}),
        )
        with pytest.raises(UpstreamUnavailableError):
            await client.business_reviews(LOCATION_NAME)


class TestHealth:
    def test_reports_configured_apis(self, make_google, google_settings):
        health = make_google(FakeGoogle()).health()
        assert health["healthy"] is True
        assert health["places_api"]["configured"] is True

        bare = make_google(
            FakeGoogle(),
            client_settings=google_settings.model_copy(
                update={"google_places_api_key": None, "google_business_access_token": None}
            ),
        ).health()
        assert bare["healthy"] is False
        assert bare["status"] == "not_configured"

    @pytest.mark.asyncio
    async def test_connection_check_reports_errors(self, make_google):
        result = await make_google(FakeGoogle(status_code=403)).test_connection()

        assert result["places_api"]["available"] is False
        assert "access denied" in result["places_api"]["error"]


class TestPayloadConversion:
    def test_places_review_normalizes_on_ten_point_scale(self):
        review = ReviewNormalizer().normalize(places_review_payload(places_review(), PLACE_ID, "123"))

        assert review.id == f"google:places-{PLACE_ID}-1700000000"
        assert review.source == "google"
        assert review.channel == ReviewChannel.GOOGLE
        assert review.listing_id == "123"
        assert review.rating == 8.0
        assert review.guest_name == "Priya K."
        assert review.submitted_at == datetime(2023, 11, 14, 22, 13, 20)
        assert review.approval_status == ApprovalStatus.PENDING

    def test_places_review_without_time_is_rejected(self):
        payload = places_review_payload(places_review(time=None), PLACE_ID, "123")
        with pytest.raises(NormalizationError) as exc_info:
            ReviewNormalizer().normalize(payload)
        assert exc_info.value.reason == "missing or invalid submission date"

    def test_anonymous_business_review(self):
        review = ReviewNormalizer().normalize(business_review_payload(business_review(), "123"))

        assert review.id == "google:r1"
        assert review.guest_name == "Anonymous"
        assert review.rating == 10.0
        assert review.response == "Thank you!"
        assert review.response_date == datetime(2024, 4, 3, 10, 0)

    def test_business_review_falls_back_to_resource_name(self):
        raw = business_review(reviewId=None, reviewer={"displayName": "Sam"})
        review = ReviewNormalizer().normalize(business_review_payload(raw, "123"))

        assert review.external_id == f"{LOCATION_NAME}/reviews/r1"
        assert review.guest_name == "Sam"
