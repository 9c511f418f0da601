# backend/modules/reviews/tests/factories.py

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from modules.reviews.models.review_models import Listing, Review, ReviewChannel, ReviewType


class FakeClock:
    """Controllable time source for cache tests"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def hostaway_review(**overrides) -> Dict[str, Any]:
    """A minimal valid Hostaway review payload"""
    payload = {
        "id": 1001,
        "type": "guest-to-host",
        "status": "published",
        "rating": 9.0,
        "publicReview": "Lovely stay",
        "reviewCategory": [],
        "submittedAt": "2024-01-15T10:30:00Z",
        "guestName": "Sarah M.",
        "listingName": "Shoreditch Heights",
        "listingId": 123,
        "channel": "airbnb",
    }
    payload.update(overrides)
    return payload


def write_mock_file(path, reviews: List[Dict[str, Any]]) -> str:
    path.write_text(json.dumps({"status": "success", "result": reviews}), encoding="utf-8")
    return str(path)


def make_review(listing: Listing, external_id: str, **overrides) -> Review:
    fields = dict(
        hostaway_review_id=external_id,
        listing=listing,
        review_type=ReviewType.GUEST_REVIEW,
        channel=ReviewChannel.AIRBNB,
        rating=8.0,
        public_review="Great place",
        guest_name="Test Guest",
        language="en",
        source="hostaway",
        submitted_at=datetime(2024, 1, 15, 10, 30),
    )
    fields.update(overrides)
    return Review(**fields)


PLACE_ID = "ChIJN1t_tDeuEmsRUsoyG83frY4"
LOCATION_NAME = "accounts/1001/locations/2002"


def places_review(**overrides) -> Dict[str, Any]:
    """A review as embedded in a Google Places details response"""
    review = {
        "author_name": "Priya K.",
        "rating": 4,
        "text": "Great spot near the station",
        "time": 1700000000,
        "language": "en",
    }
    review.update(overrides)
    return review


def business_review(**overrides) -> Dict[str, Any]:
    """A review as returned by the Google Business Profile API"""
    review = {
        "name": f"{LOCATION_NAME}/reviews/r1",
        "reviewId": "r1",
        "reviewer": {"displayName": "Hidden Guest", "isAnonymous": True},
        "starRating": "FIVE",
        "comment": "Spotless",
        "createTime": "2024-04-01T10:00:00Z",
        "updateTime": "2024-04-02T10:00:00Z",
        "reviewReply": {"comment": "Thank you!", "updateTime": "2024-04-03T10:00:00Z"},
    }
    review.update(overrides)
    return review


class FakeGoogle:
    """Scripted stand-in for the Google Places and Business Profile APIs"""

    def __init__(
        self,
        places_status: str = "OK",
        status_code: int = 200,
        place_reviews: Optional[List[Dict[str, Any]]] = None,
        business_reviews: Optional[List[Dict[str, Any]]] = None,
    ):
        self.places_status = places_status
        self.status_code = status_code
        self.place_reviews = place_reviews if place_reviews is not None else [places_review()]
        self.business_reviews = (
            business_reviews if business_reviews is not None else [business_review()]
        )
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code)

        path = request.url.path
        if path.endswith("/textsearch/json"):
            results = [{"place_id": PLACE_ID, "name": "Shoreditch Heights"}]
            if self.places_status != "OK":
                results = []
            return httpx.Response(200, json={"status": self.places_status, "results": results})
        if path.endswith("/details/json"):
            if self.places_status != "OK":
                return httpx.Response(
                    200, json={"status": self.places_status, "error_message": "denied"}
                )
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "result": {
                        "place_id": PLACE_ID,
                        "name": "Shoreditch Heights",
                        "formatted_address": "1 Shoreditch High St, London",
                        "reviews": self.place_reviews,
                    },
                },
            )
        if path.endswith("/reviews"):
            return httpx.Response(200, json={"reviews": self.business_reviews})
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
