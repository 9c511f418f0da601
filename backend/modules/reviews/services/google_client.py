# backend/modules/reviews/services/google_client.py

"""
Google reviews client.

Reads reviews from the Google Places API (public, at most five reviews per
place, API key auth) and the Google Business Profile API (owner access,
OAuth bearer token). Both are turned into ``source: google`` payloads that
the normalizer already understands.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from core.config import Settings
from core.exceptions import NotFoundError, UpstreamUnavailableError, ValidationError
from core.mixins import utcnow
from modules.reviews.schemas.provider_schemas import GOOGLE

logger = logging.getLogger(__name__)

PLACE_DETAIL_FIELDS = ",".join(
    [
        "place_id",
        "name",
        "formatted_address",
        "geometry",
        "rating",
        "user_ratings_total",
        "reviews",
        "url",
        "website",
    ]
)

BUSINESS_PAGE_SIZE = 50


class GoogleReviewsClient:
    """Async client for the Google Places and Business Profile review APIs"""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.request_interval = settings.google_request_interval
        self.places_client = httpx.AsyncClient(
            base_url=settings.google_places_base_url,
            timeout=settings.google_timeout,
            transport=transport,
        )
        self.business_client = httpx.AsyncClient(
            base_url=settings.google_business_base_url,
            timeout=settings.google_timeout,
            transport=transport,
        )
        self._sleep = sleep
        self._last_sent: Optional[float] = None
        self._throttle = asyncio.Lock()
        self.request_count = 0
        self.last_request_at: Optional[datetime] = None

    @property
    def places_configured(self) -> bool:
        return bool(self.settings.google_places_api_key)

    @property
    def business_configured(self) -> bool:
        return bool(self.settings.google_business_access_token)

    async def close(self):
        await self.places_client.aclose()
        await self.business_client.aclose()

    # Places API

    async def search_places(
        self,
        query: str,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        radius: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"query": query}
        if lat is not None and lng is not None:
            params["location"] = f"{lat},{lng}"
        if radius is not None:
            params["radius"] = radius
        data = await self._places_get("/textsearch/json", params, {"OK", "ZERO_RESULTS"})
        results = data.get("results") or []
        logger.info(f"Google Places search '{query}' returned {len(results)} places")
        return results

    async def place_details(self, place_id: str) -> Dict[str, Any]:
        """Place details including up to five of its most relevant reviews"""
        data = await self._places_get(
            "/details/json", {"place_id": place_id, "fields": PLACE_DETAIL_FIELDS}, {"OK"}
        )
        return data.get("result") or {}

    async def _places_get(self, path: str, params: Dict[str, Any], allowed: set) -> Dict[str, Any]:
        if not self.places_configured:
            raise UpstreamUnavailableError("Google Places API key not configured")

        data = await self._send(
            self.places_client, path, params={**params, "key": self.settings.google_places_api_key}
        )
        status = data.get("status")
        if status in allowed:
            return data

        message = data.get("error_message") or status or "unknown status"
        logger.error(f"Google Places API error on {path}: {message}")
        if status == "NOT_FOUND":
            raise NotFoundError(f"Google place not found: {params.get('place_id')}")
        if status == "INVALID_REQUEST":
            raise ValidationError(f"Invalid Google Places request: {message}")
        raise UpstreamUnavailableError(f"Google Places API error: {message}")

    # Business Profile API

    async def business_reviews(self, location_name: str) -> List[Dict[str, Any]]:
        """Reviews for ``accounts/{account}/locations/{location}``, newest first"""
        if not self.business_configured:
            raise UpstreamUnavailableError("Google Business Profile access token not configured")

        data = await self._send(
            self.business_client,
            f"/{location_name.strip('/')}/reviews",
            params={"pageSize": BUSINESS_PAGE_SIZE, "orderBy": "updateTime desc"},
            headers={"Authorization": f"Bearer {self.settings.google_business_access_token}"},
        )
        reviews = data.get("reviews") or []
        logger.info(f"Fetched {len(reviews)} Google Business reviews for {location_name}")
        return reviews

    # Transport

    async def _send(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        await self._wait_turn()
        self.request_count += 1
        self.last_request_at = utcnow()

        try:
            response = await client.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Google API request to {path} failed: {e}")
            raise UpstreamUnavailableError(f"Google API request failed: {type(e).__name__}")

        if response.status_code == 400:
            raise ValidationError("Invalid request to Google API")
        if response.status_code in (401, 403):
            raise UpstreamUnavailableError("Google API access denied - check credentials")
        if response.status_code == 404:
            raise NotFoundError(f"Google resource not found: {path}")
        if response.status_code == 429:
            raise UpstreamUnavailableError("Google API rate limit exceeded")
        if response.is_error:
            raise UpstreamUnavailableError(f"Google API returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise UpstreamUnavailableError("Google API returned a non-JSON body")
        if not isinstance(data, dict):
            raise UpstreamUnavailableError("Google API returned an unexpected body")
        return data

    async def _wait_turn(self) -> None:
        """Keep at least ``request_interval`` seconds between requests"""
        async with self._throttle:
            if self._last_sent is not None and self.request_interval > 0:
                remaining = self.request_interval - (time.monotonic() - self._last_sent)
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_sent = time.monotonic()

    # Health

    def health(self) -> Dict[str, Any]:
        configured = self.places_configured or self.business_configured
        return {
            "healthy": configured,
            "status": "healthy" if configured else "not_configured",
            "places_api": {"configured": self.places_configured},
            "business_profile_api": {"configured": self.business_configured},
            "request_count": self.request_count,
            "last_request_at": self.last_request_at,
        }

    async def test_connection(self) -> Dict[str, Any]:
        """Issue one cheap Places query to prove the key works"""
        result: Dict[str, Any] = {
            "places_api": {"configured": self.places_configured, "available": False, "error": None},
            "business_profile_api": {"configured": self.business_configured},
        }
        if self.places_configured:
            try:
                await self.search_places("hotel")
                result["places_api"]["available"] = True
            except (UpstreamUnavailableError, ValidationError) as e:
                result["places_api"]["error"] = str(e)
        return result


def places_review_payload(
    review: Dict[str, Any], place_id: str, listing_id: Optional[str]
) -> Dict[str, Any]:
    """A Places API review as a ``source: google`` payload"""
    posted = review.get("time")
    create_time = (
        datetime.fromtimestamp(int(posted), tz=timezone.utc).isoformat()
        if posted is not None else None
    )
    return {
        "source": GOOGLE,
        "reviewId": f"places-{place_id}-{posted}",
        "listingId": listing_id,
        "reviewer": {"displayName": review.get("author_name")},
        "starRating": review.get("rating"),
        "comment": review.get("text"),
        "createTime": create_time,
        "updateTime": create_time,
        "languageCode": review.get("language"),
        "placeId": place_id,
        "authorUrl": review.get("author_url"),
    }


def business_review_payload(review: Dict[str, Any], listing_id: Optional[str]) -> Dict[str, Any]:
    """A Business Profile review as a ``source: google`` payload"""
    payload = dict(review)
    reviewer = dict(review.get("reviewer") or {})
    if reviewer.get("isAnonymous"):
        reviewer["displayName"] = "Anonymous"
    payload.update(
        source=GOOGLE,
        reviewId=review.get("reviewId") or review.get("name"),
        listingId=listing_id,
        reviewer=reviewer,
    )
    return payload
