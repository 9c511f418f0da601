# backend/modules/reviews/services/channel_client.py

"""
Hostaway channel client.

Fetches raw review payloads from the Hostaway API with a bounded timeout
and exponential-backoff retries. When the upstream is unavailable (or the
client runs in mock mode) the bundled mock dataset is served instead, so
callers always receive data unless both sources are gone.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from core.config import Settings
from core.exceptions import UpstreamUnavailableError
from core.metrics_registry import MetricsRegistry
from .mock_dataset import MockReviewDataset

logger = logging.getLogger(__name__)

TOKEN_REFRESH_MARGIN_SECONDS = 60
MAX_UPSTREAM_PAGES = 50


class DataSource(str, Enum):
    UPSTREAM = "upstream"
    MOCK = "mock"


@dataclass
class ChannelFetchResult:
    payloads: List[Dict[str, Any]]
    source: DataSource


class UpstreamResponseError(ValueError):
    """Upstream answered, but not with a usable review list"""


class HostawayClient:
    """Client for the Hostaway reviews API with mock fallback"""

    def __init__(
        self,
        settings: Settings,
        metrics: MetricsRegistry,
        mock_dataset: Optional[MockReviewDataset] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.metrics = metrics
        self.mock_dataset = mock_dataset or MockReviewDataset(settings.hostaway_mock_data_path)
        self.max_retry_attempts = settings.hostaway_retries
        self.retry_backoff_base = settings.hostaway_backoff_base
        self.page_limit = settings.hostaway_page_limit
        self.attempt_timeout = settings.hostaway_attempt_timeout
        self.http_client = httpx.AsyncClient(
            base_url=settings.hostaway_base_url,
            timeout=settings.hostaway_timeout,
            transport=transport,
        )
        self._sleep = sleep
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self.settings.hostaway_configured

    @property
    def mock_mode(self) -> bool:
        return self.settings.hostaway_mock_mode

    async def close(self):
        await self.http_client.aclose()

    async def fetch_reviews(self, listing_id: Optional[str] = None) -> ChannelFetchResult:
        """
        Fetch raw review payloads, optionally for one listing.

        Raises:
            UpstreamUnavailableError: only if the upstream failed (or is not
                in use) and the mock dataset cannot be loaded either
        """
        if self.mock_mode:
            return self._fallback(listing_id, "mock mode enabled")
        if not self.configured:
            return self._fallback(listing_id, "upstream credentials not configured")

        last_error: Optional[Exception] = None
        attempts = self.max_retry_attempts + 1

        for attempt in range(attempts):
            start = time.perf_counter()
            try:
                payloads = await asyncio.wait_for(
                    self._fetch_all_pages(listing_id), timeout=self.attempt_timeout
                )
            except UpstreamResponseError as e:
                self._record_failure(e, start)
                last_error = e
                break
            except httpx.HTTPStatusError as e:
                self._record_failure(e, start)
                last_error = e
                if not _is_retryable(e.response.status_code):
                    break
            except (httpx.HTTPError, asyncio.TimeoutError) as e:
                self._record_failure(e, start)
                last_error = e
            else:
                latency_ms = (time.perf_counter() - start) * 1000
                self.metrics.record_client_success(latency_ms)
                logger.info(
                    f"Fetched {len(payloads)} reviews from Hostaway in {latency_ms:.0f}ms"
                )
                return ChannelFetchResult(payloads=payloads, source=DataSource.UPSTREAM)

            if attempt < attempts - 1:
                delay = self.retry_backoff_base * (2 ** attempt)
                logger.warning(
                    f"Hostaway request failed (attempt {attempt + 1}/{attempts}): "
                    f"{last_error}; retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

        logger.error(f"Hostaway upstream unavailable, using mock data: {last_error}")
        return self._fallback(listing_id, f"upstream failed: {last_error}")

    def _record_failure(self, error: Exception, start: float) -> None:
        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.record_client_failure(f"{type(error).__name__}: {error}", latency_ms)

    def _fallback(self, listing_id: Optional[str], reason: str) -> ChannelFetchResult:
        payloads = self.mock_dataset.reviews(listing_id)
        if payloads is None:
            raise UpstreamUnavailableError(
                f"Review data unavailable ({reason}); mock dataset could not be loaded"
            )
        self.metrics.record_client_mock()
        logger.info(f"Serving {len(payloads)} mock reviews ({reason})")
        return ChannelFetchResult(payloads=payloads, source=DataSource.MOCK)

    # Upstream protocol

    async def _fetch_all_pages(self, listing_id: Optional[str]) -> List[Dict[str, Any]]:
        reviews: List[Dict[str, Any]] = []
        for page in range(MAX_UPSTREAM_PAGES):
            params: Dict[str, Any] = {"limit": self.page_limit, "offset": page * self.page_limit}
            if listing_id is not None:
                params["listingId"] = listing_id
            batch = await self._request_reviews(params)
            reviews.extend(batch)
            if len(batch) < self.page_limit:
                break
        return reviews

    async def _request_reviews(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        token = await self._get_access_token()
        response = await self.http_client.get("/reviews", params=params, headers=_auth(token))

        if response.status_code == 401:
            # Token revoked or expired early: refresh once
            token = await self._get_access_token(force_refresh=True)
            response = await self.http_client.get("/reviews", params=params, headers=_auth(token))

        response.raise_for_status()
        return _validate_reviews_response(response)

    async def _get_access_token(self, force_refresh: bool = False) -> str:
        async with self._token_lock:
            now = time.monotonic()
            if (
                not force_refresh
                and self._access_token
                and now < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS
            ):
                return self._access_token

            response = await self.http_client.post(
                "/accessTokens",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.settings.hostaway_account_id,
                    "client_secret": self.settings.hostaway_api_key,
                    "scope": "general",
                },
            )
            response.raise_for_status()
            try:
                body = response.json()
                token = body["access_token"]
                expires_in = float(body.get("expires_in", 3600))
            except (ValueError, KeyError, TypeError) as e:
                raise UpstreamResponseError(f"Invalid access token response: {e}")

            self._access_token = token
            self._token_expires_at = now + expires_in
            logger.debug("Obtained Hostaway access token")
            return token

    # Health

    def health(self) -> Dict[str, Any]:
        mock_available = self.mock_dataset.is_available()
        healthy = self.configured or mock_available
        return {
            "healthy": healthy,
            "status": "healthy" if healthy else "unhealthy",
            "configured": self.configured,
            "mock_mode": self.mock_mode,
            "mock_data_available": mock_available,
            "last_request_at": self.metrics.last_client_request_at,
            "metrics": self.metrics.client_metrics(),
        }


def _auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Cache-Control": "no-cache"}


def _is_retryable(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _validate_reviews_response(response: httpx.Response) -> List[Dict[str, Any]]:
    try:
        body = response.json()
    except ValueError as e:
        raise UpstreamResponseError(f"Response is not JSON: {e}")
    if not isinstance(body, dict) or body.get("status") != "success":
        raise UpstreamResponseError("Response status is not 'success'")
    result = body.get("result")
    if not isinstance(result, list):
        raise UpstreamResponseError("Response result is not a list")
    return result
