# backend/modules/reviews/services/feed_service.py

import logging
from typing import Any, Dict, Optional, Tuple

from core.cache import ReviewCache
from modules.reviews.schemas.review_schemas import (
    ReviewFeedResult,
    ReviewQuery,
)
from .channel_client import ChannelFetchResult, HostawayClient
from .normalizer import NormalizationBatch, ReviewNormalizer, review_normalizer
from .query_engine import query_reviews

logger = logging.getLogger(__name__)

FEED_NAMESPACE = "hostaway"


class ReviewFeedService:
    """Cache-fronted view over the upstream review feed"""

    def __init__(
        self,
        client: HostawayClient,
        cache: ReviewCache,
        normalizer: Optional[ReviewNormalizer] = None,
    ):
        self.client = client
        self.cache = cache
        self.normalizer = normalizer or review_normalizer

    def cache_key(self, query: ReviewQuery) -> str:
        return self.cache.make_key(query.cache_params(), namespace=FEED_NAMESPACE)

    async def list_reviews(self, query: ReviewQuery) -> ReviewFeedResult:
        """Return one page of normalized upstream reviews"""
        key = self.cache_key(query)
        value, status = await self.cache.get_or_fetch(key, lambda: self._load_page(query))
        result = ReviewFeedResult.model_validate(value)
        result.cache_status = status.value
        return result

    async def fetch_normalized(
        self, listing_id: Optional[str] = None
    ) -> Tuple[ChannelFetchResult, NormalizationBatch]:
        """Fetch from the channel and normalize, bypassing the cache"""
        fetched = await self.client.fetch_reviews(listing_id)
        batch = self.normalizer.normalize_batch(fetched.payloads)
        if batch.skipped:
            logger.warning(
                f"Skipped {batch.skipped} of {batch.processed} {fetched.source.value} reviews"
            )
        return fetched, batch

    async def _load_page(self, query: ReviewQuery) -> Dict[str, Any]:
        fetched, batch = await self.fetch_normalized(query.filters.listing_id)
        page = query_reviews(batch.reviews, query)
        result = ReviewFeedResult(
            result=page,
            source=fetched.source.value,
            skipped=batch.skipped,
            issues=batch.issues,
        )
        return result.model_dump(mode="json")
