# backend/modules/reviews/services/normalizer.py

"""
Review normalizer.

Turns raw provider payloads into ``NormalizedReview`` objects. The overall
rating is taken from the payload when present, otherwise it is the mean of
every usable category rating, known or not. Only the known categories are
kept on the review. A review with no rating data at all is rejected.
"""

import copy
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import NormalizationError
from modules.reviews.models.review_models import (
    ApprovalStatus,
    ReviewCategoryName,
    ReviewChannel,
    ReviewType,
)
from modules.reviews.schemas.provider_schemas import (
    CategoryRating,
    GenericReviewPayload,
    GoogleReviewPayload,
    HostawayReviewPayload,
    GENERIC,
    HOSTAWAY,
    parse_review_payload,
)
from modules.reviews.schemas.review_schemas import NormalizationIssue, NormalizedReview
from .text_sanitizer import sanitize_comment, sanitize_guest_name

logger = logging.getLogger(__name__)

RATING_MIN = 0.0
RATING_MAX = 10.0

CHANNEL_ALIASES = {
    "airbnb": ReviewChannel.AIRBNB,
    "airbnbofficial": ReviewChannel.AIRBNB,
    "booking": ReviewChannel.BOOKING_COM,
    "bookingcom": ReviewChannel.BOOKING_COM,
    "vrbo": ReviewChannel.VRBO,
    "homeaway": ReviewChannel.VRBO,
    "google": ReviewChannel.GOOGLE,
    "googlemaps": ReviewChannel.GOOGLE,
    "googlereviews": ReviewChannel.GOOGLE,
    "direct": ReviewChannel.DIRECT,
    "directbooking": ReviewChannel.DIRECT,
}

REVIEW_TYPE_ALIASES = {
    "guest": ReviewType.GUEST_REVIEW,
    "guestreview": ReviewType.GUEST_REVIEW,
    "guesttohost": ReviewType.GUEST_REVIEW,
    "host": ReviewType.HOST_REVIEW,
    "hostreview": ReviewType.HOST_REVIEW,
    "hosttoguest": ReviewType.HOST_REVIEW,
    "auto": ReviewType.AUTO_REVIEW,
    "automatic": ReviewType.AUTO_REVIEW,
    "autoreview": ReviewType.AUTO_REVIEW,
    "system": ReviewType.SYSTEM_REVIEW,
    "systemreview": ReviewType.SYSTEM_REVIEW,
}

CATEGORY_ALIASES = {
    "cleanliness": ReviewCategoryName.CLEANLINESS,
    "clean": ReviewCategoryName.CLEANLINESS,
    "communication": ReviewCategoryName.COMMUNICATION,
    "checkin": ReviewCategoryName.CHECKIN,
    "check_in": ReviewCategoryName.CHECKIN,
    "accuracy": ReviewCategoryName.ACCURACY,
    "location": ReviewCategoryName.LOCATION,
    "value": ReviewCategoryName.VALUE,
    "value_for_money": ReviewCategoryName.VALUE,
}

STABLE_CATEGORIES = {name.value for name in ReviewCategoryName}

# Channels whose ratings are on a 1-5 scale
FIVE_POINT_CHANNELS = {ReviewChannel.GOOGLE}

GOOGLE_STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}

APPROVED_STATUSES = {"approved"}
REJECTED_STATUSES = {"rejected", "hidden", "unpublished"}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def round_rating(value: float) -> float:
    """Round half-up to one decimal place"""
    return float(Decimal(repr(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def clamp_rating(value: float) -> float:
    return max(RATING_MIN, min(RATING_MAX, value))


def map_channel(value: Optional[str]) -> ReviewChannel:
    if not value:
        return ReviewChannel.OTHER
    return CHANNEL_ALIASES.get(_NON_ALNUM.sub("", str(value).lower()), ReviewChannel.OTHER)


def map_review_type(value: Optional[str]) -> ReviewType:
    if not value:
        return ReviewType.GUEST_REVIEW
    key = _NON_ALNUM.sub("", str(value).lower())
    return REVIEW_TYPE_ALIASES.get(key, ReviewType.GUEST_REVIEW)


def category_key(value: Optional[str]) -> str:
    return _NON_ALNUM.sub("_", str(value or "").strip().lower()).strip("_")


def normalize_category_name(value: Optional[str]) -> Optional[ReviewCategoryName]:
    if not value:
        return None
    return CATEGORY_ALIASES.get(category_key(value))


def normalize_language(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    code = str(value).strip().lower()[:2]
    return code if len(code) == 2 and code.isalpha() else None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 (``Z`` or offset allowed) to naive UTC, None if unparsable"""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass
class _Draft:
    """Provider-independent intermediate form"""
    provider: str
    external_id: str
    listing_id: Optional[str]
    guest_name: Any
    comment: Any
    rating: Optional[float]
    categories: List[CategoryRating]
    channel: ReviewChannel
    review_type: ReviewType
    submitted_at: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    approved: Optional[bool] = None
    status: Optional[str] = None
    response: Optional[str] = None
    response_date: Optional[str] = None
    language: Optional[str] = None


@dataclass
class NormalizationBatch:
    reviews: List[NormalizedReview] = field(default_factory=list)
    processed: int = 0
    skipped: int = 0
    issues: List[NormalizationIssue] = field(default_factory=list)


class ReviewNormalizer:
    """Normalizes provider payloads into the canonical review schema"""

    def __init__(self, comment_max_length: int = 5000):
        self.comment_max_length = comment_max_length

    def normalize(self, raw: Dict[str, Any]) -> NormalizedReview:
        """
        Normalize one raw payload.

        Raises:
            NormalizationError: if the payload is malformed or carries no
                rating data at all
        """
        if not isinstance(raw, dict):
            raise NormalizationError("payload is not an object")

        try:
            payload = parse_review_payload(raw)
        except PydanticValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(part) for part in first.get("loc", ()))
            raise NormalizationError(
                f"invalid payload ({loc}: {first['msg']})",
                external_id=_raw_id(raw),
            )

        if isinstance(payload, HostawayReviewPayload):
            draft = self._from_hostaway(payload)
        elif isinstance(payload, GoogleReviewPayload):
            draft = self._from_google(payload)
        else:
            draft = self._from_generic(payload)

        return self._finalize(draft, raw)

    def normalize_batch(self, raws: Iterable[Dict[str, Any]]) -> NormalizationBatch:
        """Normalize many payloads; bad records are skipped and reported"""
        batch = NormalizationBatch()
        for index, raw in enumerate(raws):
            batch.processed += 1
            try:
                batch.reviews.append(self.normalize(raw))
            except NormalizationError as e:
                batch.skipped += 1
                batch.issues.append(
                    NormalizationIssue(index=index, external_id=e.external_id, reason=e.reason)
                )
                logger.warning(f"Skipping review at index {index}: {e.detail}")
        return batch

    # Provider shapes

    def _from_hostaway(self, p: HostawayReviewPayload) -> _Draft:
        return _Draft(
            provider=p.source.lower(),
            external_id=p.id,
            listing_id=p.listing_id,
            guest_name=p.guest_name,
            comment=p.public_review,
            rating=p.rating,
            categories=p.review_categories,
            channel=map_channel(p.channel),
            review_type=map_review_type(p.type),
            submitted_at=p.submitted_at or p.created_at or p.updated_at,
            created_at=p.created_at,
            updated_at=p.updated_at,
            check_in=p.check_in,
            check_out=p.check_out,
            approved=p.approved,
            status=p.status,
            response=p.response,
            response_date=p.response_date,
            language=p.language,
        )

    def _from_google(self, p: GoogleReviewPayload) -> _Draft:
        reply = p.review_reply
        return _Draft(
            provider=p.source.lower(),
            external_id=p.review_id,
            listing_id=p.listing_id,
            guest_name=p.reviewer.display_name if p.reviewer else None,
            comment=p.comment,
            rating=_google_stars(p.star_rating, p.review_id),
            categories=[],
            channel=ReviewChannel.GOOGLE,
            review_type=ReviewType.GUEST_REVIEW,
            submitted_at=p.create_time or p.update_time,
            created_at=p.create_time,
            updated_at=p.update_time,
            approved=p.approved,
            response=reply.comment if reply else None,
            response_date=reply.update_time if reply else None,
            language=p.language_code,
        )

    def _from_generic(self, p: GenericReviewPayload) -> _Draft:
        provider = (p.source or GENERIC).lower()
        return _Draft(
            provider=provider,
            external_id=p.id,
            listing_id=p.listing_id,
            guest_name=p.guest_name,
            comment=p.comment,
            rating=p.rating,
            categories=p.category_list(),
            channel=map_channel(p.channel or p.source),
            review_type=map_review_type(p.review_type),
            submitted_at=p.submitted_at or p.created_at or p.updated_at,
            created_at=p.created_at,
            updated_at=p.updated_at,
            approved=p.approved,
            response=p.response,
            response_date=p.response_date,
            language=p.language,
        )

    # Shared derivation

    def _finalize(self, draft: _Draft, raw: Dict[str, Any]) -> NormalizedReview:
        five_point = draft.channel in FIVE_POINT_CHANNELS
        scored = self._score_categories(draft.categories, five_point)
        categories = {key: value for key, value in scored.items() if key in STABLE_CATEGORIES}
        rating = self._derive_rating(draft, list(scored.values()), five_point)

        submitted_at = parse_datetime(draft.submitted_at)
        if submitted_at is None:
            raise NormalizationError(
                "missing or invalid submission date", external_id=draft.external_id
            )
        created_at = parse_datetime(draft.created_at) or submitted_at
        updated_at = parse_datetime(draft.updated_at) or created_at

        response = sanitize_comment(draft.response, self.comment_max_length) or None

        internal_id = (
            draft.external_id if draft.provider == HOSTAWAY
            else f"{draft.provider}:{draft.external_id}"
        )

        return NormalizedReview(
            id=internal_id,
            external_id=draft.external_id,
            listing_id=draft.listing_id,
            guest_name=sanitize_guest_name(draft.guest_name),
            comment=sanitize_comment(draft.comment, self.comment_max_length),
            language=normalize_language(draft.language),
            rating=rating,
            categories=categories,
            review_type=draft.review_type,
            channel=draft.channel,
            created_at=created_at,
            updated_at=updated_at,
            submitted_at=submitted_at,
            check_in=parse_datetime(draft.check_in),
            check_out=parse_datetime(draft.check_out),
            approval_status=_approval_status(draft.approved, draft.status),
            response=response,
            response_date=parse_datetime(draft.response_date) if response else None,
            source=draft.provider,
            raw_json=copy.deepcopy(raw),
        )

    def _score_categories(
        self, categories: List[CategoryRating], five_point: bool
    ) -> Dict[str, float]:
        """
        Every usable category rating on the 0-10 scale, keyed by its
        canonical name (or its cleaned raw name when not a known category).
        """
        result: Dict[str, float] = {}
        for item in categories:
            if item.rating is None or not math.isfinite(item.rating):
                continue
            name = normalize_category_name(item.category)
            key = name.value if name is not None else category_key(item.category)
            if not key:
                continue
            value = item.rating
            if item.max_rating and item.max_rating > 0 and item.max_rating != RATING_MAX:
                value = value / item.max_rating * RATING_MAX
            elif five_point:
                value = value * 2
            # First occurrence wins for duplicated categories
            result.setdefault(key, round_rating(clamp_rating(value)))
        return result

    def _derive_rating(
        self, draft: _Draft, category_values: List[float], five_point: bool
    ) -> float:
        if draft.rating is not None and math.isfinite(draft.rating):
            value = draft.rating * 2 if five_point else draft.rating
            return round_rating(clamp_rating(value))
        if category_values:
            # fsum is exact, so the mean does not depend on category order
            mean = math.fsum(category_values) / len(category_values)
            return round_rating(mean)
        raise NormalizationError("no rating data", external_id=draft.external_id)


def _raw_id(raw: Dict[str, Any]) -> Optional[str]:
    value = raw.get("id") or raw.get("reviewId")
    return str(value) if value is not None else None


def _google_stars(value: Optional[str], review_id: str) -> Optional[float]:
    if value is None:
        return None
    if value.upper() in GOOGLE_STAR_RATINGS:
        return float(GOOGLE_STAR_RATINGS[value.upper()])
    try:
        return float(value)
    except ValueError:
        raise NormalizationError(f"invalid star rating {value!r}", external_id=review_id)


def _approval_status(approved: Optional[bool], status: Optional[str]) -> ApprovalStatus:
    if approved is not None:
        return ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
    status = (status or "").lower()
    if status in APPROVED_STATUSES:
        return ApprovalStatus.APPROVED
    if status in REJECTED_STATUSES:
        return ApprovalStatus.REJECTED
    return ApprovalStatus.PENDING


review_normalizer = ReviewNormalizer()
