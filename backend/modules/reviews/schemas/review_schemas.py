# backend/modules/reviews/schemas/review_schemas.py

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from typing import Optional, List, Dict, Any, Type, TypeVar
from datetime import datetime, timezone
from enum import Enum

from core.exceptions import ValidationError
from modules.reviews.models.review_models import (
    ApprovalStatus,
    AuditAction,
    ReviewChannel,
    ReviewType,
)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(model_cls: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate ``data`` into ``model_cls``, raising the API ValidationError"""
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        messages = []
        for err in e.errors():
            field = ".".join(str(part) for part in err.get("loc", ()))
            messages.append(f"{field}: {err['msg']}" if field else err["msg"])
        raise ValidationError("; ".join(messages))


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# Canonical review

class NormalizedReview(BaseModel):
    """Canonical review shape produced by the normalizer and the store"""

    id: str
    external_id: str
    listing_id: Optional[str] = None

    guest_name: str
    comment: str = ""
    language: Optional[str] = None

    rating: Optional[float] = Field(None, ge=0, le=10)
    categories: Dict[str, float] = Field(default_factory=dict)

    review_type: ReviewType = ReviewType.GUEST_REVIEW
    channel: ReviewChannel = ReviewChannel.OTHER

    created_at: datetime
    updated_at: datetime
    submitted_at: datetime
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None

    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    response: Optional[str] = None
    response_date: Optional[datetime] = None

    source: str
    raw_json: Optional[Dict[str, Any]] = None

    @property
    def approved(self) -> Optional[bool]:
        if self.approval_status == ApprovalStatus.PENDING:
            return None
        return self.approval_status == ApprovalStatus.APPROVED

    @property
    def has_response(self) -> bool:
        return bool(self.response and self.response.strip())


# Query descriptors

class SortField(str, Enum):
    RATING = "rating"
    SUBMITTED_AT = "submittedAt"
    CREATED_AT = "createdAt"
    GUEST_NAME = "guestName"
    CHANNEL = "channel"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ReviewFilters(BaseModel):
    """Conjunctive filter predicates over normalized reviews"""

    listing_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    channel: Optional[ReviewChannel] = None
    approval_status: Optional[ApprovalStatus] = None
    review_type: Optional[ReviewType] = None
    guest_name: Optional[str] = Field(None, max_length=255)
    min_rating: Optional[float] = Field(None, ge=0, le=10)
    max_rating: Optional[float] = Field(None, ge=0, le=10)
    has_response: Optional[bool] = None
    search: Optional[str] = Field(None, max_length=255)

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    @field_validator("listing_id", "guest_name", "search", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v if v is None else str(v)

    @model_validator(mode="after")
    def check_ranges(self):
        if (
            self.min_rating is not None
            and self.max_rating is not None
            and self.min_rating > self.max_rating
        ):
            raise ValueError("min_rating cannot be greater than max_rating")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from cannot be after date_to")
        return self


class ReviewSort(BaseModel):
    sort_by: SortField = SortField.SUBMITTED_AT
    sort_order: SortOrder = SortOrder.DESC


class PageRequest(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class ReviewQuery(BaseModel):
    """Complete filter/sort/page descriptor for one listing request"""

    filters: ReviewFilters = Field(default_factory=ReviewFilters)
    sort: ReviewSort = Field(default_factory=ReviewSort)
    page: PageRequest = Field(default_factory=PageRequest)

    def cache_params(self) -> Dict[str, Any]:
        """Request parameters in the form used for cache keys"""
        f = self.filters
        return {
            "listingId": f.listing_id,
            "dateFrom": f.date_from,
            "dateTo": f.date_to,
            "channel": f.channel,
            "status": f.approval_status,
            "reviewType": f.review_type,
            "guestName": f.guest_name,
            "minRating": f.min_rating,
            "maxRating": f.max_rating,
            "hasResponse": f.has_response,
            "search": f.search,
            "sortBy": self.sort.sort_by,
            "sortOrder": self.sort.sort_order,
            "page": self.page.page,
            "limit": self.page.limit,
        }


class PageResult(BaseModel):
    reviews: List[NormalizedReview]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class NormalizationIssue(BaseModel):
    index: int
    external_id: Optional[str] = None
    reason: str


class ReviewFeedResult(BaseModel):
    """Page of normalized upstream reviews plus provenance"""

    result: PageResult
    source: str
    skipped: int = 0
    issues: List[NormalizationIssue] = Field(default_factory=list)
    cache_status: Optional[str] = None


# Approval workflow

class ApprovalRequest(BaseModel):
    approved: bool
    response: Optional[str] = None


class BulkApprovalRequest(BaseModel):
    review_ids: List[int] = Field(..., min_length=1)
    approved: bool
    response: Optional[str] = None


class BulkApprovalError(BaseModel):
    review_id: int
    error: str
    error_code: Optional[str] = None


class BulkApprovalResult(BaseModel):
    success: bool
    updated: int
    failed: int
    errors: List[BulkApprovalError] = Field(default_factory=list)


class AuditEntryResponse(BaseModel):
    id: int
    review_id: int
    action: AuditAction
    user_id: Optional[str] = None
    previous_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="audit_metadata")
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ApprovalHistoryResponse(BaseModel):
    review_id: int
    history: List[AuditEntryResponse]


# Statistics

class MonthlyTrend(BaseModel):
    month: str  # YYYY-MM
    count: int
    average_rating: Optional[float] = None


class ReviewStats(BaseModel):
    total: int
    approved: int
    pending: int
    rejected: int
    average_rating: Optional[float] = None
    rating_distribution: Dict[str, int]
    channel_distribution: Dict[str, int]
    monthly_trends: List[MonthlyTrend]


# Cache administration and import

class CacheInvalidationRequest(BaseModel):
    key: Optional[str] = None
    listing_id: Optional[str] = Field(None, alias="listingId")
    pattern: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    @model_validator(mode="after")
    def require_selector(self):
        if not (self.key or self.listing_id or self.pattern):
            raise ValueError("One of key, listingId or pattern is required")
        return self


class ImportSummary(BaseModel):
    source: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    listings_created: int = 0
    issues: List[NormalizationIssue] = Field(default_factory=list)


# Listings

class ListingSortField(str, Enum):
    NAME = "name"
    CREATED_AT = "createdAt"
    REVIEW_COUNT = "reviewCount"
    AVERAGE_RATING = "averageRating"


class ListingQuery(BaseModel):
    search: Optional[str] = Field(None, max_length=255)
    name: Optional[str] = Field(None, max_length=255)
    slug: Optional[str] = Field(None, max_length=255)
    include_stats: bool = False
    sort_by: ListingSortField = ListingSortField.NAME
    sort_order: SortOrder = SortOrder.ASC
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("search", "name", "slug", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v


class ListingStatsFilters(BaseModel):
    """HAVING-style predicates over each listing's review aggregates"""

    min_reviews: int = Field(0, ge=0)
    min_rating: Optional[float] = Field(None, ge=0, le=10)
    max_rating: Optional[float] = Field(None, ge=0, le=10)
    channels: List[ReviewChannel] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_ranges(self):
        if (
            self.min_rating is not None
            and self.max_rating is not None
            and self.min_rating > self.max_rating
        ):
            raise ValueError("min_rating cannot be greater than max_rating")
        return self


class ListingStats(BaseModel):
    total_reviews: int
    approved_reviews: int
    average_rating: Optional[float] = None
    rating_distribution: Dict[str, int]
    channel_distribution: Dict[str, int]
    last_review_date: Optional[datetime] = None


class ListingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hostaway_listing_id: str
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime
    stats: Optional[ListingStats] = None


class ListingPage(BaseModel):
    listings: List[ListingResponse]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


# Google imports

class GooglePlacesImportRequest(BaseModel):
    place_id: str = Field(alias="placeId", min_length=10, max_length=200)
    listing_id: str = Field(alias="listingId", min_length=1)
    auto_approve: bool = Field(False, alias="autoApprove")

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class GoogleBusinessImportRequest(BaseModel):
    location_name: str = Field(
        alias="locationName", pattern=r"^accounts/[^/]+/locations/[^/]+$"
    )
    listing_id: str = Field(alias="listingId", min_length=1)
    auto_approve: bool = Field(False, alias="autoApprove")

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)
