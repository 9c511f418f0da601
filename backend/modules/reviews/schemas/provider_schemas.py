# backend/modules/reviews/schemas/provider_schemas.py

"""
Upstream review payload shapes.

Payloads arrive in several provider formats. They are parsed into a tagged
union keyed on the ``source`` (or ``platform``) field; anything that is not
a known provider falls back to the generic shape.
"""

from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
)

HOSTAWAY = "hostaway"
GOOGLE = "google"
GENERIC = "generic"

KNOWN_PROVIDERS = (HOSTAWAY, GOOGLE)


class ProviderPayload(BaseModel):
    """Common config: unknown fields are kept so nothing is lost"""

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)


class CategoryRating(ProviderPayload):
    category: Optional[str] = Field(None, validation_alias=AliasChoices("category", "name"))
    rating: Optional[float] = None
    max_rating: Optional[float] = Field(
        None, validation_alias=AliasChoices("max_rating", "maxRating")
    )


class HostawayReviewPayload(ProviderPayload):
    """Review object as returned by the Hostaway /reviews endpoint"""

    source: str = HOSTAWAY
    id: str
    listing_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("listingId", "listingMapId", "listing_id")
    )
    type: Optional[str] = Field(None, validation_alias=AliasChoices("type", "reviewType"))
    status: Optional[str] = None
    channel: Optional[str] = Field(
        None, validation_alias=AliasChoices("channel", "channelName")
    )
    rating: Optional[float] = None
    public_review: Optional[str] = Field(
        None, validation_alias=AliasChoices("publicReview", "comment")
    )
    review_categories: List[CategoryRating] = Field(
        default_factory=list,
        validation_alias=AliasChoices("reviewCategory", "reviewCategories"),
    )
    guest_name: Optional[str] = Field(None, validation_alias=AliasChoices("guestName"))
    submitted_at: Optional[str] = Field(None, validation_alias=AliasChoices("submittedAt"))
    created_at: Optional[str] = Field(None, validation_alias=AliasChoices("createdAt"))
    updated_at: Optional[str] = Field(None, validation_alias=AliasChoices("updatedAt"))
    check_in: Optional[str] = Field(
        None, validation_alias=AliasChoices("checkInDate", "arrivalDate")
    )
    check_out: Optional[str] = Field(
        None, validation_alias=AliasChoices("checkOutDate", "departureDate")
    )
    approved: Optional[bool] = None
    response: Optional[str] = None
    response_date: Optional[str] = Field(None, validation_alias=AliasChoices("responseDate"))
    language: Optional[str] = None


class GoogleReviewer(ProviderPayload):
    display_name: Optional[str] = Field(None, validation_alias=AliasChoices("displayName"))


class GoogleReviewReply(ProviderPayload):
    comment: Optional[str] = None
    update_time: Optional[str] = Field(None, validation_alias=AliasChoices("updateTime"))


class GoogleReviewPayload(ProviderPayload):
    """Google Business Profile review; ratings are 1-5 stars"""

    source: str = GOOGLE
    review_id: str = Field(validation_alias=AliasChoices("reviewId", "id"))
    listing_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("listingId", "listing_id")
    )
    reviewer: Optional[GoogleReviewer] = None
    star_rating: Optional[str] = Field(None, validation_alias=AliasChoices("starRating"))
    comment: Optional[str] = None
    create_time: Optional[str] = Field(None, validation_alias=AliasChoices("createTime"))
    update_time: Optional[str] = Field(None, validation_alias=AliasChoices("updateTime"))
    review_reply: Optional[GoogleReviewReply] = Field(
        None, validation_alias=AliasChoices("reviewReply")
    )
    language_code: Optional[str] = Field(None, validation_alias=AliasChoices("languageCode"))
    approved: Optional[bool] = None


class GenericReviewPayload(ProviderPayload):
    """Fallback for providers without a dedicated shape"""

    source: Optional[str] = Field(None, validation_alias=AliasChoices("source", "platform"))
    id: str = Field(validation_alias=AliasChoices("id", "reviewId", "review_id"))
    listing_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("listingId", "listing_id")
    )
    guest_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("guestName", "guest_name", "author", "reviewerName")
    )
    comment: Optional[str] = Field(
        None, validation_alias=AliasChoices("comment", "text", "publicReview")
    )
    rating: Optional[float] = None
    categories: Union[Dict[str, Optional[float]], List[CategoryRating]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("categories", "reviewCategory", "reviewCategories"),
    )
    channel: Optional[str] = None
    review_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("reviewType", "review_type", "type")
    )
    submitted_at: Optional[str] = Field(
        None, validation_alias=AliasChoices("submittedAt", "submitted_at", "date")
    )
    created_at: Optional[str] = Field(None, validation_alias=AliasChoices("createdAt", "created_at"))
    updated_at: Optional[str] = Field(None, validation_alias=AliasChoices("updatedAt", "updated_at"))
    approved: Optional[bool] = None
    response: Optional[str] = None
    response_date: Optional[str] = Field(None, validation_alias=AliasChoices("responseDate"))
    language: Optional[str] = None

    def category_list(self) -> List[CategoryRating]:
        if isinstance(self.categories, dict):
            return [CategoryRating(category=k, rating=v) for k, v in self.categories.items()]
        return list(self.categories)


def provider_tag(value: Any) -> str:
    """Pick the union member for a raw payload"""
    if isinstance(value, dict):
        source = value.get("source") or value.get("platform") or HOSTAWAY
    else:
        source = getattr(value, "source", None) or HOSTAWAY
    source = str(source).lower()
    return source if source in KNOWN_PROVIDERS else GENERIC


ReviewPayload = Annotated[
    Union[
        Annotated[HostawayReviewPayload, Tag(HOSTAWAY)],
        Annotated[GoogleReviewPayload, Tag(GOOGLE)],
        Annotated[GenericReviewPayload, Tag(GENERIC)],
    ],
    Discriminator(provider_tag),
]

review_payload_adapter = TypeAdapter(ReviewPayload)


def parse_review_payload(raw: Dict[str, Any]):
    """Parse a raw dict into its provider shape (raises pydantic.ValidationError)"""
    return review_payload_adapter.validate_python(raw)
