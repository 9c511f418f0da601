# backend/modules/reviews/models/review_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Boolean,
    DateTime,
    JSON,
    ForeignKey,
    Index,
    UniqueConstraint,
    Enum,
    event,
)
from sqlalchemy.orm import relationship
import enum

from core.database import Base
from core.exceptions import InternalError
from core.mixins import TimestampMixin, utcnow


class ReviewType(str, enum.Enum):
    """Who wrote the review"""
    GUEST_REVIEW = "guest_review"
    HOST_REVIEW = "host_review"
    AUTO_REVIEW = "auto_review"
    SYSTEM_REVIEW = "system_review"


class ReviewChannel(str, enum.Enum):
    """Booking channel the review was collected from"""
    AIRBNB = "airbnb"
    BOOKING_COM = "booking.com"
    VRBO = "vrbo"
    GOOGLE = "google"
    DIRECT = "direct"
    OTHER = "other"


class ApprovalStatus(str, enum.Enum):
    """Manager approval state; pending until first decision"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewCategoryName(str, enum.Enum):
    CLEANLINESS = "cleanliness"
    COMMUNICATION = "communication"
    CHECKIN = "checkin"
    ACCURACY = "accuracy"
    LOCATION = "location"
    VALUE = "value"


class AuditAction(str, enum.Enum):
    APPROVED = "APPROVED"
    UNAPPROVED = "UNAPPROVED"
    BULK_APPROVED = "BULK_APPROVED"
    BULK_UNAPPROVED = "BULK_UNAPPROVED"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Listing(Base, TimestampMixin):
    """Property listing that reviews belong to"""
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    hostaway_listing_id = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)

    reviews = relationship("Review", back_populates="listing")


class Review(Base, TimestampMixin):
    """Normalized guest review"""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    hostaway_review_id = Column(String(255), unique=True, nullable=False, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)

    review_type = Column(
        Enum(ReviewType, values_callable=_enum_values, native_enum=False),
        nullable=False,
        default=ReviewType.GUEST_REVIEW,
    )
    channel = Column(
        Enum(ReviewChannel, values_callable=_enum_values, native_enum=False),
        nullable=False,
        index=True,
    )
    rating = Column(Float, nullable=True, index=True)  # 0.0 to 10.0
    public_review = Column(Text, nullable=False, default="")
    guest_name = Column(String(255), nullable=False)
    language = Column(String(2), nullable=True)
    source = Column(String(32), nullable=False, default="hostaway")

    submitted_at = Column(DateTime, nullable=False, index=True)
    check_in_date = Column(DateTime, nullable=True)
    check_out_date = Column(DateTime, nullable=True)

    # None until a manager decides
    approved = Column(Boolean, nullable=True, index=True)
    response = Column(Text, nullable=True)
    response_date = Column(DateTime, nullable=True)

    raw_json = Column(JSON, nullable=True)

    listing = relationship("Listing", back_populates="reviews")
    categories = relationship(
        "ReviewCategory", back_populates="review", cascade="all, delete-orphan"
    )
    audit_logs = relationship("ReviewAuditLog", back_populates="review")

    __table_args__ = (
        Index("idx_review_listing_submitted", "listing_id", "submitted_at"),
        Index("idx_review_approved_channel", "approved", "channel"),
    )

    @property
    def approval_status(self) -> ApprovalStatus:
        if self.approved is None:
            return ApprovalStatus.PENDING
        return ApprovalStatus.APPROVED if self.approved else ApprovalStatus.REJECTED


class ReviewCategory(Base):
    """Per-category rating attached to a review"""
    __tablename__ = "review_categories"

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("reviews.id"), nullable=False, index=True)
    category = Column(
        Enum(ReviewCategoryName, values_callable=_enum_values, native_enum=False),
        nullable=False,
    )
    rating = Column(Float, nullable=False)

    review = relationship("Review", back_populates="categories")

    __table_args__ = (
        UniqueConstraint("review_id", "category", name="uq_review_category"),
    )


class ReviewAuditLog(Base):
    """Append-only record of approval decisions"""
    __tablename__ = "review_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(Integer, ForeignKey("reviews.id"), nullable=False, index=True)
    action = Column(
        Enum(AuditAction, values_callable=_enum_values, native_enum=False),
        nullable=False,
    )
    user_id = Column(String(128), nullable=True)
    previous_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    # "metadata" is reserved on declarative classes
    audit_metadata = Column("metadata", JSON, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    review = relationship("Review", back_populates="audit_logs")

    __table_args__ = (
        Index("idx_audit_review_timestamp", "review_id", "timestamp"),
    )


@event.listens_for(ReviewAuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise InternalError("Audit log entries are immutable")


@event.listens_for(ReviewAuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise InternalError("Audit log entries cannot be deleted")
