from .review_models import (
    Listing,
    Review,
    ReviewCategory,
    ReviewAuditLog,
    ReviewType,
    ReviewChannel,
    ReviewCategoryName,
    ApprovalStatus,
    AuditAction,
)

__all__ = [
    "Listing",
    "Review",
    "ReviewCategory",
    "ReviewAuditLog",
    "ReviewType",
    "ReviewChannel",
    "ReviewCategoryName",
    "ApprovalStatus",
    "AuditAction",
]
