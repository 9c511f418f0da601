from .provider_schemas import (
    CategoryRating,
    HostawayReviewPayload,
    GoogleReviewPayload,
    GenericReviewPayload,
    ReviewPayload,
    parse_review_payload,
    provider_tag,
)
from .review_schemas import (
    NormalizedReview,
    ReviewFilters,
    ReviewSort,
    SortField,
    SortOrder,
    PageRequest,
    ReviewQuery,
    PageResult,
    ReviewFeedResult,
    NormalizationIssue,
    ApprovalRequest,
    BulkApprovalRequest,
    BulkApprovalError,
    BulkApprovalResult,
    AuditEntryResponse,
    ApprovalHistoryResponse,
    ReviewStats,
    MonthlyTrend,
    CacheInvalidationRequest,
    ImportSummary,
    parse_model,
)
