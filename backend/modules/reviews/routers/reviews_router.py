# backend/modules/reviews/routers/reviews_router.py

from fastapi import APIRouter, Depends, Path, Body
from typing import Optional
import logging

from core.deps import get_actor_id
from core.response_models import StandardResponse
from modules.reviews.schemas.review_schemas import (
    ApprovalRequest,
    BulkApprovalRequest,
    ReviewFilters,
    ReviewQuery,
)
from modules.reviews.services.approval_service import ApprovalService
from modules.reviews.services.review_service import ReviewService
from .dependencies import (
    get_approval_service,
    get_review_service,
    pagination_meta,
    review_filters,
    review_query,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reviews", tags=["Reviews"])


@router.get("")
async def list_reviews(
    query: ReviewQuery = Depends(review_query),
    service: ReviewService = Depends(get_review_service),
):
    """List stored reviews with filtering, sorting and pagination"""
    result = service.list_reviews(query)
    return StandardResponse.success(
        data={"reviews": result.reviews},
        meta={"source": "database"},
        pagination=pagination_meta(result),
    )


@router.get("/stats")
async def get_review_stats(
    filters: ReviewFilters = Depends(review_filters),
    service: ReviewService = Depends(get_review_service),
):
    """Totals, rating and channel distribution, and a 12-month trend"""
    return StandardResponse.success(data=service.get_stats(filters))


@router.post("/bulk-approve")
async def bulk_approve_reviews(
    request: BulkApprovalRequest,
    service: ApprovalService = Depends(get_approval_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Approve or reject up to 100 reviews; failures are reported per review"""
    result = service.bulk_set_approval(
        request.review_ids, request.approved, response=request.response, actor_id=actor_id
    )
    return StandardResponse.success(
        data=result,
        message=f"{result.updated} updated, {result.failed} failed",
    )


@router.get("/{review_id}")
async def get_review(
    review_id: int = Path(..., description="Review ID"),
    service: ReviewService = Depends(get_review_service),
):
    return StandardResponse.success(data=service.get_review(review_id))


@router.get("/{review_id}/approval-history")
async def get_approval_history(
    review_id: int = Path(..., description="Review ID"),
    service: ReviewService = Depends(get_review_service),
):
    """Audit trail of approval decisions, newest first"""
    return StandardResponse.success(data=service.get_approval_history(review_id))


@router.patch("/{review_id}/approve")
async def set_review_approval(
    review_id: int = Path(..., description="Review ID"),
    request: ApprovalRequest = Body(...),
    service: ApprovalService = Depends(get_approval_service),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    review = service.set_approval(
        review_id, request.approved, response=request.response, actor_id=actor_id
    )
    return StandardResponse.success(
        data=review,
        message=f"Review {review_id} {review.approval_status.value}",
    )
