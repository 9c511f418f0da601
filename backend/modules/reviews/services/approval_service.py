# backend/modules/reviews/services/approval_service.py

"""
Manager approval workflow for stored reviews.

Every decision is written to the append-only audit log before the review
itself changes, and both land in the same transaction. Cached feed pages
for the review's listing are dropped once the decision is committed.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional, List, Dict, Any, Set
import logging

from core.cache import ReviewCache
from core.config import settings
from core.exceptions import APIError, InternalError, InvalidStateError, NotFoundError, ValidationError
from core.mixins import utcnow
from modules.reviews.models.review_models import AuditAction, Review, ReviewAuditLog
from modules.reviews.schemas.review_schemas import (
    BulkApprovalError,
    BulkApprovalResult,
    NormalizedReview,
)
from .review_service import review_to_normalized

logger = logging.getLogger(__name__)


class ApprovalService:
    def __init__(
        self,
        db: Session,
        cache: Optional[ReviewCache] = None,
        max_bulk_size: int = settings.review_max_bulk_size,
        response_max_length: int = settings.review_response_max_length,
    ):
        self.db = db
        self.cache = cache
        self.max_bulk_size = max_bulk_size
        self.response_max_length = response_max_length

    def set_approval(
        self,
        review_id: int,
        approved: bool,
        response: Optional[str] = None,
        actor_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> NormalizedReview:
        """
        Approve or reject a single review.

        Raises:
            ValidationError: response too long
            NotFoundError: unknown review id
            InvalidStateError: review already in the requested state and the
                response is unchanged
        """
        self._validate_response(response)
        review = self._apply_decision(
            review_id,
            approved,
            response,
            actor_id,
            action=AuditAction.APPROVED if approved else AuditAction.UNAPPROVED,
            metadata={"origin": "single", **(metadata or {})},
        )
        self._invalidate_listings({_listing_key(review)})
        return review_to_normalized(review)

    def bulk_set_approval(
        self,
        review_ids: List[int],
        approved: bool,
        response: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> BulkApprovalResult:
        """
        Apply one decision to many reviews.

        Each review is committed on its own; a failure is reported in the
        result and does not undo the others. The whole request is refused
        before any change if the id list is empty or too large.
        """
        if not review_ids:
            raise ValidationError("review_ids must not be empty")
        if len(review_ids) > self.max_bulk_size:
            raise ValidationError(
                f"Cannot process more than {self.max_bulk_size} reviews at once "
                f"({len(review_ids)} given)"
            )
        self._validate_response(response)

        action = AuditAction.BULK_APPROVED if approved else AuditAction.BULK_UNAPPROVED
        unique_ids = list(dict.fromkeys(review_ids))
        errors: List[BulkApprovalError] = []
        listings: Set[str] = set()
        updated = 0

        for review_id in unique_ids:
            try:
                review = self._apply_decision(
                    review_id,
                    approved,
                    response,
                    actor_id,
                    action=action,
                    metadata={"origin": "bulk", "batch_size": len(unique_ids)},
                )
            except APIError as e:
                errors.append(
                    BulkApprovalError(review_id=review_id, error=str(e.detail), error_code=e.error_code)
                )
                continue
            updated += 1
            listings.add(_listing_key(review))

        self._invalidate_listings(listings)
        logger.info(
            f"Bulk {'approval' if approved else 'rejection'}: "
            f"{updated} updated, {len(errors)} failed"
        )
        return BulkApprovalResult(
            success=not errors,
            updated=updated,
            failed=len(errors),
            errors=errors,
        )

    def _apply_decision(
        self,
        review_id: int,
        approved: bool,
        response: Optional[str],
        actor_id: Optional[str],
        action: AuditAction,
        metadata: Dict[str, Any],
    ) -> Review:
        review = self.db.query(Review).filter(Review.id == review_id).first()
        if not review:
            raise NotFoundError(f"Review {review_id} not found")

        if review.approved is approved and (response is None or response == review.response):
            raise InvalidStateError(
                f"Review {review_id} is already {review.approval_status.value}"
            )

        previous = _snapshot(review)
        new_response = review.response if response is None else (response.strip() or None)
        new_value = {
            "approved": approved,
            "status": "approved" if approved else "rejected",
            "response": new_response,
        }

        try:
            self.db.add(
                ReviewAuditLog(
                    review_id=review.id,
                    action=action,
                    user_id=actor_id,
                    previous_value=previous,
                    new_value=new_value,
                    audit_metadata=metadata,
                )
            )
            self.db.flush()

            review.approved = approved
            if response is not None:
                review.response = new_response
                review.response_date = utcnow() if new_response else None
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record approval for review {review_id}: {e}")
            raise InternalError(f"Failed to update review {review_id}")

        self.db.refresh(review)
        logger.info(
            f"Review {review_id} {previous['status']} -> {new_value['status']} "
            f"by {actor_id or 'anonymous'}"
        )
        return review

    def _validate_response(self, response: Optional[str]) -> None:
        if response is not None and len(response) > self.response_max_length:
            raise ValidationError(
                f"Response exceeds {self.response_max_length} characters"
            )

    def _invalidate_listings(self, listing_ids: Set[str]) -> None:
        if self.cache is None:
            return
        for listing_id in listing_ids:
            if listing_id:
                self.cache.invalidate_listing(listing_id)


def _snapshot(review: Review) -> Dict[str, Any]:
    return {
        "approved": review.approved,
        "status": review.approval_status.value,
        "response": review.response,
    }


def _listing_key(review: Review) -> Optional[str]:
    return review.listing.hostaway_listing_id if review.listing else None
