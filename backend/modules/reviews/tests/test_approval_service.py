# backend/modules/reviews/tests/test_approval_service.py

import asyncio

import pytest

from core.exceptions import InternalError, InvalidStateError, NotFoundError, ValidationError
from modules.reviews.models.review_models import (
    ApprovalStatus,
    AuditAction,
    Review,
    ReviewAuditLog,
)
from modules.reviews.services.approval_service import ApprovalService


def _audit_rows(db_session, review_id=None):
    query = db_session.query(ReviewAuditLog)
    if review_id is not None:
        query = query.filter(ReviewAuditLog.review_id == review_id)
    return query.order_by(ReviewAuditLog.id).all()


class TestSetApproval:
    def test_approve_pending_review(self, approval_service, db_session, sample_reviews):
        review_id = sample_reviews[0].id

        result = approval_service.set_approval(review_id, True, actor_id="manager-1")

        assert result.approval_status == ApprovalStatus.APPROVED
        assert db_session.get(Review, review_id).approved is True

        audits = _audit_rows(db_session, review_id)
        assert len(audits) == 1
        audit = audits[0]
        assert audit.action == AuditAction.APPROVED
        assert audit.user_id == "manager-1"
        assert audit.previous_value == {"approved": None, "status": "pending", "response": None}
        assert audit.new_value["status"] == "approved"
        assert audit.audit_metadata["origin"] == "single"

    def test_reject_approved_review_with_response(self, approval_service, db_session, sample_reviews):
        review_id = sample_reviews[1].id

        result = approval_service.set_approval(review_id, False, response="  We are sorry  ")

        assert result.approval_status == ApprovalStatus.REJECTED
        assert result.response == "We are sorry"
        assert result.response_date is not None
        audit = _audit_rows(db_session, review_id)[0]
        assert audit.action == AuditAction.UNAPPROVED
        assert audit.previous_value["status"] == "approved"

    def test_same_state_without_change_is_invalid(self, approval_service, db_session, sample_reviews):
        review_id = sample_reviews[1].id

        with pytest.raises(InvalidStateError) as exc_info:
            approval_service.set_approval(review_id, True)

        assert exc_info.value.error_code == "INVALID_STATE"
        assert isinstance(exc_info.value, ValidationError)
        assert _audit_rows(db_session, review_id) == []

    def test_same_state_with_new_response_is_allowed(self, approval_service, sample_reviews):
        result = approval_service.set_approval(sample_reviews[1].id, True, response="Updated reply")
        assert result.response == "Updated reply"

    def test_unknown_review(self, approval_service, sample_reviews):
        with pytest.raises(NotFoundError):
            approval_service.set_approval(9999, True)

    def test_response_too_long(self, approval_service, db_session, sample_reviews):
        with pytest.raises(ValidationError):
            approval_service.set_approval(sample_reviews[0].id, True, response="x" * 5001)
        assert _audit_rows(db_session) == []

    def test_audit_ids_increase(self, approval_service, db_session, sample_reviews):
        review_id = sample_reviews[0].id
        approval_service.set_approval(review_id, True)
        approval_service.set_approval(review_id, False)
        approval_service.set_approval(review_id, True)

        ids = [row.id for row in _audit_rows(db_session, review_id)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3

    def test_invalidates_cached_pages_for_listing(self, approval_service, review_cache, sample_reviews):
        async def fill():
            for listing_id in ("123", "456"):
                key = review_cache.make_key({"listingId": listing_id}, namespace="hostaway")

                async def fetch():
                    return {"listing": listing_id}

                await review_cache.get_or_fetch(key, fetch)

        asyncio.run(fill())

        approval_service.set_approval(sample_reviews[0].id, True)

        remaining = review_cache.backend.keys("reviews:")
        assert remaining == ["reviews:hostaway:listingId=456"]

    def test_works_without_cache(self, db_session, sample_reviews):
        service = ApprovalService(db_session)
        assert service.set_approval(sample_reviews[0].id, False).approval_status == ApprovalStatus.REJECTED


class TestBulkApproval:
    def test_partial_failure(self, approval_service, db_session, sample_reviews):
        ids = [sample_reviews[0].id, 9999, sample_reviews[2].id]

        result = approval_service.bulk_set_approval(ids, True, actor_id="manager-2")

        assert result.updated == 2
        assert result.failed == 1
        assert result.success is False
        assert result.errors[0].review_id == 9999
        assert result.errors[0].error_code == "NOT_FOUND"

        audits = _audit_rows(db_session)
        assert sorted(a.review_id for a in audits) == sorted([sample_reviews[0].id, sample_reviews[2].id])
        assert all(a.action == AuditAction.BULK_APPROVED for a in audits)
        assert all(a.audit_metadata["origin"] == "bulk" for a in audits)

    def test_already_in_state_is_reported_per_item(self, approval_service, sample_reviews):
        ids = [sample_reviews[1].id, sample_reviews[0].id]

        result = approval_service.bulk_set_approval(ids, True)

        assert result.updated == 1
        assert result.errors[0].review_id == sample_reviews[1].id
        assert result.errors[0].error_code == "INVALID_STATE"

    def test_duplicate_ids_processed_once(self, approval_service, db_session, sample_reviews):
        review_id = sample_reviews[0].id

        result = approval_service.bulk_set_approval([review_id, review_id, review_id], False)

        assert result.success is True
        assert result.updated == 1
        assert len(_audit_rows(db_session, review_id)) == 1
        assert _audit_rows(db_session, review_id)[0].action == AuditAction.BULK_UNAPPROVED

    def test_empty_list_rejected(self, approval_service):
        with pytest.raises(ValidationError):
            approval_service.bulk_set_approval([], True)

    def test_oversized_batch_rejected_before_any_change(self, approval_service, db_session, sample_reviews):
        ids = [sample_reviews[0].id] + list(range(1000, 1100))

        with pytest.raises(ValidationError, match="100"):
            approval_service.bulk_set_approval(ids, True)

        assert _audit_rows(db_session) == []
        assert db_session.get(Review, sample_reviews[0].id).approved is None


class TestAuditLogImmutability:
    def test_audit_rows_cannot_be_updated(self, approval_service, db_session, sample_reviews):
        approval_service.set_approval(sample_reviews[0].id, True)
        audit = _audit_rows(db_session)[0]

        audit.user_id = "someone-else"
        with pytest.raises(InternalError):
            db_session.commit()
        db_session.rollback()

    def test_audit_rows_cannot_be_deleted(self, approval_service, db_session, sample_reviews):
        approval_service.set_approval(sample_reviews[0].id, True)
        audit = _audit_rows(db_session)[0]

        db_session.delete(audit)
        with pytest.raises(InternalError):
            db_session.commit()
        db_session.rollback()

    def test_history_survives_later_decisions(self, approval_service, review_service, sample_reviews):
        review_id = sample_reviews[0].id
        approval_service.set_approval(review_id, True)
        approval_service.set_approval(review_id, False, response="Not suitable")

        history = review_service.get_approval_history(review_id).history

        assert [entry.action for entry in history] == [AuditAction.UNAPPROVED, AuditAction.APPROVED]
        assert history[0].previous_value["status"] == "approved"
        assert history[1].new_value["status"] == "approved"
