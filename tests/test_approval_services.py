import uuid
from unittest.mock import patch

from app.models.assessment import ApprovalStatus, IssueStatus, OrganisationSettings
from app.services import approval
from app.services.capabilities import RoleCapabilities
from app.services.event import EventType


class TestApprovalSettings:
    def test_not_required_without_settings(self, db_session, organisation):
        assert approval.is_approval_required(db_session, organisation.id) is False
        assert (
            approval.default_approval_status(db_session, organisation.id)
            == ApprovalStatus.not_required
        )

    def test_required_when_enabled(self, db_session, approval_organisation):
        assert approval.is_approval_required(db_session, approval_organisation.id)
        assert (
            approval.default_approval_status(db_session, approval_organisation.id)
            == ApprovalStatus.pending
        )

    def test_disabled_setting(self, db_session, organisation):
        db_session.add(
            OrganisationSettings(organisation_id=organisation.id, approval_required=False)
        )
        db_session.commit()
        assert approval.is_approval_required(db_session, organisation.id) is False


class TestCanIssue:
    def test_pending_blocks_issue_when_required(
        self, db_session, make_document, approval_organisation
    ):
        doc = make_document(org=approval_organisation)
        check = approval.can_issue(db_session, doc.id, approval_organisation.id)
        assert check.can_issue is False
        assert "Current approval status: pending" in check.reason

    def test_approved_may_issue(self, db_session, make_document, approval_organisation):
        doc = make_document(org=approval_organisation)
        doc.approval_status = ApprovalStatus.approved
        db_session.commit()
        check = approval.can_issue(db_session, doc.id, approval_organisation.id)
        assert check.can_issue is True
        assert check.reason is None

    def test_not_required_may_issue(self, db_session, make_document, organisation):
        doc = make_document()
        check = approval.can_issue(db_session, doc.id, organisation.id)
        assert check.can_issue is True

    def test_rejected_blocks_even_when_not_required(
        self, db_session, make_document, organisation
    ):
        doc = make_document()
        doc.approval_status = ApprovalStatus.rejected
        db_session.commit()
        check = approval.can_issue(db_session, doc.id, organisation.id)
        assert check.can_issue is False
        assert check.reason == approval.REJECTED_REASON

    def test_not_found(self, db_session, organisation):
        check = approval.can_issue(db_session, uuid.uuid4(), organisation.id)
        assert check.can_issue is False
        assert check.reason == "Document not found"

    def test_issued_document(self, db_session, make_document, organisation):
        doc = make_document()
        doc.issue_status = IssueStatus.issued
        db_session.commit()
        check = approval.can_issue(db_session, doc.id, organisation.id)
        assert check.reason == "Only draft documents can be issued"

    def test_storage_failure_is_reported_not_raised(
        self, db_session, make_document, organisation
    ):
        doc = make_document()
        with patch(
            "app.services.approval.get_scoped_document",
            side_effect=RuntimeError("connection reset"),
        ):
            check = approval.can_issue(db_session, doc.id, organisation.id)
        assert check.can_issue is False
        assert check.reason == "Failed to check document status"


class TestTransitions:
    def test_approve_pending(
        self, db_session, make_document, approval_organisation, person
    ):
        doc = make_document(org=approval_organisation)
        with patch("app.services.approval.publish_event") as mock_publish:
            result = approval.approve(
                db_session, doc.id, approval_organisation.id, person.id, "Looks good"
            )
        assert result.success is True
        db_session.refresh(doc)
        assert doc.approval_status == ApprovalStatus.approved
        assert doc.approved_by == person.id
        assert doc.approval_date is not None
        assert doc.approval_notes == "Looks good"
        assert mock_publish.call_args[0][0] == EventType.approval_approved

    def test_approve_requires_pending(self, db_session, make_document, organisation, person):
        doc = make_document()
        result = approval.approve(db_session, doc.id, organisation.id, person.id)
        assert result.success is False
        assert result.error == "Cannot move approval from not_required to approved"

    def test_approve_denied_by_capabilities(
        self, db_session, make_document, approval_organisation, person
    ):
        doc = make_document(org=approval_organisation)
        caps = RoleCapabilities({person.id: "assessor"})
        result = approval.approve(
            db_session, doc.id, approval_organisation.id, person.id, capabilities=caps
        )
        assert result.success is False
        assert result.error == "You are not allowed to approve documents"
        db_session.refresh(doc)
        assert doc.approval_status == ApprovalStatus.pending

    def test_reject_requires_reason(
        self, db_session, make_document, approval_organisation, person
    ):
        doc = make_document(org=approval_organisation)
        result = approval.reject(db_session, doc.id, approval_organisation.id, person.id, "  ")
        assert result.success is False
        assert result.error == "Rejection reason is required"

    def test_reject_then_request_again(
        self, db_session, make_document, approval_organisation, person
    ):
        doc = make_document(org=approval_organisation)
        result = approval.reject(
            db_session,
            doc.id,
            approval_organisation.id,
            person.id,
            "Escape route drawings missing",
        )
        assert result.success is True
        db_session.refresh(doc)
        assert doc.approval_status == ApprovalStatus.rejected
        assert doc.approval_notes == "Escape route drawings missing"
        assert doc.approved_by is None

        result = approval.request_approval(
            db_session, doc.id, approval_organisation.id, person.id, "Drawings added"
        )
        assert result.success is True
        db_session.refresh(doc)
        assert doc.approval_status == ApprovalStatus.pending

    def test_request_approval_when_already_pending(
        self, db_session, make_document, approval_organisation, person
    ):
        doc = make_document(org=approval_organisation)
        result = approval.request_approval(
            db_session, doc.id, approval_organisation.id, person.id
        )
        assert result.success is False

    def test_clear_approval(self, db_session, make_document, approval_organisation, person):
        doc = make_document(org=approval_organisation)
        approval.approve(db_session, doc.id, approval_organisation.id, person.id)
        result = approval.clear_approval(
            db_session, doc.id, approval_organisation.id, person.id
        )
        assert result.success is True
        db_session.refresh(doc)
        assert doc.approval_status == ApprovalStatus.not_required
        assert doc.approved_by is None
        assert doc.approval_date is None

    def test_transitions_only_on_drafts(
        self, db_session, make_document, organisation, person
    ):
        doc = make_document()
        doc.issue_status = IssueStatus.issued
        db_session.commit()
        result = approval.clear_approval(db_session, doc.id, organisation.id, person.id)
        assert result.success is False
        assert result.error == "Approval can only change on draft documents"

    def test_commit_failure_rolls_back(
        self, db_session, make_document, approval_organisation, person
    ):
        doc = make_document(org=approval_organisation)
        with patch.object(db_session, "commit", side_effect=RuntimeError("db down")):
            result = approval.approve(
                db_session, doc.id, approval_organisation.id, person.id
            )
        assert result.success is False
        assert result.error == "Failed to approve document"
        db_session.refresh(doc)
        assert doc.approval_status == ApprovalStatus.pending
