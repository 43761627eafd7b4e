"""Approval gate.

Organisations may require a draft to be approved before it can be issued.
The gate answers "may this draft be issued right now?" and owns the
approval transitions on a draft: request, approve, reject and clear.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.assessment import (
    ApprovalStatus,
    Document,
    IssueStatus,
    OrganisationSettings,
)
from app.schemas.lifecycle import ApprovalResult, IssueCheck
from app.services.capabilities import APPROVE_DOCUMENT, CapabilityChecker, allow_all
from app.services.common import coerce_uuid, get_scoped_document, today
from app.services.event import EventType, publish_event

logger = logging.getLogger(__name__)

REJECTED_REASON = (
    "Cannot issue a rejected document. Please address the rejection reasons first."
)


def get_organisation_settings(db: Session, organisation_id) -> OrganisationSettings | None:
    return db.scalar(
        select(OrganisationSettings).where(
            OrganisationSettings.organisation_id == coerce_uuid(organisation_id)
        )
    )


def is_approval_required(db: Session, organisation_id) -> bool:
    org_settings = get_organisation_settings(db, organisation_id)
    return bool(org_settings and org_settings.approval_required)


def default_approval_status(db: Session, organisation_id) -> ApprovalStatus:
    """Status a freshly created draft starts with."""
    if is_approval_required(db, organisation_id):
        return ApprovalStatus.pending
    return ApprovalStatus.not_required


def can_issue(db: Session, document_id, organisation_id) -> IssueCheck:
    try:
        document = get_scoped_document(db, document_id, organisation_id)
        if document is None:
            return IssueCheck(can_issue=False, reason="Document not found")
        if document.issue_status != IssueStatus.draft:
            return IssueCheck(
                can_issue=False, reason="Only draft documents can be issued"
            )
        if document.approval_status == ApprovalStatus.rejected:
            return IssueCheck(can_issue=False, reason=REJECTED_REASON)
        if (
            is_approval_required(db, organisation_id)
            and document.approval_status != ApprovalStatus.approved
        ):
            return IssueCheck(
                can_issue=False,
                reason="Document must be approved before it can be issued. "
                f"Current approval status: {document.approval_status.value}",
            )
        return IssueCheck(can_issue=True)
    except Exception:
        logger.exception("Failed to check approval for document %s", document_id)
        return IssueCheck(can_issue=False, reason="Failed to check document status")


def _load_draft(
    db: Session, document_id, organisation_id
) -> tuple[Document | None, str | None]:
    document = get_scoped_document(db, document_id, organisation_id)
    if document is None:
        return None, "Document not found"
    if document.issue_status != IssueStatus.draft:
        return None, "Approval can only change on draft documents"
    return document, None


def _transition(
    db: Session,
    document_id,
    organisation_id,
    actor_id,
    *,
    allowed_from: tuple[ApprovalStatus, ...] | None,
    target: ApprovalStatus,
    event_type: EventType,
    notes: str | None = None,
    approved_by=None,
    failure_message: str,
) -> ApprovalResult:
    try:
        document, error = _load_draft(db, document_id, organisation_id)
        if error:
            return ApprovalResult(success=False, error=error)
        if allowed_from is not None and document.approval_status not in allowed_from:
            return ApprovalResult(
                success=False,
                error=f"Cannot move approval from {document.approval_status.value} "
                f"to {target.value}",
            )
        previous = document.approval_status
        document.approval_status = target
        document.approval_notes = notes
        document.approved_by = coerce_uuid(approved_by)
        document.approval_date = today() if approved_by else None
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("%s for document %s", failure_message, document_id)
        return ApprovalResult(success=False, error=failure_message)

    logger.info(
        "Approval for document %s moved %s -> %s",
        document.id,
        previous.value,
        target.value,
    )
    publish_event(
        event_type,
        entity_type="document",
        entity_id=document.id,
        actor_id=actor_id,
        document_id=document.id,
        payload={"from": previous.value, "to": target.value},
    )
    return ApprovalResult(success=True)


def request_approval(
    db: Session, document_id, organisation_id, requested_by, notes: str | None = None
) -> ApprovalResult:
    return _transition(
        db,
        document_id,
        organisation_id,
        requested_by,
        allowed_from=(ApprovalStatus.not_required, ApprovalStatus.rejected),
        target=ApprovalStatus.pending,
        event_type=EventType.approval_requested,
        notes=notes,
        failure_message="Failed to request approval",
    )


def approve(
    db: Session,
    document_id,
    organisation_id,
    approved_by,
    notes: str | None = None,
    capabilities: CapabilityChecker = allow_all,
) -> ApprovalResult:
    if not capabilities.can_perform(APPROVE_DOCUMENT, approved_by, organisation_id):
        return ApprovalResult(
            success=False, error="You are not allowed to approve documents"
        )
    return _transition(
        db,
        document_id,
        organisation_id,
        approved_by,
        allowed_from=(ApprovalStatus.pending,),
        target=ApprovalStatus.approved,
        event_type=EventType.approval_approved,
        notes=notes,
        approved_by=approved_by,
        failure_message="Failed to approve document",
    )


def reject(
    db: Session,
    document_id,
    organisation_id,
    rejected_by,
    reason: str,
    capabilities: CapabilityChecker = allow_all,
) -> ApprovalResult:
    if not reason or not reason.strip():
        return ApprovalResult(success=False, error="Rejection reason is required")
    if not capabilities.can_perform(APPROVE_DOCUMENT, rejected_by, organisation_id):
        return ApprovalResult(
            success=False, error="You are not allowed to reject documents"
        )
    return _transition(
        db,
        document_id,
        organisation_id,
        rejected_by,
        allowed_from=(ApprovalStatus.pending,),
        target=ApprovalStatus.rejected,
        event_type=EventType.approval_rejected,
        notes=reason.strip(),
        failure_message="Failed to reject document",
    )


def clear_approval(
    db: Session, document_id, organisation_id, actor_id=None
) -> ApprovalResult:
    return _transition(
        db,
        document_id,
        organisation_id,
        actor_id,
        allowed_from=None,
        target=ApprovalStatus.not_required,
        event_type=EventType.approval_cleared,
        failure_message="Failed to clear approval status",
    )
