from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.api.deps import (
    get_actor_id,
    get_capabilities,
    get_db,
    get_lifecycle,
    get_organisation_id,
)
from app.models.assessment import DocumentChangeSummary
from app.schemas.assessment import ChangeSummaryRead, ChangeSummaryUpdate
from app.schemas.lifecycle import (
    ApprovalRequest,
    ApprovalResult,
    ChainIntegrityReport,
    IssueCheck,
    IssueValidationResult,
    LifecycleErrorCode,
    LifecycleResult,
    PdfIntegrityResult,
    PdfLockResult,
    RejectionRequest,
    VersionSummary,
)
from app.services import approval as approval_service
from app.services import change_summary as summary_service
from app.services import pdf_lock as pdf_service
from app.services.common import parse_uuid
from app.services.documents import documents
from app.services.issue_validation import validate_for_issue

router = APIRouter(tags=["lifecycle"])

_STATUS_BY_CODE = {
    LifecycleErrorCode.not_found: status.HTTP_404_NOT_FOUND,
    LifecycleErrorCode.forbidden: status.HTTP_403_FORBIDDEN,
    LifecycleErrorCode.validation_failed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    LifecycleErrorCode.not_draft: status.HTTP_409_CONFLICT,
    LifecycleErrorCode.pdf_not_locked: status.HTTP_409_CONFLICT,
    LifecycleErrorCode.draft_exists: status.HTTP_409_CONFLICT,
    LifecycleErrorCode.no_issued_version: status.HTTP_409_CONFLICT,
    LifecycleErrorCode.conflict: status.HTTP_409_CONFLICT,
    LifecycleErrorCode.integrity_violation: status.HTTP_500_INTERNAL_SERVER_ERROR,
    LifecycleErrorCode.infrastructure_error: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _raise_for_result(result: LifecycleResult) -> LifecycleResult:
    if result.success:
        return result
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(result.error_code, 400),
        detail={
            "code": result.error_code.value,
            "message": result.error,
            "details": {
                "critical": result.critical,
                "steps": [step.model_dump() for step in result.steps],
            },
        },
    )


def _raise_for_approval(result: ApprovalResult) -> ApprovalResult:
    if result.success:
        return result
    if result.error == "Document not found":
        raise HTTPException(status_code=404, detail=result.error)
    if result.error and result.error.startswith("You are not allowed"):
        raise HTTPException(status_code=403, detail=result.error)
    raise HTTPException(status_code=409, detail=result.error)


# ------------------------------------------------------------------
# Issue / versions
# ------------------------------------------------------------------


@router.get(
    "/documents/{document_id}/issue-validation",
    response_model=IssueValidationResult,
)
def get_issue_validation(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return validate_for_issue(db, document_id, organisation_id)


@router.post("/documents/{document_id}/issue", response_model=LifecycleResult)
def issue_document(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    lifecycle=Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return _raise_for_result(
        lifecycle.issue(db, document_id, actor_id, organisation_id)
    )


@router.post(
    "/documents/{old_document_id}/supersede/{new_document_id}",
    response_model=LifecycleResult,
)
def supersede_document(
    old_document_id: str,
    new_document_id: str,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    lifecycle=Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return _raise_for_result(
        lifecycle.supersede_and_issue_new(
            db, old_document_id, new_document_id, actor_id, organisation_id
        )
    )


@router.post(
    "/document-chains/{base_document_id}/versions",
    response_model=LifecycleResult,
    status_code=status.HTTP_201_CREATED,
)
def create_new_version(
    base_document_id: str,
    carry_evidence: bool = Query(default=True),
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    lifecycle=Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return _raise_for_result(
        lifecycle.create_new_version(
            db, base_document_id, actor_id, organisation_id, carry_evidence
        )
    )


@router.get(
    "/document-chains/{base_document_id}/versions",
    response_model=list[VersionSummary],
)
def list_versions(
    base_document_id: str,
    organisation_id=Depends(get_organisation_id),
    lifecycle=Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    history = lifecycle.version_history(db, base_document_id, organisation_id)
    if not history:
        raise HTTPException(status_code=404, detail="Document chain not found")
    return history


@router.get(
    "/document-chains/{base_document_id}/integrity",
    response_model=ChainIntegrityReport,
)
def get_chain_integrity(
    base_document_id: str,
    organisation_id=Depends(get_organisation_id),
    lifecycle=Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    if not lifecycle.version_history(db, base_document_id, organisation_id):
        raise HTTPException(status_code=404, detail="Document chain not found")
    return lifecycle.check_chain_integrity(db, base_document_id)


@router.get("/lifecycle/health")
def get_lifecycle_health(
    organisation_id=Depends(get_organisation_id),
    lifecycle=Depends(get_lifecycle),
    db: Session = Depends(get_db),
):
    return lifecycle.lifecycle_health(db, organisation_id)


# ------------------------------------------------------------------
# Approval
# ------------------------------------------------------------------


@router.get("/documents/{document_id}/approval/can-issue", response_model=IssueCheck)
def get_can_issue(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return approval_service.can_issue(db, document_id, organisation_id)


@router.post("/documents/{document_id}/approval/request", response_model=ApprovalResult)
def request_approval(
    document_id: str,
    payload: ApprovalRequest | None = None,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    notes = payload.notes if payload else None
    return _raise_for_approval(
        approval_service.request_approval(
            db, document_id, organisation_id, actor_id, notes
        )
    )


@router.post("/documents/{document_id}/approval/approve", response_model=ApprovalResult)
def approve_document(
    document_id: str,
    payload: ApprovalRequest | None = None,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    capabilities=Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    notes = payload.notes if payload else None
    return _raise_for_approval(
        approval_service.approve(
            db, document_id, organisation_id, actor_id, notes, capabilities
        )
    )


@router.post("/documents/{document_id}/approval/reject", response_model=ApprovalResult)
def reject_document(
    document_id: str,
    payload: RejectionRequest,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    capabilities=Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    return _raise_for_approval(
        approval_service.reject(
            db, document_id, organisation_id, actor_id, payload.reason, capabilities
        )
    )


@router.post("/documents/{document_id}/approval/clear", response_model=ApprovalResult)
def clear_approval(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return _raise_for_approval(
        approval_service.clear_approval(db, document_id, organisation_id, actor_id)
    )


# ------------------------------------------------------------------
# Locked PDF
# ------------------------------------------------------------------


@router.put("/documents/{document_id}/locked-pdf", response_model=PdfLockResult)
def lock_pdf(
    document_id: str,
    pdf_bytes: bytes = Body(..., media_type=pdf_service.PDF_CONTENT_TYPE),
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    capabilities=Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    result = pdf_service.lock(
        db, document_id, organisation_id, pdf_bytes, actor_id, capabilities
    )
    if not result.success:
        if result.error == "Document not found":
            raise HTTPException(status_code=404, detail=result.error)
        raise HTTPException(status_code=409, detail=result.error)
    return result


@router.get("/documents/{document_id}/locked-pdf")
def download_locked_pdf(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = documents.get(db, document_id, organisation_id)
    if not pdf_service.must_use_locked_pdf(document):
        raise HTTPException(
            status_code=404, detail="No locked PDF is available for this version"
        )
    content = pdf_service.read_locked_pdf(db, document.id)
    return Response(content=content, media_type=pdf_service.PDF_CONTENT_TYPE)


@router.get("/documents/{document_id}/locked-pdf/url")
def locked_pdf_url(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = documents.get(db, document_id, organisation_id)
    url = pdf_service.locked_pdf_url(db, document.id)
    if not url:
        raise HTTPException(status_code=404, detail="Document has no locked PDF")
    return {"url": url}


@router.post(
    "/documents/{document_id}/locked-pdf/verify", response_model=PdfIntegrityResult
)
def verify_locked_pdf(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = documents.get(db, document_id, organisation_id)
    return pdf_service.verify_stored_object(db, document.id)


@router.get("/documents/{document_id}/pdf-status")
def get_pdf_status(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = documents.get(db, document_id, organisation_id)
    return {
        "description": pdf_service.pdf_status_description(document),
        "can_regenerate": pdf_service.can_regenerate_pdf(document),
        "must_use_locked_pdf": pdf_service.must_use_locked_pdf(document),
        "size": pdf_service.format_file_size(document.locked_pdf_size_bytes or 0),
    }


# ------------------------------------------------------------------
# Change summaries
# ------------------------------------------------------------------


@router.get(
    "/documents/{document_id}/change-summary", response_model=ChangeSummaryRead
)
def get_change_summary(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = documents.get(db, document_id, organisation_id)
    summary = summary_service.get_for_document(db, document.id)
    if not summary:
        raise HTTPException(status_code=404, detail="Change summary not found")
    return summary


@router.get("/documents/{document_id}/change-summary/stats")
def get_change_summary_stats(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = documents.get(db, document_id, organisation_id)
    summary = summary_service.get_for_document(db, document.id)
    if not summary:
        raise HTTPException(status_code=404, detail="Change summary not found")
    return summary_service.summary_stats(summary)


@router.get("/change-summaries", response_model=list[ChangeSummaryRead])
def list_change_summaries(
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return summary_service.list_for_organisation(db, organisation_id)


@router.patch("/change-summaries/{summary_id}", response_model=ChangeSummaryRead)
def update_change_summary(
    summary_id: str,
    payload: ChangeSummaryUpdate,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    data = payload.model_dump(exclude_unset=True)
    if "summary_text" in data:
        result = summary_service.update_summary_text(
            db, summary_id, data["summary_text"], organisation_id
        )
        if not result.success:
            raise HTTPException(status_code=404, detail=result.error)
    if data.get("visible_to_client") is not None:
        result = summary_service.set_client_visibility(
            db, summary_id, data["visible_to_client"], organisation_id
        )
        if not result.success:
            raise HTTPException(status_code=404, detail=result.error)
    summary_uuid = parse_uuid(summary_id)
    summary = db.get(DocumentChangeSummary, summary_uuid) if summary_uuid else None
    if not summary or summary.organisation_id != organisation_id:
        raise HTTPException(status_code=404, detail="Change summary not found")
    return summary
