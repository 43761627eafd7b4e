"""Result shapes returned by the lifecycle services.

Every lifecycle operation reports its outcome through one of these models
instead of raising, so callers can branch on ``success`` without wrapping
calls in ``try``/``except``.
"""

from __future__ import annotations

import enum
from uuid import UUID

from pydantic import BaseModel, Field


class LifecycleErrorCode(str, enum.Enum):
    not_found = "not_found"
    not_draft = "not_draft"
    validation_failed = "validation_failed"
    pdf_not_locked = "pdf_not_locked"
    draft_exists = "draft_exists"
    no_issued_version = "no_issued_version"
    forbidden = "forbidden"
    conflict = "conflict"
    integrity_violation = "integrity_violation"
    infrastructure_error = "infrastructure_error"


class IssueValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class IssueCheck(BaseModel):
    can_issue: bool
    reason: str | None = None


class ApprovalRequest(BaseModel):
    notes: str | None = None


class RejectionRequest(BaseModel):
    reason: str = Field(min_length=1)


class ApprovalResult(BaseModel):
    success: bool
    error: str | None = None


class PdfLockResult(BaseModel):
    success: bool
    path: str | None = None
    checksum: str | None = None
    size_bytes: int | None = None
    error: str | None = None


class PdfIntegrityResult(BaseModel):
    valid: bool
    stored_checksum: str | None = None
    calculated_checksum: str | None = None


class CarryForwardResult(BaseModel):
    success: bool
    count: int = 0
    error: str | None = None


class ChangeSummaryResult(BaseModel):
    success: bool
    summary_id: UUID | None = None
    error: str | None = None


class StepOutcome(BaseModel):
    """One sub-step of a lifecycle operation.

    Required steps decide the overall result; advisory steps are best-effort
    and only reported.
    """

    step: str
    required: bool
    success: bool
    detail: str | None = None


class LifecycleResult(BaseModel):
    success: bool
    error: str | None = None
    error_code: LifecycleErrorCode | None = None
    critical: bool = False
    document_id: UUID | None = None
    version_number: int | None = None
    steps: list[StepOutcome] = Field(default_factory=list)

    @classmethod
    def failure(
        cls,
        error: str,
        code: LifecycleErrorCode,
        document_id: UUID | None = None,
        steps: list[StepOutcome] | None = None,
    ) -> "LifecycleResult":
        return cls(
            success=False,
            error=error,
            error_code=code,
            critical=code == LifecycleErrorCode.integrity_violation,
            document_id=document_id,
            steps=steps or [],
        )


class ChainIntegrityReport(BaseModel):
    base_document_id: UUID
    valid: bool
    draft_count: int = 0
    issued_count: int = 0
    superseded_count: int = 0
    latest_version: int = 0
    issues: list[str] = Field(default_factory=list)


class VersionSummary(BaseModel):
    id: UUID
    version_number: int
    issue_status: str
    approval_status: str
    issue_date: str | None = None
    superseded_by_document_id: UUID | None = None
    has_locked_pdf: bool
