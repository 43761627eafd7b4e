"""Document version lifecycle.

A chain of versions shares one ``base_document_id``. Each version moves
draft -> issued -> superseded and never back. Issuing a draft supersedes the
chain's current issued version in the same transaction, and a new draft can
only be cut from the issued version.

Every operation returns a :class:`LifecycleResult`. Required steps run in
one transaction; best-effort steps (change summary, evidence carry-forward)
run after the commit and only report their outcome in ``steps``.
"""

import copy
import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.metrics import INTEGRITY_VIOLATIONS, LIFECYCLE_OPERATIONS
from app.models.assessment import (
    OPEN_ACTION_STATUSES,
    Action,
    Document,
    IssueStatus,
    ModuleInstance,
)
from app.schemas.lifecycle import (
    ChainIntegrityReport,
    LifecycleErrorCode,
    LifecycleResult,
    StepOutcome,
    VersionSummary,
)
from app.services import change_summary
from app.services.approval import default_approval_status
from app.services.capabilities import (
    CREATE_VERSION,
    ISSUE_DOCUMENT,
    SUPERSEDE_DOCUMENT,
    CapabilityChecker,
    allow_all,
)
from app.services.common import (
    coerce_uuid,
    get_scoped_document,
    parse_uuid,
    today,
    utcnow,
)
from app.services.event import EventType, publish_event
from app.services.evidence import carry_forward_evidence
from app.services.issue_validation import validate_for_issue
from app.services.modules import MODULE_SKELETONS, clone_module

logger = logging.getLogger(__name__)

# Administrative metadata copied from the issued version into a new draft.
CLONED_FIELDS = (
    "title",
    "document_type",
    "assessor_name",
    "assessment_date",
    "scope_description",
    "standards_selected",
    "jurisdiction",
    "responsible_person",
)


class _StepFailed(Exception):
    def __init__(self, result: LifecycleResult):
        self.result = result
        super().__init__(result.error)


def _chain_versions(db: Session, base_document_id, status: IssueStatus | None = None):
    base_id = parse_uuid(base_document_id)
    if base_id is None:
        return []
    stmt = select(Document).where(
        Document.base_document_id == base_id,
        Document.is_active.is_(True),
    )
    if status is not None:
        stmt = stmt.where(Document.issue_status == status)
    return list(db.scalars(stmt.order_by(Document.version_number)).all())


def _report_integrity_violation(
    base_document_id, kind: str, issues: list[str], document_id=None
) -> None:
    INTEGRITY_VIOLATIONS.labels(kind=kind).inc()
    logger.critical(
        "Integrity violation in chain %s: %s",
        base_document_id,
        "; ".join(issues),
        extra={
            "base_document_id": str(base_document_id),
            "document_id": str(document_id) if document_id else None,
            "error_code": LifecycleErrorCode.integrity_violation.value,
        },
    )
    publish_event(
        EventType.integrity_violation,
        entity_type="document_chain",
        entity_id=base_document_id,
        document_id=document_id,
        payload={"kind": kind, "issues": issues},
    )


class DocumentLifecycle:
    def __init__(self, capabilities: CapabilityChecker = allow_all):
        self.capabilities = capabilities

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _forbidden(self, action: str, user_id, organisation_id) -> LifecycleResult | None:
        if self.capabilities.can_perform(action, user_id, organisation_id):
            return None
        return LifecycleResult.failure(
            "You do not have permission to perform this action",
            LifecycleErrorCode.forbidden,
        )

    @staticmethod
    def _finish(operation: str, result: LifecycleResult) -> LifecycleResult:
        outcome = "success" if result.success else result.error_code.value
        LIFECYCLE_OPERATIONS.labels(operation=operation, outcome=outcome).inc()
        return result

    @staticmethod
    def _current_issued(db: Session, document: Document) -> Document | None:
        issued = [
            d
            for d in _chain_versions(db, document.base_document_id, IssueStatus.issued)
            if d.id != document.id
        ]
        if len(issued) > 1:
            issues = [
                f"Chain has {len(issued)} issued versions: "
                + ", ".join(f"v{d.version_number}" for d in issued)
            ]
            _report_integrity_violation(
                document.base_document_id, "multiple_issued", issues, document.id
            )
            raise _StepFailed(
                LifecycleResult.failure(
                    issues[0],
                    LifecycleErrorCode.integrity_violation,
                    document_id=document.id,
                )
            )
        return issued[0] if issued else None

    @staticmethod
    def _supersede(db: Session, old: Document, new_document_id) -> None:
        old.issue_status = IssueStatus.superseded
        old.superseded_by_document_id = coerce_uuid(new_document_id)
        old.superseded_date = utcnow()
        # Must reach the database before the successor becomes issued.
        db.flush()

    def _issue_steps(
        self, db: Session, document_id, user_id, organisation_id, steps: list
    ) -> tuple[Document, Document | None]:
        document = get_scoped_document(db, document_id, organisation_id)
        if document is None:
            raise _StepFailed(
                LifecycleResult.failure("Document not found", LifecycleErrorCode.not_found)
            )

        validation = validate_for_issue(db, document.id, organisation_id)
        steps.append(
            StepOutcome(
                step="validate",
                required=True,
                success=validation.valid,
                detail="; ".join(validation.errors or validation.warnings) or None,
            )
        )
        if not validation.valid:
            code = LifecycleErrorCode.validation_failed
            if validation.errors == ["Only draft documents can be issued"]:
                code = LifecycleErrorCode.not_draft
            raise _StepFailed(
                LifecycleResult.failure(
                    ", ".join(validation.errors),
                    code,
                    document_id=document.id,
                    steps=steps,
                )
            )

        if not document.locked_pdf_path:
            steps.append(StepOutcome(step="locked_pdf", required=True, success=False))
            raise _StepFailed(
                LifecycleResult.failure(
                    "Cannot issue without a locked PDF",
                    LifecycleErrorCode.pdf_not_locked,
                    document_id=document.id,
                    steps=steps,
                )
            )
        steps.append(StepOutcome(step="locked_pdf", required=True, success=True))

        previous = self._current_issued(db, document)
        if previous is not None:
            self._supersede(db, previous, document.id)
            steps.append(
                StepOutcome(
                    step="supersede",
                    required=True,
                    success=True,
                    detail=f"v{previous.version_number} superseded",
                )
            )

        document.issue_status = IssueStatus.issued
        document.issue_date = today()
        document.issued_by = coerce_uuid(user_id)
        db.flush()
        steps.append(StepOutcome(step="issue", required=True, success=True))
        return document, previous

    def _summarise_issue(
        self, db: Session, document: Document, previous_id, user_id, steps: list
    ) -> None:
        if previous_id is not None:
            outcome = change_summary.generate_change_summary(
                db, document.id, previous_id, user_id
            )
        else:
            outcome = change_summary.create_initial_issue_summary(
                db, document.id, user_id
            )
        if not outcome.success:
            logger.warning(
                "Change summary for document %s failed: %s", document.id, outcome.error
            )
        steps.append(
            StepOutcome(
                step="change_summary",
                required=False,
                success=outcome.success,
                detail=outcome.error,
            )
        )

    def _run_issue(
        self,
        db: Session,
        operation: str,
        document_id,
        user_id,
        organisation_id,
        supersede_id=None,
    ) -> LifecycleResult:
        steps: list[StepOutcome] = []
        old = None
        try:
            if supersede_id is not None:
                old = self._load_for_supersede(db, supersede_id, document_id, organisation_id)
                self._supersede(db, old, document_id)
                steps.append(
                    StepOutcome(
                        step="supersede",
                        required=True,
                        success=True,
                        detail=f"v{old.version_number} superseded",
                    )
                )
            document, previous = self._issue_steps(
                db, document_id, user_id, organisation_id, steps
            )
            superseded = previous if previous is not None else old
            previous_id = superseded.id if superseded is not None else None
            previous_version = (
                superseded.version_number if superseded is not None else None
            )
            db.commit()
        except _StepFailed as failed:
            db.rollback()
            return self._finish(operation, failed.result)
        except IntegrityError:
            db.rollback()
            logger.warning("Issue of document %s hit a chain constraint", document_id)
            return self._finish(
                operation,
                LifecycleResult.failure(
                    "Another version of this document was issued concurrently",
                    LifecycleErrorCode.conflict,
                    document_id=parse_uuid(document_id),
                ),
            )
        except Exception:
            db.rollback()
            logger.exception("Failed to issue document %s", document_id)
            return self._finish(
                operation,
                LifecycleResult.failure(
                    "Failed to issue document",
                    LifecycleErrorCode.infrastructure_error,
                    document_id=parse_uuid(document_id),
                ),
            )

        logger.info(
            "Issued document %s as v%d",
            document.id,
            document.version_number,
            extra={
                "document_id": str(document.id),
                "base_document_id": str(document.base_document_id),
            },
        )
        if previous_id is not None:
            publish_event(
                EventType.document_superseded,
                entity_type="document",
                entity_id=previous_id,
                actor_id=user_id,
                document_id=previous_id,
                payload={
                    "superseded_by_document_id": str(document.id),
                    "version_number": previous_version,
                },
            )
        publish_event(
            EventType.document_issued,
            entity_type="document",
            entity_id=document.id,
            actor_id=user_id,
            document_id=document.id,
            payload={"version_number": document.version_number},
        )
        self._summarise_issue(db, document, previous_id, user_id, steps)
        return self._finish(
            operation,
            LifecycleResult(
                success=True,
                document_id=document.id,
                version_number=document.version_number,
                steps=steps,
            ),
        )

    @staticmethod
    def _load_for_supersede(
        db: Session, old_document_id, new_document_id, organisation_id
    ) -> Document:
        old = get_scoped_document(db, old_document_id, organisation_id)
        new = get_scoped_document(db, new_document_id, organisation_id)
        if old is None or new is None:
            raise _StepFailed(
                LifecycleResult.failure("Document not found", LifecycleErrorCode.not_found)
            )
        if old.id == new.id or old.base_document_id != new.base_document_id:
            raise _StepFailed(
                LifecycleResult.failure(
                    "Documents must be different versions of the same chain",
                    LifecycleErrorCode.conflict,
                    document_id=new.id,
                )
            )
        if old.issue_status != IssueStatus.issued:
            raise _StepFailed(
                LifecycleResult.failure(
                    "Only the issued version can be superseded",
                    LifecycleErrorCode.conflict,
                    document_id=old.id,
                )
            )
        return old

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def issue(self, db: Session, document_id, user_id, organisation_id) -> LifecycleResult:
        denied = self._forbidden(ISSUE_DOCUMENT, user_id, organisation_id)
        if denied:
            return self._finish("issue", denied)
        return self._run_issue(db, "issue", document_id, user_id, organisation_id)

    def supersede_and_issue_new(
        self, db: Session, old_document_id, new_document_id, user_id, organisation_id
    ) -> LifecycleResult:
        denied = self._forbidden(SUPERSEDE_DOCUMENT, user_id, organisation_id)
        if denied:
            return self._finish("supersede", denied)
        return self._run_issue(
            db,
            "supersede",
            new_document_id,
            user_id,
            organisation_id,
            supersede_id=old_document_id,
        )

    def create_new_version(
        self,
        db: Session,
        base_document_id,
        user_id,
        organisation_id,
        carry_evidence: bool = True,
    ) -> LifecycleResult:
        denied = self._forbidden(CREATE_VERSION, user_id, organisation_id)
        if denied:
            return self._finish("create_version", denied)

        steps: list[StepOutcome] = []
        base_id = parse_uuid(base_document_id)
        try:
            if base_id is None:
                raise _StepFailed(
                    LifecycleResult.failure(
                        "Document not found", LifecycleErrorCode.not_found
                    )
                )
            issued = [
                d
                for d in _chain_versions(db, base_id, IssueStatus.issued)
                if d.organisation_id == coerce_uuid(organisation_id)
            ]
            if not issued:
                raise _StepFailed(
                    LifecycleResult.failure(
                        "No issued version found to create new version from",
                        LifecycleErrorCode.no_issued_version,
                    )
                )
            if len(issued) > 1:
                issues = [f"Chain has {len(issued)} issued versions"]
                _report_integrity_violation(base_id, "multiple_issued", issues)
                raise _StepFailed(
                    LifecycleResult.failure(
                        issues[0], LifecycleErrorCode.integrity_violation
                    )
                )
            if _chain_versions(db, base_id, IssueStatus.draft):
                raise _StepFailed(
                    LifecycleResult.failure(
                        "A draft version already exists for this document",
                        LifecycleErrorCode.draft_exists,
                    )
                )
            source = issued[0]
            new_document, carried = self._clone_version(db, source, user_id)
            db.commit()
        except _StepFailed as failed:
            db.rollback()
            return self._finish("create_version", failed.result)
        except IntegrityError:
            db.rollback()
            logger.warning("New version of chain %s hit a chain constraint", base_id)
            return self._finish(
                "create_version",
                LifecycleResult.failure(
                    "A draft version already exists for this document",
                    LifecycleErrorCode.conflict,
                ),
            )
        except Exception:
            db.rollback()
            logger.exception("Failed to create new version of chain %s", base_id)
            return self._finish(
                "create_version",
                LifecycleResult.failure(
                    "Failed to create new version",
                    LifecycleErrorCode.infrastructure_error,
                ),
            )

        steps.append(
            StepOutcome(
                step="clone",
                required=True,
                success=True,
                detail=f"{carried} actions carried forward",
            )
        )
        logger.info(
            "Created v%d of chain %s from v%d",
            new_document.version_number,
            base_id,
            source.version_number,
            extra={"document_id": str(new_document.id), "base_document_id": str(base_id)},
        )
        publish_event(
            EventType.version_created,
            entity_type="document",
            entity_id=new_document.id,
            actor_id=user_id,
            document_id=new_document.id,
            payload={
                "version_number": new_document.version_number,
                "source_document_id": str(source.id),
            },
        )
        if carried:
            publish_event(
                EventType.actions_carried_forward,
                entity_type="document",
                entity_id=new_document.id,
                actor_id=user_id,
                document_id=new_document.id,
                payload={"from_document_id": str(source.id), "count": carried},
            )

        if carry_evidence:
            evidence_result = carry_forward_evidence(
                db, source.id, new_document.id, base_id, organisation_id
            )
            if not evidence_result.success:
                logger.warning(
                    "Evidence carry-forward to %s failed: %s",
                    new_document.id,
                    evidence_result.error,
                )
            steps.append(
                StepOutcome(
                    step="carry_evidence",
                    required=False,
                    success=evidence_result.success,
                    detail=evidence_result.error
                    or f"{evidence_result.count} attachments carried forward",
                )
            )

        summary_result = change_summary.create_initial_issue_summary(
            db, new_document.id, user_id
        )
        if not summary_result.success:
            logger.warning(
                "Placeholder summary for %s failed: %s",
                new_document.id,
                summary_result.error,
            )
        steps.append(
            StepOutcome(
                step="change_summary",
                required=False,
                success=summary_result.success,
                detail=summary_result.error,
            )
        )
        return self._finish(
            "create_version",
            LifecycleResult(
                success=True,
                document_id=new_document.id,
                version_number=new_document.version_number,
                steps=steps,
            ),
        )

    def _clone_version(
        self, db: Session, source: Document, user_id
    ) -> tuple[Document, int]:
        # Deleted drafts keep their version number, so count past them.
        latest = db.scalar(
            select(func.max(Document.version_number)).where(
                Document.base_document_id == source.base_document_id
            )
        )
        new_id = uuid.uuid4()
        new_document = Document(
            id=new_id,
            organisation_id=source.organisation_id,
            base_document_id=source.base_document_id,
            version_number=max(latest or 0, source.version_number) + 1,
            issue_status=IssueStatus.draft,
            approval_status=default_approval_status(db, source.organisation_id),
            created_by=coerce_uuid(user_id),
            **{name: copy.deepcopy(getattr(source, name)) for name in CLONED_FIELDS},
        )
        db.add(new_document)
        db.flush()

        source_modules = list(
            db.scalars(
                select(ModuleInstance).where(ModuleInstance.document_id == source.id)
            ).all()
        )
        new_modules = [
            clone_module(m, new_id, source.organisation_id) for m in source_modules
        ]
        present = {m.module_key for m in source_modules}
        for key in MODULE_SKELETONS.get(source.document_type, []):
            if key not in present:
                new_modules.append(
                    ModuleInstance(
                        organisation_id=source.organisation_id,
                        document_id=new_id,
                        module_key=key,
                        data={},
                        assessor_notes="",
                    )
                )
        db.add_all(new_modules)
        db.flush()

        old_keys = {m.id: m.module_key for m in source_modules}
        new_by_key = {m.module_key: m.id for m in new_modules}
        open_actions = db.scalars(
            select(Action)
            .where(
                Action.document_id == source.id,
                Action.status.in_(OPEN_ACTION_STATUSES),
                Action.deleted_at.is_(None),
            )
            .order_by(Action.created_at)
        ).all()
        for action in open_actions:
            module_instance_id = None
            unlinked = action.module_unlinked
            if action.module_instance_id is not None:
                module_instance_id = new_by_key.get(old_keys.get(action.module_instance_id))
                unlinked = module_instance_id is None
            db.add(
                Action(
                    organisation_id=source.organisation_id,
                    document_id=new_id,
                    module_instance_id=module_instance_id,
                    module_unlinked=unlinked,
                    recommended_action=action.recommended_action,
                    status=action.status,
                    priority_band=action.priority_band,
                    timescale=action.timescale,
                    target_date=action.target_date,
                    owner_user_id=action.owner_user_id,
                    source=action.source,
                    origin_action_id=action.lineage_id,
                    carried_from_document_id=source.id,
                )
            )
        db.flush()
        return new_document, len(open_actions)

    def version_history(
        self, db: Session, base_document_id, organisation_id
    ) -> list[VersionSummary]:
        versions = [
            d
            for d in _chain_versions(db, base_document_id)
            if d.organisation_id == coerce_uuid(organisation_id)
        ]
        return [
            VersionSummary(
                id=d.id,
                version_number=d.version_number,
                issue_status=d.issue_status.value,
                approval_status=d.approval_status.value,
                issue_date=d.issue_date.isoformat() if d.issue_date else None,
                superseded_by_document_id=d.superseded_by_document_id,
                has_locked_pdf=bool(d.locked_pdf_path),
            )
            for d in reversed(versions)
        ]

    def can_edit(self, db: Session, document_id) -> bool:
        try:
            document = get_scoped_document(db, document_id)
        except Exception:
            logger.exception("Failed to check edit state of document %s", document_id)
            return False
        return document is not None and document.issue_status == IssueStatus.draft

    def check_chain_integrity(
        self, db: Session, base_document_id, report: bool = True
    ) -> ChainIntegrityReport:
        base_id = coerce_uuid(base_document_id)
        versions = _chain_versions(db, base_id)
        drafts = [d for d in versions if d.issue_status == IssueStatus.draft]
        issued = [d for d in versions if d.issue_status == IssueStatus.issued]
        superseded = [d for d in versions if d.issue_status == IssueStatus.superseded]

        issues: list[str] = []
        if len(drafts) > 1:
            issues.append(f"Chain has {len(drafts)} draft versions")
        if len(issued) > 1:
            issues.append(f"Chain has {len(issued)} issued versions")
        for d in issued:
            if not d.locked_pdf_path:
                issues.append(f"Issued v{d.version_number} has no locked PDF")
        for d in superseded:
            if d.superseded_by_document_id is None:
                issues.append(f"Superseded v{d.version_number} has no successor")

        if issues and report:
            _report_integrity_violation(base_id, "chain_state", issues)
        return ChainIntegrityReport(
            base_document_id=base_id,
            valid=not issues,
            draft_count=len(drafts),
            issued_count=len(issued),
            superseded_count=len(superseded),
            latest_version=max((d.version_number for d in versions), default=0),
            issues=issues,
        )

    def lifecycle_health(self, db: Session, organisation_id) -> dict:
        org_id = coerce_uuid(organisation_id)
        base_ids = db.scalars(
            select(Document.base_document_id)
            .where(Document.organisation_id == org_id, Document.is_active.is_(True))
            .distinct()
        ).all()
        totals = {"draft": 0, "issued": 0, "superseded": 0}
        invalid_chains = []
        for base_id in base_ids:
            chain = self.check_chain_integrity(db, base_id, report=False)
            totals["draft"] += chain.draft_count
            totals["issued"] += chain.issued_count
            totals["superseded"] += chain.superseded_count
            if not chain.valid:
                invalid_chains.append(
                    {"base_document_id": str(base_id), "issues": chain.issues}
                )
        return {
            "chains": len(base_ids),
            "versions": totals,
            "healthy": not invalid_chains,
            "invalid_chains": invalid_chains,
        }


lifecycle = DocumentLifecycle()
