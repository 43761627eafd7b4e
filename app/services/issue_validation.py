import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.assessment import IssueStatus, ModuleInstance
from app.schemas.lifecycle import IssueValidationResult
from app.services import approval
from app.services.common import coerce_uuid, get_scoped_document
from app.services.issue_requirements import get_rules, module_has_data

logger = logging.getLogger(__name__)


def validate_for_issue(db: Session, document_id, organisation_id) -> IssueValidationResult:
    """Decide whether a draft may be issued.

    Business failures accumulate into ``errors``; optional modules without
    data only produce ``warnings``. Never raises.
    """
    errors: list[str] = []
    warnings: list[str] = []
    try:
        document = get_scoped_document(db, document_id, organisation_id)
        if document is None:
            return IssueValidationResult(valid=False, errors=["Document not found"])
        if document.issue_status != IssueStatus.draft:
            return IssueValidationResult(
                valid=False, errors=["Only draft documents can be issued"]
            )

        check = approval.can_issue(db, document.id, organisation_id)
        if not check.can_issue and check.reason:
            errors.append(check.reason)

        modules = db.scalars(
            select(ModuleInstance).where(
                ModuleInstance.document_id == coerce_uuid(document.id)
            )
        ).all()
        if not modules:
            errors.append("Document must have at least one module")

        by_key = {m.module_key: m for m in modules}
        rules = get_rules(document.document_type)
        if rules is None:
            for module in sorted(modules, key=lambda m: m.module_key):
                if not module_has_data(module):
                    errors.append(f"Module {module.module_key} has no data")
        else:
            for rule in rules:
                module = by_key.get(rule.key)
                has_data = module is not None and rule.has_data(module)
                if has_data:
                    continue
                if rule.required:
                    if module is None:
                        errors.append(f"Required module {rule.key} is missing")
                    else:
                        errors.append(f"Required module {rule.key} has no data")
                else:
                    warnings.append(f"Optional module {rule.key} has no data")
    except Exception as e:
        logger.exception("Issue validation failed for document %s", document_id)
        return IssueValidationResult(valid=False, errors=[f"Validation failed: {e}"])

    return IssueValidationResult(valid=not errors, errors=errors, warnings=warnings)
