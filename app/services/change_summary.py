"""Change summaries between consecutive versions of a document chain.

One summary row exists per document version. Regenerating a summary
replaces the row for that version; the editorial fields (``summary_text``,
``visible_to_client``) can be changed afterwards, even on issued versions.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models.assessment import (
    OPEN_ACTION_STATUSES,
    Action,
    Document,
    DocumentChangeSummary,
)
from app.schemas.lifecycle import ChangeSummaryResult
from app.services.common import coerce_uuid, utcnow
from app.services.event import EventType, publish_event

logger = logging.getLogger(__name__)


@dataclass
class ActionDiff:
    new_actions: list[dict] = field(default_factory=list)
    closed_actions: list[dict] = field(default_factory=list)
    reopened_actions: list[dict] = field(default_factory=list)
    outstanding_count: int = 0
    # The first issue of a chain has nothing to compare against.
    initial: bool = False

    @property
    def has_material_changes(self) -> bool:
        if self.initial:
            return False
        return bool(self.new_actions or self.closed_actions or self.reopened_actions)


def _live_actions(db: Session, document_id) -> list[Action]:
    stmt = (
        select(Action)
        .where(Action.document_id == coerce_uuid(document_id))
        .where(Action.deleted_at.is_(None))
        .order_by(Action.created_at)
    )
    return list(db.scalars(stmt).all())


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


def compute_action_diff(db: Session, new_document_id, old_document_id) -> ActionDiff:
    """Compare the actions of two versions by lineage.

    An action's lineage is its ``origin_action_id``, or its own id for an
    action first raised in that version.
    """
    new_actions = _live_actions(db, new_document_id)
    old_actions = _live_actions(db, old_document_id)

    old_lineages = {a.lineage_id for a in old_actions}
    new_open = {a.lineage_id: a for a in new_actions if a.status in OPEN_ACTION_STATUSES}
    new_by_lineage = {a.lineage_id: a for a in new_actions}

    diff = ActionDiff(outstanding_count=len(new_open))
    for action in new_actions:
        if action.lineage_id not in old_lineages:
            diff.new_actions.append(
                {
                    "id": str(action.id),
                    "recommended_action": action.recommended_action,
                    "priority_band": action.priority_band,
                    "status": action.status.value,
                }
            )
        if action.status in OPEN_ACTION_STATUSES and action.reopened_at is not None:
            diff.reopened_actions.append(
                {
                    "id": str(action.id),
                    "recommended_action": action.recommended_action,
                    "priority_band": action.priority_band,
                    "reopened_at": _isoformat(action.reopened_at),
                }
            )
    for action in old_actions:
        if action.status not in OPEN_ACTION_STATUSES:
            continue
        if action.lineage_id in new_open:
            continue
        successor = new_by_lineage.get(action.lineage_id)
        diff.closed_actions.append(
            {
                "id": str(action.id),
                "recommended_action": action.recommended_action,
                "priority_band": action.priority_band,
                "closure_date": _isoformat(successor.closed_at if successor else None),
            }
        )
    return diff


def _store_summary(
    db: Session,
    document: Document,
    previous_document_id,
    diff: ActionDiff,
    user_id,
) -> DocumentChangeSummary:
    db.execute(
        delete(DocumentChangeSummary).where(
            DocumentChangeSummary.document_id == document.id
        )
    )
    db.flush()
    summary = DocumentChangeSummary(
        organisation_id=document.organisation_id,
        document_id=document.id,
        base_document_id=document.base_document_id,
        version_number=document.version_number,
        previous_document_id=coerce_uuid(previous_document_id),
        new_actions_count=len(diff.new_actions),
        closed_actions_count=len(diff.closed_actions),
        reopened_actions_count=len(diff.reopened_actions),
        outstanding_actions_count=diff.outstanding_count,
        new_actions=diff.new_actions,
        closed_actions=diff.closed_actions,
        reopened_actions=diff.reopened_actions,
        has_material_changes=diff.has_material_changes,
        generated_by=coerce_uuid(user_id),
        generated_at=utcnow(),
    )
    summary.summary_text = format_summary_text(summary)
    db.add(summary)
    db.commit()
    db.refresh(summary)
    publish_event(
        EventType.change_summary_generated,
        entity_type="document_change_summary",
        entity_id=summary.id,
        actor_id=user_id,
        document_id=document.id,
        payload={
            "version_number": document.version_number,
            "has_material_changes": summary.has_material_changes,
        },
    )
    return summary


def create_initial_issue_summary(db: Session, document_id, user_id) -> ChangeSummaryResult:
    """Summary for a version with no predecessor to compare against."""
    try:
        document = db.get(Document, coerce_uuid(document_id))
        if document is None:
            return ChangeSummaryResult(success=False, error="Document not found")
        actions = [
            a for a in _live_actions(db, document.id) if a.status in OPEN_ACTION_STATUSES
        ]
        diff = ActionDiff(
            new_actions=[
                {
                    "id": str(a.id),
                    "recommended_action": a.recommended_action,
                    "priority_band": a.priority_band,
                    "status": a.status.value,
                }
                for a in actions
            ],
            outstanding_count=len(actions),
            initial=True,
        )
        summary = _store_summary(db, document, None, diff, user_id)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to create initial summary for %s", document_id)
        return ChangeSummaryResult(success=False, error=str(e))
    logger.info("Created initial change summary for document %s", document.id)
    return ChangeSummaryResult(success=True, summary_id=summary.id)


def generate_change_summary(
    db: Session, new_document_id, old_document_id, user_id
) -> ChangeSummaryResult:
    try:
        document = db.get(Document, coerce_uuid(new_document_id))
        if document is None:
            return ChangeSummaryResult(success=False, error="Document not found")
        if db.get(Document, coerce_uuid(old_document_id)) is None:
            return ChangeSummaryResult(
                success=False, error="Previous document not found"
            )
        diff = compute_action_diff(db, document.id, old_document_id)
        summary = _store_summary(db, document, old_document_id, diff, user_id)
    except Exception as e:
        db.rollback()
        logger.exception("Failed to generate change summary for %s", new_document_id)
        return ChangeSummaryResult(success=False, error=str(e))
    logger.info(
        "Generated change summary for document %s (%d new, %d closed, %d reopened)",
        document.id,
        summary.new_actions_count,
        summary.closed_actions_count,
        summary.reopened_actions_count,
    )
    return ChangeSummaryResult(success=True, summary_id=summary.id)


def get_for_document(db: Session, document_id) -> DocumentChangeSummary | None:
    return db.scalar(
        select(DocumentChangeSummary).where(
            DocumentChangeSummary.document_id == coerce_uuid(document_id)
        )
    )


def list_for_organisation(db: Session, organisation_id) -> list[DocumentChangeSummary]:
    stmt = (
        select(DocumentChangeSummary)
        .where(DocumentChangeSummary.organisation_id == coerce_uuid(organisation_id))
        .order_by(DocumentChangeSummary.generated_at.desc())
    )
    return list(db.scalars(stmt).all())


def _update_editorial(
    db: Session, summary_id, organisation_id, **values
) -> ChangeSummaryResult:
    try:
        summary = db.get(DocumentChangeSummary, coerce_uuid(summary_id))
        if summary is None or (
            organisation_id is not None
            and summary.organisation_id != coerce_uuid(organisation_id)
        ):
            return ChangeSummaryResult(success=False, error="Change summary not found")
        for key, value in values.items():
            setattr(summary, key, value)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Failed to update change summary %s", summary_id)
        return ChangeSummaryResult(success=False, error=str(e))
    return ChangeSummaryResult(success=True, summary_id=summary.id)


def update_summary_text(
    db: Session, summary_id, text: str, organisation_id=None
) -> ChangeSummaryResult:
    return _update_editorial(db, summary_id, organisation_id, summary_text=text)


def set_client_visibility(
    db: Session, summary_id, visible: bool, organisation_id=None
) -> ChangeSummaryResult:
    return _update_editorial(
        db, summary_id, organisation_id, visible_to_client=visible
    )


def format_summary_text(summary: DocumentChangeSummary) -> str:
    lines = ["# Changes Since Last Issue", ""]
    new_count = summary.new_actions_count or 0
    closed_count = summary.closed_actions_count or 0
    reopened_count = summary.reopened_actions_count or 0
    outstanding = summary.outstanding_actions_count or 0

    if new_count:
        lines += [f"## New Actions ({new_count})", ""]
        lines += [
            f"- [{a.get('priority_band') or '-'}] {a['recommended_action']}"
            for a in summary.new_actions or []
        ]
        lines.append("")
    if closed_count:
        lines += [f"## Closed Actions ({closed_count})", ""]
        lines += [
            f"- [{a.get('priority_band') or '-'}] {a['recommended_action']}"
            for a in summary.closed_actions or []
        ]
        lines.append("")
    if reopened_count:
        lines += [f"## Reopened Actions ({reopened_count})", ""]
        lines += [
            f"- [{a.get('priority_band') or '-'}] {a['recommended_action']}"
            for a in summary.reopened_actions or []
        ]
        lines.append("")
    if outstanding:
        lines += [f"## Outstanding Actions: {outstanding}", ""]
    if not summary.has_material_changes:
        lines += ["_No material changes since last issue._", ""]
    return "\n".join(lines)


def summary_stats(summary: DocumentChangeSummary) -> dict:
    new_count = summary.new_actions_count or 0
    closed_count = summary.closed_actions_count or 0
    reopened_count = summary.reopened_actions_count or 0
    return {
        "total_changes": new_count + closed_count + reopened_count,
        "new_actions": new_count,
        "closed_actions": closed_count,
        "reopened_actions": reopened_count,
        "outstanding_actions": summary.outstanding_actions_count or 0,
        "has_material_changes": bool(summary.has_material_changes),
        "improvement": closed_count > new_count,
        "deterioration": new_count > closed_count,
    }
