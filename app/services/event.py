import enum
import logging
import uuid

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    document_created = "document.created"
    document_updated = "document.updated"
    document_deleted = "document.deleted"

    version_created = "version.created"
    document_issued = "document.issued"
    document_superseded = "document.superseded"

    approval_requested = "approval.requested"
    approval_approved = "approval.approved"
    approval_rejected = "approval.rejected"
    approval_cleared = "approval.cleared"

    pdf_locked = "pdf.locked"
    pdf_lock_failed = "pdf.lock_failed"

    change_summary_generated = "change_summary.generated"
    actions_carried_forward = "actions.carried_forward"
    evidence_carried_forward = "evidence.carried_forward"

    action_closed = "action.closed"
    action_reopened = "action.reopened"

    integrity_violation = "lifecycle.integrity_violation"


def publish_event(
    event_type: EventType,
    entity_type: str,
    entity_id: str | uuid.UUID,
    actor_id: str | uuid.UUID | None = None,
    document_id: str | uuid.UUID | None = None,
    payload: dict | None = None,
) -> None:
    """Fire-and-forget event publishing.

    Queues a Celery task for fan-out. Never raises; failures are logged and
    swallowed.
    """
    try:
        from app.tasks.events import process_event

        process_event.delay(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor_id=str(actor_id) if actor_id else None,
            document_id=str(document_id) if document_id else None,
            payload=payload or {},
        )
        logger.debug(
            "Published event %s for %s/%s", event_type.value, entity_type, entity_id
        )
    except Exception as e:
        logger.exception("Failed to publish event %s: %s", event_type.value, e)
