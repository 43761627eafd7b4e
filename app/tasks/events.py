import logging

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.events.process_event", ignore_result=True)
def process_event(
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    document_id: str | None = None,
    payload: dict | None = None,
) -> None:
    """Central fan-out task for lifecycle events.

    Integrity violations are escalated to the administrator alert channel
    (CRITICAL log records); everything else is recorded at INFO.
    """
    extra = {"event_type": event_type, "document_id": document_id}
    if event_type == "lifecycle.integrity_violation":
        logger.critical(
            "Integrity violation on %s/%s: %s",
            entity_type,
            entity_id,
            (payload or {}).get("issues") or (payload or {}).get("reason"),
            extra=extra,
        )
        return
    logger.info(
        "Processing event %s for %s/%s (actor=%s)",
        event_type,
        entity_type,
        entity_id,
        actor_id,
        extra=extra,
    )
