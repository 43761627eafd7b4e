import logging

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.integrity.check_chain_integrity", ignore_result=True)
def check_chain_integrity() -> None:
    """Periodic sweep over every document chain.

    Chains with more than one draft or issued version, issued versions
    without a locked PDF, or superseded versions without a successor are
    reported as integrity violations.
    """
    from sqlalchemy import select

    from app.db import SessionLocal
    from app.models.assessment import Document
    from app.services.versioning import lifecycle

    db = SessionLocal()
    try:
        base_ids = db.scalars(
            select(Document.base_document_id)
            .where(Document.is_active.is_(True))
            .distinct()
        ).all()

        invalid = 0
        for base_id in base_ids:
            try:
                report = lifecycle.check_chain_integrity(db, base_id)
                if not report.valid:
                    invalid += 1
            except Exception as e:
                db.rollback()
                logger.warning("Failed to check chain %s: %s", base_id, e)

        logger.info(
            "Checked %d document chains, %d with integrity violations",
            len(base_ids),
            invalid,
        )
    except Exception as e:
        logger.exception("Failed to run chain integrity sweep: %s", e)
    finally:
        db.close()
