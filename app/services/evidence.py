import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.assessment import Action, Attachment, IssueStatus, ModuleInstance
from app.schemas.assessment import AttachmentCreate
from app.schemas.lifecycle import CarryForwardResult
from app.services.common import coerce_uuid, get_scoped_document, require_draft, utcnow
from app.services.event import EventType, publish_event
from app.services.storage import storage

logger = logging.getLogger(__name__)


class Evidence:
    @staticmethod
    def _get_editable(db: Session, attachment_id, organisation_id) -> Attachment:
        attachment = db.get(Attachment, coerce_uuid(attachment_id))
        if not attachment or attachment.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Attachment not found")
        document = get_scoped_document(db, attachment.document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Attachment not found")
        require_draft(document, "Evidence")
        return attachment

    @staticmethod
    def upload_url(
        db: Session, document_id, organisation_id, file_name: str, file_type: str
    ) -> dict:
        document = get_scoped_document(db, document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Document not found")
        require_draft(document, "Evidence")
        key = storage.generate_evidence_key(
            str(document.organisation_id), str(document.id), file_name
        )
        url = storage.generate_upload_url(
            settings.s3_evidence_bucket_name, key, file_type
        )
        return {"file_path": key, "upload_url": url}

    @staticmethod
    def create(
        db: Session,
        document_id,
        organisation_id,
        payload: AttachmentCreate,
        uploaded_by=None,
    ) -> Attachment:
        document = get_scoped_document(db, document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Document not found")
        require_draft(document, "Evidence")

        if payload.module_instance_id:
            module = db.get(ModuleInstance, payload.module_instance_id)
            if not module or module.document_id != document.id:
                raise HTTPException(status_code=404, detail="Module not found")
        if payload.action_id:
            action = db.get(Action, payload.action_id)
            if not action or action.document_id != document.id:
                raise HTTPException(status_code=404, detail="Action not found")

        attachment = Attachment(
            organisation_id=document.organisation_id,
            document_id=document.id,
            base_document_id=document.base_document_id,
            uploaded_by=coerce_uuid(uploaded_by),
            **payload.model_dump(),
        )
        db.add(attachment)
        db.commit()
        db.refresh(attachment)
        logger.info("Attached %s to document %s", attachment.file_name, document.id)
        return attachment

    @staticmethod
    def list_for_document(db: Session, document_id) -> list[Attachment]:
        stmt = (
            select(Attachment)
            .where(Attachment.document_id == coerce_uuid(document_id))
            .where(Attachment.deleted_at.is_(None))
            .order_by(Attachment.created_at.desc())
        )
        return list(db.scalars(stmt).all())

    @staticmethod
    def update_caption(
        db: Session, attachment_id, organisation_id, caption: str | None
    ) -> Attachment:
        attachment = Evidence._get_editable(db, attachment_id, organisation_id)
        attachment.caption = caption
        db.commit()
        db.refresh(attachment)
        return attachment

    @staticmethod
    def delete(db: Session, attachment_id, organisation_id) -> None:
        attachment = Evidence._get_editable(db, attachment_id, organisation_id)
        attachment.deleted_at = utcnow()
        db.commit()
        logger.info("Soft-deleted attachment %s", attachment.id)

    @staticmethod
    def download_url(db: Session, attachment_id, organisation_id) -> str:
        attachment = db.get(Attachment, coerce_uuid(attachment_id))
        if (
            not attachment
            or attachment.deleted_at is not None
            or attachment.organisation_id != coerce_uuid(organisation_id)
        ):
            raise HTTPException(status_code=404, detail="Attachment not found")
        return storage.generate_download_url(
            settings.s3_evidence_bucket_name, attachment.file_path
        )


def carry_forward_evidence(
    db: Session, from_document_id, to_document_id, to_base_document_id, organisation_id
) -> CarryForwardResult:
    """Copy live attachment rows onto a new draft, pointing at the same objects.

    Module and action links are remapped onto the target version by module
    key and action lineage; links with no counterpart are dropped.
    """
    try:
        target = get_scoped_document(db, to_document_id, organisation_id)
        if target is None:
            return CarryForwardResult(success=False, error="Target document not found")
        if target.issue_status != IssueStatus.draft:
            return CarryForwardResult(
                success=False,
                error="Cannot add evidence to an issued or superseded document",
            )

        sources = Evidence.list_for_document(db, from_document_id)
        if not sources:
            return CarryForwardResult(success=True, count=0)

        old_module_keys = {
            m.id: m.module_key
            for m in db.scalars(
                select(ModuleInstance).where(
                    ModuleInstance.document_id == coerce_uuid(from_document_id)
                )
            )
        }
        new_modules = {
            m.module_key: m.id
            for m in db.scalars(
                select(ModuleInstance).where(ModuleInstance.document_id == target.id)
            )
        }
        old_lineage = {
            a.id: a.lineage_id
            for a in db.scalars(
                select(Action).where(
                    Action.document_id == coerce_uuid(from_document_id)
                )
            )
        }
        new_actions = {
            a.origin_action_id: a.id
            for a in db.scalars(
                select(Action).where(
                    Action.document_id == target.id,
                    Action.deleted_at.is_(None),
                )
            )
            if a.origin_action_id is not None
        }

        for source in sources:
            module_key = old_module_keys.get(source.module_instance_id)
            db.add(
                Attachment(
                    organisation_id=target.organisation_id,
                    document_id=target.id,
                    base_document_id=coerce_uuid(to_base_document_id),
                    module_instance_id=new_modules.get(module_key),
                    action_id=new_actions.get(old_lineage.get(source.action_id)),
                    file_path=source.file_path,
                    file_name=source.file_name,
                    file_type=source.file_type,
                    file_size_bytes=source.file_size_bytes,
                    caption=source.caption,
                    taken_at=source.taken_at,
                    uploaded_by=source.uploaded_by,
                    carried_from_attachment_id=source.id,
                )
            )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception(
            "Failed to carry evidence from %s to %s", from_document_id, to_document_id
        )
        return CarryForwardResult(success=False, error=str(e))

    logger.info(
        "Carried %d attachments from %s to %s",
        len(sources),
        from_document_id,
        to_document_id,
    )
    publish_event(
        EventType.evidence_carried_forward,
        entity_type="document",
        entity_id=target.id,
        document_id=target.id,
        payload={"from_document_id": str(from_document_id), "count": len(sources)},
    )
    return CarryForwardResult(success=True, count=len(sources))


evidence = Evidence()
