from __future__ import annotations

import logging
import uuid

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.assessment import Document, DocumentType, IssueStatus, Organisation
from app.schemas.assessment import DocumentCreate, DocumentUpdate
from app.services.approval import default_approval_status
from app.services.common import (
    apply_ordering,
    apply_pagination,
    coerce_uuid,
    get_scoped_document,
    require_draft,
)
from app.services.event import EventType, publish_event
from app.services.modules import ModuleInstances
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

_VALID_TYPES = {e.value for e in DocumentType}
_VALID_ISSUE_STATUSES = {e.value for e in IssueStatus}


class Documents(ListResponseMixin):
    @staticmethod
    def create(
        db: Session, organisation_id, payload: DocumentCreate, created_by=None
    ) -> Document:
        organisation = db.get(Organisation, coerce_uuid(organisation_id))
        if not organisation:
            raise HTTPException(status_code=404, detail="Organisation not found")
        if payload.document_type not in _VALID_TYPES:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid document_type. Allowed: {sorted(_VALID_TYPES)}",
            )

        data = payload.model_dump()
        data["document_type"] = DocumentType(data["document_type"])
        document_id = uuid.uuid4()
        document = Document(
            id=document_id,
            organisation_id=organisation.id,
            base_document_id=document_id,
            version_number=1,
            issue_status=IssueStatus.draft,
            approval_status=default_approval_status(db, organisation.id),
            created_by=coerce_uuid(created_by),
            **data,
        )
        db.add(document)
        db.flush()
        ModuleInstances.create_skeleton(db, document)
        db.commit()
        db.refresh(document)
        logger.info(
            "Created %s document %s", document.document_type.value, document.id
        )
        publish_event(
            EventType.document_created,
            entity_type="document",
            entity_id=document.id,
            actor_id=created_by,
            document_id=document.id,
        )
        return document

    @staticmethod
    def get(db: Session, document_id, organisation_id=None) -> Document:
        document = get_scoped_document(db, document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Document not found")
        return document

    @staticmethod
    def list(  # type: ignore[override]
        db: Session,
        organisation_id,
        document_type: str | None,
        issue_status: str | None,
        base_document_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Document]:
        stmt = select(Document).where(
            Document.organisation_id == coerce_uuid(organisation_id),
            Document.is_active.is_(True),
        )
        if document_type is not None:
            if document_type not in _VALID_TYPES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid document_type. Allowed: {sorted(_VALID_TYPES)}",
                )
            stmt = stmt.where(Document.document_type == DocumentType(document_type))
        if issue_status is not None:
            if issue_status not in _VALID_ISSUE_STATUSES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid issue_status. Allowed: {sorted(_VALID_ISSUE_STATUSES)}",
                )
            stmt = stmt.where(Document.issue_status == IssueStatus(issue_status))
        if base_document_id is not None:
            stmt = stmt.where(
                Document.base_document_id == coerce_uuid(base_document_id)
            )
        stmt = apply_ordering(
            stmt,
            order_by,
            order_dir,
            {
                "created_at": Document.created_at,
                "updated_at": Document.updated_at,
                "title": Document.title,
                "version_number": Document.version_number,
            },
        )
        return list(db.scalars(apply_pagination(stmt, limit, offset)).all())

    @staticmethod
    def update(
        db: Session, document_id, organisation_id, payload: DocumentUpdate, actor_id=None
    ) -> Document:
        document = Documents.get(db, document_id, organisation_id)
        require_draft(document)
        data = payload.model_dump(exclude_unset=True)
        if "title" in data and not data["title"]:
            raise HTTPException(status_code=400, detail="Title cannot be empty")
        for key, value in data.items():
            setattr(document, key, value)
        db.commit()
        db.refresh(document)
        logger.info("Updated document %s", document.id)
        publish_event(
            EventType.document_updated,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor_id,
            document_id=document.id,
            payload={"changed_fields": list(data.keys())},
        )
        return document

    @staticmethod
    def delete(db: Session, document_id, organisation_id, actor_id=None) -> None:
        document = Documents.get(db, document_id, organisation_id)
        require_draft(document)
        document.is_active = False
        db.commit()
        logger.info("Soft-deleted document %s", document.id)
        publish_event(
            EventType.document_deleted,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor_id,
            document_id=document.id,
        )


documents = Documents()
