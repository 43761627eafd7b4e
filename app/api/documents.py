from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_id, get_capabilities, get_db, get_organisation_id
from app.models.assessment import DocumentType
from app.schemas.assessment import (
    ActionClose,
    ActionCreate,
    ActionRead,
    ActionReopen,
    ActionUpdate,
    AttachmentCreate,
    AttachmentRead,
    CaptionUpdate,
    DocumentCreate,
    DocumentRead,
    DocumentUpdate,
    ModuleInstanceRead,
    ModuleInstanceUpsert,
    UploadURLRequest,
)
from app.schemas.common import ListResponse
from app.services import actions as action_service
from app.services import documents as document_service
from app.services import evidence as evidence_service
from app.services import modules as module_service
from app.services.issue_requirements import describe_requirements

router = APIRouter(tags=["documents"])


# ------------------------------------------------------------------
# Document CRUD
# ------------------------------------------------------------------


@router.post(
    "/documents", response_model=DocumentRead, status_code=status.HTTP_201_CREATED
)
def create_document(
    payload: DocumentCreate,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return document_service.documents.create(db, organisation_id, payload, actor_id)


@router.get("/documents/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return document_service.documents.get(db, document_id, organisation_id)


@router.get("/documents", response_model=ListResponse[DocumentRead])
def list_documents(
    document_type: str | None = None,
    issue_status: str | None = None,
    base_document_id: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return document_service.documents.list_response(
        db,
        organisation_id,
        document_type,
        issue_status,
        base_document_id,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.patch("/documents/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return document_service.documents.update(
        db, document_id, organisation_id, payload, actor_id
    )


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    document_service.documents.delete(db, document_id, organisation_id, actor_id)


@router.get("/document-types/{document_type}/requirements")
def get_issue_requirements(document_type: str):
    try:
        doc_type = DocumentType(document_type)
    except ValueError:
        raise HTTPException(status_code=404, detail="Unknown document type")
    return describe_requirements(doc_type)


# ------------------------------------------------------------------
# Modules
# ------------------------------------------------------------------


@router.get(
    "/documents/{document_id}/modules", response_model=list[ModuleInstanceRead]
)
def list_modules(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = document_service.documents.get(db, document_id, organisation_id)
    return module_service.module_instances.list_for_document(db, document.id)


@router.put(
    "/documents/{document_id}/modules/{module_key}",
    response_model=ModuleInstanceRead,
)
def upsert_module(
    document_id: str,
    module_key: str,
    payload: ModuleInstanceUpsert,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return module_service.module_instances.upsert(
        db, document_id, organisation_id, module_key, payload
    )


@router.post("/modules/{module_id}/complete", response_model=ModuleInstanceRead)
def complete_module(
    module_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return module_service.module_instances.complete(db, module_id, organisation_id)


# ------------------------------------------------------------------
# Actions
# ------------------------------------------------------------------


@router.post(
    "/documents/{document_id}/actions",
    response_model=ActionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_action(
    document_id: str,
    payload: ActionCreate,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return action_service.actions.create(
        db, document_id, organisation_id, payload, actor_id
    )


@router.get("/documents/{document_id}/actions", response_model=list[ActionRead])
def list_actions(
    document_id: str,
    status_filter: str | None = Query(default=None, alias="status"),
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = document_service.documents.get(db, document_id, organisation_id)
    return action_service.actions.list(db, document.id, status_filter)


@router.patch("/actions/{action_id}", response_model=ActionRead)
def update_action(
    action_id: str,
    payload: ActionUpdate,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return action_service.actions.update(db, action_id, organisation_id, payload)


@router.post("/actions/{action_id}/close", response_model=ActionRead)
def close_action(
    action_id: str,
    payload: ActionClose,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return action_service.actions.close(
        db, action_id, organisation_id, actor_id, payload
    )


@router.post("/actions/{action_id}/reopen", response_model=ActionRead)
def reopen_action(
    action_id: str,
    payload: ActionReopen,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    capabilities=Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    return action_service.actions.reopen(
        db, action_id, organisation_id, actor_id, payload, capabilities
    )


@router.delete("/actions/{action_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_action(
    action_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    action_service.actions.delete(db, action_id, organisation_id)


# ------------------------------------------------------------------
# Attachments
# ------------------------------------------------------------------


@router.post("/documents/{document_id}/attachments/upload-url")
def attachment_upload_url(
    document_id: str,
    payload: UploadURLRequest,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return evidence_service.evidence.upload_url(
        db, document_id, organisation_id, payload.file_name, payload.file_type
    )


@router.post(
    "/documents/{document_id}/attachments",
    response_model=AttachmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_attachment(
    document_id: str,
    payload: AttachmentCreate,
    organisation_id=Depends(get_organisation_id),
    actor_id=Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    return evidence_service.evidence.create(
        db, document_id, organisation_id, payload, actor_id
    )


@router.get(
    "/documents/{document_id}/attachments", response_model=list[AttachmentRead]
)
def list_attachments(
    document_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    document = document_service.documents.get(db, document_id, organisation_id)
    return evidence_service.evidence.list_for_document(db, document.id)


@router.patch("/attachments/{attachment_id}", response_model=AttachmentRead)
def update_attachment_caption(
    attachment_id: str,
    payload: CaptionUpdate,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    return evidence_service.evidence.update_caption(
        db, attachment_id, organisation_id, payload.caption
    )


@router.get("/attachments/{attachment_id}/download-url")
def attachment_download_url(
    attachment_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    url = evidence_service.evidence.download_url(db, attachment_id, organisation_id)
    return {"url": url}


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_attachment(
    attachment_id: str,
    organisation_id=Depends(get_organisation_id),
    db: Session = Depends(get_db),
):
    evidence_service.evidence.delete(db, attachment_id, organisation_id)
