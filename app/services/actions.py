import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.assessment import Action, ActionStatus
from app.schemas.assessment import ActionClose, ActionCreate, ActionReopen, ActionUpdate
from app.services.capabilities import REOPEN_ACTION, CapabilityChecker, allow_all
from app.services.common import coerce_uuid, get_scoped_document, require_draft, utcnow
from app.services.event import EventType, publish_event
from app.services.modules import ModuleInstances
from app.services.response import ListResponseMixin

logger = logging.getLogger(__name__)

_VALID_STATUSES = {e.value for e in ActionStatus}


class Actions(ListResponseMixin):
    @staticmethod
    def _get_editable(db: Session, action_id, organisation_id) -> Action:
        action = db.get(Action, coerce_uuid(action_id))
        if not action or action.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Action not found")
        document = get_scoped_document(db, action.document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Action not found")
        require_draft(document, "Action")
        return action

    @staticmethod
    def create(
        db: Session, document_id, organisation_id, payload: ActionCreate, actor_id=None
    ) -> Action:
        document = get_scoped_document(db, document_id, organisation_id)
        if not document:
            raise HTTPException(status_code=404, detail="Document not found")
        require_draft(document, "Action")

        module_instance_id = None
        if payload.module_key:
            module = ModuleInstances.get_by_key(db, document.id, payload.module_key)
            if not module:
                raise HTTPException(status_code=404, detail="Module not found")
            module_instance_id = module.id

        data = payload.model_dump(exclude={"module_key"})
        action = Action(
            organisation_id=document.organisation_id,
            document_id=document.id,
            module_instance_id=module_instance_id,
            status=ActionStatus.open,
            **data,
        )
        db.add(action)
        db.commit()
        db.refresh(action)
        logger.info("Created action %s on document %s", action.id, document.id)
        return action

    @staticmethod
    def get(db: Session, action_id, organisation_id=None) -> Action:
        action = db.get(Action, coerce_uuid(action_id))
        if not action or action.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Action not found")
        if organisation_id is not None and action.organisation_id != coerce_uuid(
            organisation_id
        ):
            raise HTTPException(status_code=404, detail="Action not found")
        return action

    @staticmethod
    def list(  # type: ignore[override]
        db: Session,
        document_id,
        status: str | None = None,
        include_deleted: bool = False,
    ) -> list[Action]:
        stmt = select(Action).where(Action.document_id == coerce_uuid(document_id))
        if status is not None:
            if status not in _VALID_STATUSES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid status. Allowed: {sorted(_VALID_STATUSES)}",
                )
            stmt = stmt.where(Action.status == ActionStatus(status))
        if not include_deleted:
            stmt = stmt.where(Action.deleted_at.is_(None))
        return list(db.scalars(stmt.order_by(Action.created_at)).all())

    @staticmethod
    def update(db: Session, action_id, organisation_id, payload: ActionUpdate) -> Action:
        action = Actions._get_editable(db, action_id, organisation_id)
        data = payload.model_dump(exclude_unset=True)
        if "status" in data and data["status"] is not None:
            if data["status"] not in _VALID_STATUSES:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid status. Allowed: {sorted(_VALID_STATUSES)}",
                )
            if data["status"] == ActionStatus.closed.value:
                raise HTTPException(
                    status_code=400, detail="Use the close operation to close actions"
                )
            data["status"] = ActionStatus(data["status"])
        for key, value in data.items():
            setattr(action, key, value)
        db.commit()
        db.refresh(action)
        return action

    @staticmethod
    def close(
        db: Session, action_id, organisation_id, actor_id, payload: ActionClose
    ) -> Action:
        action = Actions._get_editable(db, action_id, organisation_id)
        if action.status == ActionStatus.closed:
            raise HTTPException(status_code=409, detail="Action is already closed")
        action.status = ActionStatus.closed
        action.closed_at = utcnow()
        action.closed_by = coerce_uuid(actor_id)
        action.closure_note = payload.closure_note
        db.commit()
        db.refresh(action)
        logger.info("Closed action %s", action.id)
        publish_event(
            EventType.action_closed,
            entity_type="action",
            entity_id=action.id,
            actor_id=actor_id,
            document_id=action.document_id,
        )
        return action

    @staticmethod
    def reopen(
        db: Session,
        action_id,
        organisation_id,
        actor_id,
        payload: ActionReopen,
        capabilities: CapabilityChecker = allow_all,
    ) -> Action:
        if not capabilities.can_perform(REOPEN_ACTION, actor_id, organisation_id):
            raise HTTPException(
                status_code=403, detail="You are not allowed to reopen actions"
            )
        action = Actions._get_editable(db, action_id, organisation_id)
        if action.status != ActionStatus.closed:
            raise HTTPException(status_code=409, detail="Only closed actions can be reopened")
        action.status = ActionStatus.open
        action.reopened_at = utcnow()
        action.reopened_by = coerce_uuid(actor_id)
        action.reopen_note = payload.reopen_note
        action.closed_at = None
        action.closed_by = None
        action.closure_note = None
        db.commit()
        db.refresh(action)
        logger.info("Reopened action %s", action.id)
        publish_event(
            EventType.action_reopened,
            entity_type="action",
            entity_id=action.id,
            actor_id=actor_id,
            document_id=action.document_id,
        )
        return action

    @staticmethod
    def delete(db: Session, action_id, organisation_id) -> None:
        action = Actions._get_editable(db, action_id, organisation_id)
        action.deleted_at = utcnow()
        db.commit()
        logger.info("Soft-deleted action %s", action.id)


actions = Actions()
