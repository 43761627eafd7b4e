import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.config import settings
from app.models.assessment import Attachment, IssueStatus
from app.schemas.assessment import AttachmentCreate
from app.services.evidence import carry_forward_evidence, evidence
from app.services.modules import module_instances
from tests.factories import add_action


def _attach(db_session, doc, organisation, person, **kw):
    payload = AttachmentCreate(
        file_path=kw.pop("file_path", f"{organisation.id}/{doc.id}/evidence/door.jpg"),
        file_name=kw.pop("file_name", "door.jpg"),
        file_type="image/jpeg",
        file_size_bytes=2048,
        **kw,
    )
    return evidence.create(db_session, doc.id, organisation.id, payload, person.id)


class TestEvidenceCrud:
    def test_upload_url(self, db_session, make_document, organisation, object_store):
        doc = make_document()
        result = evidence.upload_url(
            db_session, doc.id, organisation.id, "door.jpg", "image/jpeg"
        )
        assert result["file_path"].startswith(f"{organisation.id}/{doc.id}/")
        assert result["upload_url"].startswith(
            f"https://s3.test/{settings.s3_evidence_bucket_name}/"
        )

    def test_create_and_list(self, db_session, make_document, organisation, person):
        doc = make_document()
        module = module_instances.get_by_key(db_session, doc.id, "A1_DOC_CONTROL")
        attachment = _attach(
            db_session,
            doc,
            organisation,
            person,
            module_instance_id=module.id,
            caption="Fire door closer",
        )
        assert attachment.base_document_id == doc.base_document_id
        assert attachment.uploaded_by == person.id
        listed = evidence.list_for_document(db_session, doc.id)
        assert [a.id for a in listed] == [attachment.id]

    def test_module_from_other_document_rejected(
        self, db_session, make_document, organisation, person
    ):
        doc = make_document()
        other = make_document(title="Other Site")
        module = module_instances.get_by_key(db_session, other.id, "A1_DOC_CONTROL")
        with pytest.raises(HTTPException) as exc:
            _attach(db_session, doc, organisation, person, module_instance_id=module.id)
        assert exc.value.status_code == 404

    def test_action_from_other_document_rejected(
        self, db_session, make_document, organisation, person
    ):
        doc = make_document()
        other = make_document(title="Other Site")
        action = add_action(db_session, other, "Repair fire door")
        with pytest.raises(HTTPException) as exc:
            _attach(db_session, doc, organisation, person, action_id=action.id)
        assert exc.value.detail == "Action not found"

    def test_issued_document_is_read_only(
        self, db_session, make_document, organisation, person
    ):
        doc = make_document()
        attachment = _attach(db_session, doc, organisation, person)
        doc.issue_status = IssueStatus.issued
        db_session.commit()
        with pytest.raises(HTTPException) as exc:
            evidence.update_caption(db_session, attachment.id, organisation.id, "New")
        assert exc.value.status_code == 409
        with pytest.raises(HTTPException) as exc:
            _attach(db_session, doc, organisation, person)
        assert exc.value.status_code == 409

    def test_caption_and_delete(self, db_session, make_document, organisation, person):
        doc = make_document()
        attachment = _attach(db_session, doc, organisation, person)
        updated = evidence.update_caption(
            db_session, attachment.id, organisation.id, "Escape stair"
        )
        assert updated.caption == "Escape stair"
        evidence.delete(db_session, attachment.id, organisation.id)
        assert evidence.list_for_document(db_session, doc.id) == []
        with pytest.raises(HTTPException):
            evidence.delete(db_session, attachment.id, organisation.id)

    def test_download_url_scoped(
        self,
        db_session,
        make_document,
        organisation,
        approval_organisation,
        person,
        object_store,
    ):
        doc = make_document()
        attachment = _attach(db_session, doc, organisation, person)
        url = evidence.download_url(db_session, attachment.id, organisation.id)
        assert url.endswith(attachment.file_path)
        with pytest.raises(HTTPException) as exc:
            evidence.download_url(db_session, attachment.id, approval_organisation.id)
        assert exc.value.status_code == 404


class TestCarryForward:
    def test_refuses_non_draft_target(
        self, db_session, make_document, organisation, person
    ):
        source = make_document()
        target = make_document(title="Target")
        target.issue_status = IssueStatus.superseded
        db_session.commit()
        result = carry_forward_evidence(
            db_session, source.id, target.id, target.base_document_id, organisation.id
        )
        assert result.success is False
        assert result.error == "Cannot add evidence to an issued or superseded document"

    def test_missing_target(self, db_session, make_document, organisation):
        source = make_document()
        result = carry_forward_evidence(
            db_session, source.id, uuid.uuid4(), uuid.uuid4(), organisation.id
        )
        assert result.error == "Target document not found"

    def test_nothing_to_carry(self, db_session, make_document, organisation):
        source = make_document()
        target = make_document(title="Target")
        result = carry_forward_evidence(
            db_session, source.id, target.id, target.base_document_id, organisation.id
        )
        assert result.success is True
        assert result.count == 0

    def test_copies_rows_and_remaps_modules(
        self, db_session, make_document, organisation, person
    ):
        source = make_document()
        target = make_document(title="Target")
        module = module_instances.get_by_key(db_session, source.id, "A2_BUILDING_PROFILE")
        original = _attach(
            db_session, source, organisation, person, module_instance_id=module.id
        )
        result = carry_forward_evidence(
            db_session, source.id, target.id, target.base_document_id, organisation.id
        )
        assert result.success is True
        assert result.count == 1

        copied = db_session.scalars(
            select(Attachment).where(Attachment.document_id == target.id)
        ).one()
        assert copied.file_path == original.file_path
        assert copied.carried_from_attachment_id == original.id
        assert copied.base_document_id == target.base_document_id
        target_module = module_instances.get_by_key(
            db_session, target.id, "A2_BUILDING_PROFILE"
        )
        assert copied.module_instance_id == target_module.id
        # Actions do not share a lineage across unrelated documents.
        assert copied.action_id is None
