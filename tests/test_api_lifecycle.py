import uuid
from unittest.mock import MagicMock, patch

from app.api.deps import get_capabilities, get_lifecycle
from app.config import settings
from app.main import app
from app.models.assessment import IssueStatus
from app.schemas.lifecycle import LifecycleErrorCode, LifecycleResult
from app.services.capabilities import RoleCapabilities
from tests.factories import PDF_BYTES, add_action

PDF_HEADERS = {"Content-Type": "application/pdf"}


def _lock(client, doc, org_headers, content=PDF_BYTES):
    return client.put(
        f"/documents/{doc.id}/locked-pdf",
        content=content,
        headers={**org_headers, **PDF_HEADERS},
    )


def _issue(client, doc, org_headers):
    return client.post(f"/documents/{doc.id}/issue", headers=org_headers)


class TestIssueEndpoints:
    def test_issue_validation(self, client, org_headers, make_document):
        doc = make_document(fill=False)
        resp = client.get(f"/documents/{doc.id}/issue-validation", headers=org_headers)
        assert resp.status_code == 200
        assert resp.json()["valid"] is False
        assert len(resp.json()["errors"]) == 9

    def test_issue_with_locked_pdf(self, client, org_headers, make_document, object_store):
        doc = make_document()
        assert _lock(client, doc, org_headers).status_code == 200
        resp = _issue(client, doc, org_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["version_number"] == 1
        steps = {s["step"]: s for s in body["steps"]}
        assert steps["change_summary"]["required"] is False
        assert client.get(f"/documents/{doc.id}", headers=org_headers).json()[
            "issue_status"
        ] == "issued"

    def test_issue_without_locked_pdf(self, client, org_headers, make_document):
        doc = make_document()
        resp = _issue(client, doc, org_headers)
        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "pdf_not_locked"
        assert body["message"] == "Cannot issue without a locked PDF"
        assert body["details"]["critical"] is False

    def test_issue_invalid_document(self, client, org_headers, make_document):
        doc = make_document(fill=False, lock_pdf=True)
        resp = _issue(client, doc, org_headers)
        assert resp.status_code == 422
        assert resp.json()["code"] == "validation_failed"

    def test_issue_unknown_document(self, client, org_headers):
        resp = client.post(f"/documents/{uuid.uuid4()}/issue", headers=org_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    def test_malformed_ids_are_not_found(self, client, org_headers, make_document):
        doc = make_document(lock_pdf=True)
        resp = client.post("/documents/not-a-uuid/issue", headers=org_headers)
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"
        resp = client.post(
            f"/documents/not-a-uuid/supersede/{doc.id}", headers=org_headers
        )
        assert resp.status_code == 404
        resp = client.post("/document-chains/not-a-uuid/versions", headers=org_headers)
        assert resp.status_code == 404
        resp = client.put(
            "/documents/not-a-uuid/locked-pdf",
            content=PDF_BYTES,
            headers={**org_headers, **PDF_HEADERS},
        )
        assert resp.status_code == 404
        resp = client.get("/document-chains/not-a-uuid/integrity", headers=org_headers)
        assert resp.status_code == 404

    def test_issue_forbidden(self, client, org_headers, make_document, person):
        doc = make_document(lock_pdf=True)
        app.dependency_overrides[get_capabilities] = lambda: RoleCapabilities(
            {person.id: "viewer"}
        )
        resp = _issue(client, doc, org_headers)
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    def test_integrity_failure_is_critical(self, client, org_headers, make_document):
        doc = make_document(lock_pdf=True)
        stub = MagicMock()
        stub.issue.return_value = LifecycleResult.failure(
            "Chain has 2 issued versions: v1, v2",
            LifecycleErrorCode.integrity_violation,
            document_id=doc.id,
        )
        app.dependency_overrides[get_lifecycle] = lambda: stub
        resp = _issue(client, doc, org_headers)
        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == "integrity_violation"
        assert body["details"]["critical"] is True

    def test_infrastructure_failure(self, client, org_headers, make_document):
        doc = make_document(lock_pdf=True)
        with patch(
            "app.services.versioning.validate_for_issue",
            side_effect=RuntimeError("connection reset"),
        ):
            resp = _issue(client, doc, org_headers)
        assert resp.status_code == 503
        assert resp.json()["code"] == "infrastructure_error"


class TestVersionEndpoints:
    def test_create_version_and_history(
        self, client, org_headers, make_document, db_session
    ):
        v1 = make_document(lock_pdf=True)
        add_action(db_session, v1, "Repair fire door")
        assert _issue(client, v1, org_headers).status_code == 200

        resp = client.post(
            f"/document-chains/{v1.base_document_id}/versions", headers=org_headers
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["version_number"] == 2
        assert body["steps"][0]["detail"] == "1 actions carried forward"

        resp = client.post(
            f"/document-chains/{v1.base_document_id}/versions", headers=org_headers
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "draft_exists"

        history = client.get(
            f"/document-chains/{v1.base_document_id}/versions", headers=org_headers
        ).json()
        assert [(v["version_number"], v["issue_status"]) for v in history] == [
            (2, "draft"),
            (1, "issued"),
        ]

    def test_create_version_without_issued(self, client, org_headers, make_document):
        doc = make_document()
        resp = client.post(
            f"/document-chains/{doc.base_document_id}/versions", headers=org_headers
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "no_issued_version"

    def test_supersede_and_issue_new(
        self, client, org_headers, make_document, db_session, object_store
    ):
        v1 = make_document(lock_pdf=True)
        _issue(client, v1, org_headers)
        v2_id = client.post(
            f"/document-chains/{v1.base_document_id}/versions", headers=org_headers
        ).json()["document_id"]
        resp = client.put(
            f"/documents/{v2_id}/locked-pdf",
            content=PDF_BYTES,
            headers={**org_headers, **PDF_HEADERS},
        )
        assert resp.status_code == 200

        resp = client.post(f"/documents/{v1.id}/supersede/{v2_id}", headers=org_headers)
        assert resp.status_code == 200
        db_session.refresh(v1)
        assert v1.issue_status == IssueStatus.superseded
        assert str(v1.superseded_by_document_id) == v2_id

    def test_history_unknown_chain(self, client, org_headers):
        resp = client.get(f"/document-chains/{uuid.uuid4()}/versions", headers=org_headers)
        assert resp.status_code == 404

    def test_chain_integrity_and_health(self, client, org_headers, make_document):
        doc = make_document(lock_pdf=True)
        _issue(client, doc, org_headers)
        resp = client.get(
            f"/document-chains/{doc.base_document_id}/integrity", headers=org_headers
        )
        assert resp.status_code == 200
        assert resp.json()["valid"] is True
        assert resp.json()["issued_count"] == 1

        health = client.get("/lifecycle/health", headers=org_headers).json()
        assert health["chains"] == 1
        assert health["healthy"] is True
        assert health["versions"]["issued"] == 1


class TestApprovalEndpoints:
    def _headers(self, approval_organisation, person):
        return {
            "X-Organisation-Id": str(approval_organisation.id),
            "X-User-Id": str(person.id),
        }

    def test_approval_flow(self, client, make_document, approval_organisation, person):
        headers = self._headers(approval_organisation, person)
        doc = make_document(org=approval_organisation)
        check = client.get(f"/documents/{doc.id}/approval/can-issue", headers=headers)
        assert check.json()["can_issue"] is False

        resp = client.post(
            f"/documents/{doc.id}/approval/reject",
            json={"reason": "Missing drawings"},
            headers=headers,
        )
        assert resp.status_code == 200
        resp = client.post(f"/documents/{doc.id}/approval/request", headers=headers)
        assert resp.status_code == 200
        resp = client.post(
            f"/documents/{doc.id}/approval/approve",
            json={"notes": "OK"},
            headers=headers,
        )
        assert resp.status_code == 200
        check = client.get(f"/documents/{doc.id}/approval/can-issue", headers=headers)
        assert check.json()["can_issue"] is True

    def test_invalid_transition_conflicts(self, client, org_headers, make_document):
        doc = make_document()
        resp = client.post(f"/documents/{doc.id}/approval/approve", headers=org_headers)
        assert resp.status_code == 409

    def test_approve_forbidden(self, client, make_document, approval_organisation, person):
        doc = make_document(org=approval_organisation)
        app.dependency_overrides[get_capabilities] = lambda: RoleCapabilities(
            {person.id: "assessor"}
        )
        resp = client.post(
            f"/documents/{doc.id}/approval/approve",
            headers=self._headers(approval_organisation, person),
        )
        assert resp.status_code == 403

    def test_approval_unknown_document(self, client, org_headers):
        resp = client.post(
            f"/documents/{uuid.uuid4()}/approval/clear", headers=org_headers
        )
        assert resp.status_code == 404


class TestLockedPdfEndpoints:
    def test_lock_and_download(self, client, org_headers, make_document, object_store):
        doc = make_document()
        resp = _lock(client, doc, org_headers)
        assert resp.status_code == 200
        assert resp.json()["size_bytes"] == len(PDF_BYTES)

        # Drafts render live; only issued versions serve the locked copy.
        resp = client.get(f"/documents/{doc.id}/locked-pdf", headers=org_headers)
        assert resp.status_code == 404

        _issue(client, doc, org_headers)
        resp = client.get(f"/documents/{doc.id}/locked-pdf", headers=org_headers)
        assert resp.status_code == 200
        assert resp.content == PDF_BYTES
        assert resp.headers["content-type"] == "application/pdf"

    def test_tampered_pdf_is_refused(
        self, client, org_headers, make_document, object_store
    ):
        doc = make_document()
        path = _lock(client, doc, org_headers).json()["path"]
        _issue(client, doc, org_headers)
        object_store.objects[(settings.s3_pdf_bucket_name, path)] = b"%PDF-forged"
        resp = client.get(f"/documents/{doc.id}/locked-pdf", headers=org_headers)
        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == "integrity_violation"
        assert body["details"] == {"critical": True, "document_id": str(doc.id)}

    def test_lock_issued_document_conflicts(
        self, client, org_headers, make_document, object_store
    ):
        doc = make_document(lock_pdf=True)
        _issue(client, doc, org_headers)
        resp = _lock(client, doc, org_headers)
        assert resp.status_code == 409

    def test_lock_unknown_document(self, client, org_headers, object_store):
        resp = client.put(
            f"/documents/{uuid.uuid4()}/locked-pdf",
            content=PDF_BYTES,
            headers={**org_headers, **PDF_HEADERS},
        )
        assert resp.status_code == 404

    def test_url_verify_and_status(
        self, client, org_headers, make_document, object_store
    ):
        doc = make_document()
        assert client.get(
            f"/documents/{doc.id}/locked-pdf/url", headers=org_headers
        ).status_code == 404
        _lock(client, doc, org_headers)
        url = client.get(f"/documents/{doc.id}/locked-pdf/url", headers=org_headers)
        assert url.json()["url"].startswith(f"https://s3.test/{settings.s3_pdf_bucket_name}/")
        verify = client.post(f"/documents/{doc.id}/locked-pdf/verify", headers=org_headers)
        assert verify.json()["valid"] is True
        status = client.get(f"/documents/{doc.id}/pdf-status", headers=org_headers).json()
        assert status["can_regenerate"] is True
        assert status["must_use_locked_pdf"] is False


class TestChangeSummaryEndpoints:
    def test_summary_read_update_and_stats(self, client, org_headers, make_document):
        doc = make_document(lock_pdf=True)
        _issue(client, doc, org_headers)
        resp = client.get(f"/documents/{doc.id}/change-summary", headers=org_headers)
        assert resp.status_code == 200
        summary = resp.json()
        assert summary["version_number"] == 1
        assert summary["visible_to_client"] is False

        resp = client.patch(
            f"/change-summaries/{summary['id']}",
            json={"summary_text": "First issue", "visible_to_client": True},
            headers=org_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["summary_text"] == "First issue"
        assert resp.json()["visible_to_client"] is True

        stats = client.get(
            f"/documents/{doc.id}/change-summary/stats", headers=org_headers
        ).json()
        assert stats["has_material_changes"] is False

        listed = client.get("/change-summaries", headers=org_headers).json()
        assert [s["id"] for s in listed] == [summary["id"]]

    def test_summary_missing(self, client, org_headers, make_document):
        doc = make_document()
        resp = client.get(f"/documents/{doc.id}/change-summary", headers=org_headers)
        assert resp.status_code == 404

    def test_update_other_organisation_summary(
        self, client, org_headers, make_document, approval_organisation, person
    ):
        doc = make_document(lock_pdf=True)
        _issue(client, doc, org_headers)
        summary = client.get(
            f"/documents/{doc.id}/change-summary", headers=org_headers
        ).json()
        resp = client.patch(
            f"/change-summaries/{summary['id']}",
            json={"visible_to_client": True},
            headers={"X-Organisation-Id": str(approval_organisation.id)},
        )
        assert resp.status_code == 404


class TestOperationalEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_metrics(self, client, org_headers, make_document):
        doc = make_document()
        _issue(client, doc, org_headers)
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "lifecycle_operations_total" in resp.text
