"""Locked PDF management.

A draft's rendered PDF is stored once, hashed with SHA-256 and pinned to
the document row. After issue the stored object is the only PDF that may
be served for that version, and its hash is checked on every read.
"""

import hashlib
import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.metrics import INTEGRITY_VIOLATIONS, PDF_LOCKS
from app.models.assessment import Document, IssueStatus
from app.schemas.lifecycle import PdfIntegrityResult, PdfLockResult
from app.services.capabilities import LOCK_PDF, CapabilityChecker, allow_all
from app.services.common import get_scoped_document, parse_uuid, utcnow
from app.services.event import EventType, publish_event
from app.services.storage import storage

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class LockedPdfIntegrityError(Exception):
    """Stored locked PDF is missing or no longer matches its checksum."""

    def __init__(self, document_id, message: str):
        self.document_id = document_id
        super().__init__(message)


def calculate_checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _find(db: Session, document_id) -> Document | None:
    doc_id = parse_uuid(document_id)
    return db.get(Document, doc_id) if doc_id is not None else None


def _record_error(db: Session, document: Document, message: str) -> None:
    try:
        document.pdf_generation_error = message
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to record PDF error on document %s", document.id)


def lock(
    db: Session,
    document_id,
    organisation_id,
    pdf_bytes: bytes,
    actor_id=None,
    capabilities: CapabilityChecker = allow_all,
) -> PdfLockResult:
    document = get_scoped_document(db, document_id, organisation_id)
    if document is None:
        return PdfLockResult(success=False, error="Document not found")
    if document.issue_status != IssueStatus.draft:
        return PdfLockResult(
            success=False, error="Only draft documents can have their PDF locked"
        )
    if not capabilities.can_perform(LOCK_PDF, actor_id, organisation_id):
        return PdfLockResult(success=False, error="You are not allowed to lock PDFs")
    if not pdf_bytes:
        return PdfLockResult(success=False, error="PDF content is empty")

    checksum = calculate_checksum(pdf_bytes)
    path = storage.generate_locked_pdf_key(
        str(document.organisation_id),
        str(document.id),
        document.title,
        document.version_number,
    )
    try:
        storage.upload_bytes(
            settings.s3_pdf_bucket_name, path, pdf_bytes, PDF_CONTENT_TYPE
        )
    except Exception as e:
        logger.exception("Failed to upload locked PDF for document %s", document.id)
        PDF_LOCKS.labels(outcome="upload_failed").inc()
        message = str(e) or "Failed to upload PDF"
        _record_error(db, document, message)
        publish_event(
            EventType.pdf_lock_failed,
            entity_type="document",
            entity_id=document.id,
            actor_id=actor_id,
            document_id=document.id,
            payload={"error": message},
        )
        return PdfLockResult(success=False, error=message)

    previous_path = document.locked_pdf_path
    try:
        document.locked_pdf_path = path
        document.locked_pdf_checksum = checksum
        document.locked_pdf_size_bytes = len(pdf_bytes)
        document.locked_pdf_generated_at = utcnow()
        document.pdf_generation_error = None
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Failed to pin locked PDF to document %s", document.id)
        PDF_LOCKS.labels(outcome="db_failed").inc()
        message = str(e) or "Failed to lock PDF to document"
        _record_error(db, document, message)
        return PdfLockResult(success=False, error=message)

    if previous_path and previous_path != path:
        try:
            storage.delete_object(settings.s3_pdf_bucket_name, previous_path)
        except Exception:
            logger.warning(
                "Could not delete replaced PDF %s for document %s",
                previous_path,
                document.id,
            )

    PDF_LOCKS.labels(outcome="locked").inc()
    logger.info(
        "Locked PDF for document %s (%d bytes, sha256=%s)",
        document.id,
        len(pdf_bytes),
        checksum,
    )
    publish_event(
        EventType.pdf_locked,
        entity_type="document",
        entity_id=document.id,
        actor_id=actor_id,
        document_id=document.id,
        payload={"path": path, "checksum": checksum, "size_bytes": len(pdf_bytes)},
    )
    return PdfLockResult(
        success=True, path=path, checksum=checksum, size_bytes=len(pdf_bytes)
    )


def verify_integrity(db: Session, document_id, pdf_bytes: bytes) -> PdfIntegrityResult:
    document = _find(db, document_id)
    if document is None or not document.locked_pdf_checksum:
        return PdfIntegrityResult(valid=False)
    calculated = calculate_checksum(pdf_bytes)
    return PdfIntegrityResult(
        valid=calculated == document.locked_pdf_checksum,
        stored_checksum=document.locked_pdf_checksum,
        calculated_checksum=calculated,
    )


def _report_violation(document: Document, reason: str) -> None:
    INTEGRITY_VIOLATIONS.labels(kind="pdf_checksum").inc()
    logger.critical(
        "Locked PDF integrity violation on document %s: %s",
        document.id,
        reason,
        extra={"document_id": str(document.id), "error_code": "integrity_violation"},
    )
    publish_event(
        EventType.integrity_violation,
        entity_type="document",
        entity_id=document.id,
        document_id=document.id,
        payload={"reason": reason, "path": document.locked_pdf_path},
    )


def verify_stored_object(db: Session, document_id) -> PdfIntegrityResult:
    """Download the locked object and compare it with the pinned checksum."""
    document = _find(db, document_id)
    if document is None or not document.locked_pdf_path:
        return PdfIntegrityResult(valid=False)
    try:
        data = storage.download_bytes(
            settings.s3_pdf_bucket_name, document.locked_pdf_path
        )
    except Exception:
        logger.exception("Locked PDF for document %s could not be read", document.id)
        _report_violation(document, "locked PDF object is missing or unreadable")
        return PdfIntegrityResult(
            valid=False, stored_checksum=document.locked_pdf_checksum
        )
    result = verify_integrity(db, document.id, data)
    if not result.valid:
        _report_violation(document, "locked PDF checksum mismatch")
    return result


def read_locked_pdf(db: Session, document_id) -> bytes:
    """Return the locked bytes of an issued or superseded version."""
    document = _find(db, document_id)
    if document is None or not document.locked_pdf_path:
        raise LookupError(f"Document {document_id} has no locked PDF")
    try:
        data = storage.download_bytes(
            settings.s3_pdf_bucket_name, document.locked_pdf_path
        )
    except Exception as e:
        _report_violation(document, "locked PDF object is missing or unreadable")
        raise LockedPdfIntegrityError(
            document.id, "Locked PDF could not be read from storage"
        ) from e
    if calculate_checksum(data) != document.locked_pdf_checksum:
        _report_violation(document, "locked PDF checksum mismatch")
        raise LockedPdfIntegrityError(
            document.id, "Locked PDF does not match its recorded checksum"
        )
    return data


def locked_pdf_url(db: Session, document_id) -> str | None:
    document = _find(db, document_id)
    if document is None or not document.locked_pdf_path:
        return None
    return storage.generate_download_url(
        settings.s3_pdf_bucket_name, document.locked_pdf_path
    )


def has_locked_pdf(document: Document) -> bool:
    return bool(document.locked_pdf_path)


def can_regenerate_pdf(document: Document) -> bool:
    return document.issue_status == IssueStatus.draft


def must_use_locked_pdf(document: Document) -> bool:
    return document.issue_status != IssueStatus.draft and has_locked_pdf(document)


def pdf_status_description(document: Document) -> str:
    status = document.issue_status
    if status == IssueStatus.draft:
        return "Draft - Regenerates with latest data"
    if document.pdf_generation_error:
        return f"Error: {document.pdf_generation_error}"
    if not has_locked_pdf(document):
        if status == IssueStatus.issued:
            return "Issued - Legacy (no locked PDF)"
        if status == IssueStatus.superseded:
            return "Superseded - Legacy (no locked PDF)"
        return "Unknown status"
    if status == IssueStatus.issued:
        return "Issued - PDF Locked"
    if status == IssueStatus.superseded:
        return "Superseded - PDF Locked"
    return "Unknown status"


def format_file_size(size_bytes: int) -> str:
    if size_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
