import uuid
from datetime import date, datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.assessment import Document, IssueStatus


def coerce_uuid(value):
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def parse_uuid(value) -> uuid.UUID | None:
    """Like ``coerce_uuid`` but returns None for malformed ids."""
    try:
        return coerce_uuid(value)
    except (TypeError, ValueError, AttributeError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    return utcnow().date()


def apply_ordering(query, order_by, order_dir, allowed_columns):
    if order_by not in allowed_columns:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query, limit, offset):
    return query.limit(limit).offset(offset)


def get_scoped_document(
    db: Session, document_id, organisation_id=None
) -> Document | None:
    """Fetch a document version, optionally restricted to one organisation."""
    doc_id = parse_uuid(document_id)
    if doc_id is None:
        return None
    document = db.get(Document, doc_id)
    if document is None or not document.is_active:
        return None
    if organisation_id is not None and document.organisation_id != parse_uuid(
        organisation_id
    ):
        return None
    return document


def require_draft(document: Document, what: str = "Document") -> None:
    if document.issue_status != IssueStatus.draft:
        raise HTTPException(
            status_code=409,
            detail=f"{what} is read-only because the document is "
            f"{document.issue_status.value}. Create a new version to make changes.",
        )
