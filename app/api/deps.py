import uuid

from fastapi import Depends, Header, HTTPException

from app.db import SessionLocal
from app.services.capabilities import CapabilityChecker, allow_all
from app.services.versioning import DocumentLifecycle


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_uuid(value: str, header: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {header} header")


def get_organisation_id(
    x_organisation_id: str = Header(..., alias="X-Organisation-Id"),
) -> uuid.UUID:
    return _parse_uuid(x_organisation_id, "X-Organisation-Id")


def get_actor_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> uuid.UUID | None:
    if not x_user_id:
        return None
    return _parse_uuid(x_user_id, "X-User-Id")


def get_capabilities() -> CapabilityChecker:
    return allow_all


def get_lifecycle(
    capabilities: CapabilityChecker = Depends(get_capabilities),
) -> DocumentLifecycle:
    return DocumentLifecycle(capabilities=capabilities)
