import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"

import uuid  # noqa: E402
from contextlib import ExitStack  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app import models  # noqa: F401, E402
from app.api.deps import get_db  # noqa: E402
from app.db import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.assessment import Organisation, OrganisationSettings  # noqa: E402
from app.models.person import Person  # noqa: E402
from app.schemas.assessment import DocumentCreate  # noqa: E402
from app.services.documents import documents  # noqa: E402
from app.services.storage import StorageService  # noqa: E402
from tests.factories import fill_modules, pin_locked_pdf  # noqa: E402
from tests.mocks import FakeObjectStore  # noqa: E402

engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db_session():
    Base.metadata.create_all(engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture()
def organisation(db_session):
    org = Organisation(name="Northfield Estates")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture()
def approval_organisation(db_session):
    org = Organisation(name="Harbour Chemicals")
    db_session.add(org)
    db_session.flush()
    db_session.add(OrganisationSettings(organisation_id=org.id, approval_required=True))
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture()
def person(db_session):
    p = Person(
        first_name="Test",
        last_name="Assessor",
        email=f"assessor_{uuid.uuid4().hex[:8]}@example.com",
    )
    db_session.add(p)
    db_session.commit()
    db_session.refresh(p)
    return p


@pytest.fixture()
def object_store():
    store = FakeObjectStore()
    with ExitStack() as stack:
        for name in (
            "upload_bytes",
            "download_bytes",
            "delete_object",
            "generate_upload_url",
            "generate_download_url",
        ):
            stack.enter_context(
                patch.object(StorageService, name, side_effect=getattr(store, name))
            )
        yield store


@pytest.fixture()
def make_document(db_session, organisation, person):
    def _make(
        document_type="FRA",
        title="Riverside Warehouse",
        org=None,
        fill=True,
        lock_pdf=False,
    ):
        org = org or organisation
        document = documents.create(
            db_session,
            org.id,
            DocumentCreate(
                title=title, document_type=document_type, assessor_name="J. Smith"
            ),
            person.id,
        )
        if fill:
            fill_modules(db_session, document)
        if lock_pdf:
            pin_locked_pdf(db_session, document)
        return document

    return _make


@pytest.fixture()
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def org_headers(organisation, person):
    return {"X-Organisation-Id": str(organisation.id), "X-User-Id": str(person.id)}
