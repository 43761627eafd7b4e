import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class DocumentType(enum.Enum):
    FRA = "FRA"
    FSD = "FSD"
    DSEAR = "DSEAR"
    RE = "RE"


class IssueStatus(enum.Enum):
    draft = "draft"
    issued = "issued"
    superseded = "superseded"


class ApprovalStatus(enum.Enum):
    not_required = "not_required"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ActionStatus(enum.Enum):
    open = "open"
    in_progress = "in_progress"
    deferred = "deferred"
    closed = "closed"


OPEN_ACTION_STATUSES = (
    ActionStatus.open,
    ActionStatus.in_progress,
    ActionStatus.deferred,
)
LOCKED_ISSUE_STATUSES = (IssueStatus.issued, IssueStatus.superseded)


# ---------------------------------------------------------------------------
# Organisations
# ---------------------------------------------------------------------------


class Organisation(Base):
    __tablename__ = "organisations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    settings = relationship(
        "OrganisationSettings", back_populates="organisation", uselist=False
    )


class OrganisationSettings(Base):
    __tablename__ = "organisation_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organisations.id"), nullable=False, unique=True
    )
    approval_required: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    organisation = relationship("Organisation", back_populates="settings")


# ---------------------------------------------------------------------------
# Documents (one row per version; chain identity is base_document_id)
# ---------------------------------------------------------------------------


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint(
            "base_document_id",
            "version_number",
            name="uq_documents_chain_version",
        ),
        Index("ix_documents_organisation_id", "organisation_id"),
        Index("ix_documents_base_document_id", "base_document_id"),
        # At most one live draft and one issued version per chain.
        Index(
            "uq_documents_chain_draft",
            "base_document_id",
            unique=True,
            postgresql_where=text("issue_status = 'draft' AND is_active IS TRUE"),
            sqlite_where=text("issue_status = 'draft' AND is_active IS TRUE"),
        ),
        Index(
            "uq_documents_chain_issued",
            "base_document_id",
            unique=True,
            postgresql_where=text("issue_status = 'issued'"),
            sqlite_where=text("issue_status = 'issued'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organisations.id"), nullable=False
    )
    base_document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    document_type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)

    # Administrative metadata (cloned into each new version)
    assessor_name: Mapped[str | None] = mapped_column(String(255))
    assessment_date: Mapped[date | None] = mapped_column(Date)
    scope_description: Mapped[str | None] = mapped_column(Text)
    standards_selected: Mapped[list | None] = mapped_column(JSON)
    jurisdiction: Mapped[str] = mapped_column(String(20), default="UK")
    responsible_person: Mapped[str | None] = mapped_column(String(255))

    issue_status: Mapped[IssueStatus] = mapped_column(
        Enum(IssueStatus), nullable=False, default=IssueStatus.draft
    )
    issue_date: Mapped[date | None] = mapped_column(Date)
    issued_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )

    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.not_required
    )
    approved_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    approval_date: Mapped[date | None] = mapped_column(Date)
    approval_notes: Mapped[str | None] = mapped_column(Text)

    locked_pdf_path: Mapped[str | None] = mapped_column(String(1024))
    locked_pdf_checksum: Mapped[str | None] = mapped_column(String(64))
    locked_pdf_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True)
    )
    locked_pdf_size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    pdf_generation_error: Mapped[str | None] = mapped_column(Text)

    superseded_by_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )
    superseded_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    modules = relationship(
        "ModuleInstance",
        back_populates="document",
        order_by="ModuleInstance.created_at",
    )
    actions = relationship(
        "Action", back_populates="document", foreign_keys="Action.document_id"
    )
    attachments = relationship("Attachment", back_populates="document")

    @property
    def is_locked(self) -> bool:
        return self.issue_status in LOCKED_ISSUE_STATUSES


# ---------------------------------------------------------------------------
# Module instances
# ---------------------------------------------------------------------------


class ModuleInstance(Base):
    __tablename__ = "module_instances"
    __table_args__ = (
        UniqueConstraint(
            "document_id", "module_key", name="uq_module_instances_doc_key"
        ),
        Index("ix_module_instances_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organisations.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    module_key: Mapped[str] = mapped_column(String(120), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    assessor_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    outcome: Mapped[str | None] = mapped_column(String(60))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    document = relationship("Document", back_populates="modules")


# ---------------------------------------------------------------------------
# Actions (recommendations / findings)
# ---------------------------------------------------------------------------


class Action(Base):
    __tablename__ = "actions"
    __table_args__ = (
        Index("ix_actions_document_id", "document_id"),
        Index("ix_actions_origin_action_id", "origin_action_id"),
        Index("ix_actions_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organisations.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    module_instance_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("module_instances.id")
    )
    # Set when a carried-forward action's module key no longer exists.
    module_unlinked: Mapped[bool] = mapped_column(Boolean, default=False)
    recommended_action: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ActionStatus] = mapped_column(
        Enum(ActionStatus), nullable=False, default=ActionStatus.open
    )
    priority_band: Mapped[str | None] = mapped_column(String(20))
    timescale: Mapped[str | None] = mapped_column(String(120))
    target_date: Mapped[date | None] = mapped_column(Date)
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    source: Mapped[str | None] = mapped_column(String(60))

    origin_action_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    carried_from_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    closure_note: Mapped[str | None] = mapped_column(Text)
    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reopened_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    reopen_note: Mapped[str | None] = mapped_column(Text)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    document = relationship(
        "Document", back_populates="actions", foreign_keys=[document_id]
    )
    module_instance = relationship("ModuleInstance")

    @property
    def lineage_id(self) -> uuid.UUID:
        return self.origin_action_id or self.id


# ---------------------------------------------------------------------------
# Attachments / evidence
# ---------------------------------------------------------------------------


class Attachment(Base):
    __tablename__ = "attachments"
    __table_args__ = (
        Index("ix_attachments_document_id", "document_id"),
        Index("ix_attachments_base_document_id", "base_document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organisations.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    base_document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    module_instance_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("module_instances.id")
    )
    action_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("actions.id")
    )
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    caption: Mapped[str | None] = mapped_column(Text)
    taken_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    uploaded_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    carried_from_attachment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True)
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    document = relationship("Document", back_populates="attachments")


# ---------------------------------------------------------------------------
# Change summaries (append-only, one per document version)
# ---------------------------------------------------------------------------


class DocumentChangeSummary(Base):
    __tablename__ = "document_change_summaries"
    __table_args__ = (
        UniqueConstraint("document_id", name="uq_change_summaries_document"),
        Index(
            "ix_change_summaries_base_version",
            "base_document_id",
            "version_number",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    organisation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organisations.id"), nullable=False
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id"), nullable=False
    )
    base_document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id")
    )

    new_actions_count: Mapped[int] = mapped_column(Integer, default=0)
    closed_actions_count: Mapped[int] = mapped_column(Integer, default=0)
    reopened_actions_count: Mapped[int] = mapped_column(Integer, default=0)
    outstanding_actions_count: Mapped[int] = mapped_column(Integer, default=0)
    new_actions: Mapped[list] = mapped_column(JSON, default=list)
    closed_actions: Mapped[list] = mapped_column(JSON, default=list)
    reopened_actions: Mapped[list] = mapped_column(JSON, default=list)

    summary_text: Mapped[str | None] = mapped_column(Text)
    has_material_changes: Mapped[bool] = mapped_column(Boolean, default=False)
    visible_to_client: Mapped[bool] = mapped_column(Boolean, default=False)
    generated_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("people.id")
    )
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
