from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _enum_value(value):
    if isinstance(value, enum.Enum):
        return value.value
    return value


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class DocumentBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    assessor_name: str | None = Field(default=None, max_length=255)
    assessment_date: date | None = None
    scope_description: str | None = None
    standards_selected: list[str] | None = None
    jurisdiction: str = Field(default="UK", max_length=20)
    responsible_person: str | None = Field(default=None, max_length=255)


class DocumentCreate(DocumentBase):
    document_type: str


class DocumentUpdate(BaseModel):
    title: str | None = Field(default=None, max_length=500)
    assessor_name: str | None = Field(default=None, max_length=255)
    assessment_date: date | None = None
    scope_description: str | None = None
    standards_selected: list[str] | None = None
    jurisdiction: str | None = Field(default=None, max_length=20)
    responsible_person: str | None = Field(default=None, max_length=255)


class DocumentRead(DocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organisation_id: UUID
    base_document_id: UUID
    version_number: int
    document_type: str
    issue_status: str
    issue_date: date | None = None
    issued_by: UUID | None = None
    approval_status: str
    approved_by: UUID | None = None
    approval_date: date | None = None
    approval_notes: str | None = None
    locked_pdf_path: str | None = None
    locked_pdf_checksum: str | None = None
    locked_pdf_generated_at: datetime | None = None
    locked_pdf_size_bytes: int | None = None
    pdf_generation_error: str | None = None
    superseded_by_document_id: UUID | None = None
    superseded_date: datetime | None = None
    created_by: UUID | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @field_validator("document_type", "issue_status", "approval_status", mode="before")
    @classmethod
    def _enum_to_value(cls, value):
        return _enum_value(value)


# ---------------------------------------------------------------------------
# ModuleInstance
# ---------------------------------------------------------------------------


class ModuleInstanceUpsert(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)
    assessor_notes: str = ""
    outcome: str | None = Field(default=None, max_length=60)
    completed: bool | None = None


class ModuleInstanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    module_key: str
    data: dict[str, Any]
    assessor_notes: str
    outcome: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Action
# ---------------------------------------------------------------------------


class ActionCreate(BaseModel):
    recommended_action: str = Field(min_length=1)
    module_key: str | None = None
    priority_band: str | None = Field(default=None, max_length=20)
    timescale: str | None = Field(default=None, max_length=120)
    target_date: date | None = None
    owner_user_id: UUID | None = None
    source: str | None = Field(default=None, max_length=60)


class ActionUpdate(BaseModel):
    recommended_action: str | None = None
    status: str | None = None
    priority_band: str | None = Field(default=None, max_length=20)
    timescale: str | None = Field(default=None, max_length=120)
    target_date: date | None = None
    owner_user_id: UUID | None = None


class ActionClose(BaseModel):
    closure_note: str | None = None


class ActionReopen(BaseModel):
    reopen_note: str = Field(min_length=1)


class ActionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    module_instance_id: UUID | None = None
    module_unlinked: bool
    recommended_action: str
    status: str
    priority_band: str | None = None
    timescale: str | None = None
    target_date: date | None = None
    owner_user_id: UUID | None = None
    source: str | None = None
    origin_action_id: UUID | None = None
    carried_from_document_id: UUID | None = None
    closed_at: datetime | None = None
    reopened_at: datetime | None = None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _enum_to_value(cls, value):
        return _enum_value(value)


# ---------------------------------------------------------------------------
# Attachment
# ---------------------------------------------------------------------------


class AttachmentCreate(BaseModel):
    file_path: str = Field(min_length=1, max_length=1024)
    file_name: str = Field(min_length=1, max_length=500)
    file_type: str = Field(min_length=1, max_length=255)
    file_size_bytes: int | None = Field(default=None, ge=0)
    caption: str | None = None
    taken_at: datetime | None = None
    module_instance_id: UUID | None = None
    action_id: UUID | None = None


class AttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    base_document_id: UUID
    module_instance_id: UUID | None = None
    action_id: UUID | None = None
    file_path: str
    file_name: str
    file_type: str
    file_size_bytes: int | None = None
    caption: str | None = None
    taken_at: datetime | None = None
    uploaded_by: UUID | None = None
    carried_from_attachment_id: UUID | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Change summary
# ---------------------------------------------------------------------------


class ChangeSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    base_document_id: UUID
    version_number: int
    previous_document_id: UUID | None = None
    new_actions_count: int
    closed_actions_count: int
    reopened_actions_count: int
    outstanding_actions_count: int
    new_actions: list[dict[str, Any]]
    closed_actions: list[dict[str, Any]]
    reopened_actions: list[dict[str, Any]]
    summary_text: str | None = None
    has_material_changes: bool
    visible_to_client: bool
    generated_by: UUID | None = None
    generated_at: datetime


class ChangeSummaryUpdate(BaseModel):
    summary_text: str | None = None
    visible_to_client: bool | None = None


class CaptionUpdate(BaseModel):
    caption: str | None = None


class UploadURLRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=500)
    file_type: str = Field(min_length=1, max_length=255)
