"""assessment document lifecycle

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""

from alembic import op
import sqlalchemy as sa

revision = "3f1a9c2e7b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- Enums ---
    document_type = sa.Enum("FRA", "FSD", "DSEAR", "RE", name="documenttype")
    issue_status = sa.Enum("draft", "issued", "superseded", name="issuestatus")
    approval_status = sa.Enum(
        "not_required", "pending", "approved", "rejected", name="approvalstatus"
    )
    action_status = sa.Enum(
        "open", "in_progress", "deferred", "closed", name="actionstatus"
    )

    op.create_table(
        "people",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("first_name", sa.String(length=80), nullable=False),
        sa.Column("last_name", sa.String(length=80), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "organisations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "organisation_settings",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("approval_required", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organisation_id"),
    )

    # --- Documents (one row per version) ---
    op.create_table(
        "documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("base_document_id", sa.UUID(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("document_type", document_type, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("assessor_name", sa.String(length=255), nullable=True),
        sa.Column("assessment_date", sa.Date(), nullable=True),
        sa.Column("scope_description", sa.Text(), nullable=True),
        sa.Column("standards_selected", sa.JSON(), nullable=True),
        sa.Column("jurisdiction", sa.String(length=20), nullable=False),
        sa.Column("responsible_person", sa.String(length=255), nullable=True),
        sa.Column("issue_status", issue_status, nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("issued_by", sa.UUID(), nullable=True),
        sa.Column("approval_status", approval_status, nullable=False),
        sa.Column("approved_by", sa.UUID(), nullable=True),
        sa.Column("approval_date", sa.Date(), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("locked_pdf_path", sa.String(length=1024), nullable=True),
        sa.Column("locked_pdf_checksum", sa.String(length=64), nullable=True),
        sa.Column(
            "locked_pdf_generated_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("locked_pdf_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("pdf_generation_error", sa.Text(), nullable=True),
        sa.Column("superseded_by_document_id", sa.UUID(), nullable=True),
        sa.Column("superseded_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.ForeignKeyConstraint(["issued_by"], ["people.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["people.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["people.id"]),
        sa.ForeignKeyConstraint(["superseded_by_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "base_document_id", "version_number", name="uq_documents_chain_version"
        ),
    )
    op.create_index("ix_documents_organisation_id", "documents", ["organisation_id"])
    op.create_index("ix_documents_base_document_id", "documents", ["base_document_id"])
    op.create_index(
        "uq_documents_chain_draft",
        "documents",
        ["base_document_id"],
        unique=True,
        postgresql_where=sa.text("issue_status = 'draft' AND is_active IS TRUE"),
    )
    op.create_index(
        "uq_documents_chain_issued",
        "documents",
        ["base_document_id"],
        unique=True,
        postgresql_where=sa.text("issue_status = 'issued'"),
    )

    op.create_table(
        "module_instances",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("module_key", sa.String(length=120), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("assessor_notes", sa.Text(), nullable=False),
        sa.Column("outcome", sa.String(length=60), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "document_id", "module_key", name="uq_module_instances_doc_key"
        ),
    )
    op.create_index(
        "ix_module_instances_document_id", "module_instances", ["document_id"]
    )

    op.create_table(
        "actions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("module_instance_id", sa.UUID(), nullable=True),
        sa.Column("module_unlinked", sa.Boolean(), nullable=False),
        sa.Column("recommended_action", sa.Text(), nullable=False),
        sa.Column("status", action_status, nullable=False),
        sa.Column("priority_band", sa.String(length=20), nullable=True),
        sa.Column("timescale", sa.String(length=120), nullable=True),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column("owner_user_id", sa.UUID(), nullable=True),
        sa.Column("source", sa.String(length=60), nullable=True),
        sa.Column("origin_action_id", sa.UUID(), nullable=True),
        sa.Column("carried_from_document_id", sa.UUID(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.UUID(), nullable=True),
        sa.Column("closure_note", sa.Text(), nullable=True),
        sa.Column("reopened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopened_by", sa.UUID(), nullable=True),
        sa.Column("reopen_note", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["module_instance_id"], ["module_instances.id"]),
        sa.ForeignKeyConstraint(["owner_user_id"], ["people.id"]),
        sa.ForeignKeyConstraint(["carried_from_document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["closed_by"], ["people.id"]),
        sa.ForeignKeyConstraint(["reopened_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_actions_document_id", "actions", ["document_id"])
    op.create_index("ix_actions_origin_action_id", "actions", ["origin_action_id"])
    op.create_index("ix_actions_status", "actions", ["status"])

    # --- Evidence ---
    op.create_table(
        "attachments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("base_document_id", sa.UUID(), nullable=False),
        sa.Column("module_instance_id", sa.UUID(), nullable=True),
        sa.Column("action_id", sa.UUID(), nullable=True),
        sa.Column("file_path", sa.String(length=1024), nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("file_type", sa.String(length=255), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("taken_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("uploaded_by", sa.UUID(), nullable=True),
        sa.Column("carried_from_attachment_id", sa.UUID(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["module_instance_id"], ["module_instances.id"]),
        sa.ForeignKeyConstraint(["action_id"], ["actions.id"]),
        sa.ForeignKeyConstraint(["uploaded_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_attachments_document_id", "attachments", ["document_id"])
    op.create_index(
        "ix_attachments_base_document_id", "attachments", ["base_document_id"]
    )

    # --- Change summaries ---
    op.create_table(
        "document_change_summaries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("organisation_id", sa.UUID(), nullable=False),
        sa.Column("document_id", sa.UUID(), nullable=False),
        sa.Column("base_document_id", sa.UUID(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("previous_document_id", sa.UUID(), nullable=True),
        sa.Column("new_actions_count", sa.Integer(), nullable=False),
        sa.Column("closed_actions_count", sa.Integer(), nullable=False),
        sa.Column("reopened_actions_count", sa.Integer(), nullable=False),
        sa.Column("outstanding_actions_count", sa.Integer(), nullable=False),
        sa.Column("new_actions", sa.JSON(), nullable=False),
        sa.Column("closed_actions", sa.JSON(), nullable=False),
        sa.Column("reopened_actions", sa.JSON(), nullable=False),
        sa.Column("summary_text", sa.Text(), nullable=True),
        sa.Column("has_material_changes", sa.Boolean(), nullable=False),
        sa.Column("visible_to_client", sa.Boolean(), nullable=False),
        sa.Column("generated_by", sa.UUID(), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["organisation_id"], ["organisations.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["previous_document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["generated_by"], ["people.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", name="uq_change_summaries_document"),
    )
    op.create_index(
        "ix_change_summaries_base_version",
        "document_change_summaries",
        ["base_document_id", "version_number"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_change_summaries_base_version", table_name="document_change_summaries"
    )
    op.drop_table("document_change_summaries")
    op.drop_index("ix_attachments_base_document_id", table_name="attachments")
    op.drop_index("ix_attachments_document_id", table_name="attachments")
    op.drop_table("attachments")
    op.drop_index("ix_actions_status", table_name="actions")
    op.drop_index("ix_actions_origin_action_id", table_name="actions")
    op.drop_index("ix_actions_document_id", table_name="actions")
    op.drop_table("actions")
    op.drop_index("ix_module_instances_document_id", table_name="module_instances")
    op.drop_table("module_instances")
    op.drop_index("uq_documents_chain_issued", table_name="documents")
    op.drop_index("uq_documents_chain_draft", table_name="documents")
    op.drop_index("ix_documents_base_document_id", table_name="documents")
    op.drop_index("ix_documents_organisation_id", table_name="documents")
    op.drop_table("documents")
    op.drop_table("organisation_settings")
    op.drop_table("organisations")
    op.drop_table("people")

    sa.Enum(name="actionstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="approvalstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="issuestatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="documenttype").drop(op.get_bind(), checkfirst=True)
