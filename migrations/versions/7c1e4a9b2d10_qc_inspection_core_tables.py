"""qc_inspection_core_tables

Create catalog, project, inspection run, signature and attachment tables.

Revision ID: 7c1e4a9b2d10
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e4a9b2d10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "phases" not in existing_tables:
        op.create_table(
            "phases",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )
        op.create_index("ix_phases_order", "phases", ["order"])

    if "checklist_templates" not in existing_tables:
        op.create_table(
            "checklist_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("project_type", sa.String(length=100), nullable=True),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "checklist_item_definitions" not in existing_tables:
        op.create_table(
            "checklist_item_definitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("acceptance_criteria", sa.Text(), nullable=True),
            sa.Column("check_method", sa.String(length=200), nullable=True),
            sa.Column("weight", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_photo", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_value", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("template_id", "code", name="uq_item_def_template_code"),
        )
        op.create_index(
            "ix_checklist_item_definitions_template_id", "checklist_item_definitions", ["template_id"],
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("client_name", sa.String(length=255), nullable=True),
            sa.Column("location", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "project_analyses" not in existing_tables:
        op.create_table(
            "project_analyses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("provider", sa.String(length=50), nullable=True),
            sa.Column("model", sa.String(length=100), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_analyses_project_id", "project_analyses", ["project_id"])

    if "inspection_instances" not in existing_tables:
        op.create_table(
            "inspection_instances",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("phase_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("inspector_id", sa.String(length=100), nullable=False),
            sa.Column("inspector_name", sa.String(length=255), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("score", sa.Float(), nullable=False, server_default="0"),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["phase_id"], ["phases.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_inspection_instances_project_id", "inspection_instances", ["project_id"])
        op.create_index("ix_inspection_project_phase", "inspection_instances", ["project_id", "phase_id"])

    if "inspection_items" not in existing_tables:
        op.create_table(
            "inspection_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("instance_id", sa.Integer(), nullable=False),
            sa.Column("definition_id", sa.Integer(), nullable=True),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("acceptance_criteria", sa.Text(), nullable=True),
            sa.Column("check_method", sa.String(length=200), nullable=True),
            sa.Column("weight", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("is_mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_photo", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_value", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="PENDING"),
            sa.Column("measured_value", sa.String(length=255), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["instance_id"], ["inspection_instances.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(
                ["definition_id"], ["checklist_item_definitions.id"], ondelete="SET NULL",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("instance_id", "definition_id", name="uq_item_instance_definition"),
        )
        op.create_index("ix_inspection_items_instance_id", "inspection_items", ["instance_id"])

    if "signatures" not in existing_tables:
        op.create_table(
            "signatures",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("instance_id", sa.Integer(), nullable=False),
            sa.Column("signer_id", sa.String(length=100), nullable=False),
            sa.Column("signer_name", sa.String(length=255), nullable=True),
            sa.Column("signer_role", sa.String(length=100), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False),
            sa.Column("signature_image", sa.Text(), nullable=True),
            sa.Column("comments", sa.Text(), nullable=True),
            sa.Column("signed_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["instance_id"], ["inspection_instances.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_signatures_instance_id", "signatures", ["instance_id"])

    if "attachments" not in existing_tables:
        op.create_table(
            "attachments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("instance_id", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=True),
            sa.Column("filename", sa.String(length=255), nullable=False),
            sa.Column("storage_path", sa.String(length=500), nullable=False),
            sa.Column("media_kind", sa.String(length=10), nullable=False),
            sa.Column("size_bytes", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["instance_id"], ["inspection_instances.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["item_id"], ["inspection_items.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_attachments_instance_id", "attachments", ["instance_id"])
        op.create_index("ix_attachments_item_id", "attachments", ["item_id"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "attachments",
        "signatures",
        "inspection_items",
        "inspection_instances",
        "project_analyses",
        "projects",
        "checklist_item_definitions",
        "checklist_templates",
        "phases",
    ):
        if table in existing_tables:
            op.drop_table(table)
