"""create_demande_lifecycle_tables

Create `demandes`, `demande_documents`, `demande_history` and
`notifications` tables.

Revision ID: 5c0e2a91d7b3
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5c0e2a91d7b3"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "demandes" not in existing_tables:
        op.create_table(
            "demandes",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("sequence_number", sa.String(length=20), nullable=False),
            sa.Column("student_id", sa.String(length=36), nullable=False),
            sa.Column("student_last_name", sa.String(length=100), nullable=False),
            sa.Column("student_first_name", sa.String(length=100), nullable=False),
            sa.Column("student_email", sa.String(length=255), nullable=False),
            sa.Column("student_number", sa.String(length=50), nullable=False),
            sa.Column("request_type_code", sa.String(length=40), nullable=False),
            sa.Column("request_type_name", sa.String(length=100), nullable=False),
            sa.Column("processing_days", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status_code", sa.String(length=20), nullable=False, server_default="SUBMITTED"),
            sa.Column("status_label", sa.String(length=60), nullable=False),
            sa.Column("status_color", sa.String(length=10), nullable=True),
            sa.Column("status_is_terminal", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("subject", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="NORMAL"),
            sa.Column("admin_comment", sa.Text(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("processed_by_id", sa.String(length=36), nullable=True),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_demandes_sequence_number", "demandes", ["sequence_number"], unique=True)
        op.create_index("ix_demandes_student_id", "demandes", ["student_id"])
        op.create_index("ix_demandes_request_type_code", "demandes", ["request_type_code"])
        op.create_index("ix_demandes_status_code", "demandes", ["status_code"])
        op.create_index("ix_demandes_is_active", "demandes", ["is_active"])
        op.create_index("idx_demande_student_status", "demandes", ["student_id", "status_code"])

    if "demande_documents" not in existing_tables:
        op.create_table(
            "demande_documents",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("demande_id", sa.String(length=36), nullable=False),
            sa.Column("filename", sa.String(length=255), nullable=False),
            sa.Column("original_name", sa.String(length=255), nullable=True),
            sa.Column("mime_type", sa.String(length=100), nullable=False),
            sa.Column("size", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("url", sa.String(length=500), nullable=False),
            sa.Column("category", sa.String(length=50), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["demande_id"], ["demandes.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_demande_documents_demande_id", "demande_documents", ["demande_id"])

    if "demande_history" not in existing_tables:
        op.create_table(
            "demande_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("demande_id", sa.String(length=36), nullable=False),
            sa.Column("sequence_number_ref", sa.String(length=20), nullable=False),
            sa.Column("previous_status_code", sa.String(length=20), nullable=True),
            sa.Column("previous_status_label", sa.String(length=60), nullable=True),
            sa.Column("new_status_code", sa.String(length=20), nullable=False),
            sa.Column("new_status_label", sa.String(length=60), nullable=True),
            sa.Column("action_type", sa.String(length=20), nullable=False, server_default="STATUS_CHANGE"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("actor_id", sa.String(length=36), nullable=True),
            sa.Column("actor_name", sa.String(length=150), nullable=True),
            sa.Column("actor_role", sa.String(length=20), nullable=True),
            sa.Column("changed_fields_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["demande_id"], ["demandes.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_demande_history_demande_id", "demande_history", ["demande_id"])
        op.create_index("ix_demande_history_sequence_number_ref", "demande_history", ["sequence_number_ref"])
        op.create_index("idx_history_demande", "demande_history", ["demande_id", "created_at"])
        op.create_index("idx_history_actor", "demande_history", ["actor_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("demande_id", sa.String(length=36), nullable=False),
            sa.Column("channel", sa.String(length=10), nullable=False, server_default="EMAIL"),
            sa.Column("recipient", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=300), nullable=True),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("template", sa.String(length=50), nullable=True),
            sa.Column("delivery_status", sa.String(length=10), nullable=False, server_default="PENDING"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["demande_id"], ["demandes.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_demande_id", "notifications", ["demande_id"])
        op.create_index("ix_notifications_delivery_status", "notifications", ["delivery_status"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("notifications", "demande_history", "demande_documents", "demandes"):
        if table in existing_tables:
            op.drop_table(table)
