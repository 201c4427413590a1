"""initial_po_tracker_schema

Creates the PO tracker tables:
  - users / user_sessions      — accounts and revocable login sessions
  - po_months                  — YYYY-MM buckets
  - po_folders                 — one PO folder per purchase order
  - po_steps                   — 9 workflow steps per folder (cached is_done)
  - po_step_files              — attachments on a step
  - po_requests                — stage-tracked purchase requests
  - audit_logs                 — append-only activity trail

Tables created conditionally (IF NOT EXISTS semantics) so databases that
already received them via db.create_all() in development can be stamped.

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [sa.Column(n, sa.DateTime(timezone=True), nullable=True) for n in names]


def upgrade():
    bind = op.get_bind()
    existing = set(sa_inspect(bind).get_table_names())

    # ── Users / sessions ──────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("password_hash", sa.String(length=256), nullable=False),
            sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps("created_at", "updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )

    if "user_sessions" not in existing:
        op.create_table(
            "user_sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("token_hash", sa.String(length=64), nullable=False),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=500), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            *_timestamps("created_at"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("token_hash"),
        )
        op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])

    # ── Workflow ──────────────────────────────────────────────────────────
    if "po_months" not in existing:
        op.create_table(
            "po_months",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("month_key", sa.String(length=7), nullable=False, comment="YYYY-MM"),
            sa.Column("label", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("month_key"),
        )

    if "po_folders" not in existing:
        op.create_table(
            "po_folders",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("month_id", sa.Integer(), nullable=False),
            sa.Column("folder_name", sa.String(length=255), nullable=False),
            sa.Column("capex_opex", sa.String(length=10), nullable=False, comment="CAPEX | OPEX"),
            sa.Column("it_ref_no", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.String(length=100), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["month_id"], ["po_months.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_po_folders_month_id", "po_folders", ["month_id"])

    if "po_steps" not in existing:
        op.create_table(
            "po_steps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("folder_id", sa.Integer(), nullable=False),
            sa.Column("step_no", sa.Integer(), nullable=False),
            sa.Column("masterlist_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sharepoint_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("notion_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("outlook_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("paid_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_done", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["folder_id"], ["po_folders.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("folder_id", "step_no", name="uq_po_step_folder_step_no"),
        )
        op.create_index("ix_po_steps_folder_id", "po_steps", ["folder_id"])

    if "po_step_files" not in existing:
        op.create_table(
            "po_step_files",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("step_id", sa.Integer(), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("storage_key", sa.String(length=300), nullable=False),
            sa.Column("content_type", sa.String(length=120), nullable=True),
            sa.Column("size_bytes", sa.Integer(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("uploaded_by", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["step_id"], ["po_steps.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("storage_key"),
        )
        op.create_index("ix_po_step_files_step_id", "po_step_files", ["step_id"])

    # ── PO requests ───────────────────────────────────────────────────────
    if "po_requests" not in existing:
        text_cols = [
            ("form_name", 255), ("vendor", 200), ("currency", 10),
            ("requestor", 100), ("manager", 100),
            ("next_action", 255), ("owner_role", 30), ("priority", 10),
            ("quote_requested_at", 40), ("quote_received_at", 40),
            ("signed_at", 40), ("uploaded_at", 40), ("po_received_at", 40),
            ("invoice_received_at", 40), ("payment_requested_at", 40),
            ("payment_completed_at", 40),
            ("sharepoint_folder_url", 500), ("signed_pdf_url", 500),
            ("po_doc_url", 500), ("invoice_url", 500), ("payment_slip_url", 500),
        ]
        op.create_table(
            "po_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("it_ref_no", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("capex_opex", sa.String(length=10), nullable=False, comment="CAPEX | OPEX"),
            sa.Column("amount", sa.Float(), nullable=True),
            sa.Column("stage", sa.String(length=40), nullable=False,
                      server_default="QUOTATION_COLLECTING"),
            *[sa.Column(name, sa.String(length=size), nullable=True) for name, size in text_cols],
            *_timestamps("created_at", "updated_at"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_po_requests_stage", "po_requests", ["stage"])
        op.create_index("idx_po_requests_vendor", "po_requests", ["vendor"])

    # ── Audit trail ───────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("from_value", sa.Text(), nullable=True),
            sa.Column("to_value", sa.Text(), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("actor", sa.String(length=100), nullable=False, server_default="system"),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    for table in (
        "audit_logs", "po_requests", "po_step_files", "po_steps",
        "po_folders", "po_months", "user_sessions", "users",
    ):
        op.drop_table(table)
