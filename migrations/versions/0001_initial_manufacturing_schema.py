"""initial manufacturing schema

Organizations, workflow catalog and progress ledger, quality control,
inventory, audit trail and scheduler registry.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _org_fk():
    return sa.Column(
        "organization_id", sa.String(length=36),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False,
    )


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── Workflow ─────────────────────────────────────────────────────────
    op.create_table(
        "workflow_stages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("stage_name", sa.String(length=100), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("organization_id", "sequence_order", name="uq_workflow_stage_org_seq"),
    )
    op.create_index("ix_workflow_stages_organization_id", "workflow_stages", ["organization_id"])

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("uiorn", sa.String(length=50), nullable=False),
        sa.Column("item_code", sa.String(length=50), nullable=False),
        sa.Column("order_quantity", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("organization_id", "uiorn", name="uq_order_org_uiorn"),
    )
    op.create_index("ix_orders_organization_id", "orders", ["organization_id"])

    op.create_table(
        "workflow_progress",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("order_id", sa.String(length=36),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stage_id", sa.String(length=36),
                  sa.ForeignKey("workflow_stages.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("progress_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quality_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("stage_data", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("order_id", "stage_id", name="uq_workflow_progress_order_stage"),
    )
    op.create_index("ix_workflow_progress_organization_id", "workflow_progress", ["organization_id"])
    op.create_index("ix_workflow_progress_order_id", "workflow_progress", ["order_id"])
    op.create_index("ix_workflow_progress_stage_id", "workflow_progress", ["stage_id"])
    op.create_index("ix_workflow_progress_org_order", "workflow_progress",
                    ["organization_id", "order_id"])

    # ── Quality ──────────────────────────────────────────────────────────
    op.create_table(
        "quality_templates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("stage_id", sa.String(length=36),
                  sa.ForeignKey("workflow_stages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("template_name", sa.String(length=150), nullable=False),
        sa.Column("check_parameters", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_quality_templates_organization_id", "quality_templates", ["organization_id"])
    op.create_index("ix_quality_templates_stage_id", "quality_templates", ["stage_id"])

    op.create_table(
        "quality_inspections",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("order_id", sa.String(length=36),
                  sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stage_id", sa.String(length=36),
                  sa.ForeignKey("workflow_stages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("template_id", sa.String(length=36),
                  sa.ForeignKey("quality_templates.id", ondelete="SET NULL"), nullable=True),
        sa.Column("inspection_date", sa.Date(), nullable=True),
        sa.Column("overall_result", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("inspection_results", sa.JSON(), nullable=True),
        sa.Column("defects_found", sa.JSON(), nullable=True),
        sa.Column("corrective_actions", sa.JSON(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_quality_inspections_organization_id", "quality_inspections",
                    ["organization_id"])
    op.create_index("ix_quality_inspections_order_stage", "quality_inspections",
                    ["order_id", "stage_id"])

    # ── Inventory ────────────────────────────────────────────────────────
    op.create_table(
        "items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("item_code", sa.String(length=50), nullable=False),
        sa.Column("item_name", sa.String(length=200), nullable=False),
        sa.Column("uom", sa.String(length=20), nullable=True),
        sa.Column("reorder_level", sa.Numeric(14, 3), nullable=True),
        sa.Column("reorder_quantity", sa.Numeric(14, 3), nullable=True),
        sa.Column("lead_time_days", sa.Integer(), nullable=True),
        sa.Column("unit_cost", sa.Numeric(14, 4), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("organization_id", "item_code", name="uq_item_org_code"),
    )
    op.create_index("ix_items_organization_id", "items", ["organization_id"])

    op.create_table(
        "stock_balances",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("item_code", sa.String(length=50), nullable=False),
        sa.Column("opening_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("current_qty", sa.Numeric(14, 3), nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(14, 4), nullable=False, server_default="0"),
        sa.Column("last_reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("organization_id", "item_code", name="uq_stock_org_item"),
    )
    op.create_index("ix_stock_balances_organization_id", "stock_balances", ["organization_id"])

    op.create_table(
        "goods_receipts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("grn_number", sa.String(length=50), nullable=False),
        sa.Column("item_code", sa.String(length=50), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("qty_received", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit_rate", sa.Numeric(14, 4), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_goods_receipts_organization_id", "goods_receipts", ["organization_id"])
    op.create_index("ix_goods_receipts_org_item", "goods_receipts",
                    ["organization_id", "item_code"])

    op.create_table(
        "stock_issues",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("item_code", sa.String(length=50), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("qty_issued", sa.Numeric(14, 3), nullable=False),
        sa.Column("purpose", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_stock_issues_organization_id", "stock_issues", ["organization_id"])
    op.create_index("ix_stock_issues_org_item_date", "stock_issues",
                    ["organization_id", "item_code", "date"])

    op.create_table(
        "stock_snapshots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        _org_fk(),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_value", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("snapshot_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("organization_id", "snapshot_date", name="uq_stock_snapshot_org_date"),
    )
    op.create_index("ix_stock_snapshots_organization_id", "stock_snapshots", ["organization_id"])

    # ── Audit & scheduler ────────────────────────────────────────────────
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.String(length=36),
                  sa.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_type", sa.String(length=30), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("diff_json", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_org", "audit_logs", ["organization_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])

    op.create_table(
        "scheduled_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("schedule_type", sa.String(length=30), nullable=True),
        sa.Column("schedule_config", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_status", sa.String(length=20), nullable=True),
        sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
        sa.Column("last_run_result", sa.JSON(), nullable=True),
        sa.Column("run_count", sa.Integer(), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade():
    for table in (
        "scheduled_jobs", "audit_logs", "stock_snapshots", "stock_issues",
        "goods_receipts", "stock_balances", "items", "quality_inspections",
        "quality_templates", "workflow_progress", "orders", "workflow_stages",
        "organizations",
    ):
        op.drop_table(table)
