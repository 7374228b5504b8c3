"""Initial billing schema - plots, periods, accruals, payments, import batches, allocations, audit logs.

Revision ID: 001
Revises:
Create Date: 2025-01-10 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


payment_category = sa.Enum("MEMBERSHIP", "TARGET", "ELECTRICITY", name="paymentcategory")


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "plots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("street", sa.String(length=100), nullable=False),
        sa.Column("number", sa.String(length=20), nullable=False),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_plot_street_number", "plots", ["street", "number"], unique=True)
    op.create_index("ix_plots_is_active", "plots", ["is_active"])

    op.create_table(
        "billing_periods",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "APPROVED", "CLOSED", name="periodstatus"),
            nullable=False,
        ),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_billing_periods_title", "billing_periods", ["title"], unique=True)

    op.create_table(
        "import_batches",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column(
            "status",
            sa.Enum("COMPLETED", "ROLLED_BACK", name="importbatchstatus"),
            nullable=False,
        ),
        sa.Column("total_rows", sa.Integer(), nullable=False),
        sa.Column("created_count", sa.Integer(), nullable=False),
        sa.Column("skipped_count", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.JSON(), nullable=True),
        sa.Column("warnings", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("actor", sa.String(length=100), nullable=True),
        sa.Column("rolled_back_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "accruals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("plot_id", sa.Integer(), nullable=False),
        sa.Column("category", payment_category, nullable=False),
        sa.Column("amount_accrued", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(precision=12, scale=2), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["period_id"], ["billing_periods.id"]),
        sa.ForeignKeyConstraint(["plot_id"], ["plots.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "period_id", "plot_id", "category", name="uq_accrual_period_plot_category"
        ),
    )
    op.create_index("ix_accruals_period_id", "accruals", ["period_id"])
    op.create_index("ix_accruals_plot_id", "accruals", ["plot_id"])
    op.create_index("idx_accrual_plot_period", "accruals", ["plot_id", "period_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plot_id", sa.Integer(), nullable=True),
        sa.Column("category", payment_category, nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("paid_at", sa.Date(), nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("payer", sa.String(length=255), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("fingerprint", sa.String(length=512), nullable=True),
        sa.Column("matched_plot_id", sa.Integer(), nullable=True),
        sa.Column(
            "match_status",
            sa.Enum("MATCHED", "UNMATCHED", name="matchstatus"),
            nullable=False,
        ),
        sa.Column("match_confidence", sa.Float(), nullable=True),
        sa.Column("match_reason", sa.String(length=32), nullable=True),
        sa.Column("match_candidates", sa.JSON(), nullable=True),
        sa.Column("auto_allocate_disabled", sa.Boolean(), nullable=False),
        sa.Column("is_voided", sa.Boolean(), nullable=False),
        sa.Column("void_reason", sa.String(length=255), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("import_batch_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["plot_id"], ["plots.id"]),
        sa.ForeignKeyConstraint(["matched_plot_id"], ["plots.id"]),
        sa.ForeignKeyConstraint(["import_batch_id"], ["import_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payments_plot_id", "payments", ["plot_id"])
    op.create_index("ix_payments_paid_at", "payments", ["paid_at"])
    op.create_index("ix_payments_fingerprint", "payments", ["fingerprint"])
    op.create_index("ix_payments_is_voided", "payments", ["is_voided"])
    op.create_index("ix_payments_import_batch_id", "payments", ["import_batch_id"])
    op.create_index("idx_payment_plot_date", "payments", ["plot_id", "paid_at"])
    op.create_index("idx_payment_batch_voided", "payments", ["import_batch_id", "is_voided"])

    op.create_table(
        "allocations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("accrual_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(precision=12, scale=2), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["accrual_id"], ["accruals.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_allocations_payment_id", "allocations", ["payment_id"])
    op.create_index("ix_allocations_accrual_id", "allocations", ["accrual_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_audit_logs_entity_type", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_allocations_accrual_id", table_name="allocations")
    op.drop_index("ix_allocations_payment_id", table_name="allocations")
    op.drop_table("allocations")
    op.drop_index("idx_payment_batch_voided", table_name="payments")
    op.drop_index("idx_payment_plot_date", table_name="payments")
    op.drop_index("ix_payments_import_batch_id", table_name="payments")
    op.drop_index("ix_payments_is_voided", table_name="payments")
    op.drop_index("ix_payments_fingerprint", table_name="payments")
    op.drop_index("ix_payments_paid_at", table_name="payments")
    op.drop_index("ix_payments_plot_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("idx_accrual_plot_period", table_name="accruals")
    op.drop_index("ix_accruals_plot_id", table_name="accruals")
    op.drop_index("ix_accruals_period_id", table_name="accruals")
    op.drop_table("accruals")
    op.drop_table("import_batches")
    op.drop_index("ix_billing_periods_title", table_name="billing_periods")
    op.drop_table("billing_periods")
    op.drop_index("ix_plots_is_active", table_name="plots")
    op.drop_index("idx_plot_street_number", table_name="plots")
    op.drop_table("plots")
