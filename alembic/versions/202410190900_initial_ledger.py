"""ledger transactions and installment plans

Revision ID: 202410190900
Revises:
Create Date: 2024-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410190900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "installment_plans",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("total_installments", sa.Integer(), nullable=False),
        sa.Column("installment_value_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "total_installments > 0", name="ck_plan_installments_positive"
        ),
        sa.CheckConstraint(
            "installment_value_cents > 0", name="ck_plan_installment_value_positive"
        ),
    )
    op.create_index(
        "ix_installment_plans_owner", "installment_plans", ["owner_id", "id"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "plan_id", sa.Integer(), sa.ForeignKey("installment_plans.id")
        ),
        sa.Column("installment_number", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "installment_number IS NULL OR installment_number >= 1",
            name="ck_transactions_installment_number",
        ),
    )
    op.create_index(
        "ix_transactions_owner_occurred", "transactions", ["owner_id", "occurred_at"]
    )
    op.create_index(
        "ix_transactions_owner_type_occurred",
        "transactions",
        ["owner_id", "type", "occurred_at"],
    )
    op.create_index("ix_transactions_plan", "transactions", ["plan_id"])


def downgrade():
    op.drop_index("ix_transactions_plan", table_name="transactions")
    op.drop_index("ix_transactions_owner_type_occurred", table_name="transactions")
    op.drop_index("ix_transactions_owner_occurred", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_installment_plans_owner", table_name="installment_plans")
    op.drop_table("installment_plans")
