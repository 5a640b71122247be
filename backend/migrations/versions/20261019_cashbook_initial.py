"""Cashbook ledger, transactions reports and report artifacts

Revision ID: 20261019_cashbook_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_cashbook_initial"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_KINDS = ("Expense", "Incoming", "OutgoingTransfer", "IncomingTransfer")


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_accounts"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], name="fk_users_account_id_accounts"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_account_id", ["account_id"], unique=False)

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], name="fk_budgets_account_id_accounts"),
        sa.PrimaryKeyConstraint("id", name="pk_budgets"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("budgets", schema=None) as batch_op:
        batch_op.create_index("ix_budgets_account_id", ["account_id"], unique=False)

    op.create_table(
        "money_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], name="fk_money_accounts_account_id_accounts"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_money_accounts_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_money_accounts"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("money_accounts", schema=None) as batch_op:
        batch_op.create_index("ix_money_accounts_account_id", ["account_id"], unique=False)
        batch_op.create_index("ix_money_accounts_user_id", ["user_id"], unique=False)

    op.create_table(
        "transactions_reports",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("cutoff_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="in_process"),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("email_sent", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], name="fk_transactions_reports_account_id_accounts"),
        sa.PrimaryKeyConstraint("id", name="pk_transactions_reports"),
        sa.UniqueConstraint("account_id", "cutoff_date", name="uq_transactions_reports_account_cutoff"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transactions_reports", schema=None) as batch_op:
        batch_op.create_index("ix_transactions_reports_account_id", ["account_id"], unique=False)
        batch_op.create_index("ix_transactions_reports_status", ["status"], unique=False)

    op.create_table(
        "report_artifacts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("report_id", sa.Integer(), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(64), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column("row_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("byte_size", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["report_id"], ["transactions_reports.id"], name="fk_report_artifacts_report_id_transactions_reports"),
        sa.PrimaryKeyConstraint("id", name="pk_report_artifacts"),
        sa.UniqueConstraint("report_id", name="uq_report_artifacts_report"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("money_account_id", sa.Integer(), nullable=False),
        sa.Column("budget_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("transactions_report_id", sa.Integer(), nullable=True),
        sa.Column("kind", sa.Enum(*TRANSACTION_KINDS, name="transaction_kind", native_enum=False, length=32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(512), nullable=True),
        sa.Column("cutoff", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("fixed", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("transfer_group_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], name="fk_transactions_account_id_accounts"),
        sa.ForeignKeyConstraint(["money_account_id"], ["money_accounts.id"], name="fk_transactions_money_account_id_money_accounts"),
        sa.ForeignKeyConstraint(["budget_id"], ["budgets.id"], name="fk_transactions_budget_id_budgets"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_transactions_user_id_users"),
        sa.ForeignKeyConstraint(
            ["transactions_report_id"], ["transactions_reports.id"],
            name="fk_transactions_transactions_report_id_transactions_reports",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_transactions"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("transactions", schema=None) as batch_op:
        batch_op.create_index("ix_transactions_account_id", ["account_id"], unique=False)
        batch_op.create_index("ix_transactions_money_account_id", ["money_account_id"], unique=False)
        batch_op.create_index("ix_transactions_budget_id", ["budget_id"], unique=False)
        batch_op.create_index("ix_transactions_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_transactions_transactions_report_id", ["transactions_report_id"], unique=False)
        batch_op.create_index("ix_transactions_kind", ["kind"], unique=False)
        batch_op.create_index("ix_transactions_transfer_group_id", ["transfer_group_id"], unique=False)
        batch_op.create_index("ix_transactions_date_id", ["transaction_date", "id"], unique=False)
        batch_op.create_index("ix_transactions_account_date", ["account_id", "transaction_date"], unique=False)


def downgrade():
    op.drop_table("transactions")
    op.drop_table("report_artifacts")
    op.drop_table("transactions_reports")
    op.drop_table("money_accounts")
    op.drop_table("budgets")
    op.drop_table("users")
    op.drop_table("accounts")
