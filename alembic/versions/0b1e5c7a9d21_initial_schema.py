"""initial schema

Revision ID: 0b1e5c7a9d21
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0b1e5c7a9d21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("identity_user.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "identity_user",
        *_base_columns(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=5), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_signed_in_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_identity_user_email", "identity_user", ["email"], unique=True)
    op.create_index("ix_identity_user_role", "identity_user", ["role"])

    op.create_table(
        "projects_project",
        *_base_columns(),
        _user_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=True),
        sa.Column("client_email", sa.String(length=320), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("budget", sa.Numeric(12, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_projects_project_user_id", "projects_project", ["user_id"])
    op.create_index("ix_projects_project_status", "projects_project", ["status"])

    op.create_table(
        "expenses_category",
        *_base_columns(),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("schedule_c_line", sa.String(length=50), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_deductible", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "expenses_expense",
        *_base_columns(),
        _user_fk(),
        sa.Column(
            "project_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("projects_project.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "category_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("expenses_category.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("vendor", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("receipt_file_key", sa.String(length=500), nullable=True),
        sa.Column("receipt_file_name", sa.String(length=255), nullable=True),
        sa.Column("receipt_mime_type", sa.String(length=100), nullable=True),
        sa.Column("is_deductible", sa.Boolean(), nullable=False),
        sa.Column("line_items", sa.JSON(), nullable=True),
        sa.Column("ai_parsed", sa.Boolean(), nullable=False),
        sa.Column("ai_confidence", sa.Numeric(5, 2), nullable=True),
        sa.Column("source", sa.String(length=14), nullable=False),
    )
    for col in ("user_id", "project_id", "category_id", "expense_date", "source"):
        op.create_index(f"ix_expenses_expense_{col}", "expenses_expense", [col])

    op.create_table(
        "incomes_income",
        *_base_columns(),
        _user_fk(),
        sa.Column(
            "project_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("projects_project.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("income_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("payment_method", sa.String(length=50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    for col in ("user_id", "project_id", "income_date", "status"):
        op.create_index(f"ix_incomes_income_{col}", "incomes_income", [col])

    op.create_table(
        "receipts_receipt",
        *_base_columns(),
        _user_fk(),
        sa.Column(
            "project_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("projects_project.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "expense_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("expenses_expense.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("compressed_size", sa.Integer(), nullable=True),
        sa.Column("file_type", sa.String(length=100), nullable=False),
        sa.Column("storage_key", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("raw_parsed_data", sa.JSON(), nullable=True),
        sa.Column("normalized_data", sa.JSON(), nullable=True),
        sa.Column("merchant_name", sa.String(length=255), nullable=True),
        sa.Column("confidence_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("storage_key", name="uq_receipts_receipt_storage_key"),
    )
    for col in ("user_id", "project_id", "expense_id", "status"):
        op.create_index(f"ix_receipts_receipt_{col}", "receipts_receipt", [col])

    op.create_table(
        "receipts_parsing_log",
        *_base_columns(),
        _user_fk(),
        sa.Column(
            "receipt_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("receipts_receipt.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "expense_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("expenses_expense.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("storage_key", sa.String(length=500), nullable=False),
        sa.Column("ai_model", sa.String(length=100), nullable=True),
        sa.Column("raw_response", sa.Text(), nullable=True),
        sa.Column("extracted_data", sa.JSON(), nullable=True),
        sa.Column("confidence", sa.Numeric(5, 2), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=7), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    for col in ("user_id", "receipt_id", "status"):
        op.create_index(f"ix_receipts_parsing_log_{col}", "receipts_parsing_log", [col])


def downgrade() -> None:
    op.drop_table("receipts_parsing_log")
    op.drop_table("receipts_receipt")
    op.drop_table("incomes_income")
    op.drop_table("expenses_expense")
    op.drop_table("expenses_category")
    op.drop_table("projects_project")
    op.drop_table("identity_user")
