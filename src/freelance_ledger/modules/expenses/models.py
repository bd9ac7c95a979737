from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, Enum, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freelance_ledger.core.models import Base, Timestamped, UUIDPrimaryKey


class ExpenseSource(str, enum.Enum):
    MANUAL = "manual"
    RECEIPT_UPLOAD = "receipt_upload"
    AWS_AUTO = "aws_auto"


class ExpenseCategory(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_category"

    name: Mapped[str] = mapped_column(String(100), unique=True)
    schedule_c_line: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_deductible: Mapped[bool] = mapped_column(Boolean, default=True)


class Expense(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_expense"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id", ondelete="CASCADE"), index=True
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects_project.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("expenses_category.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    vendor: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    expense_date: Mapped[date] = mapped_column(Date, index=True)

    receipt_file_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    receipt_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    receipt_mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_deductible: Mapped[bool] = mapped_column(Boolean, default=True)
    line_items: Mapped[list | None] = mapped_column(JSON, nullable=True)

    ai_parsed: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_confidence: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    source: Mapped[ExpenseSource] = mapped_column(
        Enum(ExpenseSource, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=ExpenseSource.MANUAL,
        index=True,
    )

    project = relationship("Project")
    category = relationship("ExpenseCategory")
