from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Enum, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freelance_ledger.core.models import Base, Timestamped, UUIDPrimaryKey


class IncomeStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Income(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "incomes_income"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id", ondelete="CASCADE"), index=True
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects_project.id", ondelete="CASCADE"), index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    income_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[IncomeStatus] = mapped_column(
        Enum(IncomeStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=IncomeStatus.PAID,
        index=True,
    )
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    project = relationship("Project")
