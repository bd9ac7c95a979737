from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from freelance_ledger.core.models import Base, Timestamped, UUIDPrimaryKey


class ReceiptStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ParsingStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class Receipt(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "receipts_receipt"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id", ondelete="CASCADE"), index=True
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects_project.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    expense_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("expenses_expense.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    file_name: Mapped[str] = mapped_column(String(255))
    file_size: Mapped[int] = mapped_column(Integer)
    compressed_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str] = mapped_column(String(100))
    storage_key: Mapped[str] = mapped_column(String(500), unique=True)

    status: Mapped[ReceiptStatus] = mapped_column(
        Enum(ReceiptStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        default=ReceiptStatus.PENDING,
        index=True,
    )
    raw_parsed_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    normalized_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    merchant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    confidence_score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)

    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ParsingLog(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "receipts_parsing_log"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id", ondelete="CASCADE"), index=True
    )
    receipt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("receipts_receipt.id", ondelete="CASCADE"), index=True
    )
    expense_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("expenses_expense.id", ondelete="SET NULL"),
        nullable=True,
    )
    storage_key: Mapped[str] = mapped_column(String(500))
    ai_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    raw_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    confidence: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[ParsingStatus] = mapped_column(
        Enum(ParsingStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
