from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from freelance_ledger.modules.receipts.models import ReceiptStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ReceiptOut(_CamelModel):
    id: uuid.UUID
    project_id: uuid.UUID | None
    expense_id: uuid.UUID | None
    file_name: str
    file_size: int
    compressed_size: int | None
    file_type: str
    status: ReceiptStatus
    merchant_name: str | None
    confidence_score: Decimal | None
    retry_count: int
    last_error: str | None
    processed_at: datetime | None
    created_at: datetime


class ReceiptUploadOut(_CamelModel):
    success: bool = True
    receipt_id: uuid.UUID
    message: str
    original_size: int
    compressed_size: int
    compression_ratio: str
