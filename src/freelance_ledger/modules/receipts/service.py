from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from freelance_ledger.core.config import settings
from freelance_ledger.core.logging import get_logger, log_event
from freelance_ledger.core.storage import get_storage
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.receipts.models import Receipt, ReceiptStatus
from freelance_ledger.modules.receipts.storage import (
    UploadResult,
    store_receipt_file,
    validate_receipt_file,
)

logger = get_logger(__name__)

ANALYZING_MESSAGE = "Your receipt is being analyzed. This usually takes 5-15 seconds."
UPLOADED_MESSAGE = "Receipt uploaded and processing started. You can check the status shortly."
DUPLICATE_MESSAGE = "This receipt was already uploaded in the last 24 hours."


class DuplicateReceiptError(Exception):
    def __init__(self, receipt: Receipt):
        super().__init__(DUPLICATE_MESSAGE)
        self.receipt = receipt


def _fingerprint_query(*, user_id: uuid.UUID, file_name: str, file_size: int) -> Select:
    window_start = datetime.now(UTC) - timedelta(hours=settings.receipt_dedup_window_hours)
    return select(Receipt).where(
        Receipt.user_id == user_id,
        Receipt.file_name == file_name,
        Receipt.file_size == file_size,
        Receipt.created_at >= window_start,
    )


def find_recent_duplicate(
    session: Session, *, user: User, file_name: str, file_size: int
) -> Receipt | None:
    return session.scalar(
        _fingerprint_query(user_id=user.id, file_name=file_name, file_size=file_size)
        .order_by(Receipt.created_at.desc())
        .limit(1)
    )


def _first_with_fingerprint(session: Session, *, receipt: Receipt) -> Receipt | None:
    return session.scalar(
        _fingerprint_query(
            user_id=receipt.user_id, file_name=receipt.file_name, file_size=receipt.file_size
        )
        .order_by(Receipt.created_at.asc(), Receipt.id.asc())
        .limit(1)
    )


def create_receipt_from_upload(
    session: Session,
    *,
    user: User,
    project_id: uuid.UUID | None,
    filename: str,
    content_type: str | None,
    body: bytes,
) -> tuple[Receipt, UploadResult]:
    """
    Validate, dedup, compress and store an uploaded receipt image.

    Raises ``ReceiptFileError`` for invalid files, ``DuplicateReceiptError``
    when the same (name, size) was uploaded inside the dedup window, and
    ``StorageError`` when the object store rejects the write. Nothing is
    written to storage or the database unless every check passes; when a
    concurrent identical upload commits first, this one is undone and
    reported as its duplicate.
    """
    validate_receipt_file(len(body), content_type)

    duplicate = find_recent_duplicate(session, user=user, file_name=filename, file_size=len(body))
    if duplicate:
        log_event(
            logger,
            "receipt.upload.duplicate",
            receipt_id=str(duplicate.id),
            filename=filename,
            byte_size=len(body),
        )
        raise DuplicateReceiptError(duplicate)

    content_type = (content_type or "").lower()
    result = store_receipt_file(
        user_id=user.id,
        project_id=project_id,
        filename=filename,
        content_type=content_type,
        body=body,
    )
    receipt = Receipt(
        user_id=user.id,
        project_id=project_id,
        file_name=filename,
        file_size=result.original_size,
        compressed_size=result.compressed_size,
        file_type=content_type,
        storage_key=result.storage_key,
        status=ReceiptStatus.PENDING,
        retry_count=0,
    )
    session.add(receipt)
    session.commit()
    session.refresh(receipt)

    # Concurrent identical uploads can both pass the check above; the oldest row wins.
    first = _first_with_fingerprint(session, receipt=receipt)
    if first is not None and first.id != receipt.id:
        log_event(
            logger,
            "receipt.upload.duplicate_race",
            receipt_id=str(first.id),
            discarded_receipt_id=str(receipt.id),
            filename=filename,
        )
        session.delete(receipt)
        session.commit()
        get_storage().delete(key=result.storage_key)
        raise DuplicateReceiptError(first)
    return receipt, result


def compression_ratio(result: UploadResult) -> str:
    if not result.original_size:
        return "0.0"
    saved = (1 - result.compressed_size / result.original_size) * 100
    return f"{saved:.1f}"


def list_receipts(session: Session, *, user: User, limit: int = 50, offset: int = 0) -> list[Receipt]:
    return list(
        session.scalars(
            select(Receipt)
            .where(Receipt.user_id == user.id)
            .order_by(Receipt.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
    )


def get_receipt_for_user(session: Session, *, receipt_id: uuid.UUID, user: User) -> Receipt:
    receipt = session.scalar(
        select(Receipt).where(Receipt.id == receipt_id, Receipt.user_id == user.id)
    )
    if not receipt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt


def can_retry(receipt: Receipt) -> bool:
    return receipt.retry_count < settings.receipt_max_retries


def build_status_payload(receipt: Receipt) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": receipt.id,
        "expenseId": receipt.expense_id,
        "status": receipt.status.value,
        "fileName": receipt.file_name,
        "uploadedAt": receipt.created_at,
        "processedAt": receipt.processed_at,
    }
    if receipt.status in {ReceiptStatus.PENDING, ReceiptStatus.PROCESSING}:
        payload["message"] = ANALYZING_MESSAGE
    elif receipt.status == ReceiptStatus.COMPLETED:
        normalized = receipt.normalized_data or {}
        payload["message"] = "Receipt parsed successfully"
        payload["data"] = {
            "merchantName": receipt.merchant_name,
            "total": normalized.get("total"),
            "date": normalized.get("date"),
            "category": normalized.get("category"),
            "confidenceScore": receipt.confidence_score,
            "normalizedData": receipt.normalized_data,
        }
    else:
        payload["message"] = "Receipt parsing failed"
        payload["error"] = receipt.last_error
        payload["retryCount"] = receipt.retry_count
        payload["canRetry"] = can_retry(receipt)
    return payload


def reset_for_retry(session: Session, *, receipt: Receipt) -> Receipt:
    if receipt.status != ReceiptStatus.FAILED or not can_retry(receipt):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Receipt cannot be retried"
        )
    receipt.status = ReceiptStatus.PENDING
    session.add(receipt)
    session.commit()
    session.refresh(receipt)
    log_event(logger, "receipt.retry.requested", receipt_id=str(receipt.id), retry_count=receipt.retry_count)
    return receipt
