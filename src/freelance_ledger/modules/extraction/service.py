from __future__ import annotations

import json
import time
import uuid
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from freelance_ledger.core.config import settings
from freelance_ledger.core.db import SessionLocal
from freelance_ledger.core.logging import get_logger, log_event, log_exception, monotonic_ms
from freelance_ledger.core.storage import get_storage
from freelance_ledger.modules.expenses.models import Expense, ExpenseSource
from freelance_ledger.modules.expenses.service import find_category_by_name
from freelance_ledger.modules.extraction.ai import (
    ParsedReceipt,
    ReceiptParseError,
    parse_with_fallback_model,
    parse_with_primary_model,
)
from freelance_ledger.modules.receipts.models import (
    ParsingLog,
    ParsingStatus,
    Receipt,
    ReceiptStatus,
)

logger = get_logger(__name__)

STALE_PROCESSING_AFTER = timedelta(minutes=30)
MISSING_FIELDS_ERROR = "Unable to extract critical fields (merchant name or total amount)"


def parse_receipt_image(body: bytes, content_type: str) -> ParsedReceipt:
    """
    Parse a receipt image, trying the primary model and then the fallback.

    The fallback gets a fresh attempt on any primary failure; nothing the
    primary returned before failing is carried over.
    """
    try:
        return parse_with_primary_model(body, content_type)
    except Exception as primary_error:  # noqa: BLE001
        log_event(
            logger,
            "receipt.parse.fallback",
            model_id=settings.bedrock_primary_model_id,
            error_type=type(primary_error).__name__,
            error=str(primary_error),
        )
        try:
            return parse_with_fallback_model(body, content_type)
        except Exception as fallback_error:  # noqa: BLE001
            raise ReceiptParseError(
                f"All parsing models failed. Primary: {primary_error}. Fallback: {fallback_error}"
            ) from fallback_error


def compute_confidence_score(parsed: ParsedReceipt) -> Decimal:
    factors = [
        bool(parsed.merchant_name),
        bool(parsed.date),
        bool(parsed.total),
        bool(parsed.tax),
        bool(parsed.line_items),
    ]
    score = Decimal(sum(factors)) / Decimal(len(factors)) * 100
    return score.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def process_receipt(*, receipt_id: str) -> None:
    with SessionLocal() as session:
        receipt = session.scalar(select(Receipt).where(Receipt.id == uuid.UUID(receipt_id)))
        if not receipt:
            log_event(logger, "receipt.parse.missing", receipt_id=receipt_id)
            return

        if receipt.retry_count >= settings.receipt_max_retries:
            receipt.status = ReceiptStatus.FAILED
            if not receipt.last_error:
                receipt.last_error = "Max retries exceeded"
            session.add(receipt)
            session.commit()
            log_event(logger, "receipt.parse.exhausted", receipt_id=receipt_id)
            return

        if not _try_start_receipt_processing(session=session, receipt=receipt):
            log_event(
                logger,
                "receipt.parse.skipped",
                receipt_id=receipt_id,
                receipt_status=receipt.status.value,
            )
            return

        start = time.monotonic()
        log_event(
            logger,
            "receipt.parse.start",
            receipt_id=receipt_id,
            storage_key=receipt.storage_key,
            content_type=receipt.file_type,
            retry_count=receipt.retry_count,
        )

        parsed: ParsedReceipt | None = None
        try:
            body = get_storage().get(key=receipt.storage_key)
            parsed = parse_receipt_image(body, receipt.file_type)
            if not parsed.merchant_name or not parsed.total or parsed.total <= 0:
                raise ReceiptParseError(MISSING_FIELDS_ERROR)

            confidence = compute_confidence_score(parsed)
            expense = _upsert_expense(session=session, receipt=receipt, parsed=parsed, confidence=confidence)

            receipt.expense_id = expense.id
            receipt.status = ReceiptStatus.COMPLETED
            receipt.raw_parsed_data = parsed.raw_response
            receipt.normalized_data = parsed.to_normalized()
            receipt.merchant_name = parsed.merchant_name
            receipt.confidence_score = confidence
            receipt.last_error = None
            receipt.processed_at = datetime.now(UTC)
            session.add(receipt)
            _add_parsing_log(
                session=session,
                receipt=receipt,
                parsed=parsed,
                status=ParsingStatus.SUCCESS,
                confidence=confidence,
                duration_ms=monotonic_ms(start),
            )
            session.commit()
            log_event(
                logger,
                "receipt.parse.finish",
                receipt_id=receipt_id,
                expense_id=str(expense.id),
                model_id=parsed.model_id,
                confidence=str(confidence),
                status="success",
                duration_ms=monotonic_ms(start),
            )
        except Exception as e:  # noqa: BLE001
            session.rollback()
            session.refresh(receipt)
            _record_failure(
                session=session,
                receipt=receipt,
                message=str(e) or type(e).__name__,
                parsed=parsed,
                duration_ms=monotonic_ms(start),
            )
            log_exception(
                logger,
                "receipt.parse.error",
                receipt_id=receipt_id,
                retry_count=receipt.retry_count,
                duration_ms=monotonic_ms(start),
            )


def _try_start_receipt_processing(*, session: Session, receipt: Receipt) -> bool:
    stale_before = datetime.now(UTC) - STALE_PROCESSING_AFTER
    result = session.execute(
        update(Receipt)
        .where(
            Receipt.id == receipt.id,
            Receipt.retry_count < settings.receipt_max_retries,
            (
                Receipt.status.in_((ReceiptStatus.PENDING, ReceiptStatus.FAILED))
                | (
                    (Receipt.status == ReceiptStatus.PROCESSING)
                    & (Receipt.updated_at < stale_before)
                )
            ),
        )
        .values(status=ReceiptStatus.PROCESSING)
    )
    if not result.rowcount:
        session.rollback()
        return False
    session.commit()
    session.refresh(receipt)
    return True


def _upsert_expense(
    *, session: Session, receipt: Receipt, parsed: ParsedReceipt, confidence: Decimal
) -> Expense:
    expense = session.get(Expense, receipt.expense_id) if receipt.expense_id else None
    if expense is None:
        expense = Expense(
            user_id=receipt.user_id,
            project_id=receipt.project_id,
            receipt_file_key=receipt.storage_key,
            receipt_file_name=receipt.file_name,
            receipt_mime_type=receipt.file_type,
            source=ExpenseSource.RECEIPT_UPLOAD,
        )
        category = find_category_by_name(session, parsed.category)
        expense.category_id = category.id if category else None

    expense.vendor = parsed.merchant_name
    expense.amount = parsed.total
    expense.tax_amount = parsed.tax
    expense.currency = parsed.currency or expense.currency or "USD"
    expense.expense_date = _expense_date(parsed.date)
    expense.line_items = parsed.line_items
    expense.is_deductible = parsed.is_taxable if parsed.is_taxable is not None else True
    expense.ai_parsed = True
    expense.ai_confidence = confidence
    session.add(expense)
    session.flush()
    return expense


def _expense_date(value: str | None) -> date:
    if value:
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(UTC).date()


def _record_failure(
    *,
    session: Session,
    receipt: Receipt,
    message: str,
    parsed: ParsedReceipt | None,
    duration_ms: int,
) -> None:
    receipt.retry_count = min(receipt.retry_count + 1, settings.receipt_max_retries)
    receipt.status = ReceiptStatus.FAILED
    if receipt.retry_count >= settings.receipt_max_retries:
        receipt.last_error = f"Max retries exceeded. Last error: {message}"
    else:
        receipt.last_error = message
    session.add(receipt)
    _add_parsing_log(
        session=session,
        receipt=receipt,
        parsed=parsed,
        status=ParsingStatus.FAILED,
        error_message=message,
        duration_ms=duration_ms,
    )
    session.commit()


def _add_parsing_log(
    *,
    session: Session,
    receipt: Receipt,
    parsed: ParsedReceipt | None,
    status: ParsingStatus,
    duration_ms: int,
    confidence: Decimal | None = None,
    error_message: str | None = None,
) -> None:
    session.add(
        ParsingLog(
            user_id=receipt.user_id,
            receipt_id=receipt.id,
            expense_id=receipt.expense_id,
            storage_key=receipt.storage_key,
            ai_model=parsed.model_id if parsed else None,
            raw_response=json.dumps(parsed.raw_response, default=str)
            if parsed and parsed.raw_response is not None
            else None,
            extracted_data=parsed.to_normalized() if parsed else None,
            confidence=confidence,
            processing_time_ms=duration_ms,
            status=status,
            error_message=error_message,
        )
    )
