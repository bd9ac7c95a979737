from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from freelance_ledger.api.deps import get_current_user
from freelance_ledger.core.db import db_session
from freelance_ledger.core.logging import get_logger, log_event, log_exception
from freelance_ledger.core.storage import StorageError, get_storage
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.projects.service import get_project_for_user
from freelance_ledger.modules.receipts.schemas import ReceiptOut, ReceiptUploadOut
from freelance_ledger.modules.receipts.service import (
    UPLOADED_MESSAGE,
    DuplicateReceiptError,
    build_status_payload,
    compression_ratio,
    create_receipt_from_upload,
    get_receipt_for_user,
    list_receipts,
    reset_for_retry,
)
from freelance_ledger.modules.receipts.storage import ReceiptFileError, content_disposition
from freelance_ledger.worker.tasks import process_receipt_task

router = APIRouter(tags=["receipts"])
logger = get_logger(__name__)

STORAGE_FAILURE_MESSAGE = "Failed to upload file to storage. Please try again."


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _enqueue_parse(receipt_id: uuid.UUID) -> None:
    async_result = process_receipt_task.delay(str(receipt_id))
    log_event(
        logger,
        "celery.task.enqueued",
        task_name="process_receipt",
        celery_task_id=async_result.id,
        receipt_id=str(receipt_id),
    )


@router.post("/receipts/upload", response_model=ReceiptUploadOut)
async def upload_receipt(
    file: UploadFile | None = File(None),
    project_id: str | None = Form(None, alias="projectId"),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
):
    if file is None or not file.filename:
        return _error(400, "No file provided")

    project_uuid: uuid.UUID | None = None
    if project_id:
        try:
            project_uuid = uuid.UUID(project_id)
            get_project_for_user(session, project_id=project_uuid, user=user)
        except (ValueError, HTTPException):
            return _error(404, "Project not found")

    body = await file.read()
    log_event(
        logger,
        "receipt.upload.received",
        filename=file.filename,
        content_type=file.content_type,
        byte_size=len(body),
        project_id=str(project_uuid) if project_uuid else None,
    )

    try:
        receipt, result = create_receipt_from_upload(
            session,
            user=user,
            project_id=project_uuid,
            filename=file.filename,
            content_type=file.content_type,
            body=body,
        )
    except ReceiptFileError as e:
        log_event(logger, "receipt.upload.rejected", filename=file.filename, reason=str(e))
        return _error(e.status_code, str(e))
    except DuplicateReceiptError as e:
        return _error(
            409, str(e), receiptId=str(e.receipt.id), status=e.receipt.status.value
        )
    except StorageError:
        log_exception(logger, "receipt.upload.storage_failure", filename=file.filename)
        return _error(500, STORAGE_FAILURE_MESSAGE)

    _enqueue_parse(receipt.id)
    return ReceiptUploadOut(
        receipt_id=receipt.id,
        message=UPLOADED_MESSAGE,
        original_size=result.original_size,
        compressed_size=result.compressed_size,
        compression_ratio=compression_ratio(result),
    )


@router.get("/receipts", response_model=list[ReceiptOut])
def list_receipts_endpoint(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ReceiptOut]:
    return [
        ReceiptOut.model_validate(r)
        for r in list_receipts(session, user=user, limit=limit, offset=offset)
    ]


@router.get("/receipts/{receipt_id}/status")
def receipt_status(
    receipt_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    return build_status_payload(receipt)


@router.post("/receipts/{receipt_id}/retry")
def retry_receipt(
    receipt_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    reset_for_retry(session, receipt=receipt)
    _enqueue_parse(receipt.id)
    session.refresh(receipt)
    return build_status_payload(receipt)


@router.get("/receipts/{receipt_id}/file")
def download_receipt_file(
    receipt_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    receipt = get_receipt_for_user(session, receipt_id=receipt_id, user=user)
    try:
        body = get_storage().get(key=receipt.storage_key)
    except StorageError as e:
        raise HTTPException(status_code=404, detail="Receipt file not found") from e
    return Response(
        content=body,
        media_type=receipt.file_type,
        headers={"Content-Disposition": content_disposition(receipt.file_name)},
    )
