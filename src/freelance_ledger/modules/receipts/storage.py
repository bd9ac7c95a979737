from __future__ import annotations

import io
import secrets
import string
import time
import uuid
from dataclasses import dataclass
from urllib.parse import quote

from PIL import Image, UnidentifiedImageError

from freelance_ledger.core.config import settings
from freelance_ledger.core.logging import get_logger, log_event
from freelance_ledger.core.storage import get_storage

logger = get_logger(__name__)

RECEIPTS_PREFIX = "receipts"
MIN_COMPRESS_WIDTH = 300
SUPPORTED_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"})

_KEY_ALPHABET = string.ascii_lowercase + string.digits


class ReceiptFileError(ValueError):
    status_code = 400


class ReceiptTooLargeError(ReceiptFileError):
    status_code = 413


class UnsupportedReceiptTypeError(ReceiptFileError):
    pass


def content_disposition(filename: str, *, disposition: str = "inline") -> str:
    """
    Build a Content-Disposition value for an arbitrary user-supplied file name.

    Headers are sent as latin-1, so the plain `filename` carries an ASCII-only
    fallback and `filename*` (RFC 5987) carries the exact UTF-8 name.
    """
    ascii_name = filename.encode("ascii", "ignore").decode("ascii")
    fallback = "".join(c for c in ascii_name if c.isprintable() and c not in '"\\;').strip()
    encoded = quote(filename, safe="")
    return f'{disposition}; filename="{fallback or "receipt"}"; filename*=UTF-8\'\'{encoded}'


@dataclass(frozen=True)
class UploadResult:
    storage_key: str
    original_size: int
    compressed_size: int


def validate_receipt_file(size: int, content_type: str | None) -> None:
    """Reject receipts the pipeline cannot handle, before anything is written."""
    if size > settings.receipt_max_bytes:
        raise ReceiptTooLargeError(
            "File size exceeds maximum of 50MB. Please compress or choose a different image."
        )
    ctype = (content_type or "").lower()
    if ctype == "application/pdf":
        raise UnsupportedReceiptTypeError(
            "Multi-page PDFs are not supported in this version. "
            "Please convert to individual images or upload one page at a time."
        )
    if ctype not in SUPPORTED_TYPES:
        raise UnsupportedReceiptTypeError(
            f"Unsupported file type: {content_type}. Supported types: JPG, PNG, GIF, WebP."
        )


def _encode_options(content_type: str) -> tuple[str, dict] | None:
    if content_type in {"image/jpeg", "image/jpg"}:
        return "JPEG", {"quality": 85, "progressive": True, "optimize": True}
    if content_type == "image/png":
        return "PNG", {"optimize": True, "compress_level": 9}
    if content_type == "image/webp":
        return "WEBP", {"quality": 80}
    return None


def compress_image(body: bytes, content_type: str) -> bytes:
    """
    Re-encode an image to shrink it.

    Returns the original bytes whenever compression is not applicable or does
    not help: GIFs, images narrower than 300px, undecodable input, or output
    that is not smaller than the input.
    """
    options = _encode_options((content_type or "").lower())
    if options is None:
        return body
    fmt, params = options

    try:
        with Image.open(io.BytesIO(body)) as image:
            if image.width < MIN_COMPRESS_WIDTH:
                log_event(logger, "receipt.compress.skipped", reason="low_resolution", width=image.width)
                return body
            if fmt == "JPEG" and image.mode not in {"RGB", "L"}:
                image = image.convert("RGB")
            out = io.BytesIO()
            image.save(out, format=fmt, **params)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log_event(logger, "receipt.compress.skipped", reason="undecodable", error_type=type(e).__name__)
        return body

    compressed = out.getvalue()
    if len(compressed) >= len(body):
        return body
    return compressed


def build_receipt_key(
    *, user_id: uuid.UUID, project_id: uuid.UUID | None, filename: str
) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    timestamp_ms = time.time_ns() // 1_000_000
    random_id = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(6))
    return f"{RECEIPTS_PREFIX}/{user_id}/{project_id or 'general'}/{timestamp_ms}-{random_id}.{ext}"


def store_receipt_file(
    *,
    user_id: uuid.UUID,
    project_id: uuid.UUID | None,
    filename: str,
    content_type: str,
    body: bytes,
) -> UploadResult:
    validate_receipt_file(len(body), content_type)
    compressed = compress_image(body, content_type)
    key = build_receipt_key(user_id=user_id, project_id=project_id, filename=filename)
    get_storage().put(
        key=key,
        body=compressed,
        content_type=content_type,
        metadata={
            "original-file-name": filename.encode("ascii", "ignore").decode("ascii"),
            "uploaded-by": str(user_id),
        },
    )
    log_event(
        logger,
        "receipt.storage.stored",
        storage_key=key,
        original_size=len(body),
        compressed_size=len(compressed),
    )
    return UploadResult(storage_key=key, original_size=len(body), compressed_size=len(compressed))
