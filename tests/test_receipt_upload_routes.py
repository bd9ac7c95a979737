from __future__ import annotations

import io
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import func, select, update

from freelance_ledger.core.config import settings
from freelance_ledger.core.db import SessionLocal
from freelance_ledger.core.security import create_access_token
from freelance_ledger.core.storage import LocalObjectStorage, StorageError
from freelance_ledger.main import app
from freelance_ledger.modules.identity.service import create_user
from freelance_ledger.modules.projects.service import create_project
from freelance_ledger.modules.receipts import api as receipts_api
from freelance_ledger.modules.receipts import service as receipts_service
from freelance_ledger.modules.receipts.models import Receipt, ReceiptStatus


def _headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=str(user.id))}"}


def _jpeg_bytes() -> bytes:
    image = Image.new("RGB", (640, 480), color=(240, 240, 240))
    for x in range(0, 640, 4):
        for y in range(0, 480, 4):
            image.putpixel((x, y), ((x * 3) % 256, (y * 5) % 256, (x + y) % 256))
    out = io.BytesIO()
    image.save(out, format="JPEG", quality=100)
    return out.getvalue()


def _stored_files() -> list[Path]:
    root = Path(os.environ["LOCAL_STORAGE_PATH"])
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]


def _capture_enqueues(monkeypatch) -> list[str]:
    enqueued: list[str] = []

    def _delay(receipt_id: str):
        enqueued.append(receipt_id)
        return SimpleNamespace(id="task-1")

    monkeypatch.setattr(receipts_api, "process_receipt_task", SimpleNamespace(delay=_delay))
    return enqueued


def _receipt_count() -> int:
    with SessionLocal() as session:
        return session.scalar(select(func.count()).select_from(Receipt))


def test_upload_stores_compressed_file_and_enqueues_parse(monkeypatch):
    enqueued = _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        project = create_project(session, user=user, name="Website redesign")
        headers = _headers(user)
        project_id = str(project.id)

    client = TestClient(app)
    body = _jpeg_bytes()
    resp = client.post(
        "/api/receipts/upload",
        headers=headers,
        files={"file": ("lunch.jpg", body, "image/jpeg")},
        data={"projectId": project_id},
    )
    assert resp.status_code == 200, resp.text
    payload = resp.json()
    assert payload["success"] is True
    assert payload["originalSize"] == len(body)
    assert payload["compressedSize"] <= len(body)
    saved = (1 - payload["compressedSize"] / payload["originalSize"]) * 100
    assert payload["compressionRatio"] == f"{saved:.1f}"
    assert enqueued == [payload["receiptId"]]

    with SessionLocal() as session:
        receipt = session.scalar(select(Receipt))
        assert receipt
        assert str(receipt.id) == payload["receiptId"]
        assert receipt.status == ReceiptStatus.PENDING
        assert receipt.retry_count == 0
        assert receipt.file_size == len(body)
        assert receipt.storage_key.startswith(f"receipts/{receipt.user_id}/{project_id}/")
    assert len(_stored_files()) == 1


def test_duplicate_upload_within_window_returns_existing_receipt(monkeypatch):
    enqueued = _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        headers = _headers(user)

    client = TestClient(app)
    body = _jpeg_bytes()
    first = client.post(
        "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
    )
    assert first.status_code == 200
    second = client.post(
        "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
    )
    assert second.status_code == 409
    payload = second.json()
    assert payload["receiptId"] == first.json()["receiptId"]
    assert payload["status"] == "pending"
    assert payload["error"]
    assert _receipt_count() == 1
    assert len(_stored_files()) == 1
    assert len(enqueued) == 1


def test_same_name_for_another_user_is_not_a_duplicate(monkeypatch):
    _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        alice = create_user(session, email="alice@example.com", password="pw")
        bob = create_user(session, email="bob@example.com", password="pw")
        alice_headers, bob_headers = _headers(alice), _headers(bob)

    client = TestClient(app)
    body = _jpeg_bytes()
    for headers in (alice_headers, bob_headers):
        resp = client.post(
            "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
        )
        assert resp.status_code == 200
    assert _receipt_count() == 2


def test_oversize_upload_fails_before_storage_write(monkeypatch):
    enqueued = _capture_enqueues(monkeypatch)
    monkeypatch.setattr(settings, "receipt_max_bytes", 1024)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        headers = _headers(user)

    resp = TestClient(app).post(
        "/api/receipts/upload",
        headers=headers,
        files={"file": ("big.jpg", b"\xff" * 2048, "image/jpeg")},
    )
    assert resp.status_code == 413
    assert resp.json()["error"].startswith("File size exceeds maximum of 50MB.")
    assert _receipt_count() == 0
    assert _stored_files() == []
    assert enqueued == []


def test_pdf_and_unsupported_types_are_rejected_with_type_based_message(monkeypatch):
    _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        headers = _headers(user)

    client = TestClient(app)
    pdf = client.post(
        "/api/receipts/upload",
        headers=headers,
        files={"file": ("invoice.pdf", b"%PDF-1.7 anything", "application/pdf")},
    )
    assert pdf.status_code == 400
    assert pdf.json()["error"].startswith("Multi-page PDFs are not supported")

    tiff = client.post(
        "/api/receipts/upload",
        headers=headers,
        files={"file": ("scan.tiff", b"II*\x00", "image/tiff")},
    )
    assert tiff.status_code == 400
    assert tiff.json()["error"].startswith("Unsupported file type: image/tiff.")
    assert _receipt_count() == 0


def test_upload_without_file_or_with_foreign_project(monkeypatch):
    _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        owner = create_user(session, email="owner@example.com", password="pw")
        other = create_user(session, email="other@example.com", password="pw")
        foreign_project = create_project(session, user=owner, name="Not yours")
        headers = _headers(other)
        foreign_id = str(foreign_project.id)

    client = TestClient(app)
    missing = client.post("/api/receipts/upload", headers=headers, data={"projectId": ""})
    assert missing.status_code == 400
    assert missing.json() == {"error": "No file provided"}

    foreign = client.post(
        "/api/receipts/upload",
        headers=headers,
        files={"file": ("r.jpg", _jpeg_bytes(), "image/jpeg")},
        data={"projectId": foreign_id},
    )
    assert foreign.status_code == 404
    assert foreign.json() == {"error": "Project not found"}
    assert _receipt_count() == 0


def test_storage_failure_returns_500_and_creates_no_receipt(monkeypatch):
    enqueued = _capture_enqueues(monkeypatch)

    def _fail(self, *, key, body, content_type=None, metadata=None):
        raise StorageError(f"Failed to write object: {key}")

    monkeypatch.setattr(LocalObjectStorage, "put", _fail)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        headers = _headers(user)

    resp = TestClient(app).post(
        "/api/receipts/upload",
        headers=headers,
        files={"file": ("r.jpg", _jpeg_bytes(), "image/jpeg")},
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to upload file to storage. Please try again."}
    assert _receipt_count() == 0
    assert enqueued == []


def test_upload_requires_authentication():
    resp = TestClient(app).post(
        "/api/receipts/upload", files={"file": ("r.jpg", b"x", "image/jpeg")}
    )
    assert resp.status_code == 401


def _backdate_receipts(*, hours: float) -> None:
    with SessionLocal() as session:
        session.execute(
            update(Receipt).values(created_at=datetime.now(UTC) - timedelta(hours=hours))
        )
        session.commit()


def test_same_upload_after_dedup_window_is_a_new_receipt(monkeypatch):
    enqueued = _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        headers = _headers(user)

    client = TestClient(app)
    body = _jpeg_bytes()
    first = client.post(
        "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
    )
    assert first.status_code == 200
    _backdate_receipts(hours=settings.receipt_dedup_window_hours + 1)

    second = client.post(
        "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
    )
    assert second.status_code == 200, second.text
    assert second.json()["receiptId"] != first.json()["receiptId"]
    assert _receipt_count() == 2
    assert len(enqueued) == 2


def test_concurrent_identical_upload_keeps_only_the_first(monkeypatch):
    enqueued = _capture_enqueues(monkeypatch)
    with SessionLocal() as session:
        user = create_user(session, email="freelancer@example.com", password="pw")
        headers = _headers(user)

    client = TestClient(app)
    body = _jpeg_bytes()
    first = client.post(
        "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
    )
    assert first.status_code == 200
    _backdate_receipts(hours=0.1)

    # Both requests pass the pre-insert check, as when they overlap in time.
    monkeypatch.setattr(receipts_service, "find_recent_duplicate", lambda session, **kw: None)
    second = client.post(
        "/api/receipts/upload", headers=headers, files={"file": ("r.jpg", body, "image/jpeg")}
    )
    assert second.status_code == 409
    assert second.json()["receiptId"] == first.json()["receiptId"]
    assert _receipt_count() == 1
    assert len(_stored_files()) == 1
    assert len(enqueued) == 1
