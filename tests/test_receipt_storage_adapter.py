from __future__ import annotations

import io

import pytest
from PIL import Image

import freelance_ledger.core.storage as storage_mod
from freelance_ledger.core.storage import LocalObjectStorage, StorageError
from freelance_ledger.modules.receipts.storage import (
    ReceiptTooLargeError,
    UnsupportedReceiptTypeError,
    build_receipt_key,
    compress_image,
    content_disposition,
    validate_receipt_file,
)


def _noisy_image_bytes(fmt: str, *, width: int = 800, height: int = 600) -> bytes:
    # Gradient + pattern so encoders have real content to work with
    image = Image.new("RGB", (width, height))
    pixels = image.load()
    for x in range(width):
        for y in range(height):
            pixels[x, y] = ((x * 7) % 256, (y * 3) % 256, ((x + y) * 5) % 256)
    out = io.BytesIO()
    if fmt == "JPEG":
        image.save(out, format="JPEG", quality=100)
    else:
        image.save(out, format=fmt)
    return out.getvalue()


def test_validate_rejects_oversize_before_type_checks():
    with pytest.raises(ReceiptTooLargeError) as exc:
        validate_receipt_file(50 * 1024 * 1024 + 1, "application/pdf")
    assert exc.value.status_code == 413
    assert str(exc.value).startswith("File size exceeds maximum of 50MB.")


def test_validate_rejects_pdf_with_fixed_message():
    with pytest.raises(UnsupportedReceiptTypeError) as exc:
        validate_receipt_file(1024, "application/pdf")
    assert exc.value.status_code == 400
    assert str(exc.value).startswith("Multi-page PDFs are not supported in this version.")


def test_validate_rejects_unknown_type_naming_the_type():
    with pytest.raises(UnsupportedReceiptTypeError) as exc:
        validate_receipt_file(1024, "image/tiff")
    assert str(exc.value) == (
        "Unsupported file type: image/tiff. Supported types: JPG, PNG, GIF, WebP."
    )


@pytest.mark.parametrize(
    "content_type", ["image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"]
)
def test_validate_accepts_supported_types(content_type):
    validate_receipt_file(50 * 1024 * 1024, content_type)


def test_compress_jpeg_never_grows_and_shrinks_high_quality_input():
    body = _noisy_image_bytes("JPEG")
    out = compress_image(body, "image/jpeg")
    assert len(out) < len(body)
    with Image.open(io.BytesIO(out)) as image:
        assert image.format == "JPEG"
        assert image.size == (800, 600)


def test_compress_png_never_grows():
    body = _noisy_image_bytes("PNG")
    out = compress_image(body, "image/png")
    assert len(out) <= len(body)


def test_compress_keeps_narrow_images_untouched():
    body = _noisy_image_bytes("JPEG", width=200, height=400)
    assert compress_image(body, "image/jpeg") is body


def test_compress_keeps_gif_and_undecodable_bytes_untouched():
    gif = _noisy_image_bytes("GIF", width=400, height=300)
    assert compress_image(gif, "image/gif") is gif

    garbage = b"\xff\xd8not-really-a-jpeg" * 100
    assert compress_image(garbage, "image/jpeg") is garbage


def test_build_receipt_key_layout():
    import uuid

    user_id = uuid.uuid4()
    project_id = uuid.uuid4()

    key = build_receipt_key(user_id=user_id, project_id=project_id, filename="Lunch.JPG")
    prefix, uid, pid, name = key.split("/")
    assert (prefix, uid, pid) == ("receipts", str(user_id), str(project_id))
    stamp, rest = name.split("-", 1)
    assert stamp.isdigit()
    assert rest.endswith(".jpg")
    assert len(rest.split(".")[0]) == 6

    general = build_receipt_key(user_id=user_id, project_id=None, filename="scan.png")
    assert general.split("/")[2] == "general"


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("lunch.jpg", "inline; filename=\"lunch.jpg\"; filename*=UTF-8''lunch.jpg"),
        ("レシート.png", "inline; filename=\".png\"; filename*=UTF-8''%E3%83%AC%E3%82%B7%E3%83%BC%E3%83%88.png"),
        ('a";b.gif', "inline; filename=\"ab.gif\"; filename*=UTF-8''a%22%3Bb.gif"),
        ("収据", "inline; filename=\"receipt\"; filename*=UTF-8''%E5%8F%8E%E6%8D%AE"),
    ],
)
def test_content_disposition_is_latin1_safe(filename, expected):
    value = content_disposition(filename)
    assert value == expected
    value.encode("latin-1")


def test_failed_local_write_leaves_no_temp_file(monkeypatch, tmp_path):
    storage = LocalObjectStorage(tmp_path)

    def _fail(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(storage_mod.os, "replace", _fail)
    with pytest.raises(StorageError):
        storage.put(key="receipts/u/general/1-abcdef.png", body=b"\x89PNG", content_type="image/png")

    assert [p for p in tmp_path.rglob("*") if p.is_file()] == []
