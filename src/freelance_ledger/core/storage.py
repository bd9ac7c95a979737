from __future__ import annotations

import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from freelance_ledger.core.config import settings
from freelance_ledger.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_S3_CODES = frozenset(
    {
        "RequestTimeout",
        "RequestTimeTooSkewed",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "InternalError",
        "ServiceUnavailable",
    }
)
_MISSING_S3_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int


class ObjectStorage:
    backend = "none"

    def put(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    """Filesystem store for dev and tests. Keys map to paths under `root`."""

    backend = "local"

    def __init__(self, root: Path):
        self._root = root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def put(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        start = time.monotonic()
        path = self._path(key)
        tmp: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Readers never observe a half-written receipt.
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            with os.fdopen(fd, "wb") as fh:
                fh.write(body)
            os.replace(tmp, path)
        except OSError as e:
            if tmp is not None:
                Path(tmp).unlink(missing_ok=True)
            log_exception(logger, "storage.put.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Failed to write object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            log_event(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Object not found: {key}") from e

    def delete(self, *, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class S3ObjectStorage(ObjectStorage):
    backend = "s3"
    max_attempts = 5

    def __init__(self, *, client: Any, bucket: str):
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_settings(cls) -> S3ObjectStorage:
        region = settings.s3_region or settings.aws_region
        if not region or region.lower() == "auto":
            region = "us-east-1"
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=region,
        )
        client = session.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            config=Config(
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=10,
                read_timeout=60,
            ),
        )
        return cls(client=client, bucket=settings.s3_bucket)

    @property
    def bucket(self) -> str:
        return self._bucket

    @staticmethod
    def _backoff_s(attempt: int) -> float:
        return min(4.0, 0.25 * (2 ** (attempt - 1)))

    @staticmethod
    def _error_code(error: Exception) -> str | None:
        if isinstance(error, ClientError):
            return (error.response.get("Error") or {}).get("Code")
        return None

    def _is_transient(self, error: Exception) -> bool:
        if isinstance(error, ClientError):
            return self._error_code(error) in _TRANSIENT_S3_CODES
        return isinstance(error, BotoCoreError)

    def _call(self, op: str, key: str, fn: Callable[[], T]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn()
            except (ClientError, BotoCoreError) as e:
                if attempt == self.max_attempts or not self._is_transient(e):
                    raise
                delay_s = self._backoff_s(attempt)
                log_event(
                    logger,
                    f"storage.{op}.retry",
                    backend=self.backend,
                    storage_key=key,
                    attempt=attempt,
                    delay_s=delay_s,
                    error_code=self._error_code(e),
                )
                time.sleep(delay_s)
        raise AssertionError("unreachable")

    def put(
        self,
        *,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        start = time.monotonic()
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": key,
            "Body": body,
            "ServerSideEncryption": "AES256",
        }
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata
        try:
            self._call("put", key, lambda: self._client.put_object(**params))
        except (ClientError, BotoCoreError) as e:
            log_exception(logger, "storage.put.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Failed to write object: {key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body))

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._call(
                "get", key, lambda: self._client.get_object(Bucket=self._bucket, Key=key)
            )
            return resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            if self._error_code(e) in _MISSING_S3_CODES:
                log_event(logger, "storage.get.missing", backend=self.backend, storage_key=key)
                raise StorageError(f"Object not found: {key}") from e
            log_exception(logger, "storage.get.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Failed to read object: {key}") from e

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            log_exception(logger, "storage.delete.failure", backend=self.backend, storage_key=key)
            raise StorageError(f"Failed to delete object: {key}") from e

    def check_bucket(self) -> None:
        self._client.head_bucket(Bucket=self._bucket)


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is None:
        if settings.storage_backend == "s3":
            _storage = S3ObjectStorage.from_settings()
        else:
            root = settings.local_storage_path
            _storage = LocalObjectStorage(root if root.is_absolute() else Path.cwd() / root)
    return _storage


def diagnose_storage(*, write_test: bool = False) -> dict[str, Any]:
    """
    Connectivity check for the configured storage backend, for /healthz/storage.

    Never returns credentials. With write_test=True a small object is written,
    read back and deleted.
    """
    start = time.monotonic()
    result: dict[str, Any] = {"ok": True, "backend": settings.storage_backend}
    try:
        storage = get_storage()
        if isinstance(storage, S3ObjectStorage):
            storage.check_bucket()
            result["bucket"] = storage.bucket
        elif isinstance(storage, LocalObjectStorage):
            result["root"] = str(storage.root)
        if write_test:
            key = f"diagnostics/healthz-{time.time_ns()}.txt"
            storage.put(key=key, body=b"ok", content_type="text/plain")
            echoed = storage.get(key=key)
            storage.delete(key=key)
            result["write_test"] = {"ok": echoed == b"ok", "key": key}
            result["ok"] = echoed == b"ok"
    except (StorageError, ClientError, BotoCoreError, OSError) as e:
        result.update(ok=False, error_type=type(e).__name__, error=str(e))
    result["duration_ms"] = monotonic_ms(start)
    return result
