"""Object storage for template images and generated certificates.

Two backends share the ``ObjectStore`` protocol:

- ``SupabaseObjectStore``: Supabase Storage REST API over a pooled
  ``httpx.AsyncClient``. Transient failures (transport errors, 5xx, 429) are
  retried with exponential backoff and guarded by a circuit breaker
  (5 failures -> 60s recovery).
- ``LocalObjectStore``: a directory on disk, served by the app under
  ``storage_public_base_url``.

Uploads never overwrite: an existing object at the target path raises
``ObjectExistsError`` so callers can treat the collision as a failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from pathlib import Path, PurePosixPath
from typing import Annotated, Protocol
from urllib.parse import quote

import httpx
from circuitbreaker import CircuitBreakerError, circuit
from fastapi import Depends, Request
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the object store rejects or fails an operation."""


class ObjectExistsError(StorageError):
    """Raised when an upload targets a path that already holds an object."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Object already exists at {path}")


class ObjectNotFoundError(StorageError):
    """Raised when a download targets a missing object."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Object not found at {path}")


class StorageServerError(StorageError):
    """Raised on retriable backend failures (5xx or 429)."""


class ObjectStore(Protocol):
    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        overwrite: bool = False,
    ) -> str: ...

    async def download(self, path: str) -> bytes: ...

    def get_public_url(self, path: str) -> str: ...

    async def close(self) -> None: ...


def _clean_path(path: str) -> str:
    """Normalize an object key and reject traversal outside the bucket."""
    parts = PurePosixPath(path.strip().lstrip("/")).parts
    if not parts or any(part in ("..", ".") for part in parts):
        raise StorageError(f"Invalid object path: {path!r}")
    return "/".join(parts)


class LocalObjectStore:
    """Filesystem-backed store rooted at a directory."""

    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        return self.root.joinpath(*_clean_path(path).split("/"))

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        overwrite: bool = False,
    ) -> str:
        target = self._resolve(path)
        await asyncio.to_thread(self._write, target, content, overwrite)
        logger.debug(
            "storage.local.uploaded",
            extra={"path": path, "bytes": len(content), "content_type": content_type},
        )
        return _clean_path(path)

    @staticmethod
    def _write(target: Path, content: bytes, overwrite: bool) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        mode = "wb" if overwrite else "xb"
        try:
            with target.open(mode) as fh:
                fh.write(content)
        except FileExistsError as e:
            raise ObjectExistsError(target.as_posix()) from e
        except OSError as e:
            raise StorageError(f"Failed to write {target}: {e}") from e

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(path) from e
        except OSError as e:
            raise StorageError(f"Failed to read {target}: {e}") from e

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(_clean_path(path))}"

    async def close(self) -> None:
        return None


RETRIABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.RequestError,
    httpx.TimeoutException,
    StorageServerError,
)

_STORAGE_RETRY_ATTEMPTS = 3
_STORAGE_RETRY_MIN_WAIT = 0.5  # seconds
_STORAGE_RETRY_MAX_WAIT = 4  # seconds


def _is_duplicate(response: httpx.Response) -> bool:
    if response.status_code == 409:
        return True
    # Supabase reports duplicates as 400 with a "Duplicate" error body
    if response.status_code == 400:
        try:
            body = response.json()
        except ValueError:
            return False
        return "duplicate" in str(body.get("error", "")).lower() or str(
            body.get("statusCode", "")
        ) == "409"
    return False


def _raise_for_retriable(response: httpx.Response) -> None:
    if response.status_code >= 500 or response.status_code == 429:
        raise StorageServerError(
            f"Storage backend returned {response.status_code}"
        )


class SupabaseObjectStore:
    """Supabase Storage bucket accessed through its REST API."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            headers={
                "Authorization": f"Bearer {service_key}",
                "apikey": service_key,
            },
        )

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str,
        *,
        overwrite: bool = False,
    ) -> str:
        key = _clean_path(path)
        try:
            await self._upload_with_retry(key, content, content_type, overwrite)
        except CircuitBreakerError as e:
            raise StorageError("Storage backend unavailable (circuit open)") from e
        except RETRIABLE_EXCEPTIONS as e:
            logger.warning(
                "storage.upload.retries_exhausted",
                extra={"path": key, "error": str(e)},
            )
            raise StorageError(f"Upload failed for {key}: {e}") from e
        return key

    @circuit(
        failure_threshold=5,
        recovery_timeout=60,
        expected_exception=RETRIABLE_EXCEPTIONS,
        name="storage_upload_circuit",
    )
    @retry(
        retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
        stop=stop_after_attempt(_STORAGE_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1, min=_STORAGE_RETRY_MIN_WAIT, max=_STORAGE_RETRY_MAX_WAIT
        ),
        reraise=True,
    )
    async def _upload_with_retry(
        self, key: str, content: bytes, content_type: str, overwrite: bool
    ) -> None:
        response = await self._client.post(
            self._object_url(key),
            content=content,
            headers={
                "Content-Type": content_type,
                "x-upsert": "true" if overwrite else "false",
            },
        )
        _raise_for_retriable(response)

        if _is_duplicate(response):
            raise ObjectExistsError(key)
        if response.status_code >= 400:
            raise StorageError(
                f"Upload rejected for {key}: "
                f"{response.status_code} {response.text[:200]}"
            )

    async def download(self, path: str) -> bytes:
        key = _clean_path(path)
        try:
            return await self._download_with_retry(key)
        except CircuitBreakerError as e:
            raise StorageError("Storage backend unavailable (circuit open)") from e
        except RETRIABLE_EXCEPTIONS as e:
            raise StorageError(f"Download failed for {key}: {e}") from e

    @circuit(
        failure_threshold=5,
        recovery_timeout=60,
        expected_exception=RETRIABLE_EXCEPTIONS,
        name="storage_download_circuit",
    )
    @retry(
        retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
        stop=stop_after_attempt(_STORAGE_RETRY_ATTEMPTS),
        wait=wait_exponential(
            multiplier=1, min=_STORAGE_RETRY_MIN_WAIT, max=_STORAGE_RETRY_MAX_WAIT
        ),
        reraise=True,
    )
    async def _download_with_retry(self, key: str) -> bytes:
        response = await self._client.get(self._object_url(key))
        _raise_for_retriable(response)

        if response.status_code in (400, 404):
            raise ObjectNotFoundError(key)
        if response.status_code != 200:
            raise StorageError(
                f"Download rejected for {key}: {response.status_code}"
            )
        return response.content

    def get_public_url(self, path: str) -> str:
        key = _clean_path(path)
        return (
            f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(key)}"
        )

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()


def create_object_store(settings: Settings | None = None) -> ObjectStore:
    """Build the configured object store backend."""
    settings = settings or get_settings()

    if settings.storage_backend == "supabase":
        return SupabaseObjectStore(
            settings.supabase_url,
            settings.supabase_service_key,
            settings.storage_bucket,
            timeout=settings.http_timeout,
        )

    return LocalObjectStore(
        settings.storage_local_path, settings.storage_public_base_url
    )


def safe_segment(value: str) -> str:
    """Replace every non-alphanumeric character so a value is a safe key part."""
    return re.sub(r"[^A-Za-z0-9]", "_", value)


def unique_token() -> str:
    """Millisecond timestamp plus random hex; unique across runs and workers."""
    return f"{time.time_ns() // 1_000_000}_{secrets.token_hex(4)}"


def get_object_store(request: Request) -> ObjectStore:
    """FastAPI dependency: the store created at startup."""
    return request.app.state.object_store


ObjectStoreDep = Annotated[ObjectStore, Depends(get_object_store)]
