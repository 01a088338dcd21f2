"""Object storage for owned copies of generated media.

Backends:
- memory: process-local dict, for local dev and tests
- filesystem: files under MEDIA_STORAGE_PATH served from APP_PUBLIC_BASE_URL
- supabase: Supabase Storage REST API over httpx
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple

import httpx

from src.core.config import get_settings
from src.core.logger import get_logger


logger = get_logger("ark_studio.storage.objects")

MIME_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
}


class StorageError(Exception):
    """Object storage operation error."""

    def __init__(self, message: str, code: str = "storage_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def extension_for(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(mime_type.strip().lower(), ".bin")


def _validate_key(key: str) -> str:
    cleaned = key.strip().lstrip("/")
    if not cleaned or ".." in cleaned.split("/"):
        raise StorageError(f"invalid_object_key: {key!r}", code="invalid_key")
    return cleaned


class ObjectStorage(ABC):
    """Write-once object store that hands back public URLs."""

    bucket: str

    @abstractmethod
    def upload(self, key: str, content: bytes, content_type: str) -> str:
        """Store ``content`` under ``key`` and return its public URL.

        Raises:
            StorageError: If the key already exists or the write fails.
        """

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Best-effort removal; logs instead of raising."""


class InMemoryObjectStorage(ObjectStorage):
    def __init__(self, bucket: str = "images", public_base_url: str = "https://storage.local") -> None:
        self.bucket = bucket
        self._public_base_url = public_base_url.rstrip("/")
        self._objects: Dict[str, Tuple[bytes, str]] = {}

    def upload(self, key: str, content: bytes, content_type: str) -> str:
        cleaned = _validate_key(key)
        if cleaned in self._objects:
            raise StorageError(f"object_exists: {cleaned}", code="object_exists")
        self._objects[cleaned] = (bytes(content), content_type)
        return self.get_public_url(cleaned)

    def get_public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{self.bucket}/{_validate_key(key)}"

    def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    def get_object(self, key: str) -> Optional[bytes]:
        stored = self._objects.get(key)
        return stored[0] if stored is not None else None

    def keys(self) -> list[str]:
        return sorted(self._objects)


class FilesystemObjectStorage(ObjectStorage):
    def __init__(self, *, root: Path, bucket: str, public_base_url: str) -> None:
        self.bucket = bucket
        self._root = root
        self._public_base_url = public_base_url.strip().rstrip("/")

    def _path(self, key: str) -> Path:
        return self._root / self.bucket / _validate_key(key)

    def upload(self, key: str, content: bytes, content_type: str) -> str:
        del content_type
        path = self._path(key)
        if path.exists():
            raise StorageError(f"object_exists: {key}", code="object_exists")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise StorageError(f"filesystem_write_failed: {exc}") from exc
        return self.get_public_url(key)

    def get_public_url(self, key: str) -> str:
        if not self._public_base_url:
            raise StorageError("app_public_base_url_missing_for_filesystem_storage", code="config_missing")
        return f"{self._public_base_url}/media/{self.bucket}/{_validate_key(key)}"

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except (OSError, StorageError) as exc:
            logger.warning("object_delete_failed", bucket=self.bucket, key=key, error=str(exc))

    def resolve_path(self, key: str) -> Path:
        return self._path(key)


class SupabaseObjectStorage(ObjectStorage):
    """Supabase Storage client; objects land in a public bucket."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_key: str,
        bucket: str,
        timeout_seconds: int = 30,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.bucket = bucket
        self._base_url = supabase_url.rstrip("/")
        self._storage_url = f"{self._base_url}/storage/v1"
        self._headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _send(
        self,
        method: str,
        url: str,
        *,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        merged_headers = {**self._headers, **(headers or {})}
        if self._client is not None:
            return self._client.request(method, url, content=content, headers=merged_headers)
        with httpx.Client(timeout=self._timeout_seconds) as client:
            return client.request(method, url, content=content, headers=merged_headers)

    def upload(self, key: str, content: bytes, content_type: str) -> str:
        cleaned = _validate_key(key)
        url = f"{self._storage_url}/object/{self.bucket}/{cleaned}"
        try:
            response = self._send(
                "POST",
                url,
                content=content,
                headers={"Content-Type": content_type or "application/octet-stream", "x-upsert": "false"},
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"supabase_upload_transport_error: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 240:
                detail = detail[:240] + "..."
            raise StorageError(f"supabase_upload_failed status={response.status_code} detail={detail}")
        return self.get_public_url(cleaned)

    def get_public_url(self, key: str) -> str:
        return f"{self._storage_url}/object/public/{self.bucket}/{_validate_key(key)}"

    def delete(self, key: str) -> None:
        url = f"{self._storage_url}/object/{self.bucket}/{key}"
        try:
            response = self._send("DELETE", url)
        except httpx.HTTPError as exc:
            logger.warning("object_delete_failed", bucket=self.bucket, key=key, error=str(exc))
            return
        if response.status_code not in (200, 204, 404):
            logger.warning(
                "object_delete_failed",
                bucket=self.bucket,
                key=key,
                status_code=response.status_code,
                detail=response.text[:240],
            )


def _media_storage_root() -> Path:
    settings = get_settings()
    configured = Path(settings.media_storage_path)
    if configured.is_absolute():
        return configured
    return Path.cwd() / configured


@lru_cache(maxsize=4)
def get_object_storage(bucket: str) -> ObjectStorage:
    settings = get_settings()
    backend = settings.object_storage_backend.strip().lower()
    if backend == "supabase":
        return SupabaseObjectStorage(
            supabase_url=settings.supabase_url,
            service_key=settings.supabase_service_key,
            bucket=bucket,
            timeout_seconds=settings.transfer_timeout_seconds,
        )
    if backend == "filesystem":
        return FilesystemObjectStorage(
            root=_media_storage_root(),
            bucket=bucket,
            public_base_url=settings.app_public_base_url,
        )
    return InMemoryObjectStorage(bucket=bucket)


def reset_object_storage_cache() -> None:
    get_object_storage.cache_clear()
