"""Download of provider-hosted media and upload into owned storage."""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Optional

import httpx

from src.core.config import get_settings
from src.generation.errors import TransferError
from src.storage.objects import ObjectStorage, StorageError, extension_for


@dataclass(frozen=True)
class DownloadedMedia:
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class StoredMedia:
    key: str
    owned_url: str
    content_type: str
    file_size: int


def _content_type(response: httpx.Response, fallback: str) -> str:
    header = response.headers.get("content-type", "")
    value = header.split(";", 1)[0].strip().lower()
    if not value or value == "application/octet-stream":
        return fallback
    return value


class MediaTransfer:
    """Moves one media item from an external URL into owned storage."""

    def __init__(
        self,
        *,
        timeout_seconds: Optional[int] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if timeout_seconds is None:
            timeout_seconds = get_settings().transfer_timeout_seconds
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def download(self, url: str, *, fallback_content_type: str) -> DownloadedMedia:
        try:
            if self._client is not None:
                response = self._client.get(url, follow_redirects=True)
            else:
                with httpx.Client(timeout=self._timeout_seconds, follow_redirects=True) as client:
                    response = client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransferError(f"download_failed: {exc}", stage="download", url=url) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise TransferError(f"download_failed status={response.status_code}", stage="download", url=url)
        if not response.content:
            raise TransferError("download_empty_body", stage="download", url=url)

        return DownloadedMedia(content=response.content, content_type=_content_type(response, fallback_content_type))

    def upload(self, storage: ObjectStorage, key: str, media: DownloadedMedia) -> StoredMedia:
        try:
            owned_url = storage.upload(key, media.content, media.content_type)
        except StorageError as exc:
            raise TransferError(f"upload_failed: {exc.message}", stage="upload") from exc
        return StoredMedia(key=key, owned_url=owned_url, content_type=media.content_type, file_size=media.size)


def build_storage_key(prompt_id: str, index: int, content_type: str, *, now_ms: Optional[int] = None) -> str:
    """``{prompt_id}_{index}_{timestamp_ms}{ext}`` with a 1-based index."""

    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prompt_id}_{index}_{timestamp}{extension_for(content_type)}"
