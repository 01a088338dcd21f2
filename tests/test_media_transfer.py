from __future__ import annotations

import httpx
import pytest

from src.generation.errors import TransferError
from src.generation.transfer import DownloadedMedia, MediaTransfer, build_storage_key
from src.storage.objects import InMemoryObjectStorage
from tests.conftest import build_transfer


def test_download_uses_response_content_type() -> None:
    transfer = build_transfer({"https://cdn.test/a": (200, b"jpeg", "image/jpeg; charset=binary")})

    media = transfer.download("https://cdn.test/a", fallback_content_type="image/png")

    assert media.content == b"jpeg"
    assert media.content_type == "image/jpeg"
    assert media.size == 4


def test_download_falls_back_for_generic_content_type() -> None:
    transfer = build_transfer({"https://cdn.test/a": (200, b"bytes", "application/octet-stream")})

    assert transfer.download("https://cdn.test/a", fallback_content_type="video/mp4").content_type == "video/mp4"


@pytest.mark.parametrize("status_code,body", [(404, b"missing"), (500, b""), (200, b"")])
def test_download_failures_are_transfer_errors(status_code, body) -> None:
    transfer = build_transfer({"https://cdn.test/a": (status_code, body, "image/png")})

    with pytest.raises(TransferError) as exc_info:
        transfer.download("https://cdn.test/a", fallback_content_type="image/png")

    assert exc_info.value.stage == "download"
    assert exc_info.value.url == "https://cdn.test/a"


def test_transport_error_is_a_download_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    transfer = MediaTransfer(timeout_seconds=1, client=httpx.Client(transport=httpx.MockTransport(handler)))

    with pytest.raises(TransferError, match="download_failed"):
        transfer.download("https://cdn.test/slow", fallback_content_type="image/png")


def test_upload_wraps_storage_errors() -> None:
    storage = InMemoryObjectStorage(bucket="images")
    transfer = MediaTransfer(timeout_seconds=1)
    media = DownloadedMedia(content=b"png", content_type="image/png")

    stored = transfer.upload(storage, "p1_1_5.png", media)
    assert stored.owned_url.endswith("/images/p1_1_5.png")
    assert stored.file_size == 3

    with pytest.raises(TransferError) as exc_info:
        transfer.upload(storage, "p1_1_5.png", media)
    assert exc_info.value.stage == "upload"


def test_storage_key_layout() -> None:
    assert build_storage_key("p1", 2, "image/webp", now_ms=1700000000000) == "p1_2_1700000000000.webp"
    assert build_storage_key("p1", 1, "video/mp4", now_ms=5) == "p1_1_5.mp4"
