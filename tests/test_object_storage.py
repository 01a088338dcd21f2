from __future__ import annotations

import httpx
import pytest

from src.storage.objects import (
    FilesystemObjectStorage,
    InMemoryObjectStorage,
    StorageError,
    SupabaseObjectStorage,
    extension_for,
    get_object_storage,
    reset_object_storage_cache,
)


def test_memory_storage_is_write_once() -> None:
    storage = InMemoryObjectStorage(bucket="images", public_base_url="https://storage.test/")

    url = storage.upload("p1_1_100.png", b"png", "image/png")

    assert url == "https://storage.test/images/p1_1_100.png"
    assert storage.get_object("p1_1_100.png") == b"png"
    with pytest.raises(StorageError) as exc_info:
        storage.upload("p1_1_100.png", b"other", "image/png")
    assert exc_info.value.code == "object_exists"

    storage.delete("p1_1_100.png")
    assert storage.keys() == []


@pytest.mark.parametrize("key", ["", "  ", "../etc/passwd", "a/../../b"])
def test_invalid_keys_are_rejected(key) -> None:
    with pytest.raises(StorageError):
        InMemoryObjectStorage().upload(key, b"x", "image/png")


def test_extension_for_known_and_unknown_types() -> None:
    assert extension_for("IMAGE/JPEG") == ".jpg"
    assert extension_for("video/mp4") == ".mp4"
    assert extension_for("application/x-unknown") == ".bin"


def test_filesystem_storage_writes_under_bucket(tmp_path) -> None:
    storage = FilesystemObjectStorage(root=tmp_path, bucket="videos", public_base_url="https://app.test")

    url = storage.upload("p1_1_100.mp4", b"mp4", "video/mp4")

    assert url == "https://app.test/media/videos/p1_1_100.mp4"
    assert (tmp_path / "videos" / "p1_1_100.mp4").read_bytes() == b"mp4"
    with pytest.raises(StorageError):
        storage.upload("p1_1_100.mp4", b"again", "video/mp4")

    storage.delete("p1_1_100.mp4")
    assert not storage.resolve_path("p1_1_100.mp4").exists()


def test_filesystem_storage_needs_public_base_url(tmp_path) -> None:
    storage = FilesystemObjectStorage(root=tmp_path, bucket="images", public_base_url="")

    with pytest.raises(StorageError) as exc_info:
        storage.get_public_url("a.png")

    assert exc_info.value.code == "config_missing"


def test_supabase_upload_sends_service_key_and_returns_public_url() -> None:
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"Key": "images/p1_1_100.png"})

    storage = SupabaseObjectStorage(
        supabase_url="https://project.supabase.co/",
        service_key="service-key",
        bucket="images",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    url = storage.upload("p1_1_100.png", b"png", "image/png")

    assert url == "https://project.supabase.co/storage/v1/object/public/images/p1_1_100.png"
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "https://project.supabase.co/storage/v1/object/images/p1_1_100.png"
    assert request.headers["Authorization"] == "Bearer service-key"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["x-upsert"] == "false"
    assert request.content == b"png"


def test_supabase_upload_failure_raises_storage_error() -> None:
    storage = SupabaseObjectStorage(
        supabase_url="https://project.supabase.co",
        service_key="service-key",
        bucket="images",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(409, text="Duplicate"))),
    )

    with pytest.raises(StorageError, match="status=409"):
        storage.upload("p1_1_100.png", b"png", "image/png")


def test_supabase_delete_failure_is_logged_not_raised() -> None:
    storage = SupabaseObjectStorage(
        supabase_url="https://project.supabase.co",
        service_key="service-key",
        bucket="images",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))),
    )

    storage.delete("p1_1_100.png")


def test_factory_selects_backend_from_settings(monkeypatch, tmp_path) -> None:
    from src.core.config import get_settings

    monkeypatch.setenv("OBJECT_STORAGE_BACKEND", "filesystem")
    monkeypatch.setenv("MEDIA_STORAGE_PATH", str(tmp_path))
    monkeypatch.setenv("APP_PUBLIC_BASE_URL", "https://app.test")
    get_settings.cache_clear()
    reset_object_storage_cache()
    try:
        storage = get_object_storage("images")
        assert isinstance(storage, FilesystemObjectStorage)
        assert get_object_storage("images") is storage
    finally:
        get_settings.cache_clear()
        reset_object_storage_cache()
