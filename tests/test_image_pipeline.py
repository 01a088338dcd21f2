from __future__ import annotations

from typing import List

import pytest

from src.generation.errors import GenerationError, NoOutputError, PersistenceError, UnauthenticatedError
from src.generation.image_pipeline import ImageGenerationOrchestrator
from src.generation.providers import ProviderError
from src.generation.requests import build_image_request
from src.storage.objects import InMemoryObjectStorage
from src.storage.records import RowFilter, SqlRecordStore
from tests.conftest import FakeProvider, build_transfer


def _png(label: str):
    return (200, f"png-{label}".encode("utf-8"), "image/png")


class StatusRecordingStore(SqlRecordStore):
    """SqlRecordStore that remembers every prompt status it was asked to write."""

    def __init__(self, session_factory) -> None:
        super().__init__(session_factory)
        self.prompt_statuses: List[str] = []

    def insert(self, table, row, *, owner_id):
        created = super().insert(table, row, owner_id=owner_id)
        if table == "prompts":
            self.prompt_statuses.append(created["status"])
        return created

    def update(self, table, row_id, patch, *, owner_id):
        updated = super().update(table, row_id, patch, owner_id=owner_id)
        if table == "prompts" and "status" in patch:
            self.prompt_statuses.append(updated["status"])
        return updated


def _orchestrator(records, provider, routes, storage=None):
    return ImageGenerationOrchestrator(
        records=records,
        provider=provider,
        storage=storage or InMemoryObjectStorage(bucket="images"),
        transfer=build_transfer(routes),
    )


def _images_for(records: SqlRecordStore, owner_id: str, prompt_id: str):
    return records.query("images", owner_id=owner_id, filters=[RowFilter.eq("prompt_id", prompt_id)])


def test_single_image_is_generated_and_mirrored(records, owner_id) -> None:
    storage = InMemoryObjectStorage(bucket="images")
    provider = FakeProvider(image_urls=["https://cdn.test/fox.png"])
    orchestrator = _orchestrator(records, provider, {"https://cdn.test/fox.png": _png("fox")}, storage)

    result = orchestrator.run(owner_id, build_image_request("A red fox in snow", size="1024x1024"))

    prompt = records.get("prompts", result.prompt_id, owner_id=owner_id)
    assert prompt["status"] == "completed"
    assert prompt["prompt"] == "A red fox in snow"
    assert prompt["type"] == "image"

    assert len(result.images) == 1
    image = result.images[0]
    assert image.size == "1024x1024"
    assert image.owned_url
    assert image.external_url == "https://cdn.test/fox.png"

    rows = _images_for(records, owner_id, result.prompt_id)
    assert len(rows) == 1
    assert rows[0]["owned_url"] == image.owned_url
    assert rows[0]["size"] == "1024x1024"

    key = rows[0]["storage_path"]
    assert key.startswith(f"{result.prompt_id}_1_")
    assert key.endswith(".png")
    assert storage.get_object(key) == b"png-fox"


def test_one_failed_download_does_not_abort_siblings(records, owner_id) -> None:
    urls = ["https://cdn.test/1.png", "https://cdn.test/2.png", "https://cdn.test/3.png"]
    routes = {
        urls[0]: _png("1"),
        urls[1]: (500, b"", "text/plain"),
        urls[2]: _png("3"),
    }
    orchestrator = _orchestrator(records, FakeProvider(image_urls=urls), routes)

    result = orchestrator.run(owner_id, build_image_request("three foxes"))

    assert result.status == "completed"
    assert records.get("prompts", result.prompt_id, owner_id=owner_id)["status"] == "completed"
    assert len(_images_for(records, owner_id, result.prompt_id)) == 2
    assert [image.external_url for image in result.images] == [urls[0], urls[2]]
    assert len(result.failures) == 1
    assert result.failures[0].index == 2
    assert result.failures[0].stage == "download"


def test_all_downloads_failing_is_no_output(records, owner_id) -> None:
    orchestrator = _orchestrator(
        records,
        FakeProvider(image_urls=["https://cdn.test/gone.png"]),
        {"https://cdn.test/gone.png": (404, b"", "text/plain")},
    )

    with pytest.raises(NoOutputError) as exc_info:
        orchestrator.run(owner_id, build_image_request("lost fox"))

    prompt_id = exc_info.value.prompt_id
    assert exc_info.value.reason == "all_items_failed"
    assert records.get("prompts", prompt_id, owner_id=owner_id)["status"] == "failed"
    assert _images_for(records, owner_id, prompt_id) == []


def test_empty_provider_response_is_distinct_no_output(records, owner_id) -> None:
    orchestrator = _orchestrator(records, FakeProvider(image_urls=[]), {})

    with pytest.raises(NoOutputError) as exc_info:
        orchestrator.run(owner_id, build_image_request("nothing"))

    assert exc_info.value.reason == "empty_response"
    prompt = records.get("prompts", exc_info.value.prompt_id, owner_id=owner_id)
    assert prompt["status"] == "failed"
    assert prompt["error_message"]


def test_provider_rejection_surfaces_upstream_status_and_message(records, owner_id) -> None:
    provider = FakeProvider(image_error=ProviderError('{"error":"quota exceeded"}', status_code=429))
    orchestrator = _orchestrator(records, provider, {})

    with pytest.raises(GenerationError) as exc_info:
        orchestrator.run(owner_id, build_image_request("fox"))

    assert exc_info.value.status_code == 429
    assert exc_info.value.message == '{"error":"quota exceeded"}'
    prompt = records.get("prompts", exc_info.value.prompt_id, owner_id=owner_id)
    assert prompt["status"] == "failed"
    assert prompt["error_message"] == '{"error":"quota exceeded"}'


def test_upload_failure_is_isolated(records, owner_id) -> None:
    class FlakyStorage(InMemoryObjectStorage):
        def __init__(self) -> None:
            super().__init__(bucket="images")
            self.uploads = 0

        def upload(self, key, content, content_type):
            self.uploads += 1
            if self.uploads == 1:
                from src.storage.objects import StorageError

                raise StorageError("bucket unavailable")
            return super().upload(key, content, content_type)

    urls = ["https://cdn.test/a.png", "https://cdn.test/b.png"]
    orchestrator = _orchestrator(
        records,
        FakeProvider(image_urls=urls),
        {urls[0]: _png("a"), urls[1]: _png("b")},
        FlakyStorage(),
    )

    result = orchestrator.run(owner_id, build_image_request("two foxes"))

    assert len(result.images) == 1
    assert result.failures[0].stage == "upload"


def test_prompt_status_only_moves_forward(session_factory, owner_id) -> None:
    store = StatusRecordingStore(session_factory)
    orchestrator = _orchestrator(
        store,
        FakeProvider(image_urls=["https://cdn.test/ok.png"]),
        {"https://cdn.test/ok.png": _png("ok")},
    )
    orchestrator.run(owner_id, build_image_request("fox"))

    failing = _orchestrator(
        store,
        FakeProvider(image_error=ProviderError("bad request", status_code=400)),
        {},
    )
    with pytest.raises(GenerationError):
        failing.run(owner_id, build_image_request("fox"))

    assert store.prompt_statuses == [
        "pending",
        "processing",
        "completed",
        "pending",
        "processing",
        "failed",
    ]


def test_missing_owner_is_rejected_before_any_write(records) -> None:
    provider = FakeProvider(image_urls=["https://cdn.test/a.png"])
    orchestrator = _orchestrator(records, provider, {})

    with pytest.raises(UnauthenticatedError):
        orchestrator.run("  ", build_image_request("fox"))

    assert records.count("prompts", owner_id=None) == 0
    assert provider.image_requests == []


def test_malformed_url_is_an_isolated_download_failure(records, owner_id) -> None:
    urls = ["https://cdn.test/ok.png", "https://cdn.test/bad\x00.png"]
    orchestrator = _orchestrator(records, FakeProvider(image_urls=urls), {urls[0]: _png("ok")})

    result = orchestrator.run(owner_id, build_image_request("two foxes"))

    assert result.status == "completed"
    assert records.get("prompts", result.prompt_id, owner_id=owner_id)["status"] == "completed"
    assert [image.external_url for image in result.images] == [urls[0]]
    assert len(_images_for(records, owner_id, result.prompt_id)) == 1
    assert result.failures[0].index == 2
    assert result.failures[0].stage == "download"


class CompletionFailingStore(SqlRecordStore):
    def update(self, table, row_id, patch, *, owner_id):
        if table == "prompts" and patch.get("status") == "completed":
            raise PersistenceError("prompts_update_failed: connection reset")
        return super().update(table, row_id, patch, owner_id=owner_id)


def test_completion_write_failure_propagates_after_images_persist(session_factory, owner_id) -> None:
    store = CompletionFailingStore(session_factory)
    orchestrator = _orchestrator(
        store,
        FakeProvider(image_urls=["https://cdn.test/ok.png"]),
        {"https://cdn.test/ok.png": _png("ok")},
    )

    with pytest.raises(PersistenceError):
        orchestrator.run(owner_id, build_image_request("fox"))

    prompts = store.query("prompts", owner_id=owner_id)
    assert [prompt["status"] for prompt in prompts] == ["processing"]
    assert len(_images_for(store, owner_id, prompts[0]["id"])) == 1
