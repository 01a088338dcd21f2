from __future__ import annotations

import pytest

from src.generation.errors import PollingTransientError, RecordNotFoundError
from src.generation.providers import ProviderError, VideoTaskStatus
from src.generation.requests import build_video_request
from src.generation.video_pipeline import VideoGenerationOrchestrator
from src.generation.video_sync import VideoTaskSynchronizer
from src.storage.objects import InMemoryObjectStorage
from tests.conftest import FakeProvider, build_transfer, create_user


VIDEO_URL = "https://x/v.mp4"


def _submit(records, owner_id, provider):
    return VideoGenerationOrchestrator(records=records, provider=provider).run(
        owner_id,
        build_video_request("Waves at dusk", duration=5),
    )


def _synchronizer(records, provider, routes=None, storage=None):
    return VideoTaskSynchronizer(
        records=records,
        provider=provider,
        storage=storage or InMemoryObjectStorage(bucket="videos"),
        transfer=build_transfer(routes or {}),
    )


def test_succeeded_task_is_mirrored_and_completes_prompt(records, owner_id) -> None:
    provider = FakeProvider(task_statuses=[VideoTaskStatus(task_id="t1", status="succeeded", url=VIDEO_URL)])
    submitted = _submit(records, owner_id, provider)
    storage = InMemoryObjectStorage(bucket="videos")
    synchronizer = _synchronizer(records, provider, {VIDEO_URL: (200, b"mp4-bytes", "video/mp4")}, storage)

    outcome = synchronizer.sync(submitted.video_id, owner_id)

    assert outcome.changed is True
    assert outcome.previous_status == "queued"
    assert outcome.status == "succeeded"
    video = records.get("videos", submitted.video_id, owner_id=owner_id)
    assert video["external_url"] == VIDEO_URL
    assert video["owned_url"] == outcome.owned_url
    assert video["mime_type"] == "video/mp4"
    assert storage.get_object(video["storage_path"]) == b"mp4-bytes"
    assert records.get("prompts", submitted.prompt_id, owner_id=owner_id)["status"] == "completed"


def test_failed_transfer_keeps_external_url_only(records, owner_id) -> None:
    provider = FakeProvider(task_statuses=[VideoTaskStatus(task_id="t1", status="succeeded", url=VIDEO_URL)])
    submitted = _submit(records, owner_id, provider)

    outcome = _synchronizer(records, provider, {VIDEO_URL: (503, b"", "text/plain")}).sync(submitted.video_id, owner_id)

    assert outcome.status == "succeeded"
    video = records.get("videos", submitted.video_id, owner_id=owner_id)
    assert video["external_url"] == VIDEO_URL
    assert video["owned_url"] is None
    assert video["storage_path"] is None


def test_running_then_failed(records, owner_id) -> None:
    provider = FakeProvider(
        task_statuses=[
            VideoTaskStatus(task_id="t1", status="running"),
            VideoTaskStatus(task_id="t1", status="failed", error_message="content policy"),
        ]
    )
    submitted = _submit(records, owner_id, provider)
    synchronizer = _synchronizer(records, provider)

    first = synchronizer.sync(submitted.video_id, owner_id)
    second = synchronizer.sync(submitted.video_id, owner_id)

    assert (first.previous_status, first.status) == ("queued", "running")
    assert (second.previous_status, second.status) == ("running", "failed")
    video = records.get("videos", submitted.video_id, owner_id=owner_id)
    assert video["error_message"] == "content policy"
    prompt = records.get("prompts", submitted.prompt_id, owner_id=owner_id)
    assert prompt["status"] == "failed"
    assert prompt["error_message"] == "content policy"


def test_terminal_video_is_not_queried_again(records, owner_id) -> None:
    provider = FakeProvider(task_statuses=[VideoTaskStatus(task_id="t1", status="cancelled")])
    submitted = _submit(records, owner_id, provider)
    synchronizer = _synchronizer(records, provider)

    synchronizer.sync(submitted.video_id, owner_id)
    queries = len(provider.task_queries)
    again = synchronizer.sync(submitted.video_id, owner_id)

    assert again.changed is False
    assert again.status == "cancelled"
    assert len(provider.task_queries) == queries


def test_backward_status_report_is_ignored(records, owner_id) -> None:
    provider = FakeProvider(
        task_statuses=[
            VideoTaskStatus(task_id="t1", status="running"),
            VideoTaskStatus(task_id="t1", status="queued"),
        ]
    )
    submitted = _submit(records, owner_id, provider)
    synchronizer = _synchronizer(records, provider)

    synchronizer.sync(submitted.video_id, owner_id)
    regressed = synchronizer.sync(submitted.video_id, owner_id)

    assert regressed.changed is False
    assert records.get("videos", submitted.video_id, owner_id=owner_id)["status"] == "running"


def test_provider_error_is_transient(records, owner_id) -> None:
    provider = FakeProvider(task_statuses=[ProviderError("gateway timeout", status_code=504)])
    submitted = _submit(records, owner_id, provider)

    with pytest.raises(PollingTransientError):
        _synchronizer(records, provider).sync(submitted.video_id, owner_id)

    assert records.get("videos", submitted.video_id, owner_id=owner_id)["status"] == "queued"


def test_other_owner_cannot_sync(records, owner_id) -> None:
    provider = FakeProvider()
    submitted = _submit(records, owner_id, provider)
    stranger = create_user(records)

    with pytest.raises(RecordNotFoundError):
        _synchronizer(records, provider).sync(submitted.video_id, stranger)


def test_sync_pending_sweeps_all_owners(records, owner_id) -> None:
    provider = FakeProvider(task_statuses=[VideoTaskStatus(task_id="t1", status="running")])
    other_owner = create_user(records)
    first = _submit(records, owner_id, provider)
    second = _submit(records, other_owner, provider)

    result = _synchronizer(records, provider).sync_pending(limit=10)

    assert result.checked == 2
    assert result.synced == 2
    assert result.failed == 0
    for submitted, owner in ((first, owner_id), (second, other_owner)):
        assert records.get("videos", submitted.video_id, owner_id=owner)["status"] == "running"

    rerun = _synchronizer(records, provider).sync_pending(limit=10)
    assert rerun.checked == 2
    assert rerun.unchanged == 2


def test_sync_pending_counts_failures(records, owner_id) -> None:
    provider = FakeProvider(task_statuses=[ProviderError("down", status_code=500)])
    _submit(records, owner_id, provider)

    result = _synchronizer(records, provider).sync_pending()

    assert result.checked == 1
    assert result.failed == 1
    assert result.synced == 0
