from __future__ import annotations

import pytest

from src.generation.deletion import PromptDeletionService
from src.generation.errors import RecordNotFoundError
from src.generation.image_pipeline import ImageGenerationOrchestrator
from src.generation.requests import build_image_request
from src.storage.objects import InMemoryObjectStorage
from tests.conftest import FakeProvider, build_transfer, create_user


def _generate(records, owner_id, storage):
    urls = ["https://cdn.test/a.png", "https://cdn.test/b.png"]
    return ImageGenerationOrchestrator(
        records=records,
        provider=FakeProvider(image_urls=urls),
        storage=storage,
        transfer=build_transfer({url: (200, b"png", "image/png") for url in urls}),
    ).run(owner_id, build_image_request("two foxes"))


def test_delete_removes_rows_and_owned_objects(records, owner_id) -> None:
    images = InMemoryObjectStorage(bucket="images")
    result = _generate(records, owner_id, images)
    assert len(images.keys()) == 2

    deleted = PromptDeletionService(
        records=records,
        image_storage=images,
        video_storage=InMemoryObjectStorage(bucket="videos"),
    ).delete_prompt(owner_id, result.prompt_id)

    assert deleted.images_removed == 2
    assert deleted.videos_removed == 0
    assert deleted.objects_removed == 2
    assert images.keys() == []
    assert records.get("prompts", result.prompt_id, owner_id=owner_id) is None
    assert records.count("images", owner_id=owner_id) == 0


def test_other_owner_cannot_delete(records, owner_id) -> None:
    images = InMemoryObjectStorage(bucket="images")
    result = _generate(records, owner_id, images)
    service = PromptDeletionService(
        records=records,
        image_storage=images,
        video_storage=InMemoryObjectStorage(bucket="videos"),
    )

    with pytest.raises(RecordNotFoundError):
        service.delete_prompt(create_user(records), result.prompt_id)

    assert records.get("prompts", result.prompt_id, owner_id=owner_id) is not None
    assert len(images.keys()) == 2
