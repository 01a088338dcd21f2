"""Prompt deletion with cascade to media rows and owned storage objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.core.logger import get_logger
from src.generation.errors import RecordNotFoundError
from src.generation.lifecycle import require_owner
from src.storage.objects import ObjectStorage
from src.storage.records import RecordStore, RowFilter


logger = get_logger("ark_studio.generation.deletion")


@dataclass(frozen=True)
class DeletedPrompt:
    prompt_id: str
    images_removed: int
    videos_removed: int
    objects_removed: int


class PromptDeletionService:
    def __init__(self, *, records: RecordStore, image_storage: ObjectStorage, video_storage: ObjectStorage) -> None:
        self._records = records
        self._image_storage = image_storage
        self._video_storage = video_storage

    def delete_prompt(self, owner_id: Optional[str], prompt_id: str) -> DeletedPrompt:
        owner_id = require_owner(owner_id)
        if self._records.get("prompts", prompt_id, owner_id=owner_id) is None:
            raise RecordNotFoundError("prompts", prompt_id)

        by_prompt = [RowFilter.eq("prompt_id", prompt_id)]
        images = self._records.query("images", owner_id=owner_id, filters=by_prompt)
        videos = self._records.query("videos", owner_id=owner_id, filters=by_prompt)

        # Media rows go with the prompt through the FK cascade.
        self._records.delete("prompts", prompt_id, owner_id=owner_id)

        objects_removed = 0
        for storage, rows in ((self._image_storage, images), (self._video_storage, videos)):
            for row in rows:
                key = row.get("storage_path")
                if key:
                    storage.delete(str(key))
                    objects_removed += 1

        logger.info(
            "prompt_deleted",
            prompt_id=prompt_id,
            images=len(images),
            videos=len(videos),
            objects=objects_removed,
        )
        return DeletedPrompt(
            prompt_id=prompt_id,
            images_removed=len(images),
            videos_removed=len(videos),
            objects_removed=objects_removed,
        )
