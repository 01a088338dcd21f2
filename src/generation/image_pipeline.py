"""Image generation pipeline: prompt row, provider call, per-item transfer, media rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from src.core.logger import get_logger
from src.core.metrics import record_generation, record_media_item_failure, record_media_items_persisted
from src.generation.errors import (
    GenerationError,
    NoOutputError,
    PersistenceError,
    TransferError,
)
from src.generation.lifecycle import fail_prompt_quietly, require_owner, transition_prompt
from src.generation.providers import GenerationProvider, ProviderError
from src.generation.requests import ImageGenerationRequest
from src.generation.status import MediaKind, PromptStatus
from src.generation.transfer import MediaTransfer, build_storage_key
from src.storage.objects import ObjectStorage
from src.storage.records import RecordStore


logger = get_logger("ark_studio.generation.image")


@dataclass(frozen=True)
class GeneratedImage:
    id: str
    prompt_id: str
    external_url: str
    owned_url: str
    size: str
    mime_type: str
    file_size: Optional[int] = None


@dataclass(frozen=True)
class ItemFailure:
    index: int
    url: str
    stage: str
    message: str


@dataclass(frozen=True)
class ImageGenerationResult:
    prompt_id: str
    status: str
    images: List[GeneratedImage] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)


class ImageGenerationOrchestrator:
    """Runs one image request end to end.

    Prompt creation and the provider call are fatal steps. Each returned
    item is then downloaded, uploaded and persisted on its own, so one bad
    URL never costs its siblings.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        provider: GenerationProvider,
        storage: ObjectStorage,
        transfer: Optional[MediaTransfer] = None,
    ) -> None:
        self._records = records
        self._provider = provider
        self._storage = storage
        self._transfer = transfer or MediaTransfer()

    def run(self, owner_id: Optional[str], request: ImageGenerationRequest, *, language: str = "en") -> ImageGenerationResult:
        owner_id = require_owner(owner_id)

        prompt = self._records.insert(
            "prompts",
            {
                "user_id": owner_id,
                "prompt": request.prompt,
                "type": MediaKind.IMAGE.value,
                "model_used": request.model,
                "size": request.size,
                "guidance_scale": request.guidance_scale,
                "watermark": request.watermark,
                "language": language,
                "status": PromptStatus.PENDING.value,
            },
            owner_id=owner_id,
        )
        prompt_id = str(prompt["id"])
        logger.info("image_generation_started", prompt_id=prompt_id, model=request.model, size=request.size)

        transition_prompt(
            self._records,
            prompt_id,
            PromptStatus.PROCESSING.value,
            owner_id=owner_id,
            current=str(prompt["status"]),
        )

        try:
            output = self._provider.generate_images(request)
        except ProviderError as exc:
            fail_prompt_quietly(self._records, prompt_id, owner_id=owner_id, error_message=exc.message)
            record_generation(kind=MediaKind.IMAGE.value, outcome="rejected")
            logger.warning(
                "image_generation_rejected",
                prompt_id=prompt_id,
                status_code=exc.status_code,
                error=exc.message,
            )
            raise GenerationError(exc.message, status_code=exc.status_code, prompt_id=prompt_id) from exc

        if not output.items:
            message = "no images returned by provider"
            fail_prompt_quietly(self._records, prompt_id, owner_id=owner_id, error_message=message)
            record_generation(kind=MediaKind.IMAGE.value, outcome="no_output")
            logger.warning("image_generation_empty_response", prompt_id=prompt_id)
            raise NoOutputError(message, reason="empty_response", prompt_id=prompt_id)

        images: List[GeneratedImage] = []
        failures: List[ItemFailure] = []
        for index, item in enumerate(output.items, start=1):
            try:
                images.append(self._persist_item(owner_id, prompt_id, index, item.url, request))
            except (TransferError, PersistenceError) as exc:
                stage = exc.stage if isinstance(exc, TransferError) else "persist"
                failures.append(ItemFailure(index=index, url=item.url, stage=stage, message=exc.message))
                record_media_item_failure(kind=MediaKind.IMAGE.value, stage=stage)
                logger.warning(
                    f"image_item_{stage}_failed",
                    prompt_id=prompt_id,
                    index=index,
                    url=item.url,
                    error=exc.message,
                )

        if failures:
            logger.warning(
                "image_generation_partial_failures",
                prompt_id=prompt_id,
                succeeded=len(images),
                failed=len(failures),
                failures=[{"index": f.index, "stage": f.stage, "error": f.message} for f in failures],
            )

        if not images:
            message = "all generated images failed to transfer"
            fail_prompt_quietly(self._records, prompt_id, owner_id=owner_id, error_message=message)
            record_generation(kind=MediaKind.IMAGE.value, outcome="no_output")
            raise NoOutputError(message, reason="all_items_failed", prompt_id=prompt_id)

        try:
            transition_prompt(self._records, prompt_id, PromptStatus.COMPLETED.value, owner_id=owner_id)
        except PersistenceError as exc:
            record_generation(kind=MediaKind.IMAGE.value, outcome="completion_unrecorded")
            logger.error(
                "image_generation_completion_not_recorded",
                prompt_id=prompt_id,
                persisted=len(images),
                failed=len(failures),
                error=exc.message,
            )
            raise
        record_media_items_persisted(kind=MediaKind.IMAGE.value, count=len(images))
        record_generation(kind=MediaKind.IMAGE.value, outcome="completed")
        logger.info("image_generation_completed", prompt_id=prompt_id, images=len(images), failed=len(failures))
        return ImageGenerationResult(
            prompt_id=prompt_id,
            status=PromptStatus.COMPLETED.value,
            images=images,
            failures=failures,
        )

    def _persist_item(
        self,
        owner_id: str,
        prompt_id: str,
        index: int,
        url: str,
        request: ImageGenerationRequest,
    ) -> GeneratedImage:
        media = self._transfer.download(url, fallback_content_type="image/png")
        key = build_storage_key(prompt_id, index, media.content_type)
        stored = self._transfer.upload(self._storage, key, media)

        try:
            row = self._records.insert(
                "images",
                {
                    "prompt_id": prompt_id,
                    "external_url": url,
                    "owned_url": stored.owned_url,
                    "storage_path": stored.key,
                    "size": request.size,
                    "file_size": stored.file_size,
                    "mime_type": stored.content_type,
                },
                owner_id=owner_id,
            )
        except PersistenceError:
            self._storage.delete(stored.key)
            raise

        return GeneratedImage(
            id=str(row["id"]),
            prompt_id=prompt_id,
            external_url=url,
            owned_url=stored.owned_url,
            size=request.size,
            mime_type=stored.content_type,
            file_size=stored.file_size,
        )
