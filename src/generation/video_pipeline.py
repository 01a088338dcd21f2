"""Video submission: prompt row, async task submission, queued media row."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.core.logger import get_logger
from src.core.metrics import record_generation
from src.generation.errors import GenerationError, PersistenceError
from src.generation.lifecycle import fail_prompt_quietly, require_owner, transition_prompt
from src.generation.providers import GenerationProvider, ProviderError
from src.generation.requests import VideoGenerationRequest
from src.generation.status import MediaKind, PromptStatus, VideoStatus
from src.storage.records import RecordStore


logger = get_logger("ark_studio.generation.video")


@dataclass(frozen=True)
class VideoSubmissionResult:
    prompt_id: str
    video_id: str
    task_id: str
    status: str


class VideoGenerationOrchestrator:
    """Submits a video task and returns without waiting for the render.

    Completion is observed later through the task synchronizer and the
    status poller.
    """

    def __init__(self, *, records: RecordStore, provider: GenerationProvider) -> None:
        self._records = records
        self._provider = provider

    def run(self, owner_id: Optional[str], request: VideoGenerationRequest, *, language: str = "en") -> VideoSubmissionResult:
        owner_id = require_owner(owner_id)

        prompt = self._records.insert(
            "prompts",
            {
                "user_id": owner_id,
                "prompt": request.prompt,
                "type": MediaKind.VIDEO.value,
                "model_used": request.model,
                "duration": request.duration,
                "aspect_ratio": request.aspect_ratio,
                "language": language,
                "status": PromptStatus.PENDING.value,
            },
            owner_id=owner_id,
        )
        prompt_id = str(prompt["id"])
        logger.info(
            "video_generation_started",
            prompt_id=prompt_id,
            model=request.model,
            duration=request.duration,
            aspect_ratio=request.aspect_ratio,
            with_reference_image=request.reference_image is not None,
        )

        try:
            submission = self._provider.submit_video(request)
        except ProviderError as exc:
            self._record_rejected_submission(owner_id, prompt_id, request, exc)
            raise GenerationError(exc.message, status_code=exc.status_code, prompt_id=prompt_id) from exc

        try:
            video = self._records.insert(
                "videos",
                {
                    "prompt_id": prompt_id,
                    "task_id": submission.task_id,
                    "status": VideoStatus.QUEUED.value,
                    "duration": request.duration,
                    "aspect_ratio": request.aspect_ratio,
                },
                owner_id=owner_id,
            )
        except PersistenceError as exc:
            # The provider task keeps running with no row tracking it.
            logger.error(
                "video_row_insert_failed",
                prompt_id=prompt_id,
                task_id=submission.task_id,
                error=exc.message,
            )
            record_generation(kind=MediaKind.VIDEO.value, outcome="untracked")
            fail_prompt_quietly(self._records, prompt_id, owner_id=owner_id, error_message="video_record_not_saved")
            raise
        transition_prompt(
            self._records,
            prompt_id,
            PromptStatus.PROCESSING.value,
            owner_id=owner_id,
            current=str(prompt["status"]),
        )
        record_generation(kind=MediaKind.VIDEO.value, outcome="submitted")
        logger.info(
            "video_generation_submitted",
            prompt_id=prompt_id,
            video_id=video["id"],
            task_id=submission.task_id,
        )
        return VideoSubmissionResult(
            prompt_id=prompt_id,
            video_id=str(video["id"]),
            task_id=submission.task_id,
            status=str(video["status"]),
        )

    def _record_rejected_submission(
        self,
        owner_id: str,
        prompt_id: str,
        request: VideoGenerationRequest,
        exc: ProviderError,
    ) -> None:
        record_generation(kind=MediaKind.VIDEO.value, outcome="rejected")
        logger.warning(
            "video_generation_rejected",
            prompt_id=prompt_id,
            status_code=exc.status_code,
            error=exc.message,
        )
        try:
            self._records.insert(
                "videos",
                {
                    "prompt_id": prompt_id,
                    "status": VideoStatus.FAILED.value,
                    "duration": request.duration,
                    "aspect_ratio": request.aspect_ratio,
                    "error_message": exc.message,
                },
                owner_id=owner_id,
            )
        except PersistenceError as persist_exc:
            logger.error("video_failure_row_insert_failed", prompt_id=prompt_id, error=persist_exc.message)
        fail_prompt_quietly(self._records, prompt_id, owner_id=owner_id, error_message=exc.message)
