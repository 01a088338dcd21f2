"""Applies provider task state to video rows and mirrors finished videos into owned storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.core.config import get_settings
from src.core.logger import get_logger
from src.core.metrics import record_generation, record_media_item_failure, record_media_items_persisted, record_video_sync
from src.core.observability import capture_exception, sentry_scope
from src.generation.errors import (
    GenerationWorkflowError,
    InvalidStatusTransition,
    PollingTransientError,
    RecordNotFoundError,
    TransferError,
)
from src.generation.lifecycle import transition_prompt, transition_video
from src.generation.providers import GenerationProvider, ProviderError, VideoTaskStatus
from src.generation.status import MediaKind, PromptStatus, VideoStatus, is_video_terminal
from src.generation.transfer import MediaTransfer, build_storage_key
from src.storage.objects import ObjectStorage
from src.storage.records import RecordStore, RowFilter, Row


logger = get_logger("ark_studio.generation.video_sync")

PROVIDER_STATUS_MAP = {
    "queued": VideoStatus.QUEUED.value,
    "pending": VideoStatus.QUEUED.value,
    "running": VideoStatus.RUNNING.value,
    "processing": VideoStatus.RUNNING.value,
    "succeeded": VideoStatus.SUCCEEDED.value,
    "success": VideoStatus.SUCCEEDED.value,
    "failed": VideoStatus.FAILED.value,
    "error": VideoStatus.FAILED.value,
    "cancelled": VideoStatus.CANCELLED.value,
    "canceled": VideoStatus.CANCELLED.value,
}
PROMPT_STATUS_FOR_VIDEO = {
    VideoStatus.SUCCEEDED.value: PromptStatus.COMPLETED.value,
    VideoStatus.FAILED.value: PromptStatus.FAILED.value,
    VideoStatus.CANCELLED.value: PromptStatus.FAILED.value,
}


@dataclass(frozen=True)
class VideoSyncOutcome:
    video_id: str
    previous_status: str
    status: str
    changed: bool
    owned_url: Optional[str] = None


@dataclass(frozen=True)
class VideoSyncRunResult:
    checked: int
    synced: int
    unchanged: int
    failed: int
    outcomes: List[VideoSyncOutcome] = field(default_factory=list)


class VideoTaskSynchronizer:
    """Pulls task state from the provider and writes it onto the video row.

    Status only ever moves forward. A finished video is downloaded and
    re-uploaded once; if that transfer fails the row keeps ``external_url``
    as its only source and ``owned_url`` stays empty.
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

    def sync(self, video_id: str, owner_id: Optional[str]) -> VideoSyncOutcome:
        video = self._records.get("videos", video_id, owner_id=owner_id)
        if video is None:
            raise RecordNotFoundError("videos", video_id)

        current = str(video["status"])
        unchanged = VideoSyncOutcome(
            video_id=video_id,
            previous_status=current,
            status=current,
            changed=False,
            owned_url=video.get("owned_url"),
        )
        task_id = str(video.get("task_id") or "").strip()
        if is_video_terminal(current) or not task_id:
            return unchanged

        try:
            task = self._provider.get_video_task(task_id)
        except ProviderError as exc:
            record_video_sync(outcome="error")
            logger.warning(
                "video_task_query_failed",
                video_id=video_id,
                task_id=task_id,
                status_code=exc.status_code,
                error=exc.message,
            )
            raise PollingTransientError(f"video_task_query_failed: {exc.message}") from exc

        target = PROVIDER_STATUS_MAP.get(task.status)
        if target is None:
            logger.warning("video_task_unknown_status", video_id=video_id, task_id=task_id, status=task.status)
            record_video_sync(outcome="unchanged")
            return unchanged

        patch: Dict[str, Any] = {}
        if target == VideoStatus.SUCCEEDED.value:
            if not task.url:
                target = VideoStatus.FAILED.value
                patch["error_message"] = "video_url_missing"
            else:
                patch.update(self._mirror(video, task, owner_id=owner_id))
        elif target in (VideoStatus.FAILED.value, VideoStatus.CANCELLED.value):
            patch["error_message"] = task.error_message or f"video_task_{target}"

        try:
            updated = transition_video(self._records, video, target, owner_id=owner_id, extra=patch)
        except InvalidStatusTransition:
            logger.warning("video_status_regression_ignored", video_id=video_id, current=current, reported=target)
            updated = None

        if updated is None:
            if patch.get("storage_path"):
                self._storage.delete(str(patch["storage_path"]))
            record_video_sync(outcome="unchanged")
            return unchanged

        self._advance_prompt(str(video["prompt_id"]), target, owner_id=owner_id, error_message=patch.get("error_message"))
        record_video_sync(outcome=target)
        logger.info(
            "video_status_changed",
            video_id=video_id,
            prompt_id=video["prompt_id"],
            previous_status=current,
            status=target,
            owned=bool(updated.get("owned_url")),
        )
        return VideoSyncOutcome(
            video_id=video_id,
            previous_status=current,
            status=target,
            changed=True,
            owned_url=updated.get("owned_url"),
        )

    def sync_pending(self, limit: Optional[int] = None) -> VideoSyncRunResult:
        """Service-role sweep over every non-terminal video, oldest first."""

        batch_size = limit if limit is not None else get_settings().video_sync_batch_size
        pending = self._records.query(
            "videos",
            owner_id=None,
            filters=[RowFilter("status", "in", [VideoStatus.QUEUED.value, VideoStatus.RUNNING.value])],
            order_by="created_at",
            descending=False,
            limit=max(1, batch_size),
        )

        synced = 0
        unchanged = 0
        failed = 0
        outcomes: List[VideoSyncOutcome] = []
        for video in pending:
            video_id = str(video["id"])
            try:
                with sentry_scope():
                    outcome = self.sync(video_id, owner_id=None)
            except GenerationWorkflowError as exc:
                failed += 1
                logger.warning("video_sync_failed", video_id=video_id, error=exc.message, error_code=exc.code)
                continue
            except Exception as exc:
                failed += 1
                capture_exception(exc)
                logger.error("video_sync_crashed", video_id=video_id, error=str(exc))
                continue

            outcomes.append(outcome)
            if outcome.changed:
                synced += 1
            else:
                unchanged += 1

        logger.info("video_sync_run_completed", checked=len(pending), synced=synced, unchanged=unchanged, failed=failed)
        return VideoSyncRunResult(
            checked=len(pending),
            synced=synced,
            unchanged=unchanged,
            failed=failed,
            outcomes=outcomes,
        )

    def _mirror(self, video: Row, task: VideoTaskStatus, *, owner_id: Optional[str]) -> Dict[str, Any]:
        patch: Dict[str, Any] = {"external_url": task.url}
        if video.get("owned_url"):
            return patch

        # Re-read right before the transfer; a concurrent sync may have mirrored already.
        latest = self._records.get("videos", str(video["id"]), owner_id=owner_id)
        if latest is not None and latest.get("owned_url"):
            return patch

        try:
            media = self._transfer.download(str(task.url), fallback_content_type="video/mp4")
            key = build_storage_key(str(video["prompt_id"]), 1, media.content_type)
            stored = self._transfer.upload(self._storage, key, media)
        except TransferError as exc:
            record_media_item_failure(kind=MediaKind.VIDEO.value, stage=exc.stage)
            logger.warning(
                f"video_{exc.stage}_failed",
                video_id=video["id"],
                url=task.url,
                error=exc.message,
            )
            return patch

        record_media_items_persisted(kind=MediaKind.VIDEO.value)
        patch.update(
            {
                "owned_url": stored.owned_url,
                "storage_path": stored.key,
                "file_size": stored.file_size,
                "mime_type": stored.content_type,
            }
        )
        return patch

    def _advance_prompt(
        self,
        prompt_id: str,
        video_status: str,
        *,
        owner_id: Optional[str],
        error_message: Optional[str],
    ) -> None:
        target = PROMPT_STATUS_FOR_VIDEO.get(video_status)
        if target is None:
            return
        try:
            transition_prompt(
                self._records,
                prompt_id,
                target,
                owner_id=owner_id,
                error_message=error_message if target == PromptStatus.FAILED.value else None,
            )
        except InvalidStatusTransition:
            logger.warning("prompt_already_terminal", prompt_id=prompt_id, target=target)
            return
        record_generation(kind=MediaKind.VIDEO.value, outcome=target)
