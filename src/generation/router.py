"""Generation, history and prompt API routes."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.auth.dependencies import require_auth_context
from src.auth.jwt import AuthContext
from src.core.config import get_settings
from src.generation.deletion import PromptDeletionService
from src.generation.errors import (
    GenerationError,
    GenerationWorkflowError,
    InvalidStatusTransition,
    NoOutputError,
    PollingTransientError,
    RecordNotFoundError,
    TransferError,
    UnauthenticatedError,
    ValidationError,
)
from src.generation.history import HistoryEntry, HistoryProjector, HistoryQuery
from src.generation.image_pipeline import ImageGenerationOrchestrator
from src.generation.poller import VideoSnapshot
from src.generation.providers import GenerationProvider, get_generation_provider
from src.generation.requests import ReferenceImage, build_image_request, build_video_request
from src.generation.transfer import MediaTransfer
from src.generation.video_pipeline import VideoGenerationOrchestrator
from src.generation.video_sync import VideoTaskSynchronizer
from src.schemas.generation import (
    GeneratedImageItem,
    HistoryEntryItem,
    HistoryListResponse,
    HistoryMediaItem,
    HistoryStatsResponse,
    ImageGenerationPayload,
    ImageGenerationResponse,
    ItemFailureItem,
    PromptDeleteResponse,
    VideoGenerationPayload,
    VideoStatusResponse,
    VideoSubmissionResponse,
    VideoSyncResponse,
)
from src.storage.db import get_session_factory
from src.storage.objects import ObjectStorage, get_object_storage
from src.storage.records import RecordStore, SqlRecordStore


router = APIRouter(tags=["generation"])

_HTTP_STATUS = (
    (ValidationError, 422),
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStatusTransition, status.HTTP_409_CONFLICT),
    (GenerationError, status.HTTP_502_BAD_GATEWAY),
    (NoOutputError, status.HTTP_502_BAD_GATEWAY),
    (TransferError, status.HTTP_502_BAD_GATEWAY),
    (PollingTransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def get_record_store() -> RecordStore:
    return SqlRecordStore(get_session_factory())


def get_provider() -> GenerationProvider:
    return get_generation_provider()


def get_image_storage() -> ObjectStorage:
    return get_object_storage(get_settings().image_storage_bucket)


def get_video_storage() -> ObjectStorage:
    return get_object_storage(get_settings().video_storage_bucket)


def get_media_transfer() -> MediaTransfer:
    return MediaTransfer()


def to_http_exception(exc: GenerationWorkflowError) -> HTTPException:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in _HTTP_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break

    detail = {"code": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError):
        detail["fields"] = exc.fields
    if isinstance(exc, GenerationError):
        detail["upstream_status"] = exc.status_code
    if isinstance(exc, (GenerationError, NoOutputError)):
        detail["prompt_id"] = exc.prompt_id
    if isinstance(exc, NoOutputError):
        detail["reason"] = exc.reason
    return HTTPException(status_code=status_code, detail=detail)


def _ensure_user(records: RecordStore, auth: AuthContext) -> None:
    if records.get("users", auth.user_id, owner_id=auth.user_id) is not None:
        return
    email = auth.email.strip() or f"{auth.user_id}@users.invalid"
    records.insert("users", {"id": auth.user_id, "email": email}, owner_id=auth.user_id)


def _decode_reference_image(payload: VideoGenerationPayload) -> Optional[ReferenceImage]:
    encoded = (payload.reference_image_base64 or "").strip()
    if not encoded:
        return None
    if encoded.startswith("data:") and "," in encoded:
        header, encoded = encoded.split(",", 1)
        content_type = header[5:].split(";", 1)[0]
    else:
        content_type = payload.reference_image_content_type or ""
    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(["reference_image"]) from exc
    return ReferenceImage(content=content, content_type=content_type)


def _history_item(entry: HistoryEntry) -> HistoryEntryItem:
    return HistoryEntryItem(
        id=entry.id,
        prompt=entry.prompt,
        kind=entry.kind,
        model_used=entry.model_used,
        status=entry.status,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
        error_message=entry.error_message,
        media=[
            HistoryMediaItem(
                id=media.id,
                kind=media.kind,
                url=media.url,
                external_url=media.external_url,
                owned_url=media.owned_url,
                mime_type=media.mime_type,
                created_at=media.created_at,
                status=media.status,
                size=media.size,
                duration=media.duration,
                aspect_ratio=media.aspect_ratio,
                file_size=media.file_size,
                error_message=media.error_message,
            )
            for media in entry.media
        ],
        settings=entry.settings,
    )


@router.post("/generations/images", response_model=ImageGenerationResponse)
def generate_images(
    payload: ImageGenerationPayload,
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
    provider: GenerationProvider = Depends(get_provider),
    storage: ObjectStorage = Depends(get_image_storage),
    transfer: MediaTransfer = Depends(get_media_transfer),
) -> ImageGenerationResponse:
    try:
        request = build_image_request(
            payload.prompt,
            model=payload.model,
            size=payload.size,
            guidance_scale=payload.guidance_scale,
            watermark=payload.watermark,
        )
        _ensure_user(records, auth)
        orchestrator = ImageGenerationOrchestrator(records=records, provider=provider, storage=storage, transfer=transfer)
        result = orchestrator.run(auth.user_id, request, language=payload.language)
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return ImageGenerationResponse(
        prompt_id=result.prompt_id,
        status=result.status,
        images=[
            GeneratedImageItem(
                id=image.id,
                external_url=image.external_url,
                owned_url=image.owned_url,
                size=image.size,
                mime_type=image.mime_type,
                file_size=image.file_size,
            )
            for image in result.images
        ],
        failures=[
            ItemFailureItem(index=failure.index, url=failure.url, stage=failure.stage, message=failure.message)
            for failure in result.failures
        ],
    )


@router.post("/generations/videos", response_model=VideoSubmissionResponse, status_code=status.HTTP_202_ACCEPTED)
def generate_video(
    payload: VideoGenerationPayload,
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
    provider: GenerationProvider = Depends(get_provider),
) -> VideoSubmissionResponse:
    try:
        request = build_video_request(
            payload.prompt,
            model=payload.model,
            duration=payload.duration,
            aspect_ratio=payload.aspect_ratio,
            reference_image=_decode_reference_image(payload),
        )
        _ensure_user(records, auth)
        result = VideoGenerationOrchestrator(records=records, provider=provider).run(
            auth.user_id,
            request,
            language=payload.language,
        )
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return VideoSubmissionResponse(
        prompt_id=result.prompt_id,
        video_id=result.video_id,
        task_id=result.task_id,
        status=result.status,
    )


@router.get("/generations/videos/{video_id}", response_model=VideoStatusResponse)
def get_video_status(
    video_id: str,
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
) -> VideoStatusResponse:
    try:
        row = records.get("videos", video_id, owner_id=auth.user_id)
        if row is None:
            raise RecordNotFoundError("videos", video_id)
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    snapshot = VideoSnapshot.from_row(row)
    return VideoStatusResponse(
        id=snapshot.id,
        prompt_id=snapshot.prompt_id,
        status=snapshot.status,
        task_id=snapshot.task_id,
        url=snapshot.url,
        external_url=snapshot.external_url,
        owned_url=snapshot.owned_url,
        error_message=snapshot.error_message,
    )


@router.post("/generations/videos/{video_id}/sync", response_model=VideoSyncResponse)
def sync_video(
    video_id: str,
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
    provider: GenerationProvider = Depends(get_provider),
    storage: ObjectStorage = Depends(get_video_storage),
    transfer: MediaTransfer = Depends(get_media_transfer),
) -> VideoSyncResponse:
    synchronizer = VideoTaskSynchronizer(records=records, provider=provider, storage=storage, transfer=transfer)
    try:
        outcome = synchronizer.sync(video_id, owner_id=auth.user_id)
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return VideoSyncResponse(
        video_id=outcome.video_id,
        previous_status=outcome.previous_status,
        status=outcome.status,
        changed=outcome.changed,
        owned_url=outcome.owned_url,
    )


@router.get("/history", response_model=HistoryListResponse)
def list_history(
    kind: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=200),
    prompt_status: Optional[str] = Query(default=None, alias="status"),
    created_from: Optional[datetime] = Query(default=None),
    created_to: Optional[datetime] = Query(default=None),
    sort: str = Query(default="newest", pattern="^(newest|oldest)$"),
    limit: Optional[int] = Query(default=None),
    offset: int = Query(default=0),
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
) -> HistoryListResponse:
    query = HistoryQuery(
        kind=kind,
        search=search,
        status=prompt_status,
        created_from=created_from,
        created_to=created_to,
        newest_first=sort == "newest",
        limit=limit,
        offset=offset,
    )
    try:
        entries = HistoryProjector(records=records).list_history(auth.user_id, query)
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return HistoryListResponse(
        items=[_history_item(entry) for entry in entries],
        limit=limit or get_settings().history_default_limit,
        offset=offset,
    )


@router.get("/history/stats", response_model=HistoryStatsResponse)
def history_stats(
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
) -> HistoryStatsResponse:
    try:
        stats = HistoryProjector(records=records).summarize(auth.user_id)
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return HistoryStatsResponse(
        total_prompts=stats.total_prompts,
        total_images=stats.total_images,
        total_videos=stats.total_videos,
        by_status=stats.by_status,
        by_kind=stats.by_kind,
    )


@router.delete("/prompts/{prompt_id}", response_model=PromptDeleteResponse)
def delete_prompt(
    prompt_id: str,
    auth: AuthContext = Depends(require_auth_context),
    records: RecordStore = Depends(get_record_store),
    image_storage: ObjectStorage = Depends(get_image_storage),
    video_storage: ObjectStorage = Depends(get_video_storage),
) -> PromptDeleteResponse:
    service = PromptDeletionService(records=records, image_storage=image_storage, video_storage=video_storage)
    try:
        deleted = service.delete_prompt(auth.user_id, prompt_id)
    except GenerationWorkflowError as exc:
        raise to_http_exception(exc) from exc

    return PromptDeleteResponse(
        prompt_id=deleted.prompt_id,
        images_removed=deleted.images_removed,
        videos_removed=deleted.videos_removed,
        objects_removed=deleted.objects_removed,
    )
