"""Pydantic schemas for generation and history endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ImageGenerationPayload(BaseModel):
    prompt: str = ""
    model: Optional[str] = Field(default=None, max_length=120)
    size: Optional[str] = Field(default=None, max_length=24)
    guidance_scale: Optional[float] = None
    watermark: Optional[bool] = None
    language: str = Field(default="en", min_length=2, max_length=8)


class VideoGenerationPayload(BaseModel):
    prompt: str = ""
    model: Optional[str] = Field(default=None, max_length=120)
    duration: Optional[Union[int, str]] = None
    aspect_ratio: Optional[str] = Field(default=None, max_length=16)
    reference_image_base64: Optional[str] = None
    reference_image_content_type: Optional[str] = Field(default=None, max_length=64)
    language: str = Field(default="en", min_length=2, max_length=8)


class GeneratedImageItem(BaseModel):
    id: str
    external_url: str
    owned_url: str
    size: str
    mime_type: str
    file_size: Optional[int] = None


class ItemFailureItem(BaseModel):
    index: int
    url: str
    stage: str
    message: str


class ImageGenerationResponse(BaseModel):
    prompt_id: str
    status: str
    images: List[GeneratedImageItem]
    failures: List[ItemFailureItem] = Field(default_factory=list)


class VideoSubmissionResponse(BaseModel):
    prompt_id: str
    video_id: str
    task_id: str
    status: str


class VideoStatusResponse(BaseModel):
    id: str
    prompt_id: str
    status: str
    task_id: Optional[str] = None
    url: Optional[str] = None
    external_url: Optional[str] = None
    owned_url: Optional[str] = None
    error_message: Optional[str] = None


class VideoSyncResponse(BaseModel):
    video_id: str
    previous_status: str
    status: str
    changed: bool
    owned_url: Optional[str] = None


class HistoryMediaItem(BaseModel):
    id: str
    kind: str
    url: Optional[str]
    external_url: Optional[str]
    owned_url: Optional[str]
    mime_type: Optional[str]
    created_at: datetime
    status: Optional[str] = None
    size: Optional[str] = None
    duration: Optional[int] = None
    aspect_ratio: Optional[str] = None
    file_size: Optional[int] = None
    error_message: Optional[str] = None


class HistoryEntryItem(BaseModel):
    id: str
    prompt: str
    kind: str
    model_used: str
    status: str
    created_at: datetime
    updated_at: datetime
    error_message: Optional[str] = None
    media: List[HistoryMediaItem]
    settings: Dict[str, Any]


class HistoryListResponse(BaseModel):
    items: List[HistoryEntryItem]
    limit: int
    offset: int


class HistoryStatsResponse(BaseModel):
    total_prompts: int
    total_images: int
    total_videos: int
    by_status: Dict[str, int]
    by_kind: Dict[str, int]


class PromptDeleteResponse(BaseModel):
    prompt_id: str
    images_removed: int
    videos_removed: int
    objects_removed: int
