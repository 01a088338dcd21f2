"""Provider contracts for image and video generation backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from src.generation.requests import ImageGenerationRequest, VideoGenerationRequest


class ProviderError(RuntimeError):
    """Raised when a generation provider rejects or cannot fulfill a request.

    ``status_code`` is the upstream HTTP status when there was one.
    """

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class GeneratedItem:
    url: str


@dataclass(frozen=True)
class ImageGenerationOutput:
    provider: str
    items: List[GeneratedItem] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VideoSubmission:
    provider: str
    task_id: str


@dataclass(frozen=True)
class VideoTaskStatus:
    task_id: str
    status: str
    url: Optional[str] = None
    error_message: Optional[str] = None


class GenerationProvider(Protocol):
    provider_name: str

    def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationOutput:
        raise NotImplementedError

    def submit_video(self, request: VideoGenerationRequest) -> VideoSubmission:
        raise NotImplementedError

    def get_video_task(self, task_id: str) -> VideoTaskStatus:
        raise NotImplementedError
