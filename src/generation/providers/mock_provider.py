"""Deterministic mock generation provider for local/dev usage."""

from __future__ import annotations

import hashlib

from src.generation.providers.base import (
    GeneratedItem,
    GenerationProvider,
    ImageGenerationOutput,
    VideoSubmission,
    VideoTaskStatus,
)
from src.generation.requests import ImageGenerationRequest, VideoGenerationRequest


SAMPLE_VIDEO_URL = "https://samplelib.com/lib/preview/mp4/sample-5s.mp4"


def _seed(*parts: object) -> str:
    source = ":".join(str(part) for part in parts).encode("utf-8")
    return hashlib.sha1(source).hexdigest()[:16]


class MockProvider(GenerationProvider):
    provider_name = "mock"

    def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationOutput:
        width, _, height = request.size.partition("x")
        seed = _seed(request.model, request.prompt, request.size)
        url = f"https://picsum.photos/seed/{seed}/{width}/{height or width}"
        return ImageGenerationOutput(
            provider=self.provider_name,
            items=[GeneratedItem(url=url)],
            payload={"seed": seed},
        )

    def submit_video(self, request: VideoGenerationRequest) -> VideoSubmission:
        seed = _seed(request.model, request.prompt, request.duration, request.aspect_ratio)
        return VideoSubmission(provider=self.provider_name, task_id=f"mock-task-{seed}")

    def get_video_task(self, task_id: str) -> VideoTaskStatus:
        return VideoTaskStatus(task_id=task_id, status="succeeded", url=SAMPLE_VIDEO_URL)
