"""ModelArk (BytePlus Ark) image and video generation provider."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from src.generation.providers.base import (
    GeneratedItem,
    GenerationProvider,
    ImageGenerationOutput,
    ProviderError,
    VideoSubmission,
    VideoTaskStatus,
)
from src.generation.requests import ImageGenerationRequest, VideoGenerationRequest


ERROR_DETAIL_LIMIT = 500


def _truncate(detail: str) -> str:
    detail = detail.strip()
    if len(detail) > ERROR_DETAIL_LIMIT:
        return detail[:ERROR_DETAIL_LIMIT] + "..."
    return detail


class ModelArkProvider(GenerationProvider):
    provider_name = "modelark"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://ark.ap-southeast.bytepluses.com/api/v3",
        timeout_seconds: int = 60,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ProviderError("ark_api_key_missing")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, *, json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers = self._headers()
        try:
            if self._client is not None:
                response = self._client.request(method, url, json=json_body, headers=headers)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.request(method, url, json=json_body, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"modelark_request_timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"modelark_transport_error: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderError(_truncate(response.text) or response.reason_phrase, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("modelark_invalid_json_response", status_code=response.status_code) from exc
        if not isinstance(body, dict):
            raise ProviderError("modelark_unexpected_response_shape", status_code=response.status_code)
        return body

    def generate_images(self, request: ImageGenerationRequest) -> ImageGenerationOutput:
        body = self._request(
            "POST",
            "/images/generations",
            json_body={
                "model": request.model,
                "prompt": request.prompt,
                "response_format": "url",
                "size": request.size,
                "guidance_scale": request.guidance_scale,
                "watermark": request.watermark,
            },
        )
        data = body.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise ProviderError("modelark_image_data_not_a_list")

        items: List[GeneratedItem] = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            url = str(entry.get("url") or "").strip()
            if url:
                items.append(GeneratedItem(url=url))
        return ImageGenerationOutput(provider=self.provider_name, items=items, payload=body)

    def submit_video(self, request: VideoGenerationRequest) -> VideoSubmission:
        text = f"{request.prompt} --duration {request.duration} --ratio {request.aspect_ratio}"
        content: List[Dict[str, Any]] = [{"type": "text", "text": text}]
        if request.reference_image is not None:
            content.append({"type": "image_url", "image_url": {"url": request.reference_image.as_data_uri()}})

        body = self._request(
            "POST",
            "/contents/generations/tasks",
            json_body={"model": request.model, "content": content},
        )
        task_id = str(body.get("id") or "").strip()
        if not task_id:
            raise ProviderError("modelark_video_task_id_missing")
        return VideoSubmission(provider=self.provider_name, task_id=task_id)

    def get_video_task(self, task_id: str) -> VideoTaskStatus:
        body = self._request("GET", f"/contents/generations/tasks/{task_id}")
        status = str(body.get("status") or "").strip().lower()
        if not status:
            raise ProviderError("modelark_video_task_status_missing")

        content = body.get("content")
        url = None
        if isinstance(content, dict):
            url = content.get("video_url")
        url = url or body.get("video_url")

        error_message = None
        error = body.get("error")
        if isinstance(error, dict):
            error_message = error.get("message") or error.get("code")
        elif isinstance(error, str):
            error_message = error

        return VideoTaskStatus(
            task_id=str(body.get("id") or task_id),
            status=status,
            url=str(url).strip() if url else None,
            error_message=str(error_message) if error_message else None,
        )
