"""Validation and defaulting of raw generation input into request values."""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from src.core.config import get_settings
from src.generation.catalog import ModelCatalog, load_model_catalog
from src.generation.errors import ValidationError
from src.generation.status import MediaKind


DEFAULT_GUIDANCE_SCALE = 3.0
MIN_GUIDANCE_SCALE = 1.0
MAX_GUIDANCE_SCALE = 10.0
DEFAULT_VIDEO_DURATION = 5
DEFAULT_ASPECT_RATIO = "16:9"
REFERENCE_IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp")
IMAGE_NOT_APPLICABLE = "image not applicable"


@dataclass(frozen=True)
class ReferenceImage:
    content: bytes
    content_type: str

    def as_data_uri(self) -> str:
        encoded = base64.b64encode(self.content).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


@dataclass(frozen=True)
class ImageGenerationRequest:
    prompt: str
    model: str
    size: str
    guidance_scale: float = DEFAULT_GUIDANCE_SCALE
    watermark: bool = True

    @property
    def kind(self) -> MediaKind:
        return MediaKind.IMAGE


@dataclass(frozen=True)
class VideoGenerationRequest:
    prompt: str
    model: str
    duration: int
    aspect_ratio: str
    reference_image: Optional[ReferenceImage] = None

    @property
    def kind(self) -> MediaKind:
        return MediaKind.VIDEO


GenerationRequest = Union[ImageGenerationRequest, VideoGenerationRequest]


def _normalize_prompt(prompt: Optional[str], errors: List[str]) -> str:
    cleaned = (prompt or "").strip()
    if not cleaned or len(cleaned) > get_settings().max_prompt_chars:
        errors.append("prompt")
    return cleaned


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _parse_duration(value: Any) -> Optional[int]:
    if value is None:
        return DEFAULT_VIDEO_DURATION
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip().lower().rstrip("s")
    if not text:
        return DEFAULT_VIDEO_DURATION
    try:
        return int(text)
    except ValueError:
        return None


def build_image_request(
    prompt: Optional[str],
    *,
    model: Optional[str] = None,
    size: Optional[str] = None,
    guidance_scale: Optional[float] = None,
    watermark: Optional[bool] = None,
    reference_image: Optional[ReferenceImage] = None,
    catalog: Optional[ModelCatalog] = None,
) -> ImageGenerationRequest:
    """Validate image input and fill defaults.

    Every offending field is collected before raising, so one
    ``ValidationError`` lists them all.
    """

    if reference_image is not None:
        raise ValidationError(["reference_image"], IMAGE_NOT_APPLICABLE)

    settings = get_settings()
    catalog = catalog or load_model_catalog()
    errors: List[str] = []

    cleaned_prompt = _normalize_prompt(prompt, errors)
    model_name = _optional_text(model) or settings.ark_image_model
    model_spec = catalog.image_model(model_name)
    if model_spec is None:
        errors.append("model")

    resolved_size = _optional_text(size)
    if model_spec is not None:
        resolved_size = resolved_size or model_spec.default_size
        if resolved_size not in model_spec.sizes:
            errors.append("size")

    scale = DEFAULT_GUIDANCE_SCALE if guidance_scale is None else guidance_scale
    try:
        scale = float(scale)
    except (TypeError, ValueError):
        scale = -1.0
    if not math.isfinite(scale) or scale < MIN_GUIDANCE_SCALE or scale > MAX_GUIDANCE_SCALE:
        errors.append("guidance_scale")

    if errors:
        raise ValidationError(errors)

    return ImageGenerationRequest(
        prompt=cleaned_prompt,
        model=model_name,
        size=str(resolved_size),
        guidance_scale=scale,
        watermark=True if watermark is None else bool(watermark),
    )


def build_video_request(
    prompt: Optional[str],
    *,
    model: Optional[str] = None,
    duration: Any = None,
    aspect_ratio: Optional[str] = None,
    reference_image: Optional[ReferenceImage] = None,
    catalog: Optional[ModelCatalog] = None,
) -> VideoGenerationRequest:
    """Validate video input. A reference image switches the default model to image-to-video."""

    settings = get_settings()
    catalog = catalog or load_model_catalog()
    errors: List[str] = []

    cleaned_prompt = _normalize_prompt(prompt, errors)
    default_model = settings.ark_video_i2v_model if reference_image is not None else settings.ark_video_model
    model_name = _optional_text(model) or default_model
    model_spec = catalog.video_model(model_name)
    if model_spec is None:
        errors.append("model")

    parsed_duration = _parse_duration(duration)
    resolved_ratio = _optional_text(aspect_ratio) or DEFAULT_ASPECT_RATIO
    if model_spec is not None:
        if parsed_duration is None or parsed_duration not in model_spec.durations:
            errors.append("duration")
        if resolved_ratio not in model_spec.aspect_ratios:
            errors.append("aspect_ratio")
    elif parsed_duration is None:
        errors.append("duration")

    if reference_image is not None:
        content_type = (reference_image.content_type or "").strip().lower()
        supported = model_spec is None or model_spec.supports_reference_image
        if (
            not supported
            or content_type not in REFERENCE_IMAGE_TYPES
            or not reference_image.content
            or len(reference_image.content) > settings.max_reference_image_bytes
        ):
            errors.append("reference_image")
        else:
            reference_image = ReferenceImage(content=reference_image.content, content_type=content_type)

    if errors:
        raise ValidationError(errors)

    return VideoGenerationRequest(
        prompt=cleaned_prompt,
        model=model_name,
        duration=int(parsed_duration or DEFAULT_VIDEO_DURATION),
        aspect_ratio=resolved_ratio,
        reference_image=reference_image,
    )


def build_generation_request(kind: Union[MediaKind, str], prompt: Optional[str], **options: Any) -> GenerationRequest:
    try:
        resolved = MediaKind(str(getattr(kind, "value", kind)).strip().lower())
    except ValueError as exc:
        raise ValidationError(["kind"]) from exc

    if resolved is MediaKind.IMAGE:
        return build_image_request(prompt, **options)
    return build_video_request(prompt, **options)
