"""Model catalog: which models exist and which options each one accepts."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from src.core.config import get_settings


DEFAULT_IMAGE_SIZES = (
    "1024x1024",
    "864x1152",
    "1152x864",
    "1280x720",
    "720x1280",
    "832x1248",
    "1248x832",
    "1512x648",
)
DEFAULT_VIDEO_DURATIONS = (5, 10)
DEFAULT_ASPECT_RATIOS = ("16:9", "9:16", "1:1", "4:3", "3:4", "21:9")


@dataclass(frozen=True)
class ImageModelSpec:
    name: str
    sizes: Tuple[str, ...] = DEFAULT_IMAGE_SIZES
    default_size: str = "1024x1024"


@dataclass(frozen=True)
class VideoModelSpec:
    name: str
    durations: Tuple[int, ...] = DEFAULT_VIDEO_DURATIONS
    aspect_ratios: Tuple[str, ...] = DEFAULT_ASPECT_RATIOS
    supports_reference_image: bool = False


@dataclass(frozen=True)
class ModelCatalog:
    image_models: Dict[str, ImageModelSpec] = field(default_factory=dict)
    video_models: Dict[str, VideoModelSpec] = field(default_factory=dict)

    def image_model(self, name: str) -> Optional[ImageModelSpec]:
        return self.image_models.get(name)

    def video_model(self, name: str) -> Optional[VideoModelSpec]:
        return self.video_models.get(name)


def builtin_catalog() -> ModelCatalog:
    settings = get_settings()
    image_spec = ImageModelSpec(name=settings.ark_image_model)
    t2v_spec = VideoModelSpec(name=settings.ark_video_model)
    i2v_spec = VideoModelSpec(name=settings.ark_video_i2v_model, supports_reference_image=True)
    return ModelCatalog(
        image_models={image_spec.name: image_spec},
        video_models={t2v_spec.name: t2v_spec, i2v_spec.name: i2v_spec},
    )


def _resolve_catalog_path() -> Path:
    settings = get_settings()
    configured = Path(settings.model_catalog_file_path)
    if configured.is_absolute():
        return configured
    return Path.cwd() / configured


def _parse_image_models(raw: Any) -> Dict[str, ImageModelSpec]:
    models: Dict[str, ImageModelSpec] = {}
    if not isinstance(raw, dict):
        return models
    for name, options in raw.items():
        if not isinstance(name, str):
            continue
        options = options if isinstance(options, dict) else {}
        sizes = tuple(str(size) for size in options.get("sizes") or DEFAULT_IMAGE_SIZES)
        default_size = str(options.get("default_size") or sizes[0])
        if default_size not in sizes:
            raise ValueError(f"default_size {default_size} is not listed for image model {name}")
        models[name] = ImageModelSpec(name=name, sizes=sizes, default_size=default_size)
    return models


def _parse_video_models(raw: Any) -> Dict[str, VideoModelSpec]:
    models: Dict[str, VideoModelSpec] = {}
    if not isinstance(raw, dict):
        return models
    for name, options in raw.items():
        if not isinstance(name, str):
            continue
        options = options if isinstance(options, dict) else {}
        durations = tuple(int(value) for value in options.get("durations") or DEFAULT_VIDEO_DURATIONS)
        ratios = tuple(str(value) for value in options.get("aspect_ratios") or DEFAULT_ASPECT_RATIOS)
        models[name] = VideoModelSpec(
            name=name,
            durations=durations,
            aspect_ratios=ratios,
            supports_reference_image=bool(options.get("supports_reference_image", False)),
        )
    return models


@lru_cache(maxsize=1)
def load_model_catalog() -> ModelCatalog:
    path = _resolve_catalog_path()
    if not path.exists():
        return builtin_catalog()

    with path.open("r", encoding="utf-8") as file:
        content = yaml.safe_load(file) or {}
    if not isinstance(content, dict):
        raise ValueError("Model catalog must be a YAML object")

    catalog = ModelCatalog(
        image_models=_parse_image_models(content.get("image_models")),
        video_models=_parse_video_models(content.get("video_models")),
    )
    if not catalog.image_models or not catalog.video_models:
        raise ValueError("Model catalog must declare at least one image model and one video model")
    return catalog


def reset_model_catalog_cache() -> None:
    load_model_catalog.cache_clear()
