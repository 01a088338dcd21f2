from __future__ import annotations

import pytest

from src.core.config import get_settings
from src.generation.catalog import load_model_catalog, reset_model_catalog_cache


@pytest.fixture
def catalog_path(monkeypatch, tmp_path):
    path = tmp_path / "models.yaml"
    monkeypatch.setenv("MODEL_CATALOG_FILE_PATH", str(path))
    get_settings.cache_clear()
    reset_model_catalog_cache()
    yield path
    get_settings.cache_clear()
    reset_model_catalog_cache()


def test_loads_models_from_yaml(catalog_path) -> None:
    catalog_path.write_text(
        """
image_models:
  seedream-test:
    sizes: ["512x512", "1024x1024"]
    default_size: "1024x1024"
video_models:
  seedance-test-i2v:
    durations: [5]
    aspect_ratios: ["1:1"]
    supports_reference_image: true
""",
        encoding="utf-8",
    )

    catalog = load_model_catalog()

    image = catalog.image_model("seedream-test")
    video = catalog.video_model("seedance-test-i2v")
    assert image.sizes == ("512x512", "1024x1024")
    assert image.default_size == "1024x1024"
    assert video.durations == (5,)
    assert video.supports_reference_image is True
    assert catalog.image_model("unknown") is None


def test_missing_file_falls_back_to_builtin_models(catalog_path) -> None:
    catalog = load_model_catalog()

    assert catalog.image_model("seedream-3-0-t2i-250415") is not None
    assert catalog.video_model("seedance-1-0-lite-t2v").supports_reference_image is False
    assert catalog.video_model("seedance-1-0-lite-i2v").supports_reference_image is True


def test_default_size_must_be_listed(catalog_path) -> None:
    catalog_path.write_text(
        """
image_models:
  broken:
    sizes: ["512x512"]
    default_size: "1024x1024"
video_models:
  clip: {}
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="default_size"):
        load_model_catalog()


def test_catalog_needs_both_model_kinds(catalog_path) -> None:
    catalog_path.write_text("image_models:\n  only-images: {}\n", encoding="utf-8")

    with pytest.raises(ValueError, match="at least one"):
        load_model_catalog()


def test_shipped_catalog_matches_builtin_defaults(monkeypatch) -> None:
    from pathlib import Path

    shipped = Path(__file__).resolve().parents[1] / "config" / "models.yaml"
    monkeypatch.setenv("MODEL_CATALOG_FILE_PATH", str(shipped))
    get_settings.cache_clear()
    reset_model_catalog_cache()
    try:
        catalog = load_model_catalog()
        assert "1024x1024" in catalog.image_model("seedream-3-0-t2i-250415").sizes
        assert catalog.video_model("seedance-1-0-lite-i2v").supports_reference_image is True
        assert catalog.video_model("seedance-1-0-lite-t2v").durations == (5, 10)
    finally:
        get_settings.cache_clear()
        reset_model_catalog_cache()
