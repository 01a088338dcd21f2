"""Factory to resolve the active generation provider."""

from __future__ import annotations

from functools import lru_cache

from src.core.config import get_settings
from src.generation.providers.base import GenerationProvider
from src.generation.providers.mock_provider import MockProvider
from src.generation.providers.modelark_provider import ModelArkProvider


@lru_cache(maxsize=1)
def get_generation_provider() -> GenerationProvider:
    settings = get_settings()
    provider = settings.generation_provider.strip().lower()
    if provider == "modelark":
        return ModelArkProvider(
            api_key=settings.ark_api_key,
            base_url=settings.ark_api_base_url,
            timeout_seconds=settings.generation_timeout_seconds,
        )
    return MockProvider()


def reset_generation_provider_cache() -> None:
    get_generation_provider.cache_clear()
