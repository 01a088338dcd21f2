"""Generation provider integrations."""

from src.generation.providers.base import (
    GeneratedItem,
    GenerationProvider,
    ImageGenerationOutput,
    ProviderError,
    VideoSubmission,
    VideoTaskStatus,
)
from src.generation.providers.factory import get_generation_provider, reset_generation_provider_cache
from src.generation.providers.mock_provider import MockProvider
from src.generation.providers.modelark_provider import ModelArkProvider

__all__ = [
    "GeneratedItem",
    "GenerationProvider",
    "ImageGenerationOutput",
    "ProviderError",
    "VideoSubmission",
    "VideoTaskStatus",
    "MockProvider",
    "ModelArkProvider",
    "get_generation_provider",
    "reset_generation_provider_cache",
]
