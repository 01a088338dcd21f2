"""Central runtime configuration for ark_studio."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


GENERATION_PROVIDERS = {"mock", "modelark"}
OBJECT_STORAGE_BACKENDS = {"memory", "filesystem", "supabase"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_url: str = "sqlite+pysqlite:///./data/ark_studio.sqlite"
    secret_key: str = ""
    env: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    app_name: str = "ark_studio"
    app_version: str = "0.1.0"
    jwt_algorithm: str = "HS256"
    access_token_exp_minutes: int = 60
    generation_provider: str = "mock"
    ark_api_key: str = ""
    ark_api_base_url: str = "https://ark.ap-southeast.bytepluses.com/api/v3"
    ark_image_model: str = "seedream-3-0-t2i-250415"
    ark_video_model: str = "seedance-1-0-lite-t2v"
    ark_video_i2v_model: str = "seedance-1-0-lite-i2v"
    generation_timeout_seconds: int = 60
    transfer_timeout_seconds: int = 30
    video_poll_interval_seconds: float = 5.0
    video_sync_batch_size: int = 25
    object_storage_backend: str = "memory"
    supabase_url: str = ""
    supabase_service_key: str = ""
    image_storage_bucket: str = "images"
    video_storage_bucket: str = "videos"
    media_storage_path: str = "data/media"
    app_public_base_url: str = ""
    model_catalog_file_path: str = "config/models.yaml"
    max_reference_image_bytes: int = 10 * 1024 * 1024
    max_prompt_chars: int = 2000
    history_default_limit: int = 50
    history_max_limit: int = 100
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.0
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def _validate(settings: Settings) -> Settings:
    is_production = settings.env.lower() in {"prod", "production"}
    if is_production:
        required_production_values = {
            "SECRET_KEY": settings.secret_key,
            "DATABASE_URL": settings.database_url,
        }
        missing = [name for name, value in required_production_values.items() if not str(value).strip()]
        if missing:
            joined = ", ".join(sorted(missing))
            raise ValueError(f"Missing required production secrets/config: {joined}.")
        if settings.object_storage_backend.strip().lower() == "memory":
            raise ValueError("OBJECT_STORAGE_BACKEND=memory is not allowed in production.")

    provider = settings.generation_provider.strip().lower()
    if provider not in GENERATION_PROVIDERS:
        raise ValueError("GENERATION_PROVIDER must be one of: mock, modelark.")
    if provider == "modelark" and not settings.ark_api_key.strip():
        raise ValueError("ARK_API_KEY is required when GENERATION_PROVIDER=modelark.")

    backend = settings.object_storage_backend.strip().lower()
    if backend not in OBJECT_STORAGE_BACKENDS:
        raise ValueError("OBJECT_STORAGE_BACKEND must be one of: memory, filesystem, supabase.")
    if backend == "supabase" and (not settings.supabase_url.strip() or not settings.supabase_service_key.strip()):
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required when OBJECT_STORAGE_BACKEND=supabase.")

    if settings.generation_timeout_seconds <= 0:
        raise ValueError("GENERATION_TIMEOUT_SECONDS must be positive.")
    if settings.transfer_timeout_seconds <= 0:
        raise ValueError("TRANSFER_TIMEOUT_SECONDS must be positive.")
    if settings.video_poll_interval_seconds <= 0:
        raise ValueError("VIDEO_POLL_INTERVAL_SECONDS must be positive.")
    if settings.video_sync_batch_size <= 0:
        raise ValueError("VIDEO_SYNC_BATCH_SIZE must be positive.")
    if settings.max_reference_image_bytes <= 0:
        raise ValueError("MAX_REFERENCE_IMAGE_BYTES must be positive.")
    if settings.max_prompt_chars <= 0:
        raise ValueError("MAX_PROMPT_CHARS must be positive.")
    if settings.history_default_limit <= 0 or settings.history_max_limit < settings.history_default_limit:
        raise ValueError("HISTORY_DEFAULT_LIMIT must be positive and not exceed HISTORY_MAX_LIMIT.")
    if settings.sentry_traces_sample_rate < 0 or settings.sentry_traces_sample_rate > 1:
        raise ValueError("SENTRY_TRACES_SAMPLE_RATE must be between 0 and 1.")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return validated settings as a cached singleton."""

    return _validate(Settings())
