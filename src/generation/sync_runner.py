"""CLI entrypoint to run one video sync sweep."""

from __future__ import annotations

from dataclasses import asdict
import argparse
import json
from typing import Any, Dict

from src.core.config import get_settings
from src.core.observability import init_sentry
from src.generation.providers import get_generation_provider
from src.generation.video_sync import VideoSyncRunResult, VideoTaskSynchronizer
from src.storage.db import get_session_factory, load_models
from src.storage.objects import get_object_storage
from src.storage.records import SqlRecordStore


def run_video_sync_once(*, limit: int | None = None) -> VideoSyncRunResult:
    settings = get_settings()
    load_models()
    init_sentry()

    synchronizer = VideoTaskSynchronizer(
        records=SqlRecordStore(get_session_factory()),
        provider=get_generation_provider(),
        storage=get_object_storage(settings.video_storage_bucket),
    )
    return synchronizer.sync_pending(limit=limit or settings.video_sync_batch_size)


def _result_to_dict(result: VideoSyncRunResult) -> Dict[str, Any]:
    payload = asdict(result)
    payload["outcomes"] = [asdict(outcome) for outcome in result.outcomes]
    return payload


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync queued/running video tasks once.")
    parser.add_argument("--limit", type=int, default=None, help="Max pending videos to process.")
    args = parser.parse_args()

    result = run_video_sync_once(limit=args.limit)
    print(json.dumps(_result_to_dict(result), ensure_ascii=True, separators=(",", ":"), sort_keys=True))


if __name__ == "__main__":
    main()
