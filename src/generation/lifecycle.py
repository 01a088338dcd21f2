"""Guarded status writes for prompt and video rows."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from src.core.logger import get_logger
from src.generation.errors import GenerationWorkflowError, RecordNotFoundError, UnauthenticatedError
from src.generation.status import check_prompt_transition, check_video_transition
from src.storage.records import RecordStore, Row


logger = get_logger("ark_studio.generation.lifecycle")


def require_owner(owner_id: Optional[str]) -> str:
    cleaned = (owner_id or "").strip()
    if not cleaned:
        raise UnauthenticatedError()
    return cleaned


def transition_prompt(
    records: RecordStore,
    prompt_id: str,
    target: str,
    *,
    owner_id: Optional[str],
    error_message: Optional[str] = None,
    current: Optional[str] = None,
) -> Optional[Row]:
    """Move a prompt forward. Returns the updated row, or None for a same-state no-op."""

    if current is None:
        row = records.get("prompts", prompt_id, owner_id=owner_id)
        if row is None:
            raise RecordNotFoundError("prompts", prompt_id)
        current = str(row["status"])

    if not check_prompt_transition(current, target):
        return None

    patch: Dict[str, Any] = {"status": target}
    if error_message is not None:
        patch["error_message"] = error_message
    return records.update("prompts", prompt_id, patch, owner_id=owner_id)


def transition_video(
    records: RecordStore,
    video: Mapping[str, Any],
    target: str,
    *,
    owner_id: Optional[str],
    extra: Optional[Mapping[str, Any]] = None,
) -> Optional[Row]:
    if not check_video_transition(str(video["status"]), target):
        return None

    patch: Dict[str, Any] = {"status": target}
    patch.update(extra or {})
    return records.update("videos", str(video["id"]), patch, owner_id=owner_id)


def fail_prompt_quietly(
    records: RecordStore,
    prompt_id: str,
    *,
    owner_id: Optional[str],
    error_message: str,
) -> None:
    """Best-effort failure mark on an abort path; the original error is what the caller raises."""

    try:
        transition_prompt(records, prompt_id, "failed", owner_id=owner_id, error_message=error_message)
    except GenerationWorkflowError as exc:
        logger.error(
            "prompt_failure_mark_failed",
            prompt_id=prompt_id,
            error=exc.message,
            error_code=exc.code,
        )
