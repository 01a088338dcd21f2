"""Monotonic status machines for prompts and video media."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from src.generation.errors import InvalidStatusTransition


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class PromptStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


PROMPT_TERMINAL_STATUSES: FrozenSet[str] = frozenset({PromptStatus.COMPLETED.value, PromptStatus.FAILED.value})
VIDEO_TERMINAL_STATUSES: FrozenSet[str] = frozenset(
    {VideoStatus.SUCCEEDED.value, VideoStatus.FAILED.value, VideoStatus.CANCELLED.value}
)

_PROMPT_RANK: Dict[str, int] = {
    PromptStatus.PENDING.value: 0,
    PromptStatus.PROCESSING.value: 1,
    PromptStatus.COMPLETED.value: 2,
    PromptStatus.FAILED.value: 2,
}
_VIDEO_RANK: Dict[str, int] = {
    VideoStatus.QUEUED.value: 0,
    VideoStatus.RUNNING.value: 1,
    VideoStatus.SUCCEEDED.value: 2,
    VideoStatus.FAILED.value: 2,
    VideoStatus.CANCELLED.value: 2,
}


def _check(entity: str, ranks: Dict[str, int], terminal: FrozenSet[str], current: str, target: str) -> bool:
    if current not in ranks or target not in ranks:
        raise InvalidStatusTransition(entity, current, target)
    if current == target:
        return False
    if current in terminal or ranks[target] <= ranks[current]:
        raise InvalidStatusTransition(entity, current, target)
    return True


def check_prompt_transition(current: str, target: str) -> bool:
    """Return True when the write is needed, False for a same-state no-op."""

    return _check("prompt", _PROMPT_RANK, PROMPT_TERMINAL_STATUSES, current, target)


def check_video_transition(current: str, target: str) -> bool:
    return _check("video", _VIDEO_RANK, VIDEO_TERMINAL_STATUSES, current, target)


def is_video_terminal(status: str) -> bool:
    return status in VIDEO_TERMINAL_STATUSES


def is_prompt_terminal(status: str) -> bool:
    return status in PROMPT_TERMINAL_STATUSES
