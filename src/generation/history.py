"""Read-only projection of prompts and their media into history entries."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.core.config import get_settings
from src.core.logger import get_logger
from src.generation.errors import ValidationError
from src.generation.lifecycle import require_owner
from src.generation.status import MediaKind, PromptStatus
from src.storage.records import RecordStore, Row, RowFilter


logger = get_logger("ark_studio.generation.history")

_MEDIA_TABLES = {
    MediaKind.IMAGE.value: "images",
    MediaKind.VIDEO.value: "videos",
}


@dataclass(frozen=True)
class HistoryQuery:
    kind: Optional[str] = None
    search: Optional[str] = None
    status: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    newest_first: bool = True
    limit: Optional[int] = None
    offset: int = 0


@dataclass(frozen=True)
class HistoryMedia:
    id: str
    kind: str
    url: Optional[str]
    external_url: Optional[str]
    owned_url: Optional[str]
    mime_type: Optional[str]
    created_at: datetime
    status: Optional[str] = None
    size: Optional[str] = None
    duration: Optional[int] = None
    aspect_ratio: Optional[str] = None
    file_size: Optional[int] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    prompt: str
    kind: str
    model_used: str
    status: str
    created_at: datetime
    updated_at: datetime
    error_message: Optional[str] = None
    media: List[HistoryMedia] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoryStats:
    total_prompts: int
    total_images: int
    total_videos: int
    by_status: Dict[str, int] = field(default_factory=dict)
    by_kind: Dict[str, int] = field(default_factory=dict)


def settings_summary(prompt: Row) -> Dict[str, Any]:
    if prompt["type"] == MediaKind.VIDEO.value:
        return {
            "model": prompt["model_used"],
            "duration": prompt.get("duration"),
            "aspect_ratio": prompt.get("aspect_ratio"),
        }
    return {
        "model": prompt["model_used"],
        "size": prompt.get("size"),
        "guidance_scale": prompt.get("guidance_scale"),
        "watermark": prompt.get("watermark"),
    }


def _to_media(kind: str, row: Row) -> HistoryMedia:
    owned_url = row.get("owned_url")
    external_url = row.get("external_url")
    return HistoryMedia(
        id=str(row["id"]),
        kind=kind,
        url=owned_url or external_url,
        external_url=external_url,
        owned_url=owned_url,
        mime_type=row.get("mime_type"),
        created_at=row["created_at"],
        status=row.get("status"),
        size=row.get("size"),
        duration=row.get("duration"),
        aspect_ratio=row.get("aspect_ratio"),
        file_size=row.get("file_size"),
        error_message=row.get("error_message"),
    )


class HistoryProjector:
    """Joins a page of prompts with their media for one owner.

    Media are fetched with a single ``prompt_id in (...)`` query per table
    and attached in memory. Rows pointing at a prompt outside the page are
    dropped and logged.
    """

    def __init__(self, *, records: RecordStore) -> None:
        self._records = records

    def _filters(self, query: HistoryQuery) -> List[RowFilter]:
        settings = get_settings()
        invalid: List[str] = []
        filters: List[RowFilter] = []

        if query.kind is not None:
            if query.kind not in _MEDIA_TABLES:
                invalid.append("kind")
            else:
                filters.append(RowFilter.eq("type", query.kind))
        if query.status is not None:
            if query.status not in {status.value for status in PromptStatus}:
                invalid.append("status")
            else:
                filters.append(RowFilter.eq("status", query.status))
        search = (query.search or "").strip()
        if search:
            filters.append(RowFilter("prompt", "contains", search))
        if query.created_from is not None and query.created_to is not None and query.created_from > query.created_to:
            invalid.append("created_from")
        if query.created_from is not None:
            filters.append(RowFilter("created_at", "gte", query.created_from))
        if query.created_to is not None:
            filters.append(RowFilter("created_at", "lte", query.created_to))
        if query.limit is not None and (query.limit < 1 or query.limit > settings.history_max_limit):
            invalid.append("limit")
        if query.offset < 0:
            invalid.append("offset")

        if invalid:
            raise ValidationError(invalid)
        return filters

    def list_history(self, owner_id: Optional[str], query: Optional[HistoryQuery] = None) -> List[HistoryEntry]:
        owner_id = require_owner(owner_id)
        query = query or HistoryQuery()
        filters = self._filters(query)
        limit = query.limit or get_settings().history_default_limit

        prompts = self._records.query(
            "prompts",
            owner_id=owner_id,
            filters=filters,
            order_by="created_at",
            descending=query.newest_first,
            limit=limit,
            offset=query.offset,
        )
        if not prompts:
            return []

        prompt_ids = [str(prompt["id"]) for prompt in prompts]
        kinds = {str(prompt["type"]) for prompt in prompts}
        media_by_prompt: Dict[str, List[HistoryMedia]] = defaultdict(list)
        for kind in sorted(kinds & set(_MEDIA_TABLES)):
            table = _MEDIA_TABLES[kind]
            rows = self._records.query(
                table,
                owner_id=owner_id,
                filters=[RowFilter("prompt_id", "in", prompt_ids)],
                order_by="created_at",
                descending=False,
            )
            for row in rows:
                media_by_prompt[str(row["prompt_id"])].append(_to_media(kind, row))

        known = set(prompt_ids)
        orphans = sorted(prompt_id for prompt_id in media_by_prompt if prompt_id not in known)
        if orphans:
            logger.warning(
                "history_orphan_media",
                owner_id=owner_id,
                prompt_ids=orphans,
                media_ids=[media.id for prompt_id in orphans for media in media_by_prompt[prompt_id]],
            )

        return [
            HistoryEntry(
                id=str(prompt["id"]),
                prompt=str(prompt["prompt"]),
                kind=str(prompt["type"]),
                model_used=str(prompt["model_used"]),
                status=str(prompt["status"]),
                created_at=prompt["created_at"],
                updated_at=prompt["updated_at"],
                error_message=prompt.get("error_message"),
                media=[media for media in media_by_prompt.get(str(prompt["id"]), []) if media.kind == prompt["type"]],
                settings=settings_summary(prompt),
            )
            for prompt in prompts
        ]

    def summarize(self, owner_id: Optional[str]) -> HistoryStats:
        owner_id = require_owner(owner_id)
        by_status = {
            status.value: self._records.count(
                "prompts",
                owner_id=owner_id,
                filters=[RowFilter.eq("status", status.value)],
            )
            for status in PromptStatus
        }
        by_kind = {
            kind.value: self._records.count("prompts", owner_id=owner_id, filters=[RowFilter.eq("type", kind.value)])
            for kind in MediaKind
        }
        return HistoryStats(
            total_prompts=sum(by_status.values()),
            total_images=self._records.count("images", owner_id=owner_id),
            total_videos=self._records.count("videos", owner_id=owner_id),
            by_status=by_status,
            by_kind=by_kind,
        )
