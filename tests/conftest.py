from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
import uuid

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.generation.providers import (
    GeneratedItem,
    ImageGenerationOutput,
    ProviderError,
    VideoSubmission,
    VideoTaskStatus,
)
from src.generation.transfer import MediaTransfer
from src.storage.db import Base, enable_sqlite_foreign_keys, load_models
from src.storage.records import RowFilter, SqlRecordStore


def build_session_factory() -> sessionmaker:
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def create_user(records: SqlRecordStore, email: Optional[str] = None) -> str:
    user_id = str(uuid.uuid4())
    records.insert("users", {"id": user_id, "email": email or f"{user_id}@example.com"}, owner_id=user_id)
    return user_id


def build_transfer(routes: Mapping[str, Tuple[int, bytes, str]]) -> MediaTransfer:
    """MediaTransfer whose downloads are answered from ``routes`` (url -> status, body, content type)."""

    def handler(request: httpx.Request) -> httpx.Response:
        status_code, body, content_type = routes.get(str(request.url), (404, b"", "text/plain"))
        return httpx.Response(status_code, content=body, headers={"content-type": content_type})

    return MediaTransfer(timeout_seconds=5, client=httpx.Client(transport=httpx.MockTransport(handler)))


class FakeProvider:
    provider_name = "fake"

    def __init__(
        self,
        *,
        image_urls: Sequence[str] = (),
        image_error: Optional[ProviderError] = None,
        task_id: str = "t1",
        submit_error: Optional[ProviderError] = None,
        task_statuses: Sequence[Any] = (),
    ) -> None:
        self.image_urls = list(image_urls)
        self.image_error = image_error
        self.task_id = task_id
        self.submit_error = submit_error
        self.task_statuses = list(task_statuses)
        self.image_requests: List[Any] = []
        self.video_requests: List[Any] = []
        self.task_queries: List[str] = []

    def generate_images(self, request):
        self.image_requests.append(request)
        if self.image_error is not None:
            raise self.image_error
        return ImageGenerationOutput(
            provider=self.provider_name,
            items=[GeneratedItem(url=url) for url in self.image_urls],
        )

    def submit_video(self, request):
        self.video_requests.append(request)
        if self.submit_error is not None:
            raise self.submit_error
        return VideoSubmission(provider=self.provider_name, task_id=self.task_id)

    def get_video_task(self, task_id: str):
        self.task_queries.append(task_id)
        if not self.task_statuses:
            return VideoTaskStatus(task_id=task_id, status="running")
        current = self.task_statuses.pop(0) if len(self.task_statuses) > 1 else self.task_statuses[0]
        if isinstance(current, ProviderError):
            raise current
        return current


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], Any]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Timer scheduler driven by the test instead of the wall clock."""

    def __init__(self) -> None:
        self.timers: List[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled and timer.callback is not None]

    def run_next(self) -> bool:
        for timer in self.timers:
            if not timer.cancelled and timer.callback is not None:
                callback, timer.callback = timer.callback, None
                callback()
                return True
        return False

    def run_all(self, max_ticks: int = 50) -> int:
        ticks = 0
        while ticks < max_ticks and self.run_next():
            ticks += 1
        return ticks


@dataclass
class SpyRecordStore:
    """Records every call and refuses to do anything else."""

    calls: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def _record(self, method: str, **kwargs: Any) -> None:
        self.calls.append((method, kwargs))

    def insert(self, table, row, *, owner_id):
        self._record("insert", table=table, row=dict(row), owner_id=owner_id)
        raise AssertionError("insert must not be called")

    def update(self, table, row_id, patch, *, owner_id):
        self._record("update", table=table, row_id=row_id, owner_id=owner_id)
        raise AssertionError("update must not be called")

    def get(self, table, row_id, *, owner_id):
        self._record("get", table=table, row_id=row_id, owner_id=owner_id)
        return None

    def query(self, table, *, owner_id, filters: Sequence[RowFilter] = (), order_by="created_at", descending=True, limit=None, offset=0):
        self._record("query", table=table, owner_id=owner_id)
        return []

    def count(self, table, *, owner_id, filters: Sequence[RowFilter] = ()):
        self._record("count", table=table, owner_id=owner_id)
        return 0

    def delete(self, table, row_id, *, owner_id):
        self._record("delete", table=table, row_id=row_id, owner_id=owner_id)
        raise AssertionError("delete must not be called")


@pytest.fixture
def session_factory() -> sessionmaker:
    return build_session_factory()


@pytest.fixture
def records(session_factory) -> SqlRecordStore:
    return SqlRecordStore(session_factory)


@pytest.fixture
def owner_id(records) -> str:
    return create_user(records)
