"""Interval polling of video rows until they reach a terminal status."""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from src.core.config import get_settings
from src.core.logger import get_logger
from src.core.metrics import record_video_poll_tick
from src.core.observability import capture_exception
from src.generation.errors import GenerationWorkflowError, PollingTransientError
from src.generation.status import is_video_terminal
from src.storage.records import RecordStore


logger = get_logger("ark_studio.generation.poller")


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class TimerScheduler(Protocol):
    """Anything with ``call_later(delay, callback)``; an asyncio event loop qualifies."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        ...


class ThreadTimerScheduler:
    """Timer scheduler for synchronous hosts, one daemon ``threading.Timer`` per tick."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay), callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass(frozen=True)
class VideoSnapshot:
    id: str
    prompt_id: str
    status: str
    task_id: Optional[str] = None
    external_url: Optional[str] = None
    owned_url: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        return self.owned_url or self.external_url

    @property
    def terminal(self) -> bool:
        return is_video_terminal(self.status)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VideoSnapshot":
        return cls(
            id=str(row["id"]),
            prompt_id=str(row["prompt_id"]),
            status=str(row["status"]),
            task_id=row.get("task_id"),
            external_url=row.get("external_url"),
            owned_url=row.get("owned_url"),
            error_message=row.get("error_message"),
        )


ChangeCallback = Callable[[VideoSnapshot], Any]
Refresher = Callable[[str, Optional[str]], Any]


class PollHandle:
    """Stop handle returned by ``StatusPoller.watch``."""

    def __init__(
        self,
        video_id: str,
        owner_id: Optional[str],
        on_change: Optional[ChangeCallback],
        on_done: Optional[Callable[["PollHandle"], Any]] = None,
    ) -> None:
        self.video_id = video_id
        self.owner_id = owner_id
        self.last_status: Optional[str] = None
        self.ticks = 0
        self._on_change = on_change
        self._on_done = on_done
        self._lock = threading.Lock()
        self._timer: Optional[TimerHandle] = None
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._finished

    def cancel(self) -> None:
        with self._lock:
            if not self.active:
                return
            self._cancelled = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if self._on_done is not None:
            self._on_done(self)
        logger.info("video_poll_cancelled", video_id=self.video_id, ticks=self.ticks)


class StatusPoller:
    """Watches video rows on a fixed interval.

    A tick reads the row and fires ``on_change`` only when the status differs
    from the last one seen. Reaching a terminal status fires the callback once
    and schedules nothing further. A failed read is logged and retried on the
    next tick.

    ``refresher`` runs before each read. Hosts that have no webhook or sweep
    updating the rows pass the task synchronizer's ``sync`` here.
    """

    def __init__(
        self,
        *,
        records: RecordStore,
        scheduler: TimerScheduler,
        interval_seconds: Optional[float] = None,
        refresher: Optional[Refresher] = None,
    ) -> None:
        if interval_seconds is None:
            interval_seconds = get_settings().video_poll_interval_seconds
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._records = records
        self._scheduler = scheduler
        self._interval_seconds = interval_seconds
        self._refresher = refresher
        self._handles: Dict[int, PollHandle] = {}

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    def watch(
        self,
        video_id: str,
        owner_id: Optional[str],
        on_change: Optional[ChangeCallback] = None,
        known_status: Optional[str] = None,
    ) -> PollHandle:
        """Start watching ``video_id``.

        ``known_status`` is the status the caller already holds; the first
        callback then fires only once the row moves past it.
        """

        handle = PollHandle(video_id, owner_id, on_change, on_done=self._forget)
        handle.last_status = known_status
        if known_status is not None and is_video_terminal(known_status):
            handle._finished = True
            return handle

        self._handles[id(handle)] = handle
        self._schedule(handle)
        logger.info("video_poll_started", video_id=video_id, interval_seconds=self._interval_seconds)
        return handle

    def active_handles(self) -> list[PollHandle]:
        return [handle for handle in self._handles.values() if handle.active]

    def cancel_all(self) -> None:
        for handle in list(self._handles.values()):
            handle.cancel()
        self._handles.clear()

    def _schedule(self, handle: PollHandle) -> None:
        with handle._lock:
            if not handle.active:
                return
            handle._timer = self._scheduler.call_later(self._interval_seconds, lambda: self._tick(handle))

    def _finish(self, handle: PollHandle) -> None:
        with handle._lock:
            handle._finished = True
            handle._timer = None
        self._forget(handle)

    def _forget(self, handle: PollHandle) -> None:
        self._handles.pop(id(handle), None)

    def _read(self, handle: PollHandle) -> VideoSnapshot:
        try:
            if self._refresher is not None:
                self._refresher(handle.video_id, handle.owner_id)
            row = self._records.get("videos", handle.video_id, owner_id=handle.owner_id)
        except GenerationWorkflowError as exc:
            raise PollingTransientError(exc.message) from exc
        if row is None:
            raise PollingTransientError(f"videos_not_found: {handle.video_id}")
        return VideoSnapshot.from_row(row)

    def _tick(self, handle: PollHandle) -> None:
        with handle._lock:
            if not handle.active:
                return
            handle._timer = None
            handle.ticks += 1

        try:
            snapshot = self._read(handle)
        except PollingTransientError as exc:
            record_video_poll_tick(outcome="error")
            logger.warning("video_poll_query_failed", video_id=handle.video_id, tick=handle.ticks, error=exc.message)
            self._schedule(handle)
            return
        except Exception as exc:
            record_video_poll_tick(outcome="error")
            capture_exception(exc)
            logger.error("video_poll_query_crashed", video_id=handle.video_id, tick=handle.ticks, error=str(exc))
            self._schedule(handle)
            return

        if not handle.active:
            return

        changed = snapshot.status != handle.last_status
        handle.last_status = snapshot.status
        if snapshot.terminal:
            self._finish(handle)
            record_video_poll_tick(outcome="terminal")
        else:
            record_video_poll_tick(outcome="changed" if changed else "unchanged")

        if changed:
            logger.info("video_poll_status_changed", video_id=handle.video_id, status=snapshot.status)
            self._notify(handle, snapshot)

        if not snapshot.terminal:
            self._schedule(handle)

    def _notify(self, handle: PollHandle, snapshot: VideoSnapshot) -> None:
        if handle._on_change is None:
            return
        try:
            handle._on_change(snapshot)
        except Exception as exc:
            capture_exception(exc)
            logger.error("video_poll_callback_failed", video_id=handle.video_id, error=str(exc))
