"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Iterable, List, Tuple


_lock = Lock()
_started_at = time.time()

_http_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_http_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_http_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_generations_total: Dict[Tuple[str, str], int] = defaultdict(int)
_media_items_persisted_total: Dict[str, int] = defaultdict(int)
_media_item_failures_total: Dict[Tuple[str, str], int] = defaultdict(int)
_video_poll_ticks_total: Dict[str, int] = defaultdict(int)
_video_sync_total: Dict[str, int] = defaultdict(int)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_label(value: str, *, fallback: str = "unknown") -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def record_http_request(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    status = str(status_code)
    method_label = method.upper()
    path_label = path or "unknown"
    duration = max(duration_seconds, 0.0)

    with _lock:
        _http_requests_total[(method_label, path_label, status)] += 1
        _http_request_duration_sum[(method_label, path_label)] += duration
        _http_request_duration_count[(method_label, path_label)] += 1


def record_generation(*, kind: str, outcome: str) -> None:
    with _lock:
        _generations_total[(_normalize_label(kind), _normalize_label(outcome))] += 1


def record_media_items_persisted(*, kind: str, count: int = 1) -> None:
    if count <= 0:
        return
    with _lock:
        _media_items_persisted_total[_normalize_label(kind)] += int(count)


def record_media_item_failure(*, kind: str, stage: str) -> None:
    with _lock:
        _media_item_failures_total[(_normalize_label(kind), _normalize_label(stage))] += 1


def record_video_poll_tick(*, outcome: str) -> None:
    with _lock:
        _video_poll_ticks_total[_normalize_label(outcome)] += 1


def record_video_sync(*, outcome: str) -> None:
    with _lock:
        _video_sync_total[_normalize_label(outcome)] += 1


def _counter_block(
    name: str,
    help_text: str,
    label_names: Tuple[str, ...],
    values: Iterable[Tuple[Tuple[str, ...], int]],
) -> List[str]:
    lines = [f"# HELP {name} {help_text}", f"# TYPE {name} counter"]
    for labels, value in sorted(values):
        rendered = ",".join(
            f'{label}="{_escape_label(label_value)}"' for label, label_value in zip(label_names, labels)
        )
        lines.append(f"{name}{{{rendered}}} {value}")
    return lines


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)

    with _lock:
        http_total = dict(_http_requests_total)
        duration_sum = dict(_http_request_duration_sum)
        duration_count = dict(_http_request_duration_count)
        generations_total = dict(_generations_total)
        persisted_total = dict(_media_items_persisted_total)
        item_failures_total = dict(_media_item_failures_total)
        poll_ticks_total = dict(_video_poll_ticks_total)
        video_sync_total = dict(_video_sync_total)

    lines = [
        "# HELP ark_studio_build_info Build metadata.",
        "# TYPE ark_studio_build_info gauge",
        (
            f'ark_studio_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP ark_studio_process_uptime_seconds Process uptime in seconds.",
        "# TYPE ark_studio_process_uptime_seconds gauge",
        f"ark_studio_process_uptime_seconds {uptime:.6f}",
    ]

    lines.extend(
        _counter_block(
            "ark_studio_http_requests_total",
            "Total HTTP requests.",
            ("method", "path", "status"),
            http_total.items(),
        )
    )

    lines.extend(
        [
            "# HELP ark_studio_http_request_duration_seconds Request duration summary.",
            "# TYPE ark_studio_http_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'ark_studio_http_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'ark_studio_http_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    lines.extend(
        _counter_block(
            "ark_studio_generations_total",
            "Generation requests by kind and outcome.",
            ("kind", "outcome"),
            generations_total.items(),
        )
    )
    lines.extend(
        _counter_block(
            "ark_studio_media_items_persisted_total",
            "Media rows persisted into owned storage.",
            ("kind",),
            (((kind,), value) for kind, value in persisted_total.items()),
        )
    )
    lines.extend(
        _counter_block(
            "ark_studio_media_item_failures_total",
            "Isolated per-item media failures by stage.",
            ("kind", "stage"),
            item_failures_total.items(),
        )
    )
    lines.extend(
        _counter_block(
            "ark_studio_video_poll_ticks_total",
            "Video status poll ticks by outcome.",
            ("outcome",),
            (((outcome,), value) for outcome, value in poll_ticks_total.items()),
        )
    )
    lines.extend(
        _counter_block(
            "ark_studio_video_sync_total",
            "Video task synchronizations by outcome.",
            ("outcome",),
            (((outcome,), value) for outcome, value in video_sync_total.items()),
        )
    )

    lines.append("")
    return "\n".join(lines)


def reset_metrics_for_tests() -> None:
    global _started_at
    with _lock:
        _http_requests_total.clear()
        _http_request_duration_sum.clear()
        _http_request_duration_count.clear()
        _generations_total.clear()
        _media_items_persisted_total.clear()
        _media_item_failures_total.clear()
        _video_poll_ticks_total.clear()
        _video_sync_total.clear()
    _started_at = time.time()
