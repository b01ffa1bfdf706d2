"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Tuple


_lock = Lock()
_started_at = time.time()

_http_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_http_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_http_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_rate_limit_block_total: Dict[str, int] = defaultdict(int)
_submissions_created_total: Dict[str, int] = defaultdict(int)
_submissions_reviewed_total: Dict[str, int] = defaultdict(int)
_images_uploaded_total: Dict[str, int] = defaultdict(int)
_orphan_cleanup_total: Dict[str, int] = defaultdict(int)


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


def record_rate_limit_block(*, kind: str) -> None:
    with _lock:
        _rate_limit_block_total[_normalize_label(kind)] += 1


def record_submission_created(*, flagged: bool) -> None:
    with _lock:
        _submissions_created_total["flagged" if flagged else "clean"] += 1


def record_submission_reviewed(*, outcome: str) -> None:
    with _lock:
        _submissions_reviewed_total[_normalize_label(outcome)] += 1


def record_image_uploaded(*, owner: str) -> None:
    with _lock:
        _images_uploaded_total[_normalize_label(owner)] += 1


def record_orphan_cleanup(*, result: str, count: int = 1) -> None:
    if count <= 0:
        return
    with _lock:
        _orphan_cleanup_total[_normalize_label(result)] += int(count)


def _render_single_label(lines: list[str], *, name: str, help_text: str, label: str, values: Dict[str, int]) -> None:
    lines.extend([f"# HELP {name} {help_text}", f"# TYPE {name} counter"])
    for key, value in sorted(values.items()):
        lines.append(f'{name}{{{label}="{_escape_label(key)}"}} {value}')


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)

    with _lock:
        http_total = dict(_http_requests_total)
        duration_sum = dict(_http_request_duration_sum)
        duration_count = dict(_http_request_duration_count)
        rate_limit_total = dict(_rate_limit_block_total)
        submissions_created = dict(_submissions_created_total)
        submissions_reviewed = dict(_submissions_reviewed_total)
        images_uploaded = dict(_images_uploaded_total)
        orphan_cleanup = dict(_orphan_cleanup_total)

    lines = [
        "# HELP partner_me_build_info Build metadata.",
        "# TYPE partner_me_build_info gauge",
        (
            f'partner_me_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP partner_me_process_uptime_seconds Process uptime in seconds.",
        "# TYPE partner_me_process_uptime_seconds gauge",
        f"partner_me_process_uptime_seconds {uptime:.6f}",
        "# HELP partner_me_http_requests_total Total HTTP requests.",
        "# TYPE partner_me_http_requests_total counter",
    ]

    for (method, path, status), value in sorted(http_total.items()):
        lines.append(
            (
                f'partner_me_http_requests_total{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}",status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP partner_me_http_request_duration_seconds Request duration summary.",
            "# TYPE partner_me_http_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'partner_me_http_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'partner_me_http_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    _render_single_label(
        lines,
        name="partner_me_rate_limit_block_total",
        help_text="Requests blocked by rate limiting.",
        label="kind",
        values=rate_limit_total,
    )
    _render_single_label(
        lines,
        name="partner_me_submissions_created_total",
        help_text="Anonymous submissions created.",
        label="spam",
        values=submissions_created,
    )
    _render_single_label(
        lines,
        name="partner_me_submissions_reviewed_total",
        help_text="Submissions moved to a terminal status.",
        label="outcome",
        values=submissions_reviewed,
    )
    _render_single_label(
        lines,
        name="partner_me_images_uploaded_total",
        help_text="Images uploaded and processed.",
        label="owner",
        values=images_uploaded,
    )
    _render_single_label(
        lines,
        name="partner_me_orphan_cleanup_total",
        help_text="Orphaned image cleanup outcomes.",
        label="result",
        values=orphan_cleanup,
    )

    lines.append("")
    return "\n".join(lines)


def reset_metrics_for_tests() -> None:
    global _started_at
    with _lock:
        _http_requests_total.clear()
        _http_request_duration_sum.clear()
        _http_request_duration_count.clear()
        _rate_limit_block_total.clear()
        _submissions_created_total.clear()
        _submissions_reviewed_total.clear()
        _images_uploaded_total.clear()
        _orphan_cleanup_total.clear()
    _started_at = time.time()
