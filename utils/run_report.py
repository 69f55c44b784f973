"""
Autohide run report.

Why this module exists:
- 운영자가 로그를 뒤지지 않고도 최근 run의 성공/실패와 숨긴 metric 수를 볼 수 있게
  rolling window JSON을 남긴다.
- 관측 전용 파일이다. 엔진은 이 파일을 다시 읽어 판단하지 않는다.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from utils.autohide_contracts import AutohideRunOutcome
from utils.file_io import atomic_write_json
from utils.logger import get_logger

logger = get_logger(__name__)

UTC_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _format_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(UTC_DATETIME_FORMAT)


def load_recent_runs(path: Path) -> list[dict]:
    """
    Example:
        recent_runs: [
            {
                started_at: 2026-10-18T00:10:00Z,
                elapsed_seconds: 42.5,
                result: ok,
                failure_reason: null,
                hidden_count: 120034,
                flushed_batches: 3,
                error: null
            }, ...
        ]
    """
    if not path.exists():
        return []

    try:
        with open(path, "r") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load autohide run report: {e}")
        return []

    entries = payload.get("recent_runs") if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        logger.error("Invalid autohide run report format: recent_runs is not a list.")
        return []
    return entries


def append_run_report(
    outcome: AutohideRunOutcome,
    *,
    started_at: datetime,
    elapsed_seconds: float,
    path: Path,
    window_size: int = 30,
) -> dict:
    """
    run 결과를 recent window에 누적하고 요약을 갱신한다.

    Called from:
    - `scripts.autohide_worker.run_autohide_once` run 종료 시점
    """
    entries = load_recent_runs(path)
    entries.append(
        {
            "started_at": _format_utc(started_at),
            "elapsed_seconds": round(max(0.0, elapsed_seconds), 2),
            "result": outcome.result.value,
            "failure_reason": (
                outcome.failure_reason.value if outcome.failure_reason else None
            ),
            "hidden_count": outcome.hidden_count,
            "flushed_batches": outcome.flushed_batches,
            "error": outcome.error,
        }
    )

    effective_window = max(1, window_size)
    entries = entries[-effective_window:]

    samples = len(entries)
    success_count = sum(1 for item in entries if item.get("result") == "ok")
    summary = {
        "samples": samples,
        "success_count": success_count,
        "failure_count": samples - success_count,
        "last_result": entries[-1]["result"],
        "last_hidden_count": entries[-1]["hidden_count"],
        "total_hidden_count": sum(
            int(item.get("hidden_count") or 0) for item in entries
        ),
    }

    payload = {
        "version": 1,
        "updated_at": _format_utc(datetime.now(timezone.utc)),
        "window_size": effective_window,
        "summary": summary,
        "recent_runs": entries,
    }
    atomic_write_json(path, payload, indent=2)
    return summary
