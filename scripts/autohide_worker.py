"""
Autohide worker orchestrator.

Why this file exists:
- Runtime orchestration(스케줄, 수명주기, run report 기록)을 한곳에서 제어한다.
- 실제 도메인 로직(후보 집계/batch flush)은 workers/autohide.py로 분리해 변경 폭을 줄인다.

즉, 이 파일은 "무엇을 숨길지"보다 "언제, 몇 개의 run을 동시에 돌릴지"에 집중한다.
run은 단일 백그라운드 스레드에서만 실행되므로 서로 겹치지 않는다.
"""

from __future__ import annotations

import argparse
import signal
import threading
import time
import traceback
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from influxdb_client import InfluxDBClient

from scripts.worker_config import (
    AUTOHIDE_PERIOD_MINUTES,
    AUTOHIDE_RUN_REPORT_FILE,
    AUTOHIDE_RUN_REPORT_WINDOW_SIZE,
    INFLUXDB_BUCKET,
    INFLUXDB_ORG,
    INFLUXDB_QUERY_TIMEOUT_MS,
    INFLUXDB_TOKEN,
    INFLUXDB_URL,
    METRIC_STATUS_INDEX_TIMEOUT_SECONDS,
    METRIC_STATUS_INDEX_URL,
    METRICS_MEASUREMENT,
    METRICS_PATH_TAG,
    METRICS_VALUE_FIELD,
    SCHEDULER_STOP_JOIN_SECONDS,
)
from scripts.worker_scheduling import initial_run_at, resolve_next_run_at
from utils.autohide_contracts import AutohideRunOutcome
from utils.config import AutohideConfig, load_autohide_config
from utils.logger import get_logger
from utils.metric_status_index import HttpMetricStatusIndex, MetricStatusIndex
from utils.run_report import append_run_report
from workers.autohide import MetricsLayout, MetricsQueryAPI, hide_stale_metrics

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AutohideScheduler:
    """
    autohide run을 고정 간격으로 실행하는 단일 스레드 스케줄러 handle.

    - enabled=false면 start()는 아무것도 등록하지 않는다.
    - 첫 firing은 start() + initial_delay_minutes, 이후 period 간격(fixed rate).
    - run이 다음 firing을 넘기면 끝난 직후 바로 다음 run을 시작한다.
    """

    def __init__(
        self,
        job: Callable[[], AutohideRunOutcome | None],
        *,
        config: AutohideConfig,
        period: timedelta = timedelta(minutes=AUTOHIDE_PERIOD_MINUTES),
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._job = job
        self._config = config
        self._period = period
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "AutohideScheduler":
        if not self._config.enabled:
            logger.info("[Scheduler] Autohide disabled")
            return self
        if self.is_running:
            logger.info("[Scheduler] Autohide already scheduled.")
            return self

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_thread, name="autohide-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(
            "[Scheduler] Autohide scheduled. "
            f"initial_delay={self._config.initial_delay_minutes}m period={self._period}"
        )
        return self

    def stop(self, timeout: float = SCHEDULER_STOP_JOIN_SECONDS) -> None:
        """
        대기 중인 firing을 취소한다. 진행 중 run은 끝나거나 버려진다.
        """
        self._stop_event.set()
        if self._thread is None:
            return
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(
                "[Scheduler] in-flight autohide run did not finish "
                f"within {timeout:.1f}s; abandoning."
            )
        else:
            logger.info("[Scheduler] Autohide stopped.")

    def _run_thread(self) -> None:
        next_run_at = initial_run_at(self._clock(), self._config.initial_delay_minutes)
        while not self._stop_event.is_set():
            wait_seconds = (next_run_at - self._clock()).total_seconds()
            if wait_seconds > 0:
                logger.info(
                    f"[Scheduler] next autohide run at {next_run_at.isoformat()} "
                    f"(in {wait_seconds:.0f}s)"
                )
                if self._stop_event.wait(wait_seconds):
                    break

            self._run_job()

            next_run_at, missed_count = resolve_next_run_at(
                now=self._clock(),
                next_run_at=next_run_at,
                period=self._period,
            )
            if missed_count:
                logger.warning(
                    "[Scheduler] autohide run overran its window. "
                    f"missed_firings={missed_count}"
                )

    def _run_job(self) -> None:
        # job 예외가 스레드를 죽이면 이후 firing이 모두 사라진다.
        try:
            outcome = self._job()
        except Exception:
            logger.error(
                f"[Scheduler] autohide job raised:\n{traceback.format_exc()}"
            )
            return
        if outcome is not None and not outcome.ok:
            reason = outcome.failure_reason.value if outcome.failure_reason else None
            logger.warning(
                f"[Scheduler] autohide run failed reason={reason} "
                f"error={outcome.error}; waiting for next firing."
            )


def run_autohide_once(
    query_api: MetricsQueryAPI,
    status_index: MetricStatusIndex,
    *,
    config: AutohideConfig,
    layout: MetricsLayout,
    report_path: Path | None = AUTOHIDE_RUN_REPORT_FILE,
    report_window_size: int = AUTOHIDE_RUN_REPORT_WINDOW_SIZE,
) -> AutohideRunOutcome:
    """
    autohide run 1회 + run report 기록.

    Called from:
    - AutohideScheduler firing
    - `main --once`
    """
    started_at = _utc_now()
    start_time = time.time()
    outcome = hide_stale_metrics(
        query_api, status_index, config=config, layout=layout
    )
    elapsed = time.time() - start_time

    if report_path is not None:
        try:
            append_run_report(
                outcome,
                started_at=started_at,
                elapsed_seconds=elapsed,
                path=report_path,
                window_size=report_window_size,
            )
        except Exception as e:
            logger.error(f"Autohide run report update failed: {e}")
    return outcome


def _get_influx_client() -> InfluxDBClient:
    return InfluxDBClient(
        url=INFLUXDB_URL,
        token=INFLUXDB_TOKEN,
        org=INFLUXDB_ORG,
        timeout=INFLUXDB_QUERY_TIMEOUT_MS,
    )


def build_status_index() -> HttpMetricStatusIndex:
    return HttpMetricStatusIndex(
        METRIC_STATUS_INDEX_URL,
        timeout_seconds=float(METRIC_STATUS_INDEX_TIMEOUT_SECONDS),
    )


def build_metrics_layout() -> MetricsLayout:
    return MetricsLayout(
        bucket=INFLUXDB_BUCKET,
        measurement=METRICS_MEASUREMENT,
        value_field=METRICS_VALUE_FIELD,
        path_tag=METRICS_PATH_TAG,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Hide stale metrics (few points, no recent writes) in the metric "
            "status index on a daily schedule."
        )
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help=(
            "Run autohide immediately one time and exit "
            "(ignores AUTOHIDE_ENABLED and the initial delay)."
        ),
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config = load_autohide_config()

    if not args.once and not config.enabled:
        logger.info("[Autohide Worker] Autohide disabled; nothing to schedule.")
        return 0

    layout = build_metrics_layout()
    try:
        status_index = build_status_index()
    except ValueError as exc:
        logger.error(f"[Autohide Worker] invalid configuration: {exc}")
        return 2

    client = _get_influx_client()
    query_api = client.query_api()
    try:
        if args.once:
            outcome = run_autohide_once(
                query_api,
                status_index,
                config=config,
                layout=layout,
                report_path=AUTOHIDE_RUN_REPORT_FILE,
            )
            return 0 if outcome.ok else 1

        logger.info(
            f"[Autohide Worker] Started. bucket={layout.bucket} "
            f"measurement={layout.measurement} "
            f"max_values_count={config.max_values_count} "
            f"missing_days={config.missing_days}"
        )
        shutdown_event = threading.Event()

        def _request_shutdown(signum, frame):
            logger.info(f"[Autohide Worker] signal={signum} received, shutting down.")
            shutdown_event.set()

        signal.signal(signal.SIGTERM, _request_shutdown)
        signal.signal(signal.SIGINT, _request_shutdown)

        scheduler = AutohideScheduler(
            lambda: run_autohide_once(
                query_api,
                status_index,
                config=config,
                layout=layout,
                report_path=AUTOHIDE_RUN_REPORT_FILE,
            ),
            config=config,
        ).start()
        shutdown_event.wait()
        scheduler.stop()
        return 0
    finally:
        status_index.close()
        client.close()


if __name__ == "__main__":
    raise SystemExit(main())
