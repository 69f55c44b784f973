import json
import threading
import time
from datetime import timedelta
from types import SimpleNamespace

import scripts.autohide_worker as autohide_worker
from scripts.autohide_worker import AutohideScheduler, main, run_autohide_once
from utils.autohide_contracts import (
    AutohideFailureReason,
    AutohideRunOutcome,
    AutohideRunResult,
)
from utils.config import AutohideConfig
from workers.autohide import MetricsLayout

OK_OUTCOME = AutohideRunOutcome(
    result=AutohideRunResult.OK, hidden_count=0, flushed_batches=1
)


class FakeQueryAPI:
    def __init__(self, paths):
        self.paths = paths

    def query_stream(self, query, org=None, params=None):
        for path in self.paths:
            yield SimpleNamespace(values={"path": path, "cnt": 1, "ts": 1})


class FakeInfluxClient:
    def __init__(self, query_api):
        self._query_api = query_api
        self.closed = False

    def query_api(self):
        return self._query_api

    def close(self):
        self.closed = True


class FakeStatusIndex:
    def __init__(self, accept: bool = True):
        self.accept = accept
        self.batches = []
        self.closed = False

    def set_status(self, paths, status):
        self.batches.append(list(paths))
        return self.accept

    def close(self):
        self.closed = True


class CountingJob:
    def __init__(self, *, raise_first: bool = False, work_seconds: float = 0.0, target: int = 1):
        self.calls = 0
        self.raise_first = raise_first
        self.work_seconds = work_seconds
        self.target = target
        self.active = 0
        self.max_active = 0
        self.done = threading.Event()
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            call_number = self.calls
        try:
            if self.work_seconds:
                time.sleep(self.work_seconds)
            if self.raise_first and call_number == 1:
                raise RuntimeError("boom")
            return OK_OUTCOME
        finally:
            with self._lock:
                self.active -= 1
            if call_number >= self.target:
                self.done.set()


def test_scheduler_disabled_never_runs_job():
    job = CountingJob()
    scheduler = AutohideScheduler(job, config=AutohideConfig(enabled=False)).start()

    assert scheduler.is_running is False
    time.sleep(0.05)
    scheduler.stop()
    assert job.calls == 0


def test_scheduler_runs_first_firing_after_initial_delay():
    job = CountingJob()
    scheduler = AutohideScheduler(
        job, config=AutohideConfig(initial_delay_minutes=0)
    ).start()
    try:
        assert job.done.wait(timeout=5)
    finally:
        scheduler.stop()

    # 다음 firing은 하루 뒤이므로 1회만 실행된다.
    assert job.calls == 1
    assert scheduler.is_running is False


def test_scheduler_stop_cancels_pending_firing():
    job = CountingJob()
    scheduler = AutohideScheduler(
        job, config=AutohideConfig(initial_delay_minutes=10)
    ).start()
    assert scheduler.is_running is True

    scheduler.stop()

    assert scheduler.is_running is False
    assert job.calls == 0


def test_scheduler_survives_job_exception_and_keeps_firing():
    job = CountingJob(raise_first=True, target=2)
    scheduler = AutohideScheduler(
        job,
        config=AutohideConfig(initial_delay_minutes=0),
        period=timedelta(milliseconds=20),
    ).start()
    try:
        assert job.done.wait(timeout=5)
    finally:
        scheduler.stop()

    assert job.calls >= 2


def test_scheduler_never_overlaps_runs():
    # run이 period보다 길어도 다음 run은 이전 run이 끝난 뒤에만 시작한다.
    job = CountingJob(work_seconds=0.03, target=3)
    scheduler = AutohideScheduler(
        job,
        config=AutohideConfig(initial_delay_minutes=0),
        period=timedelta(milliseconds=5),
    ).start()
    try:
        assert job.done.wait(timeout=5)
    finally:
        scheduler.stop()

    assert job.max_active == 1


def test_scheduler_keeps_firing_after_failed_outcome():
    outcomes = [
        AutohideRunOutcome(
            result=AutohideRunResult.FAILED,
            hidden_count=0,
            flushed_batches=0,
            failure_reason=AutohideFailureReason.QUERY_FAILED,
            error="timeout",
        ),
        OK_OUTCOME,
    ]
    done = threading.Event()
    calls = []

    def job():
        calls.append(1)
        if len(calls) >= 2:
            done.set()
        return outcomes[min(len(calls), 2) - 1]

    scheduler = AutohideScheduler(
        job,
        config=AutohideConfig(initial_delay_minutes=0),
        period=timedelta(milliseconds=20),
    ).start()
    try:
        assert done.wait(timeout=5)
    finally:
        scheduler.stop()


def test_run_autohide_once_writes_run_report(tmp_path):
    report_path = tmp_path / "autohide_runs.json"
    index = FakeStatusIndex()

    outcome = run_autohide_once(
        FakeQueryAPI(["a", "b", "c"]),
        index,
        config=AutohideConfig(batch_size=2),
        layout=MetricsLayout(),
        report_path=report_path,
    )

    assert outcome.ok
    assert index.batches == [["a", "b"], ["c"]]
    payload = json.loads(report_path.read_text())
    assert payload["recent_runs"][-1]["hidden_count"] == 3
    assert payload["recent_runs"][-1]["result"] == "ok"


def test_run_autohide_once_ignores_report_failure(tmp_path, monkeypatch):
    def broken_report(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(autohide_worker, "append_run_report", broken_report)

    outcome = run_autohide_once(
        FakeQueryAPI(["a"]),
        FakeStatusIndex(),
        config=AutohideConfig(),
        layout=MetricsLayout(),
        report_path=tmp_path / "autohide_runs.json",
    )

    assert outcome.ok
    assert outcome.hidden_count == 1


def test_main_exits_without_connecting_when_disabled(monkeypatch):
    monkeypatch.setattr(
        autohide_worker,
        "load_autohide_config",
        lambda: AutohideConfig(enabled=False),
    )

    def fail_connect():
        raise AssertionError("must not connect when disabled")

    monkeypatch.setattr(autohide_worker, "_get_influx_client", fail_connect)

    assert main([]) == 0


def test_main_once_runs_immediately_and_reports_exit_code(tmp_path, monkeypatch):
    client = FakeInfluxClient(FakeQueryAPI(["stale.metric"]))
    index = FakeStatusIndex()
    monkeypatch.setattr(
        autohide_worker,
        "load_autohide_config",
        lambda: AutohideConfig(enabled=False),
    )
    monkeypatch.setattr(autohide_worker, "_get_influx_client", lambda: client)
    monkeypatch.setattr(autohide_worker, "build_status_index", lambda: index)
    monkeypatch.setattr(
        autohide_worker, "AUTOHIDE_RUN_REPORT_FILE", tmp_path / "autohide_runs.json"
    )

    assert main(["--once"]) == 0
    assert index.batches == [["stale.metric"]]
    assert client.closed is True
    assert index.closed is True
    assert (tmp_path / "autohide_runs.json").exists()


def test_main_once_returns_failure_code_on_rejected_flush(tmp_path, monkeypatch):
    monkeypatch.setattr(autohide_worker, "load_autohide_config", AutohideConfig)
    monkeypatch.setattr(
        autohide_worker,
        "_get_influx_client",
        lambda: FakeInfluxClient(FakeQueryAPI(["a"])),
    )
    monkeypatch.setattr(
        autohide_worker, "build_status_index", lambda: FakeStatusIndex(accept=False)
    )
    monkeypatch.setattr(
        autohide_worker, "AUTOHIDE_RUN_REPORT_FILE", tmp_path / "autohide_runs.json"
    )

    assert main(["--once"]) == 1


def test_main_rejects_missing_status_index_url(monkeypatch):
    monkeypatch.setattr(autohide_worker, "load_autohide_config", AutohideConfig)
    monkeypatch.setattr(autohide_worker, "METRIC_STATUS_INDEX_URL", "")

    assert main(["--once"]) == 2
