"""
Worker configuration constants.

Why this module exists:
- autohide worker의 연결/경로 설정을 분리해 오케스트레이션 코드의 인지 부하를 줄인다.
- 상수 변경 시 영향 범위를 이 파일로 한정한다.

Note:
- autohide 정책 값(AUTOHIDE_*)은 utils.config.load_autohide_config가 읽는다.
"""

import os
from pathlib import Path

from utils.config import _parse_non_negative_int_env

# ── InfluxDB ──
INFLUXDB_URL = os.getenv("INFLUXDB_URL")
INFLUXDB_TOKEN = os.getenv("INFLUXDB_TOKEN")
INFLUXDB_ORG = os.getenv("INFLUXDB_ORG")
INFLUXDB_BUCKET = os.getenv("INFLUXDB_BUCKET", "graphite")
# 전체 catalogue 집계 쿼리라 일반 조회보다 길게 잡는다. (ms)
INFLUXDB_QUERY_TIMEOUT_MS = _parse_non_negative_int_env(
    os.getenv("INFLUXDB_QUERY_TIMEOUT_MS"), 10 * 60 * 1000
)

# ── Metrics layout ──
METRICS_MEASUREMENT = os.getenv("METRICS_MEASUREMENT", "graphite")
METRICS_PATH_TAG = os.getenv("METRICS_PATH_TAG", "path")
METRICS_VALUE_FIELD = os.getenv("METRICS_VALUE_FIELD", "value")

# ── Metric status index ──
METRIC_STATUS_INDEX_URL = os.getenv("METRIC_STATUS_INDEX_URL", "")
METRIC_STATUS_INDEX_TIMEOUT_SECONDS = _parse_non_negative_int_env(
    os.getenv("METRIC_STATUS_INDEX_TIMEOUT_SECONDS"), 60
)

# ── Paths ──
BASE_DIR = Path(__file__).resolve().parent.parent
STATIC_DIR = Path(os.getenv("STATIC_DATA_DIR", str(BASE_DIR / "static_data")))
AUTOHIDE_RUN_REPORT_FILE = STATIC_DIR / "autohide_runs.json"
AUTOHIDE_RUN_REPORT_WINDOW_SIZE = _parse_non_negative_int_env(
    os.getenv("AUTOHIDE_RUN_REPORT_WINDOW_SIZE"), 30
)

# ── Scheduler ──
AUTOHIDE_PERIOD_MINUTES = 24 * 60
SCHEDULER_STOP_JOIN_SECONDS = 5.0
