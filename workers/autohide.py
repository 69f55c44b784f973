"""
Autohide domain logic.

Why this module exists:
- `scripts.autohide_worker`는 스케줄/수명주기에 집중하고,
  실제 "죽은 metric 선별 + batch 숨김" 계산은 여기로 모아 변경 영향 범위를 축소한다.
- catalogue가 메모리보다 클 수 있으므로 결과를 row 단위로 흘려보내며
  batch 크기만큼만 메모리에 유지한다.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Iterator, Protocol, Sequence

from utils.autohide_contracts import (
    AutohideFailureReason,
    AutohideRunOutcome,
    AutohideRunResult,
    MetricStatus,
    StatusFlushError,
)
from utils.config import AutohideConfig
from utils.logger import get_logger
from utils.metric_status_index import MetricStatusIndex

logger = get_logger(__name__)

# cutoff는 store의 today()로 계산한다. worker 시계와 store 시계가 어긋나면
# 기준일도 store 쪽을 따른다.
CANDIDATE_QUERY_TEMPLATE = """
import "date"

cutoff = int(v: date.sub(d: duration(v: string(v: params.missingDays) + "d"), from: today()))

from(bucket: "{bucket}")
  |> range(start: 0)
  |> filter(fn: (r) => r["_measurement"] == "{measurement}")
  |> filter(fn: (r) => r["_field"] == "{value_field}")
  |> group(columns: ["{path_tag}"])
  |> reduce(
      identity: {{cnt: 0, ts: 0}},
      fn: (r, accumulator) => ({{
        cnt: accumulator.cnt + 1,
        ts: if int(v: r._time) > accumulator.ts then int(v: r._time) else accumulator.ts,
      }}),
  )
  |> filter(fn: (r) => r.cnt < params.maxValuesCount and r.ts < cutoff)
  |> group()
  |> keep(columns: ["{path_tag}", "cnt", "ts"])
"""


class MetricsQueryAPI(Protocol):
    def query_stream(
        self, query: str, org: Any = None, params: dict | None = None
    ) -> Iterator[Any]: ...


@dataclass(frozen=True)
class MetricsLayout:
    """
    metrics store 안에서 graphite 계열 series가 놓인 위치.
    """

    bucket: str = "graphite"
    measurement: str = "graphite"
    value_field: str = "value"
    path_tag: str = "path"


@dataclass(frozen=True)
class CandidateRow:
    path: str
    count: int
    last_timestamp: int


def build_candidate_query(layout: MetricsLayout) -> str:
    return CANDIDATE_QUERY_TEMPLATE.format(
        bucket=layout.bucket,
        measurement=layout.measurement,
        value_field=layout.value_field,
        path_tag=layout.path_tag,
    )


def build_candidate_query_params(config: AutohideConfig) -> dict[str, int]:
    return {
        "maxValuesCount": config.max_values_count,
        "missingDays": config.missing_days,
    }


def stream_candidate_rows(
    query_api: MetricsQueryAPI,
    *,
    config: AutohideConfig,
    layout: MetricsLayout,
) -> Iterator[CandidateRow]:
    """
    autohide 후보 row를 하나씩 yield한다.

    Called from:
    - `hide_stale_metrics`

    Why:
    - `query_stream`은 응답을 CSV 단위로 읽어 record를 즉시 넘기므로
      전체 결과를 materialize하지 않는다.
    - 결과는 재시작할 수 없는 1회성 iterator다.
    """
    records = query_api.query_stream(
        build_candidate_query(layout),
        params=build_candidate_query_params(config),
    )
    for record in records:
        values = record.values
        path = values.get(layout.path_tag)
        if not isinstance(path, str) or not path:
            logger.warning(f"[Autohide] skip row without path: {values}")
            continue
        yield CandidateRow(
            path=path,
            count=int(values.get("cnt") or 0),
            last_timestamp=int(values.get("ts") or 0),
        )


def flush_batch(status_index: MetricStatusIndex, batch: Sequence[str]) -> None:
    """
    batch를 AUTO_HIDDEN으로 갱신한다. 실패는 StatusFlushError로 통일한다.
    """
    try:
        accepted = status_index.set_status(batch, MetricStatus.AUTO_HIDDEN)
    except Exception as e:
        raise StatusFlushError(f"status index call failed: {e}") from e
    if accepted is False:
        raise StatusFlushError(f"status index rejected batch of {len(batch)} paths")


def hide_stale_metrics(
    query_api: MetricsQueryAPI,
    status_index: MetricStatusIndex,
    *,
    config: AutohideConfig,
    layout: MetricsLayout | None = None,
) -> AutohideRunOutcome:
    """
    죽은 metric을 찾아 batch 단위로 AUTO_HIDDEN 처리한다.

    Stage order:
    1) 집계 쿼리 1회 (path별 cnt/ts, 필터는 store에서 수행)
    2) row streaming -> batch 누적, batch_size 도달 시 즉시 flush
    3) stream 종료 후 남은 batch flush (비어 있어도 1회 호출)

    실패 정책:
    - query/streaming/flush 어느 단계든 실패하면 run 나머지를 중단한다.
    - 이미 flush된 batch는 되돌리지 않는다.
    - 예외는 여기서 잡아 outcome으로 반환하고 호출자에게 전파하지 않는다.
    """
    resolved_layout = layout or MetricsLayout()
    logger.info(
        f"[Autohide] run started. max_values_count={config.max_values_count} "
        f"missing_days={config.missing_days} batch_size={config.batch_size}"
    )

    hidden_count = 0
    flushed_batches = 0
    batch: list[str] = []
    try:
        for row in stream_candidate_rows(
            query_api, config=config, layout=resolved_layout
        ):
            batch.append(row.path)
            if len(batch) >= config.batch_size:
                flush_batch(status_index, batch)
                flushed_batches += 1
                hidden_count += len(batch)
                batch = []
                logger.info(f"[Autohide] {hidden_count} metrics hidden")

        flush_batch(status_index, batch)
        flushed_batches += 1
        hidden_count += len(batch)
    except StatusFlushError as e:
        logger.error(
            "[Autohide] Failed to run autohide. "
            f"stage=flush hidden={hidden_count} batches={flushed_batches}\n"
            f"{traceback.format_exc()}"
        )
        return AutohideRunOutcome(
            result=AutohideRunResult.FAILED,
            hidden_count=hidden_count,
            flushed_batches=flushed_batches,
            failure_reason=AutohideFailureReason.FLUSH_FAILED,
            error=str(e),
        )
    except Exception as e:
        logger.error(
            "[Autohide] Failed to run autohide. "
            f"stage=query hidden={hidden_count} batches={flushed_batches}\n"
            f"{traceback.format_exc()}"
        )
        return AutohideRunOutcome(
            result=AutohideRunResult.FAILED,
            hidden_count=hidden_count,
            flushed_batches=flushed_batches,
            failure_reason=AutohideFailureReason.QUERY_FAILED,
            error=str(e),
        )

    logger.info(f"[Autohide] completed. {hidden_count} metrics hidden")
    return AutohideRunOutcome(
        result=AutohideRunResult.OK,
        hidden_count=hidden_count,
        flushed_batches=flushed_batches,
    )
