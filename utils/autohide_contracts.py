"""
Autohide runtime contracts (DTO + Enum).

Why this module exists:
- run 결과를 문자열/예외 대신 명시적인 타입으로 고정해
  scheduler가 "로그만 남기고 다음 firing을 기다리는" 정책을 분기 없이 적용하게 한다.
- status index에 넘기는 상태 값을 Enum으로 묶어 오타를 막는다.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MetricStatus(str, Enum):
    """
    status index가 관리하는 metric 노출 상태.
    """

    SIMPLE = "simple"
    BAN = "ban"
    APPROVED = "approved"
    HIDDEN = "hidden"
    AUTO_HIDDEN = "auto_hidden"


class AutohideRunResult(str, Enum):
    """
    autohide run 결과 코드.
    """

    OK = "ok"
    FAILED = "failed"


class AutohideFailureReason(str, Enum):
    """
    run 실패 사유.
    """

    QUERY_FAILED = "query_failed"
    FLUSH_FAILED = "flush_failed"


class StatusFlushError(RuntimeError):
    """
    status index가 batch 갱신을 거부했거나 호출 자체가 실패했을 때.
    """


@dataclass(frozen=True)
class AutohideRunOutcome:
    """
    autohide run 실행 결과 DTO.

    hidden_count는 실제 flush까지 끝난 path 수다.
    """

    result: AutohideRunResult
    hidden_count: int
    flushed_batches: int
    failure_reason: AutohideFailureReason | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.result == AutohideRunResult.OK
