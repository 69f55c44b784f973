"""
Fixed-rate scheduling logic.

Why this module exists:
- autohide_worker.py에서 firing 시각 계산을 분리해 스레드/대기 코드와 시간 계산을 나눈다.
- 이 함수들은 순수 계산 함수로 외부 의존이 없다.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def initial_run_at(started_at: datetime, delay_minutes: int) -> datetime:
    """
    첫 firing 시각. 이후 firing은 모두 이 시각을 기준으로 period 간격이다.

    Called from:
    - AutohideScheduler._run_thread 시작 시
    """
    return started_at + timedelta(minutes=max(0, delay_minutes))


def resolve_next_run_at(
    *,
    now: datetime,
    next_run_at: datetime,
    period: timedelta,
) -> tuple[datetime, int]:
    """
    방금 끝난 run 이후의 다음 firing 시각과 놓친 firing 수를 계산한다.

    Called from:
    - AutohideScheduler._run_thread run 종료 직후

    Returns:
      - datetime: 다음 firing 시각 (now 이전이면 즉시 실행 대상)
      - int: run이 길어져 건너뛴 firing 수
    """
    if period <= timedelta(0):
        raise ValueError("period must be positive.")

    advanced = next_run_at + period
    missed_count = 0
    # run이 period보다 오래 걸리면 due가 된 firing이 여러 개 쌓일 수 있다.
    # 밀린 firing은 한 번의 지연 실행으로 합치고, 몇 개를 합쳤는지만 센다.
    while advanced + period <= now:
        advanced += period
        missed_count += 1
    return advanced, missed_count
