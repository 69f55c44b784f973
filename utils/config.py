"""
Autohide configuration.

Why this module exists:
- 환경 변수 파싱을 한곳에 모아 worker/테스트가 같은 규칙으로 설정을 읽게 한다.
- 잘못된 값은 기본값으로 되돌려 워커가 기동 단계에서 죽지 않게 한다.
"""

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_AUTOHIDE_ENABLED = True
DEFAULT_INITIAL_DELAY_MINUTES = 10
DEFAULT_MAX_VALUES_COUNT = 200
DEFAULT_MISSING_DAYS = 7
# status index 1회 호출 크기 상한. 운영 중 바꾸지 않는 고정값이다.
AUTOHIDE_BATCH_SIZE = 50_000


def _parse_bool_env(raw: str | None, default: bool = False) -> bool:
    if raw is None:
        return default

    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_non_negative_int_env(raw: str | None, default: int) -> int:
    if raw is None:
        return default

    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= 0 else default


@dataclass(frozen=True)
class AutohideConfig:
    """
    autohide 실행 정책. 기동 후에는 변경하지 않는다.

    - max_values_count: 총 point 수가 이 값 미만이어야 후보
    - missing_days: 마지막 point가 today - missing_days 이전이어야 후보
    """

    enabled: bool = DEFAULT_AUTOHIDE_ENABLED
    initial_delay_minutes: int = DEFAULT_INITIAL_DELAY_MINUTES
    max_values_count: int = DEFAULT_MAX_VALUES_COUNT
    missing_days: int = DEFAULT_MISSING_DAYS
    batch_size: int = AUTOHIDE_BATCH_SIZE

    def __post_init__(self) -> None:
        for name in ("initial_delay_minutes", "max_values_count", "missing_days"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0.")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1.")


def load_autohide_config(environ: Mapping[str, str] | None = None) -> AutohideConfig:
    """
    AUTOHIDE_* 환경 변수로 AutohideConfig를 만든다.

    Called from:
    - `scripts.autohide_worker.main` 시작 시 1회
    """
    env = os.environ if environ is None else environ
    return AutohideConfig(
        enabled=_parse_bool_env(
            env.get("AUTOHIDE_ENABLED"), default=DEFAULT_AUTOHIDE_ENABLED
        ),
        initial_delay_minutes=_parse_non_negative_int_env(
            env.get("AUTOHIDE_INITIAL_DELAY_MINUTES"),
            DEFAULT_INITIAL_DELAY_MINUTES,
        ),
        max_values_count=_parse_non_negative_int_env(
            env.get("AUTOHIDE_MAX_VALUES_COUNT"), DEFAULT_MAX_VALUES_COUNT
        ),
        missing_days=_parse_non_negative_int_env(
            env.get("AUTOHIDE_MISSING_DAYS"), DEFAULT_MISSING_DAYS
        ),
        batch_size=AUTOHIDE_BATCH_SIZE,
    )
