"""
Metric status index client.

Why this module exists:
- autohide 엔진은 status index의 저장 방식을 모른다. `set_status` 하나만 의존한다.
- 운영에서는 HTTP endpoint로 batch 단위 상태 갱신을 보낸다.
"""

from __future__ import annotations

from typing import Protocol, Sequence

import requests

from utils.autohide_contracts import MetricStatus
from utils.logger import get_logger

logger = get_logger(__name__)


class MetricStatusIndex(Protocol):
    def set_status(self, paths: Sequence[str], status: MetricStatus) -> bool: ...


class HttpMetricStatusIndex:
    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ):
        """
        Called from:
        - `scripts.autohide_worker.build_status_index`
        """
        if not url:
            raise ValueError("METRIC_STATUS_INDEX_URL must not be empty.")
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def set_status(self, paths: Sequence[str], status: MetricStatus) -> bool:
        """
        path 묶음의 상태를 한 번의 요청으로 갱신한다.

        Returns:
          - bool: index가 2xx로 응답했는지 여부

        Note:
        - 빈 batch는 네트워크 호출 없이 성공으로 처리한다.
        - transport 예외(connection/timeout)는 호출자에게 그대로 전파된다.
        """
        if not paths:
            return True

        payload = {"status": MetricStatus(status).value, "paths": list(paths)}
        response = self._session.post(
            self._url, json=payload, timeout=self._timeout_seconds
        )
        if not response.ok:
            logger.error(
                f"[Status Index] update rejected status_code={response.status_code} "
                f"paths={len(paths)} body={response.text[:500]}"
            )
            return False
        return True

    def close(self) -> None:
        self._session.close()
