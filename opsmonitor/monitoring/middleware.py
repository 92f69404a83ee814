"""
Flask ingress hook feeding the monitoring engine.

Before each request the request, method and endpoint counters are incremented.
After each response the latency sample, the status class counter, the role
counter and the error bookkeeping are recorded. The endpoint is the matched
URL rule when Flask resolved one, otherwise the raw path; both are normalized
by the engine.
"""

import time
from typing import Iterable, Optional

from flask import Flask, Response, g, request

from opsmonitor.monitoring.logging import get_logger

logger = get_logger(__name__)

# Paths served by the monitoring blueprint are not counted as traffic
DEFAULT_EXCLUDED_PREFIXES = ('/health', '/metrics')


class RequestMetricsMiddleware:
    """
    Args:
        engine: MonitoringEngine receiving the request lifecycle events
        excluded_prefixes: Path prefixes that are not recorded
    """

    def __init__(self, engine, excluded_prefixes: Optional[Iterable[str]] = None):
        self.engine = engine
        self.excluded_prefixes = tuple(
            DEFAULT_EXCLUDED_PREFIXES if excluded_prefixes is None else excluded_prefixes
        )

    def init_app(self, app: Flask) -> None:
        app.before_request(self._before_request)
        app.after_request(self._after_request)

    def _is_excluded(self) -> bool:
        return bool(self.excluded_prefixes) and request.path.startswith(self.excluded_prefixes)

    @staticmethod
    def _endpoint() -> str:
        if request.url_rule is not None:
            return request.url_rule.rule
        return request.path

    def _before_request(self):
        if self._is_excluded():
            return

        g.monitoring_start_time = time.perf_counter()
        self.engine.record_request_started(request.method, self._endpoint())

    def _after_request(self, response: Response) -> Response:
        start_time = getattr(g, 'monitoring_start_time', None)
        if start_time is None:
            return response

        duration_ms = (time.perf_counter() - start_time) * 1000
        try:
            self.engine.record_request_completed(
                method=request.method,
                endpoint=self._endpoint(),
                status_code=response.status_code,
                duration_ms=duration_ms,
                role=getattr(g, 'user_role', None),
                user_agent=request.headers.get('User-Agent')
            )
        except Exception as e:
            logger.error(
                "Request metrics recording failed",
                path=request.path,
                error=str(e),
                exc_info=True
            )

        return response


__all__ = ['RequestMetricsMiddleware', 'DEFAULT_EXCLUDED_PREFIXES']
