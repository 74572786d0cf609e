"""
Request id, access logging and in-process request metrics.

Every response carries an ``X-Request-ID`` header; an incoming one is reused so
ids can be followed across services. The id is also put on every log line
emitted while the request is served.
"""
import logging
import re
import time
import uuid
from threading import Lock
from typing import Callable, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from config.logging_config import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class RequestMetrics:
    """Thread-safe counters exposed on the metrics endpoint."""

    def __init__(self):
        self._lock = Lock()
        self.started_at = time.time()
        self.total_requests = 0
        self.in_flight = 0
        self.total_duration_ms = 0.0
        self.by_method: Dict[str, int] = {}
        self.by_status: Dict[str, int] = {}

    def request_started(self) -> None:
        with self._lock:
            self.in_flight += 1

    def request_finished(self, method: str, status_code: int, duration_ms: float) -> None:
        status_class = f"{status_code // 100}xx"
        with self._lock:
            self.in_flight -= 1
            self.total_requests += 1
            self.total_duration_ms += duration_ms
            self.by_method[method] = self.by_method.get(method, 0) + 1
            self.by_status[status_class] = self.by_status.get(status_class, 0) + 1

    def snapshot(self) -> Dict:
        with self._lock:
            average = self.total_duration_ms / self.total_requests if self.total_requests else 0.0
            return {
                "uptime_seconds": round(time.time() - self.started_at, 1),
                "total_requests": self.total_requests,
                "in_flight": self.in_flight,
                "average_duration_ms": round(average, 2),
                "by_method": dict(self.by_method),
                "by_status": dict(self.by_status),
            }


class RequestContextMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, metrics: RequestMetrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else uuid.uuid4().hex
        token = request_id_var.set(request_id)
        request.state.request_id = request_id

        self.metrics.request_started()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            self.metrics.request_finished(request.method, status_code, duration_ms)
            logger.info(f"{request.method} {request.url.path} -> {status_code} ({duration_ms:.1f}ms)")
            request_id_var.reset(token)
