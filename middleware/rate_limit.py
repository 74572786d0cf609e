"""
In-memory fixed window rate limiting per client IP.

Authentication endpoints get a much tighter budget than the rest of the API
to slow down password guessing.
"""
import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 15 * 60


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    limit: int
    window_seconds: int = WINDOW_SECONDS
    path_prefixes: Tuple[str, ...] = ()

    def matches(self, path: str) -> bool:
        return not self.path_prefixes or path.startswith(self.path_prefixes)


DEFAULT_RULES: List[RateLimitRule] = [
    RateLimitRule("auth", 5, path_prefixes=(
        "/api/v1/auth/login", "/api/v1/auth/register", "/api/v1/auth/password-reset"
    )),
    RateLimitRule("general", 100),
]


class RateLimiter:
    def __init__(self, rules: Optional[List[RateLimitRule]] = None, clock: Callable[[], float] = time.time):
        self.rules = rules or DEFAULT_RULES
        self.clock = clock
        # key -> {"count": int, "reset_time": float}
        self.windows: Dict[str, Dict[str, float]] = {}
        self.lock = Lock()

    def rule_for(self, path: str) -> RateLimitRule:
        return next(rule for rule in self.rules if rule.matches(path))

    def hit(self, client: str, path: str) -> Tuple[bool, RateLimitRule, int, int]:
        """Count one request; returns (allowed, rule, remaining, seconds until reset)."""
        rule = self.rule_for(path)
        key = f"{rule.name}:{client}"
        now = self.clock()

        with self.lock:
            self._cleanup(now)
            window = self.windows.get(key)
            if window is None or now >= window["reset_time"]:
                window = {"count": 0, "reset_time": now + rule.window_seconds}
                self.windows[key] = window

            allowed = window["count"] < rule.limit
            if allowed:
                window["count"] += 1
            remaining = max(rule.limit - int(window["count"]), 0)
            retry_after = max(int(window["reset_time"] - now), 1)
        return allowed, rule, remaining, retry_after

    def _cleanup(self, now: float) -> None:
        expired = [key for key, window in self.windows.items() if now >= window["reset_time"]]
        for key in expired:
            del self.windows[key]


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)

        allowed, rule, remaining, retry_after = self.limiter.hit(client_ip(request), request.url.path)
        if not allowed:
            logger.warning(f"Rate limit '{rule.name}' exceeded by {client_ip(request)} on {request.url.path}")
            return JSONResponse(
                status_code=429,
                content={"detail": {"code": "RATE_LIMIT_EXCEEDED", "message": "Too many requests. Try again later."}},
                headers={"Retry-After": str(retry_after), "X-RateLimit-Limit": str(rule.limit), "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rule.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response
