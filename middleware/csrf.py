"""
CSRF protection using the double-submit cookie pattern.

Only requests authenticated by the session cookie need the check: a browser
attaches that cookie automatically, while a bearer token has to be added by
the caller on purpose. For those requests the ``X-CSRF-Token`` header must
match the ``csrf_token`` cookie.
"""
import logging
import secrets
from typing import Callable, List

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
SESSION_COOKIE_NAME = "session"
CSRF_COOKIE_MAX_AGE = 86400

PROTECTED_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

# Endpoints that establish a session cannot require one
EXEMPT_PATHS: List[str] = [
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/password-reset",
    "/api/v1/health",
]


def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def is_path_exempt(path: str) -> bool:
    return any(path.startswith(exempt) for exempt in EXEMPT_PATHS)


def set_csrf_cookie(response: Response, token: str, secure: bool) -> None:
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=secure,
        samesite="strict",
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
    )


def _reject(message: str) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": {"code": "CSRF_TOKEN_INVALID", "message": message}})


class CSRFMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, secure_cookie: bool = False):
        super().__init__(app)
        self.secure_cookie = secure_cookie

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        csrf_cookie = request.cookies.get(CSRF_COOKIE_NAME)
        uses_session_cookie = (
            SESSION_COOKIE_NAME in request.cookies
            and not request.headers.get("Authorization", "").lower().startswith("bearer ")
        )
        needs_validation = (
            request.method in PROTECTED_METHODS
            and uses_session_cookie
            and not is_path_exempt(request.url.path)
        )

        if needs_validation:
            csrf_header = request.headers.get(CSRF_HEADER_NAME)
            if not csrf_cookie or not csrf_header:
                logger.warning(f"CSRF token missing for {request.method} {request.url.path}")
                return _reject("CSRF token missing. Fetch a token and retry.")
            if not secrets.compare_digest(csrf_cookie, csrf_header):
                logger.warning(f"CSRF token mismatch for {request.method} {request.url.path}")
                return _reject("CSRF token invalid. Fetch a token and retry.")

        response = await call_next(request)

        already_set = any(
            header.startswith(f"{CSRF_COOKIE_NAME}=") for header in response.headers.getlist("set-cookie")
        )
        if not csrf_cookie and not already_set:
            set_csrf_cookie(response, generate_csrf_token(), self.secure_cookie)
        return response
