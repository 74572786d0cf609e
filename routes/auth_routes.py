from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from config.settings import get_settings
from middleware.csrf import CSRF_COOKIE_NAME, SESSION_COOKIE_NAME, generate_csrf_token, set_csrf_cookie
from routes.dependencies import get_auth_service, get_current_user, require_roles
from routes.responses import unwrap
from schemas.user import (
    ChangePasswordRequest, CurrentUser, LoginRequest, PasswordResetConfirm, PasswordResetRequest, RefreshRequest,
    RegisterRequest, TokenResponse, UserCreateRequest, UserPublic
)
from services.auth_service import AuthService

REFRESH_COOKIE_NAME = "refresh_token"
REFRESH_COOKIE_PATH = "/api/v1/auth"

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)


def _set_session_cookies(response: Response, tokens: TokenResponse) -> None:
    settings = get_settings()
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=tokens.access_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        max_age=tokens.expires_in,
        path="/",
    )
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=tokens.refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=settings.refresh_token_days * 86400,
        path=REFRESH_COOKIE_PATH,
    )


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(request: RegisterRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    """Self sign-up for customers. Creates the login and the linked customer record."""
    tokens = unwrap(await service.register(request))
    _set_session_cookies(response, tokens)
    return tokens


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    tokens = unwrap(await service.login(request))
    _set_session_cookies(response, tokens)
    return tokens


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    http_request: Request,
    response: Response,
    request: Optional[RefreshRequest] = None,
    service: AuthService = Depends(get_auth_service)
):
    token = (request.refresh_token if request else None) or http_request.cookies.get(REFRESH_COOKIE_NAME)
    tokens = unwrap(await service.refresh(token))
    _set_session_cookies(response, tokens)
    return tokens


@router.post("/logout", status_code=204)
async def logout():
    response = Response(status_code=204)
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    response.delete_cookie(REFRESH_COOKIE_NAME, path=REFRESH_COOKIE_PATH)
    return response


@router.get("/me", response_model=UserPublic)
async def me(user: CurrentUser = Depends(get_current_user), service: AuthService = Depends(get_auth_service)):
    return unwrap(await service.me(user))


@router.post("/change-password", response_model=UserPublic)
async def change_password(
    request: ChangePasswordRequest,
    user: CurrentUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service)
):
    return unwrap(await service.change_password(request, user))


@router.post("/password-reset/request", status_code=202)
async def request_password_reset(request: PasswordResetRequest, service: AuthService = Depends(get_auth_service)):
    """Send a reset code when the account exists. The answer is the same either way."""
    unwrap(await service.request_password_reset(request))
    return {"message": "If the account exists, a reset code has been sent"}


@router.post("/password-reset/confirm", response_model=UserPublic)
async def confirm_password_reset(request: PasswordResetConfirm, service: AuthService = Depends(get_auth_service)):
    return unwrap(await service.reset_password(request))


@router.get("/csrf-token")
async def csrf_token(request: Request, response: Response):
    """Return the CSRF token to echo in the X-CSRF-Token header."""
    existing = request.cookies.get(CSRF_COOKIE_NAME)
    if existing:
        return {"csrf_token": existing}
    token = generate_csrf_token()
    set_csrf_cookie(response, token, get_settings().cookie_secure)
    return {"csrf_token": token}


@router.post("/users", response_model=UserPublic, status_code=201)
async def create_user(
    request: UserCreateRequest,
    user: CurrentUser = Depends(require_roles("admin")),
    service: AuthService = Depends(get_auth_service)
):
    return unwrap(await service.create_user(request, user))


@router.post("/users/{user_id}/unlock", response_model=UserPublic)
async def unlock_user(
    user_id: str,
    user: CurrentUser = Depends(require_roles("admin")),
    service: AuthService = Depends(get_auth_service)
):
    return unwrap(await service.unlock_user(user_id, user))
