from typing import Optional

from fastapi import Depends, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.database import Database, get_db
from middleware.csrf import SESSION_COOKIE_NAME
from schemas.common import PaginationParams
from schemas.errors import unauthorized
from schemas.user import CurrentUser, UserRole
from services.auth_service import AuthService, current_user_from_claims, decode_token
from services.booking_service import BookingService
from services.customer_service import CustomerService
from services.reservation_service import ReservationService
from services.review_service import ReviewService
from services.salon_service import SalonService
from services.service_catalog_service import ServiceCatalogService
from services.staff_service import StaffService

bearer_scheme = HTTPBearer(auto_error=False)


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Optional[CurrentUser]:
    token = _token_from_request(request, credentials)
    if not token:
        return None
    claims = decode_token(token)
    if not claims.is_ok:
        return None
    return current_user_from_claims(claims.value)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> CurrentUser:
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail=unauthorized().to_detail(), headers={"WWW-Authenticate": "Bearer"})
    claims = decode_token(token)
    if not claims.is_ok:
        raise HTTPException(status_code=401, detail=claims.error.to_detail(), headers={"WWW-Authenticate": "Bearer"})
    return current_user_from_claims(claims.value)


def require_roles(*roles: UserRole):
    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": f"Requires one of the roles: {', '.join(roles)}"}
            )
        return user
    return checker


def pagination_params(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
) -> PaginationParams:
    return PaginationParams(limit=limit, offset=offset)


def get_auth_service(db: Database = Depends(get_db)) -> AuthService:
    return AuthService(db)


def get_customer_service(db: Database = Depends(get_db)) -> CustomerService:
    return CustomerService(db)


def get_salon_service(db: Database = Depends(get_db)) -> SalonService:
    return SalonService(db)


def get_service_catalog(db: Database = Depends(get_db)) -> ServiceCatalogService:
    return ServiceCatalogService(db)


def get_staff_service(db: Database = Depends(get_db)) -> StaffService:
    return StaffService(db)


def get_reservation_service(db: Database = Depends(get_db)) -> ReservationService:
    return ReservationService(db)


def get_booking_service(db: Database = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_review_service(db: Database = Depends(get_db)) -> ReviewService:
    return ReviewService(db)
