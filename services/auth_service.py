from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import hashlib
import logging
import secrets
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

from config.database import Database
from config.settings import Settings, get_settings
from crud.customer_crud import CustomerRepository
from crud.password_reset_crud import PasswordResetRepository
from crud.user_crud import UserRepository
from schemas.common import generate_id, utcnow
from schemas.customer import ActiveCustomer, CustomerData
from schemas.errors import AppError, ErrorType, invalid_transition, unauthorized
from schemas.result import Result, ok, err
from schemas.user import (
    ActiveUser, ChangePasswordRequest, CurrentUser, LockedUser, LoginRequest, PasswordResetConfirm,
    PasswordResetRequest, RegisterRequest, SuspendedUser, TokenResponse, User, UserCreateRequest, UserData,
    UserPublic, to_public, validate_password_strength
)
from services.access import ensure_admin
from services.twilio_service import TwilioService

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MAX_FAILED_LOGINS = 5
LOCK_DURATION = timedelta(minutes=30)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def reset_token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Malformed hash in storage
        return False


def create_token(user: User, token_type: str, expires_delta: timedelta, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    now = utcnow()
    claims = {
        "sub": user.data.id,
        "email": user.data.email,
        "role": user.data.role,
        "customer_id": user.data.customer_id,
        "staff_id": user.data.staff_id,
        "salon_id": user.data.salon_id,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str = "access", settings: Optional[Settings] = None) -> Result[Dict[str, Any], AppError]:
    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.info(f"Rejected token: {str(e)}")
        return err(unauthorized("Invalid or expired token"))
    if claims.get("type") != expected_type:
        return err(unauthorized("Wrong token type"))
    return ok(claims)


def current_user_from_claims(claims: Dict[str, Any]) -> CurrentUser:
    return CurrentUser(
        user_id=claims["sub"],
        email=claims["email"],
        role=claims["role"],
        customer_id=claims.get("customer_id"),
        staff_id=claims.get("staff_id"),
        salon_id=claims.get("salon_id"),
    )


class AuthService:
    def __init__(self, db: Database, settings: Optional[Settings] = None, sms: Optional[TwilioService] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.users = UserRepository(db)
        self.customers = CustomerRepository(db)
        self.resets = PasswordResetRepository(db)
        self.sms = sms
        if self.sms is None and self.settings.twilio_enabled:
            self.sms = TwilioService(self.settings)

    def issue_tokens(self, user: User) -> TokenResponse:
        access_delta = timedelta(minutes=self.settings.access_token_minutes)
        return TokenResponse(
            access_token=create_token(user, "access", access_delta, self.settings),
            refresh_token=create_token(user, "refresh", timedelta(days=self.settings.refresh_token_days), self.settings),
            expires_in=int(access_delta.total_seconds()),
            user=to_public(user),
        )

    async def register(self, request: RegisterRequest) -> Result[TokenResponse, AppError]:
        password = request.password.get_secret_value()
        strength = validate_password_strength(password)
        if not strength.is_ok:
            return strength

        email = request.email.lower()
        existing = await self.users.find_by_email(email)
        if not existing.is_ok:
            return existing
        if existing.value is not None:
            return err(AppError(ErrorType.DUPLICATE_EMAIL, "Email is already registered"))

        user_id = generate_id("usr")
        found_customer = await self.customers.find_by_email(email)
        if not found_customer.is_ok:
            return found_customer

        customer = found_customer.value
        if customer is not None:
            # A salon may have created the customer record before sign-up
            if customer.data.user_id is not None:
                return err(AppError(ErrorType.DUPLICATE_EMAIL, "Email is already registered"))
            customer.data.user_id = user_id
            customer.data.updated_at = utcnow()
            saved = await self.customers.save(customer)
        else:
            customer = ActiveCustomer(data=CustomerData(
                id=generate_id("cus"),
                user_id=user_id,
                name=request.name,
                email=email,
                phone=request.phone,
            ))
            saved = await self.customers.create(customer)
        if not saved.is_ok:
            return saved

        user = ActiveUser(data=UserData(
            id=user_id,
            email=email,
            name=request.name,
            role="customer",
            password_hash=hash_password(password),
            customer_id=customer.data.id,
        ))
        created = await self.users.create(user)
        if not created.is_ok:
            return created

        logger.info(f"Registered customer account {user_id}")
        return ok(self.issue_tokens(user))

    async def login(self, request: LoginRequest) -> Result[TokenResponse, AppError]:
        found = await self.users.find_by_email(request.email.lower())
        if not found.is_ok:
            return found
        user = found.value
        if user is None:
            return err(AppError(ErrorType.INVALID_CREDENTIALS, "Invalid email or password"))

        now = utcnow()
        if isinstance(user, SuspendedUser):
            return err(AppError(ErrorType.FORBIDDEN, "Account is suspended"))
        if isinstance(user, LockedUser):
            if now < user.locked_until:
                return err(AppError(
                    ErrorType.ACCOUNT_LOCKED,
                    "Account is temporarily locked after too many failed logins",
                    details={"locked_until": user.locked_until.isoformat()}
                ))
            user.data.failed_login_attempts = 0
            user = ActiveUser(data=user.data)

        if not verify_password(request.password.get_secret_value(), user.data.password_hash):
            return await self._record_failed_login(user)

        user.data.failed_login_attempts = 0
        user.data.last_login_at = now
        user.data.updated_at = now
        saved = await self.users.save(user)
        if not saved.is_ok:
            return saved
        logger.info(f"User {user.data.id} logged in")
        return ok(self.issue_tokens(user))

    async def _record_failed_login(self, user: User) -> Result[TokenResponse, AppError]:
        now = utcnow()
        user.data.failed_login_attempts += 1
        user.data.updated_at = now
        locked = user.data.failed_login_attempts >= MAX_FAILED_LOGINS
        if locked:
            user = LockedUser(data=user.data, locked_at=now, locked_until=now + LOCK_DURATION)
            logger.warning(f"User {user.data.id} locked after {user.data.failed_login_attempts} failed logins")

        saved = await self.users.save(user)
        if not saved.is_ok:
            return saved
        if locked:
            return err(AppError(
                ErrorType.ACCOUNT_LOCKED,
                "Account is temporarily locked after too many failed logins",
                details={"locked_until": user.locked_until.isoformat()}
            ))
        return err(AppError(ErrorType.INVALID_CREDENTIALS, "Invalid email or password"))

    async def refresh(self, refresh_token: Optional[str]) -> Result[TokenResponse, AppError]:
        if not refresh_token:
            return err(unauthorized("Refresh token missing"))
        claims = decode_token(refresh_token, expected_type="refresh", settings=self.settings)
        if not claims.is_ok:
            return claims

        found = await self.users.get(claims.value["sub"])
        if not found.is_ok:
            return err(unauthorized("Unknown user"))
        if not isinstance(found.value, ActiveUser):
            return err(unauthorized("Account is not active"))
        return ok(self.issue_tokens(found.value))

    async def me(self, actor: CurrentUser) -> Result[UserPublic, AppError]:
        found = await self.users.get(actor.user_id)
        if not found.is_ok:
            return found
        return ok(to_public(found.value))

    async def create_user(self, request: UserCreateRequest, actor: CurrentUser) -> Result[UserPublic, AppError]:
        allowed = ensure_admin(actor)
        if not allowed.is_ok:
            return allowed
        if request.role == "customer":
            return err(AppError(ErrorType.VALIDATION_ERROR, "Customers sign up through registration"))
        if request.role == "staff" and not request.salon_id:
            return err(AppError(ErrorType.VALIDATION_ERROR, "Staff accounts need a salon_id", details={"field": "salon_id"}))

        password = request.password.get_secret_value()
        strength = validate_password_strength(password)
        if not strength.is_ok:
            return strength

        email = request.email.lower()
        existing = await self.users.find_by_email(email)
        if not existing.is_ok:
            return existing
        if existing.value is not None:
            return err(AppError(ErrorType.DUPLICATE_EMAIL, "Email is already registered"))

        user = ActiveUser(data=UserData(
            id=generate_id("usr"),
            email=email,
            name=request.name,
            role=request.role,
            password_hash=hash_password(password),
            salon_id=request.salon_id,
            staff_id=request.staff_id,
        ))
        created = await self.users.create(user)
        if not created.is_ok:
            return created
        logger.info(f"Admin {actor.user_id} created {request.role} account {user.data.id}")
        return ok(to_public(user))

    async def unlock_user(self, user_id: str, actor: CurrentUser) -> Result[UserPublic, AppError]:
        allowed = ensure_admin(actor)
        if not allowed.is_ok:
            return allowed
        found = await self.users.get(user_id)
        if not found.is_ok:
            return found

        user = found.value
        if isinstance(user, ActiveUser):
            return ok(to_public(user))
        if isinstance(user, SuspendedUser):
            return err(invalid_transition("user", user.type, "active"))

        user.data.failed_login_attempts = 0
        user.data.updated_at = utcnow()
        saved = await self.users.save(ActiveUser(data=user.data))
        if not saved.is_ok:
            return saved
        logger.info(f"Admin {actor.user_id} unlocked user {user_id}")
        return ok(to_public(saved.value))

    async def change_password(self, request: ChangePasswordRequest, actor: CurrentUser) -> Result[UserPublic, AppError]:
        found = await self.users.get(actor.user_id)
        if not found.is_ok:
            return found
        user = found.value
        if not verify_password(request.current_password.get_secret_value(), user.data.password_hash):
            return err(AppError(ErrorType.INVALID_CREDENTIALS, "Current password is incorrect"))

        new_password = request.new_password.get_secret_value()
        strength = validate_password_strength(new_password)
        if not strength.is_ok:
            return strength

        user.data.password_hash = hash_password(new_password)
        user.data.updated_at = utcnow()
        saved = await self.users.save(user)
        if not saved.is_ok:
            return saved
        logger.info(f"User {user.data.id} changed their password")
        return ok(to_public(user))

    async def request_password_reset(self, request: PasswordResetRequest,
                                     now: Optional[datetime] = None) -> Result[Optional[str], AppError]:
        """Issue a one-time reset token and send it to the account's phone.

        Unknown and suspended accounts get no token, but the caller cannot
        tell the difference from the response. Only the token digest is stored.
        """
        found = await self.users.find_by_email(request.email.lower())
        if not found.is_ok:
            return found
        user = found.value
        if user is None or isinstance(user, SuspendedUser):
            logger.info("Password reset requested for an unknown or suspended account")
            return ok(None)

        now = now or utcnow()
        token = secrets.token_urlsafe(32)
        expires_at = now + timedelta(minutes=self.settings.password_reset_minutes)
        stored = await self.resets.create(reset_token_digest(token), user.data.id, now, expires_at)
        if not stored.is_ok:
            return stored

        await self._send_reset_token(user, token)
        logger.info(f"Password reset token issued for user {user.data.id}")
        return ok(token)

    async def _send_reset_token(self, user: User, token: str) -> None:
        if self.sms is None or user.data.customer_id is None:
            return
        customer = await self.customers.get(user.data.customer_id)
        if not customer.is_ok or not customer.value.data.phone:
            return
        await self.sms.send_sms(customer.value.data.phone, f"Your password reset code: {token}")

    async def reset_password(self, request: PasswordResetConfirm,
                             now: Optional[datetime] = None) -> Result[UserPublic, AppError]:
        new_password = request.new_password.get_secret_value()
        strength = validate_password_strength(new_password)
        if not strength.is_ok:
            return strength

        now = now or utcnow()
        consumed = await self.resets.consume(reset_token_digest(request.token), now)
        if not consumed.is_ok:
            return consumed
        if consumed.value is None:
            return err(AppError(ErrorType.VALIDATION_ERROR, "Reset token is invalid or expired", details={"field": "token"}))

        found = await self.users.get(consumed.value["user_id"])
        if not found.is_ok:
            return found
        user = found.value
        if isinstance(user, SuspendedUser):
            return err(AppError(ErrorType.FORBIDDEN, "Account is suspended"))

        # A reset also lifts a lockout
        user.data.password_hash = hash_password(new_password)
        user.data.failed_login_attempts = 0
        user.data.updated_at = now
        saved = await self.users.save(ActiveUser(data=user.data))
        if not saved.is_ok:
            return saved
        logger.info(f"User {user.data.id} reset their password")
        return ok(to_public(saved.value))
