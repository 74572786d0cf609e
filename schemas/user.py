from pydantic import BaseModel, ConfigDict, EmailStr, Field, SecretStr, TypeAdapter
from typing import Annotated, Literal, Optional, Union
from datetime import datetime
import re

from schemas.common import SafeText, UtcDatetime, utcnow
from schemas.errors import AppError, ErrorType
from schemas.result import Result, err, ok

UserRole = Literal["customer", "staff", "admin"]

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_LENGTH = 72


class UserData(BaseModel):
    id: str
    email: EmailStr
    name: str
    role: UserRole = "customer"
    password_hash: str
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    salon_id: Optional[str] = None
    failed_login_attempts: int = 0
    last_login_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class ActiveUser(BaseModel):
    type: Literal["active"] = "active"
    data: UserData


class LockedUser(BaseModel):
    type: Literal["locked"] = "locked"
    data: UserData
    locked_at: UtcDatetime
    locked_until: UtcDatetime


class SuspendedUser(BaseModel):
    type: Literal["suspended"] = "suspended"
    data: UserData
    suspended_at: UtcDatetime
    reason: Optional[str] = None


User = Annotated[Union[ActiveUser, LockedUser, SuspendedUser], Field(discriminator="type")]
user_adapter = TypeAdapter(User)


class UserPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: EmailStr
    name: str
    role: UserRole
    status: str
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    salon_id: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


def to_public(user: User) -> UserPublic:
    return UserPublic(status=user.type, **user.data.model_dump(exclude={"password_hash", "failed_login_attempts", "updated_at"}))


class CurrentUser(BaseModel):
    """Identity resolved from an access token."""
    user_id: str
    email: str
    role: UserRole
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    salon_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_staff(self) -> bool:
        return self.role in ("staff", "admin")


class RegisterRequest(BaseModel):
    email: EmailStr
    password: SecretStr
    name: SafeText = Field(min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)


class LoginRequest(BaseModel):
    email: EmailStr
    password: SecretStr


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class UserCreateRequest(BaseModel):
    email: EmailStr
    password: SecretStr
    name: SafeText = Field(min_length=1, max_length=100)
    role: UserRole
    salon_id: Optional[str] = None
    staff_id: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: SecretStr
    new_password: SecretStr


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str = Field(min_length=1)
    new_password: SecretStr


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserPublic


def validate_password_strength(password: str) -> Result[str, AppError]:
    if len(password) < MIN_PASSWORD_LENGTH or len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
        return err(AppError(
            ErrorType.WEAK_PASSWORD,
            f"Password must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH} characters"
        ))
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        return err(AppError(ErrorType.WEAK_PASSWORD, "Password must contain at least one letter and one digit"))
    return ok(password)
