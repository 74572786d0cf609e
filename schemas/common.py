from pydantic import AfterValidator, BaseModel, Field
from typing import Annotated, Generic, List, Optional, TypeVar
from datetime import datetime, timezone
import secrets
import string

import bleach

T = TypeVar("T")

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 21


def generate_id(prefix: str) -> str:
    """Generate a prefixed identifier such as ``rsv_3k9x...`` (21 random chars)."""
    random_part = ''.join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))
    return f"{prefix}_{random_part}"


def utcnow() -> datetime:
    # Naive UTC, millisecond precision like BSON dates
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Strip every HTML tag from user supplied text."""
    if value is None:
        return None
    return bleach.clean(value, tags=[], attributes={}, strip=True).strip()


UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]
SafeText = Annotated[str, AfterValidator(sanitize_text)]


class PaginationParams(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    limit: int
    offset: int
