from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_serializer
from typing import Annotated, List, Literal, Optional, Union
from datetime import date

from schemas.common import SafeText, UtcDatetime, utcnow

MembershipLevel = Literal["regular", "silver", "gold", "platinum"]
Gender = Literal["male", "female", "other", "unspecified"]
CustomerStatus = Literal["active", "suspended", "deleted"]

# Minimum loyalty points per level, highest first
MEMBERSHIP_THRESHOLDS = [
    ("platinum", 10000),
    ("gold", 5000),
    ("silver", 1000),
]


def membership_level_for(points: int) -> MembershipLevel:
    for level, threshold in MEMBERSHIP_THRESHOLDS:
        if points >= threshold:
            return level
    return "regular"


class CustomerData(BaseModel):
    id: str
    user_id: Optional[str] = None
    name: str
    email: EmailStr
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Gender = "unspecified"
    notes: Optional[str] = None
    tags: List[str] = []
    loyalty_points: int = Field(default=0, ge=0)
    membership_level: MembershipLevel = "regular"
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    # BSON has no plain date type
    @field_serializer("birth_date")
    def serialize_birth_date(self, value: Optional[date]) -> Optional[str]:
        return value.isoformat() if value else None


class ActiveCustomer(BaseModel):
    type: Literal["active"] = "active"
    data: CustomerData


class SuspendedCustomer(BaseModel):
    type: Literal["suspended"] = "suspended"
    data: CustomerData
    suspended_at: UtcDatetime
    reason: Optional[str] = None


class DeletedCustomer(BaseModel):
    type: Literal["deleted"] = "deleted"
    data: CustomerData
    deleted_at: UtcDatetime


Customer = Annotated[Union[ActiveCustomer, SuspendedCustomer, DeletedCustomer], Field(discriminator="type")]
customer_adapter = TypeAdapter(Customer)


class CustomerCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: SafeText = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=20)
    birth_date: Optional[date] = None
    gender: Gender = "unspecified"
    notes: Optional[SafeText] = Field(default=None, max_length=2000)
    tags: List[SafeText] = Field(default=[], max_length=20)


class CustomerUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[SafeText] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    notes: Optional[SafeText] = Field(default=None, max_length=2000)
    tags: Optional[List[SafeText]] = Field(default=None, max_length=20)


class CustomerFilter(BaseModel):
    search: Optional[str] = None
    status: Optional[CustomerStatus] = None
    membership_level: Optional[MembershipLevel] = None


class LoyaltyPointsRequest(BaseModel):
    points: int = Field(gt=0, le=100000)
