from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator, model_validator
from typing import Annotated, List, Literal, Optional, Union

from schemas.common import SafeText, UtcDatetime, utcnow
from scripts.time_parse import minutes_of_day, validate_hhmm

SalonStatus = Literal["active", "suspended", "deleted"]


class Address(BaseModel):
    street: SafeText = Field(min_length=1, max_length=200)
    city: SafeText = Field(min_length=1, max_length=100)
    state: Optional[SafeText] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)


class OpeningHours(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    open_time: str = "09:00"
    close_time: str = "18:00"
    is_closed: bool = False

    @field_validator("open_time", "close_time")
    @classmethod
    def check_time_format(cls, value: str) -> str:
        return validate_hhmm(value)

    @model_validator(mode="after")
    def check_order(self) -> "OpeningHours":
        if not self.is_closed and minutes_of_day(self.open_time) >= minutes_of_day(self.close_time):
            raise ValueError("open_time must be before close_time")
        return self


def _unique_days(hours: List[OpeningHours]) -> List[OpeningHours]:
    days = [h.day_of_week for h in hours]
    if len(days) != len(set(days)):
        raise ValueError("opening_hours contains the same day more than once")
    return hours


OpeningWeek = Annotated[List[OpeningHours], AfterValidator(_unique_days)]


class SalonData(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    address: Address
    phone: str
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    opening_hours: List[OpeningHours] = []
    average_rating: float = 0.0
    total_ratings: int = 0
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class ActiveSalon(BaseModel):
    type: Literal["active"] = "active"
    data: SalonData


class SuspendedSalon(BaseModel):
    type: Literal["suspended"] = "suspended"
    data: SalonData
    suspended_at: UtcDatetime
    reason: Optional[str] = None


class DeletedSalon(BaseModel):
    type: Literal["deleted"] = "deleted"
    data: SalonData
    deleted_at: UtcDatetime


Salon = Annotated[Union[ActiveSalon, SuspendedSalon, DeletedSalon], Field(discriminator="type")]
salon_adapter = TypeAdapter(Salon)


class SalonCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: SafeText = Field(min_length=1, max_length=200)
    description: Optional[SafeText] = Field(default=None, max_length=5000)
    address: Address
    phone: str = Field(min_length=1, max_length=20)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(default=None, max_length=255)
    opening_hours: OpeningWeek = []


class SalonUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[SafeText] = Field(default=None, min_length=1, max_length=200)
    description: Optional[SafeText] = Field(default=None, max_length=5000)
    address: Optional[Address] = None
    phone: Optional[str] = Field(default=None, min_length=1, max_length=20)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(default=None, max_length=255)
    opening_hours: Optional[OpeningWeek] = None


class SalonFilter(BaseModel):
    search: Optional[str] = None
    city: Optional[str] = None
    status: Optional[SalonStatus] = None


class SuspendRequest(BaseModel):
    reason: Optional[SafeText] = Field(default=None, max_length=500)
