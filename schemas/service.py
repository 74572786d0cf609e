from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Literal, Optional, Union

from schemas.common import SafeText, UtcDatetime, utcnow

ServiceCategory = Literal[
    "cut", "color", "perm", "treatment", "head_spa",
    "nail", "eyelash", "makeup", "esthetic", "other"
]
ServiceStatus = Literal["active", "inactive", "discontinued"]

MIN_DURATION_MINUTES = 5
MAX_DURATION_MINUTES = 480
MAX_PRICE = 1_000_000


class ServiceData(BaseModel):
    id: str
    salon_id: str
    name: str
    description: Optional[str] = None
    category: ServiceCategory = "other"
    duration_minutes: int = Field(ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    price: float = Field(ge=0, le=MAX_PRICE)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class ActiveService(BaseModel):
    type: Literal["active"] = "active"
    data: ServiceData


class InactiveService(BaseModel):
    type: Literal["inactive"] = "inactive"
    data: ServiceData
    deactivated_at: UtcDatetime


class DiscontinuedService(BaseModel):
    type: Literal["discontinued"] = "discontinued"
    data: ServiceData
    discontinued_at: UtcDatetime


Service = Annotated[Union[ActiveService, InactiveService, DiscontinuedService], Field(discriminator="type")]
service_adapter = TypeAdapter(Service)


class ServiceCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    salon_id: str
    name: SafeText = Field(min_length=1, max_length=200)
    description: Optional[SafeText] = Field(default=None, max_length=2000)
    category: ServiceCategory = "other"
    duration_minutes: int = Field(ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    price: float = Field(ge=0, le=MAX_PRICE)


class ServiceUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[SafeText] = Field(default=None, min_length=1, max_length=200)
    description: Optional[SafeText] = Field(default=None, max_length=2000)
    category: Optional[ServiceCategory] = None
    duration_minutes: Optional[int] = Field(default=None, ge=MIN_DURATION_MINUTES, le=MAX_DURATION_MINUTES)
    price: Optional[float] = Field(default=None, ge=0, le=MAX_PRICE)


class ServiceFilter(BaseModel):
    salon_id: Optional[str] = None
    category: Optional[ServiceCategory] = None
    active_only: bool = False
