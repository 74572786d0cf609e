from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator, model_validator
from typing import Annotated, List, Literal, Optional, Union

from schemas.common import SafeText, UtcDatetime, utcnow
from scripts.time_parse import minutes_of_day, validate_hhmm

StaffStatus = Literal["active", "inactive", "terminated"]


class AvailabilitySlot(BaseModel):
    """Weekly working window of a staff member, optionally with one break."""
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    start_time: str
    end_time: str
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    @field_validator("start_time", "end_time", "break_start", "break_end")
    @classmethod
    def check_time_format(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return validate_hhmm(value)

    @model_validator(mode="after")
    def check_ranges(self) -> "AvailabilitySlot":
        start, end = minutes_of_day(self.start_time), minutes_of_day(self.end_time)
        if start >= end:
            raise ValueError("start_time must be before end_time")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start is not None:
            break_start, break_end = minutes_of_day(self.break_start), minutes_of_day(self.break_end)
            if break_start >= break_end:
                raise ValueError("break_start must be before break_end")
            if break_start < start or break_end > end:
                raise ValueError("break must fall inside the working window")
        return self


def _no_overlapping_days(slots: List[AvailabilitySlot]) -> List[AvailabilitySlot]:
    by_day = {}
    for slot in slots:
        by_day.setdefault(slot.day_of_week, []).append(slot)
    for day_slots in by_day.values():
        day_slots.sort(key=lambda s: minutes_of_day(s.start_time))
        for previous, current in zip(day_slots, day_slots[1:]):
            if minutes_of_day(current.start_time) < minutes_of_day(previous.end_time):
                raise ValueError(f"availability overlaps on day {current.day_of_week}")
    return slots


WeeklyAvailability = Annotated[List[AvailabilitySlot], AfterValidator(_no_overlapping_days)]


class StaffData(BaseModel):
    id: str
    salon_id: str
    user_id: Optional[str] = None
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    specialties: List[str] = []
    # Empty means the staff member performs every service of the salon
    service_ids: List[str] = []
    years_of_experience: int = Field(default=0, ge=0, le=100)
    availability: List[AvailabilitySlot] = []
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class ActiveStaff(BaseModel):
    type: Literal["active"] = "active"
    data: StaffData


class InactiveStaff(BaseModel):
    type: Literal["inactive"] = "inactive"
    data: StaffData
    deactivated_at: UtcDatetime


class TerminatedStaff(BaseModel):
    type: Literal["terminated"] = "terminated"
    data: StaffData
    terminated_at: UtcDatetime


Staff = Annotated[Union[ActiveStaff, InactiveStaff, TerminatedStaff], Field(discriminator="type")]
staff_adapter = TypeAdapter(Staff)


def can_perform_service(staff: Staff, service_id: str) -> bool:
    if not isinstance(staff, ActiveStaff):
        return False
    return not staff.data.service_ids or service_id in staff.data.service_ids


class StaffCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    salon_id: str
    user_id: Optional[str] = None
    name: SafeText = Field(min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[SafeText] = Field(default=None, max_length=2000)
    specialties: List[SafeText] = Field(default=[], max_length=20)
    service_ids: List[str] = []
    years_of_experience: int = Field(default=0, ge=0, le=100)
    availability: WeeklyAvailability = []


class StaffUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[SafeText] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    bio: Optional[SafeText] = Field(default=None, max_length=2000)
    specialties: Optional[List[SafeText]] = Field(default=None, max_length=20)
    service_ids: Optional[List[str]] = None
    years_of_experience: Optional[int] = Field(default=None, ge=0, le=100)


class AvailabilityUpdate(BaseModel):
    availability: WeeklyAvailability


class StaffFilter(BaseModel):
    salon_id: Optional[str] = None
    service_id: Optional[str] = None
    status: Optional[StaffStatus] = None
