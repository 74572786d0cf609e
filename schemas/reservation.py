from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union
from datetime import date, datetime, timedelta

from schemas.common import SafeText, UtcDatetime, utcnow
from schemas.errors import AppError, ErrorType
from schemas.result import Result, err, ok

ReservationStatus = Literal["pending", "confirmed", "cancelled", "completed", "no_show"]

# Statuses that still hold the staff member's time
ACTIVE_STATUSES = ("pending", "confirmed")

MAX_AMOUNT = 1_000_000
MAX_DURATION_MINUTES = 480
MODIFICATION_DEADLINE_HOURS = 12

# (hours before start, share of the amount charged), checked in order
CANCELLATION_FEE_POLICY = [
    (48, 0.0),
    (24, 0.3),
    (12, 0.5),
]


class ReservationData(BaseModel):
    id: str
    salon_id: str
    customer_id: str
    staff_id: str
    service_id: str
    start_time: UtcDatetime
    end_time: UtcDatetime
    notes: Optional[str] = None
    total_amount: float = Field(ge=0, le=MAX_AMOUNT)
    deposit_amount: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    is_paid: bool = False
    booking_id: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class PendingReservation(BaseModel):
    type: Literal["pending"] = "pending"
    data: ReservationData


class ConfirmedReservation(BaseModel):
    type: Literal["confirmed"] = "confirmed"
    data: ReservationData
    confirmed_at: UtcDatetime
    confirmed_by: str


class CancelledReservation(BaseModel):
    type: Literal["cancelled"] = "cancelled"
    data: ReservationData
    cancelled_at: UtcDatetime
    cancelled_by: str
    reason: Optional[str] = None
    cancellation_fee: float = 0


class CompletedReservation(BaseModel):
    type: Literal["completed"] = "completed"
    data: ReservationData
    completed_at: UtcDatetime
    completed_by: str


class NoShowReservation(BaseModel):
    type: Literal["no_show"] = "no_show"
    data: ReservationData
    marked_at: UtcDatetime
    marked_by: str


Reservation = Annotated[
    Union[PendingReservation, ConfirmedReservation, CancelledReservation, CompletedReservation, NoShowReservation],
    Field(discriminator="type")
]
reservation_adapter = TypeAdapter(Reservation)


def status_message(reservation: Reservation) -> str:
    if isinstance(reservation, PendingReservation):
        return "Your reservation is pending confirmation."
    if isinstance(reservation, ConfirmedReservation):
        return "Your reservation has been confirmed!"
    if isinstance(reservation, CancelledReservation):
        message = "Your reservation has been cancelled."
        if reservation.cancellation_fee:
            message += f" A cancellation fee of {reservation.cancellation_fee:.0f} applies."
        return message
    if isinstance(reservation, CompletedReservation):
        return "Your reservation has been completed. Thank you for visiting!"
    if isinstance(reservation, NoShowReservation):
        return "You missed your reservation and it was marked as a no-show."
    raise TypeError(f"Unknown reservation variant: {type(reservation).__name__}")


def validate_time_range(start: datetime, end: datetime, now: Optional[datetime] = None,
                        allow_past: bool = False) -> Result[Tuple[datetime, datetime], AppError]:
    if start >= end:
        return err(AppError(ErrorType.INVALID_TIME_RANGE, "Start time must be before end time"))
    if end - start > timedelta(minutes=MAX_DURATION_MINUTES):
        return err(AppError(
            ErrorType.INVALID_TIME_RANGE,
            f"Reservation cannot be longer than {MAX_DURATION_MINUTES} minutes"
        ))
    if not allow_past and start < (now or utcnow()):
        return err(AppError(ErrorType.PAST_TIME_NOT_ALLOWED, "Reservations cannot start in the past"))
    return ok((start, end))


def validate_amount(amount: float) -> Result[float, AppError]:
    if amount < 0 or amount > MAX_AMOUNT:
        return err(AppError(ErrorType.INVALID_AMOUNT, f"Amount must be between 0 and {MAX_AMOUNT}"))
    return ok(amount)


def validate_deposit_amount(deposit: float, total: float) -> Result[float, AppError]:
    checked = validate_amount(deposit)
    if not checked.is_ok:
        return checked
    if deposit > total:
        return err(AppError(ErrorType.INVALID_AMOUNT, "Deposit cannot exceed the total amount"))
    return ok(deposit)


def has_time_conflict(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    # Touching intervals do not overlap
    return not (end1 <= start2 or end2 <= start1)


def calculate_duration(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def calculate_cancellation_fee(reservation: Reservation, now: Optional[datetime] = None) -> float:
    hours_until_start = (reservation.data.start_time - (now or utcnow())).total_seconds() / 3600
    for min_hours, share in CANCELLATION_FEE_POLICY:
        if hours_until_start >= min_hours:
            return round(reservation.data.total_amount * share, 2)
    return reservation.data.total_amount


def can_be_modified(reservation: Reservation, now: Optional[datetime] = None) -> bool:
    if reservation.type not in ACTIVE_STATUSES:
        return False
    deadline = reservation.data.start_time - timedelta(hours=MODIFICATION_DEADLINE_HOURS)
    return (now or utcnow()) < deadline


class ReservationCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    salon_id: str
    customer_id: Optional[str] = None
    staff_id: str
    service_id: str
    start_time: UtcDatetime
    notes: Optional[SafeText] = Field(default=None, max_length=1000)
    deposit_amount: float = Field(default=0, ge=0, le=MAX_AMOUNT)


class ReservationUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start_time: Optional[UtcDatetime] = None
    staff_id: Optional[str] = None
    notes: Optional[SafeText] = Field(default=None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[SafeText] = Field(default=None, max_length=500)


class ReservationFilter(BaseModel):
    salon_id: Optional[str] = None
    customer_id: Optional[str] = None
    staff_id: Optional[str] = None
    service_id: Optional[str] = None
    status: Optional[ReservationStatus] = None
    date_from: Optional[UtcDatetime] = None
    date_to: Optional[UtcDatetime] = None
    is_paid: Optional[bool] = None


class AvailabilityCheckRequest(BaseModel):
    staff_id: str
    start_time: UtcDatetime
    end_time: UtcDatetime
    exclude_reservation_id: Optional[str] = None


class AvailabilityCheckResponse(BaseModel):
    staff_id: str
    start_time: datetime
    end_time: datetime
    available: bool


class TimeSlot(BaseModel):
    start_time: datetime
    end_time: datetime
    staff_id: str


class AvailableSlotsResponse(BaseModel):
    salon_id: str
    service_id: str
    date: date
    slots: List[TimeSlot]


class ReservationDetail(BaseModel):
    reservation: Reservation
    customer_name: Optional[str] = None
    staff_name: Optional[str] = None
    service_name: Optional[str] = None
    salon_name: Optional[str] = None
    duration_minutes: int
    can_be_modified: bool


class ReservationCount(BaseModel):
    salon_id: str
    date: date
    total: int
    by_status: Dict[str, int]
