from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union
from datetime import datetime

from schemas.common import SafeText, UtcDatetime, utcnow
from schemas.errors import AppError, ErrorType, invalid_transition
from schemas.reservation import MAX_AMOUNT
from schemas.result import Result, err, ok

BookingStatus = Literal["pending", "confirmed", "in_progress", "completed", "cancelled", "no_show"]
PaymentMethod = Literal["cash", "credit_card", "debit_card", "e_money", "bank_transfer", "other"]

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("in_progress", "cancelled", "no_show"),
    "in_progress": ("completed",),
    "completed": (),
    "cancelled": (),
    "no_show": (),
}

# (hours before the first reservation, share of the paid amount refunded)
REFUND_POLICY = [
    (48, 1.0),
    (24, 0.7),
    (12, 0.5),
]


class BookingData(BaseModel):
    id: str
    salon_id: str
    customer_id: str
    reservation_ids: List[str] = Field(min_length=1)
    starts_at: UtcDatetime
    total_amount: float = Field(ge=0, le=MAX_AMOUNT)
    discount_amount: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    final_amount: float = Field(ge=0, le=MAX_AMOUNT)
    paid_amount: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_amounts(self) -> "BookingData":
        if round(self.total_amount - self.discount_amount, 2) != round(self.final_amount, 2):
            raise ValueError("final_amount must equal total_amount - discount_amount")
        return self


class PendingBooking(BaseModel):
    type: Literal["pending"] = "pending"
    data: BookingData


class ConfirmedBooking(BaseModel):
    type: Literal["confirmed"] = "confirmed"
    data: BookingData
    confirmed_at: UtcDatetime
    confirmed_by: str


class InProgressBooking(BaseModel):
    type: Literal["in_progress"] = "in_progress"
    data: BookingData
    started_at: UtcDatetime


class CompletedBooking(BaseModel):
    type: Literal["completed"] = "completed"
    data: BookingData
    completed_at: UtcDatetime


class CancelledBooking(BaseModel):
    type: Literal["cancelled"] = "cancelled"
    data: BookingData
    cancelled_at: UtcDatetime
    cancelled_by: str
    reason: Optional[str] = None
    refund_amount: float = 0


class NoShowBooking(BaseModel):
    type: Literal["no_show"] = "no_show"
    data: BookingData
    marked_at: UtcDatetime


Booking = Annotated[
    Union[PendingBooking, ConfirmedBooking, InProgressBooking, CompletedBooking, CancelledBooking, NoShowBooking],
    Field(discriminator="type")
]
booking_adapter = TypeAdapter(Booking)


def calculate_final_amount(total: float, discount: float) -> Result[float, AppError]:
    if total < 0 or total > MAX_AMOUNT:
        return err(AppError(ErrorType.INVALID_AMOUNT, f"Total amount must be between 0 and {MAX_AMOUNT}"))
    if discount < 0:
        return err(AppError(ErrorType.INVALID_AMOUNT, "Discount cannot be negative"))
    if discount > total:
        return err(AppError(ErrorType.INVALID_AMOUNT, "Discount cannot exceed the total amount"))
    return ok(round(total - discount, 2))


def check_transition(booking: Booking, target: BookingStatus) -> Result[BookingStatus, AppError]:
    if target not in ALLOWED_TRANSITIONS[booking.type]:
        return err(invalid_transition("booking", booking.type, target))
    return ok(target)


def calculate_refund(booking: Booking, now: datetime) -> float:
    hours_until_start = (booking.data.starts_at - now).total_seconds() / 3600
    for min_hours, share in REFUND_POLICY:
        if hours_until_start >= min_hours:
            return round(booking.data.paid_amount * share, 2)
    return 0.0


def remaining_balance(booking: Booking) -> float:
    return round(max(booking.data.final_amount - booking.data.paid_amount, 0), 2)


class BookingCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reservation_ids: List[str] = Field(min_length=1, max_length=10)
    discount_amount: float = Field(default=0, ge=0, le=MAX_AMOUNT)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[SafeText] = Field(default=None, max_length=1000)


class BookingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    discount_amount: Optional[float] = Field(default=None, ge=0, le=MAX_AMOUNT)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[SafeText] = Field(default=None, max_length=1000)


class BookingCancelRequest(BaseModel):
    reason: Optional[SafeText] = Field(default=None, max_length=500)


class PaymentRequest(BaseModel):
    amount: float = Field(gt=0, le=MAX_AMOUNT)
    payment_method: PaymentMethod


class BookingFilter(BaseModel):
    salon_id: Optional[str] = None
    customer_id: Optional[str] = None
    status: Optional[BookingStatus] = None
