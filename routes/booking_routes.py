from typing import Optional

from fastapi import APIRouter, Depends, Response

from routes.dependencies import get_booking_service, get_current_user, pagination_params, require_roles
from routes.responses import unwrap
from schemas.booking import (
    Booking, BookingCancelRequest, BookingCreate, BookingFilter, BookingStatus, BookingUpdate, PaymentRequest
)
from schemas.common import Page, PaginationParams
from schemas.user import CurrentUser
from services.booking_service import BookingService

router = APIRouter(
    prefix="/bookings",
    tags=["bookings"]
)


@router.get("/", response_model=Page[Booking])
async def list_bookings(
    salon_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    status: Optional[BookingStatus] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service)
):
    filters = BookingFilter(salon_id=salon_id, customer_id=customer_id, status=status)
    return unwrap(await service.list_bookings(filters, pagination, user))


@router.post("/", response_model=Booking, status_code=201)
async def create_booking(
    request: BookingCreate,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service)
):
    """Group one customer's reservations at a salon into a single payable booking"""
    booking = unwrap(await service.create_booking(request, user))
    response.headers["Location"] = f"/api/v1/bookings/{booking.data.id}"
    return booking


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.get_booking(booking_id, user))


@router.put("/{booking_id}", response_model=Booking)
async def update_booking(
    booking_id: str,
    request: BookingUpdate,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.update_booking(booking_id, request, user))


@router.post("/{booking_id}/confirm", response_model=Booking)
async def confirm_booking(
    booking_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.transition_booking(booking_id, "confirmed", user))


@router.post("/{booking_id}/start", response_model=Booking)
async def start_booking(
    booking_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.transition_booking(booking_id, "in_progress", user))


@router.post("/{booking_id}/complete", response_model=Booking)
async def complete_booking(
    booking_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.transition_booking(booking_id, "completed", user))


@router.post("/{booking_id}/no-show", response_model=Booking)
async def mark_booking_no_show(
    booking_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.transition_booking(booking_id, "no_show", user))


@router.post("/{booking_id}/cancel", response_model=Booking)
async def cancel_booking(
    booking_id: str,
    request: BookingCancelRequest,
    user: CurrentUser = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service)
):
    """
    Cancel a booking and every active reservation it groups.
    The refund depends on how long before the start the booking is cancelled.
    """
    return unwrap(await service.cancel_booking(booking_id, request, user))


@router.post("/{booking_id}/payments", response_model=Booking)
async def record_payment(
    booking_id: str,
    request: PaymentRequest,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: BookingService = Depends(get_booking_service)
):
    return unwrap(await service.record_payment(booking_id, request, user))
