from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from routes.dependencies import get_current_user, get_reservation_service, pagination_params, require_roles
from routes.responses import unwrap
from schemas.common import Page, PaginationParams
from schemas.reservation import (
    AvailabilityCheckRequest, AvailabilityCheckResponse, CancelRequest, Reservation, ReservationCreate,
    ReservationDetail, ReservationFilter, ReservationStatus, ReservationUpdate
)
from schemas.user import CurrentUser
from services.reservation_service import ReservationService

router = APIRouter(
    prefix="/reservations",
    tags=["reservations"]
)


@router.get("/", response_model=Page[Reservation])
async def list_reservations(
    salon_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    staff_id: Optional[str] = None,
    service_id: Optional[str] = None,
    status: Optional[ReservationStatus] = None,
    date_from: Optional[datetime] = Query(None, description="Reservations starting at or after this time"),
    date_to: Optional[datetime] = Query(None, description="Reservations starting before this time"),
    is_paid: Optional[bool] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    filters = ReservationFilter(
        salon_id=salon_id,
        customer_id=customer_id,
        staff_id=staff_id,
        service_id=service_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        is_paid=is_paid,
    )
    return unwrap(await service.list_reservations(filters, pagination, user))


@router.post("/", response_model=Reservation, status_code=201)
async def create_reservation(
    request: ReservationCreate,
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    """
    Create a pending reservation.
    The end time and amount are taken from the booked service.
    """
    reservation = unwrap(await service.create_reservation(request, user))
    response.headers["Location"] = f"/api/v1/reservations/{reservation.data.id}"
    return reservation


@router.post("/check-availability", response_model=AvailabilityCheckResponse)
async def check_availability(
    request: AvailabilityCheckRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.check_availability(request))


@router.get("/{reservation_id}", response_model=Reservation)
async def get_reservation(
    reservation_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.get_reservation(reservation_id, user))


@router.get("/{reservation_id}/detail", response_model=ReservationDetail)
async def get_reservation_detail(
    reservation_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.get_reservation_detail(reservation_id, user))


@router.put("/{reservation_id}", response_model=Reservation)
async def update_reservation(
    reservation_id: str,
    request: ReservationUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.update_reservation(reservation_id, request, user))


@router.post("/{reservation_id}/cancel", response_model=Reservation)
async def cancel_reservation(
    reservation_id: str,
    request: CancelRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.cancel_reservation(reservation_id, request, user))


@router.post("/{reservation_id}/confirm", response_model=Reservation)
async def confirm_reservation(
    reservation_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.confirm_reservation(reservation_id, user))


@router.post("/{reservation_id}/complete", response_model=Reservation)
async def complete_reservation(
    reservation_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.complete_reservation(reservation_id, user))


@router.post("/{reservation_id}/no-show", response_model=Reservation)
async def mark_no_show(
    reservation_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.mark_no_show(reservation_id, user))


@router.post("/{reservation_id}/mark-paid", response_model=Reservation)
async def mark_paid(
    reservation_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await service.mark_paid(reservation_id, user))
