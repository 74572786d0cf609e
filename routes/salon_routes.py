from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from routes.dependencies import (
    get_reservation_service, get_review_service, get_salon_service, get_service_catalog, pagination_params,
    get_staff_service, require_roles
)
from routes.responses import unwrap
from schemas.common import Page, PaginationParams
from schemas.reservation import AvailableSlotsResponse, ReservationCount
from schemas.review import RatingSummary, Review, ReviewFilter
from schemas.salon import Salon, SalonCreate, SalonFilter, SalonUpdate, SuspendRequest
from schemas.service import Service, ServiceCategory, ServiceFilter
from schemas.staff import Staff, StaffFilter
from schemas.user import CurrentUser
from services.reservation_service import ReservationService
from services.review_service import ReviewService
from services.salon_service import SalonService
from services.service_catalog_service import ServiceCatalogService
from services.staff_service import StaffService

router = APIRouter(
    prefix="/salons",
    tags=["salons"]
)


@router.get("/", response_model=Page[Salon])
async def list_salons(
    search: Optional[str] = Query(None, max_length=100),
    city: Optional[str] = Query(None, max_length=100),
    pagination: PaginationParams = Depends(pagination_params),
    service: SalonService = Depends(get_salon_service)
):
    return unwrap(await service.list_salons(SalonFilter(search=search, city=city), pagination))


@router.post("/", response_model=Salon, status_code=201)
async def create_salon(
    request: SalonCreate,
    response: Response,
    user: CurrentUser = Depends(require_roles("admin")),
    service: SalonService = Depends(get_salon_service)
):
    salon = unwrap(await service.create_salon(request, user))
    response.headers["Location"] = f"/api/v1/salons/{salon.data.id}"
    return salon


@router.get("/{salon_id}", response_model=Salon)
async def get_salon(salon_id: str, service: SalonService = Depends(get_salon_service)):
    return unwrap(await service.get_salon(salon_id))


@router.put("/{salon_id}", response_model=Salon)
async def update_salon(
    salon_id: str,
    request: SalonUpdate,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: SalonService = Depends(get_salon_service)
):
    """
    Update salon information.
    Only the fields provided in the request will be updated.
    """
    return unwrap(await service.update_salon(salon_id, request, user))


@router.delete("/{salon_id}", status_code=204)
async def delete_salon(
    salon_id: str,
    user: CurrentUser = Depends(require_roles("admin")),
    service: SalonService = Depends(get_salon_service)
):
    unwrap(await service.delete_salon(salon_id, user))
    return Response(status_code=204)


@router.post("/{salon_id}/suspend", response_model=Salon)
async def suspend_salon(
    salon_id: str,
    request: SuspendRequest,
    user: CurrentUser = Depends(require_roles("admin")),
    service: SalonService = Depends(get_salon_service)
):
    return unwrap(await service.suspend_salon(salon_id, request.reason, user))


@router.post("/{salon_id}/reactivate", response_model=Salon)
async def reactivate_salon(
    salon_id: str,
    user: CurrentUser = Depends(require_roles("admin")),
    service: SalonService = Depends(get_salon_service)
):
    return unwrap(await service.reactivate_salon(salon_id, user))


@router.get("/{salon_id}/services", response_model=Page[Service])
async def list_salon_services(
    salon_id: str,
    category: Optional[ServiceCategory] = None,
    pagination: PaginationParams = Depends(pagination_params),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    filters = ServiceFilter(salon_id=salon_id, category=category, active_only=True)
    return unwrap(await catalog.list_services(filters, pagination))


@router.get("/{salon_id}/staff", response_model=Page[Staff])
async def list_salon_staff(
    salon_id: str,
    service_id: Optional[str] = None,
    pagination: PaginationParams = Depends(pagination_params),
    staff_service: StaffService = Depends(get_staff_service)
):
    filters = StaffFilter(salon_id=salon_id, service_id=service_id, status="active")
    return unwrap(await staff_service.list_staff(filters, pagination))


@router.get("/{salon_id}/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    salon_id: str,
    service_id: str,
    day: date = Query(..., alias="date", description="Format: YYYY-MM-DD"),
    staff_id: Optional[str] = None,
    reservations: ReservationService = Depends(get_reservation_service)
):
    """Get bookable start times for a service on a specific date"""
    return unwrap(await reservations.get_available_slots(salon_id, service_id, day, staff_id))


@router.get("/{salon_id}/reservations/count", response_model=ReservationCount)
async def count_reservations(
    salon_id: str,
    day: date = Query(..., alias="date"),
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    reservations: ReservationService = Depends(get_reservation_service)
):
    return unwrap(await reservations.count_reservations_by_date(salon_id, day, user))


@router.get("/{salon_id}/reviews", response_model=Page[Review])
async def list_salon_reviews(
    salon_id: str,
    min_rating: Optional[int] = Query(None, ge=1, le=5),
    pagination: PaginationParams = Depends(pagination_params),
    reviews: ReviewService = Depends(get_review_service)
):
    filters = ReviewFilter(salon_id=salon_id, min_rating=min_rating, status="published")
    return unwrap(await reviews.list_reviews(filters, pagination))


@router.get("/{salon_id}/reviews/summary", response_model=RatingSummary)
async def get_salon_review_summary(salon_id: str, reviews: ReviewService = Depends(get_review_service)):
    return unwrap(await reviews.get_rating_summary(salon_id))
