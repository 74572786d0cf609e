from typing import Optional

from fastapi import APIRouter, Depends, Response

from routes.dependencies import get_staff_service, pagination_params, require_roles
from routes.responses import unwrap
from schemas.common import Page, PaginationParams
from schemas.staff import AvailabilityUpdate, Staff, StaffCreate, StaffFilter, StaffStatus, StaffUpdate
from schemas.user import CurrentUser
from services.staff_service import StaffService

router = APIRouter(
    prefix="/staff",
    tags=["staff"]
)


@router.get("/", response_model=Page[Staff])
async def list_staff(
    salon_id: Optional[str] = None,
    service_id: Optional[str] = None,
    status: Optional[StaffStatus] = None,
    pagination: PaginationParams = Depends(pagination_params),
    staff_service: StaffService = Depends(get_staff_service)
):
    filters = StaffFilter(salon_id=salon_id, service_id=service_id, status=status)
    return unwrap(await staff_service.list_staff(filters, pagination))


@router.post("/", response_model=Staff, status_code=201)
async def create_staff(
    request: StaffCreate,
    response: Response,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    staff_service: StaffService = Depends(get_staff_service)
):
    staff = unwrap(await staff_service.create_staff(request, user))
    response.headers["Location"] = f"/api/v1/staff/{staff.data.id}"
    return staff


@router.get("/{staff_id}", response_model=Staff)
async def get_staff(staff_id: str, staff_service: StaffService = Depends(get_staff_service)):
    return unwrap(await staff_service.get_staff(staff_id))


@router.put("/{staff_id}", response_model=Staff)
async def update_staff(
    staff_id: str,
    request: StaffUpdate,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    staff_service: StaffService = Depends(get_staff_service)
):
    return unwrap(await staff_service.update_staff(staff_id, request, user))


@router.put("/{staff_id}/availability", response_model=Staff)
async def set_availability(
    staff_id: str,
    request: AvailabilityUpdate,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    staff_service: StaffService = Depends(get_staff_service)
):
    """Replace the weekly working hours of a staff member"""
    return unwrap(await staff_service.set_availability(staff_id, request, user))


@router.post("/{staff_id}/deactivate", response_model=Staff)
async def deactivate_staff(
    staff_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    staff_service: StaffService = Depends(get_staff_service)
):
    return unwrap(await staff_service.deactivate_staff(staff_id, user))


@router.post("/{staff_id}/activate", response_model=Staff)
async def activate_staff(
    staff_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    staff_service: StaffService = Depends(get_staff_service)
):
    return unwrap(await staff_service.activate_staff(staff_id, user))


@router.delete("/{staff_id}", status_code=204)
async def terminate_staff(
    staff_id: str,
    user: CurrentUser = Depends(require_roles("admin")),
    staff_service: StaffService = Depends(get_staff_service)
):
    unwrap(await staff_service.terminate_staff(staff_id, user))
    return Response(status_code=204)
