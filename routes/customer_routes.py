from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response

from routes.dependencies import get_current_user, get_customer_service, pagination_params, require_roles
from routes.responses import unwrap
from schemas.common import Page, PaginationParams
from schemas.customer import (
    Customer, CustomerCreate, CustomerFilter, CustomerStatus, CustomerUpdate, LoyaltyPointsRequest, MembershipLevel
)
from schemas.reservation import Reservation
from schemas.user import CurrentUser
from services.customer_service import CustomerService

router = APIRouter(
    prefix="/customers",
    tags=["customers"]
)


@router.get("/", response_model=Page[Customer])
async def list_customers(
    search: Optional[str] = Query(None, max_length=100, description="Matches name or email"),
    status: Optional[CustomerStatus] = None,
    membership_level: Optional[MembershipLevel] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: CustomerService = Depends(get_customer_service)
):
    filters = CustomerFilter(search=search, status=status, membership_level=membership_level)
    return unwrap(await service.list_customers(filters, pagination, user))


@router.post("/", response_model=Customer, status_code=201)
async def create_customer(
    request: CustomerCreate,
    response: Response,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: CustomerService = Depends(get_customer_service)
):
    customer = unwrap(await service.create_customer(request, user))
    response.headers["Location"] = f"/api/v1/customers/{customer.data.id}"
    return customer


@router.get("/{customer_id}", response_model=Customer)
async def get_customer(
    customer_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    return unwrap(await service.get_customer(customer_id, user))


@router.put("/{customer_id}", response_model=Customer)
async def update_customer(
    customer_id: str,
    request: CustomerUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    return unwrap(await service.update_customer(customer_id, request, user))


@router.delete("/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    unwrap(await service.delete_customer(customer_id, user))
    return Response(status_code=204)


@router.get("/{customer_id}/reservations", response_model=Page[Reservation])
async def list_customer_reservations(
    customer_id: str,
    pagination: PaginationParams = Depends(pagination_params),
    user: CurrentUser = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    return unwrap(await service.list_customer_reservations(customer_id, pagination, user))


@router.get("/{customer_id}/notifications", response_model=List[Dict[str, Any]])
async def list_customer_notifications(
    customer_id: str,
    pagination: PaginationParams = Depends(pagination_params),
    user: CurrentUser = Depends(get_current_user),
    service: CustomerService = Depends(get_customer_service)
):
    return unwrap(await service.list_customer_notifications(customer_id, pagination, user))


@router.post("/{customer_id}/loyalty-points", response_model=Customer)
async def add_loyalty_points(
    customer_id: str,
    request: LoyaltyPointsRequest,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    service: CustomerService = Depends(get_customer_service)
):
    return unwrap(await service.grant_loyalty_points(customer_id, request.points, user))
