from typing import Optional

from fastapi import APIRouter, Depends, Response

from routes.dependencies import get_service_catalog, pagination_params, require_roles
from routes.responses import unwrap
from schemas.common import Page, PaginationParams
from schemas.service import Service, ServiceCategory, ServiceCreate, ServiceFilter, ServiceUpdate
from schemas.user import CurrentUser
from services.service_catalog_service import ServiceCatalogService

router = APIRouter(
    prefix="/services",
    tags=["services"]
)


@router.get("/", response_model=Page[Service])
async def list_services(
    salon_id: Optional[str] = None,
    category: Optional[ServiceCategory] = None,
    active_only: bool = True,
    pagination: PaginationParams = Depends(pagination_params),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    filters = ServiceFilter(salon_id=salon_id, category=category, active_only=active_only)
    return unwrap(await catalog.list_services(filters, pagination))


@router.post("/", response_model=Service, status_code=201)
async def create_service(
    request: ServiceCreate,
    response: Response,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    service = unwrap(await catalog.create_service(request, user))
    response.headers["Location"] = f"/api/v1/services/{service.data.id}"
    return service


@router.get("/{service_id}", response_model=Service)
async def get_service(service_id: str, catalog: ServiceCatalogService = Depends(get_service_catalog)):
    return unwrap(await catalog.get_service(service_id))


@router.put("/{service_id}", response_model=Service)
async def update_service(
    service_id: str,
    request: ServiceUpdate,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    """Update a service with the provided data"""
    return unwrap(await catalog.update_service(service_id, request, user))


@router.post("/{service_id}/deactivate", response_model=Service)
async def deactivate_service(
    service_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    return unwrap(await catalog.deactivate_service(service_id, user))


@router.post("/{service_id}/activate", response_model=Service)
async def activate_service(
    service_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    return unwrap(await catalog.activate_service(service_id, user))


@router.post("/{service_id}/discontinue", response_model=Service)
async def discontinue_service(
    service_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    """Retire a service for good. Discontinued services cannot be reactivated."""
    return unwrap(await catalog.discontinue_service(service_id, user))


@router.delete("/{service_id}", status_code=204)
async def delete_service(
    service_id: str,
    user: CurrentUser = Depends(require_roles("staff", "admin")),
    catalog: ServiceCatalogService = Depends(get_service_catalog)
):
    unwrap(await catalog.discontinue_service(service_id, user))
    return Response(status_code=204)
