import logging

from config.database import Database
from crud.service_crud import ServiceRepository
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.errors import AppError, ErrorType, invalid_transition
from schemas.result import Result, ok, err
from schemas.service import (
    ActiveService, DiscontinuedService, InactiveService, Service, ServiceCreate, ServiceData,
    ServiceFilter, ServiceUpdate
)
from schemas.user import CurrentUser
from services.access import ensure_salon_access
from services.salon_service import SalonService

logger = logging.getLogger(__name__)


class ServiceCatalogService:
    def __init__(self, db: Database):
        self.db = db
        self.services = ServiceRepository(db)
        self.salon_service = SalonService(db)

    async def create_service(self, request: ServiceCreate, actor: CurrentUser) -> Result[Service, AppError]:
        allowed = ensure_salon_access(actor, request.salon_id)
        if not allowed.is_ok:
            return allowed
        salon = await self.salon_service.get_active_salon(request.salon_id)
        if not salon.is_ok:
            return salon

        service = ActiveService(data=ServiceData(id=generate_id("svc"), **request.model_dump()))
        created = await self.services.create(service)
        if created.is_ok:
            logger.info(f"Service {service.data.id} added to salon {request.salon_id}")
        return created

    async def get_service(self, service_id: str) -> Result[Service, AppError]:
        return await self.services.get(service_id)

    async def list_services(self, filters: ServiceFilter, pagination: PaginationParams) -> Result[Page[Service], AppError]:
        return await self.services.list(filters, pagination)

    async def update_service(self, service_id: str, request: ServiceUpdate, actor: CurrentUser) -> Result[Service, AppError]:
        found = await self._get_managed(service_id, actor)
        if not found.is_ok:
            return found
        service = found.value
        if isinstance(service, DiscontinuedService):
            return err(AppError(ErrorType.SERVICE_UNAVAILABLE, "Discontinued services cannot be changed", "service", service_id))

        changes = request.model_dump(exclude_unset=True)
        service.data = service.data.model_copy(update={**changes, "updated_at": utcnow()})
        return await self.services.save(service)

    async def deactivate_service(self, service_id: str, actor: CurrentUser) -> Result[Service, AppError]:
        found = await self._get_managed(service_id, actor)
        if not found.is_ok:
            return found
        service = found.value
        if not isinstance(service, ActiveService):
            return err(invalid_transition("service", service.type, "inactive"))

        now = utcnow()
        service.data.updated_at = now
        return await self.services.save(InactiveService(data=service.data, deactivated_at=now))

    async def activate_service(self, service_id: str, actor: CurrentUser) -> Result[Service, AppError]:
        found = await self._get_managed(service_id, actor)
        if not found.is_ok:
            return found
        service = found.value
        if not isinstance(service, InactiveService):
            return err(invalid_transition("service", service.type, "active"))

        service.data.updated_at = utcnow()
        return await self.services.save(ActiveService(data=service.data))

    async def discontinue_service(self, service_id: str, actor: CurrentUser) -> Result[Service, AppError]:
        found = await self._get_managed(service_id, actor)
        if not found.is_ok:
            return found
        service = found.value
        if isinstance(service, DiscontinuedService):
            return ok(service)

        now = utcnow()
        service.data.updated_at = now
        return await self.services.save(DiscontinuedService(data=service.data, discontinued_at=now))

    async def _get_managed(self, service_id: str, actor: CurrentUser) -> Result[Service, AppError]:
        found = await self.services.get(service_id)
        if not found.is_ok:
            return found
        allowed = ensure_salon_access(actor, found.value.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found
