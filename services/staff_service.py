from typing import List
import logging

from config.database import Database
from crud.service_crud import ServiceRepository
from crud.staff_crud import StaffRepository
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.errors import AppError, ErrorType, invalid_transition, validation_error
from schemas.result import Result, ok, err
from schemas.staff import (
    ActiveStaff, AvailabilityUpdate, InactiveStaff, Staff, StaffCreate, StaffData, StaffFilter,
    StaffUpdate, TerminatedStaff
)
from schemas.user import CurrentUser
from services.access import ensure_salon_access
from services.salon_service import SalonService

logger = logging.getLogger(__name__)


class StaffService:
    def __init__(self, db: Database):
        self.db = db
        self.staff = StaffRepository(db)
        self.services = ServiceRepository(db)
        self.salon_service = SalonService(db)

    async def _check_services_belong_to_salon(self, service_ids: List[str], salon_id: str) -> Result[None, AppError]:
        for service_id in service_ids:
            found = await self.services.get(service_id)
            if not found.is_ok:
                return found
            if found.value.data.salon_id != salon_id:
                return err(validation_error(f"Service {service_id} does not belong to salon {salon_id}", "service_ids"))
        return ok(None)

    async def create_staff(self, request: StaffCreate, actor: CurrentUser) -> Result[Staff, AppError]:
        allowed = ensure_salon_access(actor, request.salon_id)
        if not allowed.is_ok:
            return allowed
        salon = await self.salon_service.get_active_salon(request.salon_id)
        if not salon.is_ok:
            return salon
        checked = await self._check_services_belong_to_salon(request.service_ids, request.salon_id)
        if not checked.is_ok:
            return checked

        staff = ActiveStaff(data=StaffData(id=generate_id("stf"), **request.model_dump()))
        created = await self.staff.create(staff)
        if created.is_ok:
            logger.info(f"Staff {staff.data.id} added to salon {request.salon_id}")
        return created

    async def get_staff(self, staff_id: str) -> Result[Staff, AppError]:
        return await self.staff.get(staff_id)

    async def list_staff(self, filters: StaffFilter, pagination: PaginationParams) -> Result[Page[Staff], AppError]:
        return await self.staff.list(filters, pagination)

    async def update_staff(self, staff_id: str, request: StaffUpdate, actor: CurrentUser) -> Result[Staff, AppError]:
        found = await self._get_managed(staff_id, actor)
        if not found.is_ok:
            return found
        staff = found.value
        if isinstance(staff, TerminatedStaff):
            return err(AppError(ErrorType.STAFF_UNAVAILABLE, "Terminated staff cannot be changed", "staff", staff_id))

        changes = request.model_dump(exclude_unset=True)
        if changes.get("service_ids"):
            checked = await self._check_services_belong_to_salon(changes["service_ids"], staff.data.salon_id)
            if not checked.is_ok:
                return checked

        staff.data = staff.data.model_copy(update={**changes, "updated_at": utcnow()})
        return await self.staff.save(staff)

    async def set_availability(self, staff_id: str, request: AvailabilityUpdate, actor: CurrentUser) -> Result[Staff, AppError]:
        found = await self._get_managed(staff_id, actor)
        if not found.is_ok:
            return found
        staff = found.value
        if isinstance(staff, TerminatedStaff):
            return err(AppError(ErrorType.STAFF_UNAVAILABLE, "Terminated staff cannot be changed", "staff", staff_id))

        staff.data.availability = request.availability
        staff.data.updated_at = utcnow()
        return await self.staff.save(staff)

    async def deactivate_staff(self, staff_id: str, actor: CurrentUser) -> Result[Staff, AppError]:
        found = await self._get_managed(staff_id, actor)
        if not found.is_ok:
            return found
        staff = found.value
        if not isinstance(staff, ActiveStaff):
            return err(invalid_transition("staff", staff.type, "inactive"))

        now = utcnow()
        staff.data.updated_at = now
        return await self.staff.save(InactiveStaff(data=staff.data, deactivated_at=now))

    async def activate_staff(self, staff_id: str, actor: CurrentUser) -> Result[Staff, AppError]:
        found = await self._get_managed(staff_id, actor)
        if not found.is_ok:
            return found
        staff = found.value
        if not isinstance(staff, InactiveStaff):
            return err(invalid_transition("staff", staff.type, "active"))

        staff.data.updated_at = utcnow()
        return await self.staff.save(ActiveStaff(data=staff.data))

    async def terminate_staff(self, staff_id: str, actor: CurrentUser) -> Result[Staff, AppError]:
        found = await self._get_managed(staff_id, actor)
        if not found.is_ok:
            return found
        staff = found.value
        if isinstance(staff, TerminatedStaff):
            return ok(staff)

        now = utcnow()
        staff.data.updated_at = now
        terminated = await self.staff.save(TerminatedStaff(data=staff.data, terminated_at=now))
        if terminated.is_ok:
            logger.info(f"Staff {staff_id} terminated by {actor.user_id}")
        return terminated

    async def _get_managed(self, staff_id: str, actor: CurrentUser) -> Result[Staff, AppError]:
        found = await self.staff.get(staff_id)
        if not found.is_ok:
            return found
        allowed = ensure_salon_access(actor, found.value.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found
