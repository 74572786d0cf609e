import logging

from config.database import Database
from crud.reservation_crud import ReservationRepository
from crud.salon_crud import SalonRepository
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.errors import AppError, ErrorType, constraint_violation
from schemas.result import Result, ok, err
from schemas.salon import (
    ActiveSalon, DeletedSalon, Salon, SalonCreate, SalonData, SalonFilter, SalonUpdate, SuspendedSalon
)
from schemas.user import CurrentUser
from services.access import ensure_admin, ensure_salon_access

logger = logging.getLogger(__name__)


class SalonService:
    def __init__(self, db: Database):
        self.db = db
        self.salons = SalonRepository(db)
        self.reservations = ReservationRepository(db)

    async def create_salon(self, request: SalonCreate, actor: CurrentUser) -> Result[Salon, AppError]:
        allowed = ensure_admin(actor)
        if not allowed.is_ok:
            return allowed
        salon = ActiveSalon(data=SalonData(id=generate_id("sln"), **request.model_dump()))
        created = await self.salons.create(salon)
        if created.is_ok:
            logger.info(f"Salon {salon.data.id} created by {actor.user_id}")
        return created

    async def get_salon(self, salon_id: str) -> Result[Salon, AppError]:
        return await self.salons.get(salon_id)

    async def get_active_salon(self, salon_id: str) -> Result[Salon, AppError]:
        found = await self.salons.get(salon_id)
        if not found.is_ok:
            return found
        if not isinstance(found.value, ActiveSalon):
            return err(AppError(ErrorType.SALON_UNAVAILABLE, "Salon is not accepting reservations", "salon", salon_id))
        return found

    async def list_salons(self, filters: SalonFilter, pagination: PaginationParams) -> Result[Page[Salon], AppError]:
        return await self.salons.list(filters, pagination)

    async def update_salon(self, salon_id: str, request: SalonUpdate, actor: CurrentUser) -> Result[Salon, AppError]:
        allowed = ensure_salon_access(actor, salon_id)
        if not allowed.is_ok:
            return allowed
        found = await self.salons.get(salon_id)
        if not found.is_ok:
            return found
        salon = found.value
        if isinstance(salon, DeletedSalon):
            return err(constraint_violation("Deleted salons cannot be updated", "salon"))

        changes = request.model_dump(exclude_unset=True)
        salon.data = SalonData.model_validate({**salon.data.model_dump(), **changes, "updated_at": utcnow()})
        return await self.salons.save(salon)

    async def delete_salon(self, salon_id: str, actor: CurrentUser) -> Result[Salon, AppError]:
        allowed = ensure_admin(actor)
        if not allowed.is_ok:
            return allowed
        found = await self.salons.get(salon_id)
        if not found.is_ok:
            return found
        salon = found.value
        if isinstance(salon, DeletedSalon):
            return ok(salon)

        upcoming = await self.reservations.has_upcoming("salon_id", salon_id)
        if not upcoming.is_ok:
            return upcoming
        if upcoming.value:
            return err(constraint_violation("Salon has upcoming reservations", "salon"))

        now = utcnow()
        salon.data.updated_at = now
        return await self.salons.save(DeletedSalon(data=salon.data, deleted_at=now))

    async def suspend_salon(self, salon_id: str, reason: str, actor: CurrentUser) -> Result[Salon, AppError]:
        allowed = ensure_admin(actor)
        if not allowed.is_ok:
            return allowed
        found = await self.salons.get(salon_id)
        if not found.is_ok:
            return found
        salon = found.value
        if not isinstance(salon, ActiveSalon):
            return err(AppError(ErrorType.INVALID_STATUS_TRANSITION, f"Cannot suspend a {salon.type} salon", "salon", salon_id))

        now = utcnow()
        salon.data.updated_at = now
        return await self.salons.save(SuspendedSalon(data=salon.data, suspended_at=now, reason=reason))

    async def reactivate_salon(self, salon_id: str, actor: CurrentUser) -> Result[Salon, AppError]:
        allowed = ensure_admin(actor)
        if not allowed.is_ok:
            return allowed
        found = await self.salons.get(salon_id)
        if not found.is_ok:
            return found
        salon = found.value
        if not isinstance(salon, SuspendedSalon):
            return err(AppError(ErrorType.INVALID_STATUS_TRANSITION, f"Cannot reactivate a {salon.type} salon", "salon", salon_id))

        salon.data.updated_at = utcnow()
        return await self.salons.save(ActiveSalon(data=salon.data))
