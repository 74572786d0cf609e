from typing import Any, Dict, List
import logging

from config.database import Database
from crud.customer_crud import CustomerRepository
from crud.reservation_crud import ReservationRepository
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.customer import (
    ActiveCustomer, Customer, CustomerCreate, CustomerData, CustomerFilter, CustomerUpdate,
    DeletedCustomer, membership_level_for
)
from schemas.errors import AppError, ErrorType, constraint_violation
from schemas.reservation import Reservation, ReservationFilter
from schemas.result import Result, ok, err
from schemas.user import CurrentUser
from services.access import ensure_customer_access, ensure_staff
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, db: Database):
        self.db = db
        self.customers = CustomerRepository(db)
        self.reservations = ReservationRepository(db)

    async def _email_taken(self, email: str, exclude_id: str = None) -> Result[bool, AppError]:
        found = await self.customers.find_by_email(email)
        if not found.is_ok:
            return found
        return ok(found.value is not None and found.value.data.id != exclude_id)

    async def create_customer(self, request: CustomerCreate, actor: CurrentUser) -> Result[Customer, AppError]:
        allowed = ensure_staff(actor)
        if not allowed.is_ok:
            return allowed

        email = request.email.lower()
        taken = await self._email_taken(email)
        if not taken.is_ok:
            return taken
        if taken.value:
            return err(AppError(ErrorType.DUPLICATE_EMAIL, "A customer with this email already exists"))

        customer = ActiveCustomer(data=CustomerData(
            id=generate_id("cus"),
            **{**request.model_dump(), "email": email}
        ))
        created = await self.customers.create(customer)
        if created.is_ok:
            logger.info(f"Customer {customer.data.id} created by {actor.user_id}")
        return created

    async def get_customer(self, customer_id: str, actor: CurrentUser) -> Result[Customer, AppError]:
        allowed = ensure_customer_access(actor, customer_id)
        if not allowed.is_ok:
            return allowed
        return await self.customers.get(customer_id)

    async def list_customers(self, filters: CustomerFilter, pagination: PaginationParams,
                             actor: CurrentUser) -> Result[Page[Customer], AppError]:
        allowed = ensure_staff(actor)
        if not allowed.is_ok:
            return allowed
        return await self.customers.list(filters, pagination)

    async def update_customer(self, customer_id: str, request: CustomerUpdate,
                              actor: CurrentUser) -> Result[Customer, AppError]:
        found = await self.get_customer(customer_id, actor)
        if not found.is_ok:
            return found
        customer = found.value
        if isinstance(customer, DeletedCustomer):
            return err(constraint_violation("Deleted customers cannot be updated", "customer"))

        changes: Dict[str, Any] = request.model_dump(exclude_unset=True)
        if changes.get("email"):
            changes["email"] = changes["email"].lower()
            taken = await self._email_taken(changes["email"], exclude_id=customer_id)
            if not taken.is_ok:
                return taken
            if taken.value:
                return err(AppError(ErrorType.DUPLICATE_EMAIL, "A customer with this email already exists"))

        customer.data = customer.data.model_copy(update={**changes, "updated_at": utcnow()})
        return await self.customers.save(customer)

    async def delete_customer(self, customer_id: str, actor: CurrentUser) -> Result[Customer, AppError]:
        found = await self.get_customer(customer_id, actor)
        if not found.is_ok:
            return found
        customer = found.value
        if isinstance(customer, DeletedCustomer):
            return ok(customer)

        upcoming = await self.reservations.has_upcoming("customer_id", customer_id)
        if not upcoming.is_ok:
            return upcoming
        if upcoming.value:
            return err(constraint_violation("Customer has upcoming reservations", "customer"))

        now = utcnow()
        customer.data.updated_at = now
        saved = await self.customers.save(DeletedCustomer(data=customer.data, deleted_at=now))
        if saved.is_ok:
            logger.info(f"Customer {customer_id} deleted by {actor.user_id}")
        return saved

    async def list_customer_reservations(self, customer_id: str, pagination: PaginationParams,
                                         actor: CurrentUser) -> Result[Page[Reservation], AppError]:
        found = await self.get_customer(customer_id, actor)
        if not found.is_ok:
            return found
        return await self.reservations.list(ReservationFilter(customer_id=customer_id), pagination)

    async def list_customer_notifications(self, customer_id: str, pagination: PaginationParams,
                                          actor: CurrentUser) -> Result[List[Dict[str, Any]], AppError]:
        found = await self.get_customer(customer_id, actor)
        if not found.is_ok:
            return found
        return ok(await NotificationService(self.db).list_for_customer(customer_id, pagination))

    async def add_loyalty_points(self, customer_id: str, points: int) -> Result[Customer, AppError]:
        found = await self.customers.get(customer_id)
        if not found.is_ok:
            return found
        customer = found.value
        customer.data.loyalty_points += points
        customer.data.membership_level = membership_level_for(customer.data.loyalty_points)
        customer.data.updated_at = utcnow()
        return await self.customers.save(customer)

    async def grant_loyalty_points(self, customer_id: str, points: int, actor: CurrentUser) -> Result[Customer, AppError]:
        allowed = ensure_staff(actor)
        if not allowed.is_ok:
            return allowed
        return await self.add_loyalty_points(customer_id, points)
