from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple
import logging

from config.database import Database
from crud.customer_crud import CustomerRepository
from crud.reservation_crud import ReservationRepository
from crud.salon_crud import SalonRepository
from crud.service_crud import ServiceRepository
from crud.staff_crud import StaffRepository
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.customer import ActiveCustomer
from schemas.errors import AppError, ErrorType, forbidden, validation_error
from schemas.reservation import (
    AvailabilityCheckRequest, AvailabilityCheckResponse, AvailableSlotsResponse, CancelRequest,
    CancelledReservation, CompletedReservation, ConfirmedReservation, NoShowReservation,
    PendingReservation, Reservation, ReservationCount, ReservationCreate, ReservationData,
    ReservationDetail, ReservationFilter, ReservationUpdate, TimeSlot, calculate_cancellation_fee,
    calculate_duration, can_be_modified, has_time_conflict, validate_deposit_amount, validate_time_range
)
from schemas.result import Result, ok, err
from schemas.service import ActiveService, Service
from schemas.staff import Staff, can_perform_service
from schemas.user import CurrentUser
from scripts.time_parse import at_time
from services.access import ensure_customer_access, ensure_salon_access
from services.customer_service import CustomerService
from services.notification_service import NotificationService
from services.salon_service import SalonService

logger = logging.getLogger(__name__)

SLOT_INTERVAL_MINUTES = 30
# One loyalty point per this much spent
LOYALTY_POINT_UNIT = 100


def _already_cancelled(reservation: Reservation) -> AppError:
    return AppError(ErrorType.RESERVATION_ALREADY_CANCELLED, "Reservation is already cancelled",
                    "reservation", reservation.data.id)


def _round_up_to_grid(moment: datetime) -> datetime:
    """Next slot boundary at or after ``moment``, counted from midnight."""
    midnight = datetime.combine(moment.date(), time.min)
    minutes = -(-(moment - midnight) // timedelta(minutes=SLOT_INTERVAL_MINUTES)) * SLOT_INTERVAL_MINUTES
    return midnight + timedelta(minutes=minutes)


def _invalid_status(reservation: Reservation, action: str) -> AppError:
    return AppError(ErrorType.INVALID_RESERVATION_STATUS,
                    f"Cannot {action} a {reservation.type} reservation",
                    "reservation", reservation.data.id, details={"status": reservation.type})


class ReservationService:
    def __init__(self, db: Database, notifications: Optional[NotificationService] = None):
        self.db = db
        self.reservations = ReservationRepository(db)
        self.services = ServiceRepository(db)
        self.staff = StaffRepository(db)
        self.salons = SalonRepository(db)
        self.customers = CustomerRepository(db)
        self.salon_service = SalonService(db)
        self.customer_service = CustomerService(db)
        self.notifications = notifications or NotificationService(db)

    async def _resolve_customer_id(self, request: ReservationCreate, actor: CurrentUser) -> Result[str, AppError]:
        if actor.role == "customer":
            if not actor.customer_id:
                return err(forbidden("Account has no customer profile"))
            if request.customer_id and request.customer_id != actor.customer_id:
                return err(forbidden("Customers can only book for themselves"))
            customer_id = actor.customer_id
        else:
            allowed = ensure_salon_access(actor, request.salon_id)
            if not allowed.is_ok:
                return allowed
            if not request.customer_id:
                return err(validation_error("customer_id is required", "customer_id"))
            customer_id = request.customer_id

        customer = await self.customers.get(customer_id)
        if not customer.is_ok:
            return customer
        if not isinstance(customer.value, ActiveCustomer):
            return err(AppError(ErrorType.CONSTRAINT_VIOLATION, "Customer account is not active", "customer", customer_id))
        return ok(customer_id)

    async def _load_service(self, salon_id: str, service_id: str) -> Result[Service, AppError]:
        found = await self.services.get(service_id)
        if not found.is_ok:
            return found
        service = found.value
        if not isinstance(service, ActiveService) or service.data.salon_id != salon_id:
            return err(AppError(ErrorType.SERVICE_UNAVAILABLE, "Service is not offered by this salon",
                                "service", service_id))
        return found

    async def _load_staff(self, salon_id: str, staff_id: str, service_id: str) -> Result[Staff, AppError]:
        found = await self.staff.get(staff_id)
        if not found.is_ok:
            return found
        staff = found.value
        if staff.data.salon_id != salon_id or not can_perform_service(staff, service_id):
            return err(AppError(ErrorType.STAFF_UNAVAILABLE, "Staff member cannot perform this service",
                                "staff", staff_id))
        return found

    async def _get_accessible(self, reservation_id: str, actor: CurrentUser) -> Result[Reservation, AppError]:
        found = await self.reservations.get(reservation_id)
        if not found.is_ok:
            return found
        reservation = found.value
        allowed = ensure_customer_access(actor, reservation.data.customer_id, reservation.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found

    async def _get_managed(self, reservation_id: str, actor: CurrentUser) -> Result[Reservation, AppError]:
        found = await self.reservations.get(reservation_id)
        if not found.is_ok:
            return found
        allowed = ensure_salon_access(actor, found.value.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found

    async def _store_transition(self, reservation: Reservation, actor: CurrentUser) -> Result[Reservation, AppError]:
        reservation.data.updated_at = utcnow()
        reservation.data.updated_by = actor.user_id
        saved = await self.reservations.save(reservation)
        if saved.is_ok:
            logger.info(f"Reservation {reservation.data.id} is now {reservation.type}")
            await self.notifications.send_reservation_status_notification(reservation)
        return saved

    async def create_reservation(self, request: ReservationCreate, actor: CurrentUser,
                                 now: Optional[datetime] = None) -> Result[Reservation, AppError]:
        customer_id = await self._resolve_customer_id(request, actor)
        if not customer_id.is_ok:
            return customer_id
        salon = await self.salon_service.get_active_salon(request.salon_id)
        if not salon.is_ok:
            return salon
        service = await self._load_service(request.salon_id, request.service_id)
        if not service.is_ok:
            return service
        staff = await self._load_staff(request.salon_id, request.staff_id, request.service_id)
        if not staff.is_ok:
            return staff

        start_time = request.start_time
        end_time = start_time + timedelta(minutes=service.value.data.duration_minutes)
        time_range = validate_time_range(start_time, end_time, now)
        if not time_range.is_ok:
            return time_range
        deposit = validate_deposit_amount(request.deposit_amount, service.value.data.price)
        if not deposit.is_ok:
            return deposit

        conflict = await self.reservations.has_conflict(request.staff_id, start_time, end_time)
        if not conflict.is_ok:
            return conflict
        if conflict.value:
            return err(AppError(
                ErrorType.SLOT_NOT_AVAILABLE,
                "The staff member already has a reservation in this time slot",
                "reservation",
                details={"staff_id": request.staff_id, "start_time": start_time.isoformat()}
            ))

        reservation = PendingReservation(data=ReservationData(
            id=generate_id("rsv"),
            salon_id=request.salon_id,
            customer_id=customer_id.value,
            staff_id=request.staff_id,
            service_id=request.service_id,
            start_time=start_time,
            end_time=end_time,
            notes=request.notes,
            total_amount=service.value.data.price,
            deposit_amount=deposit.value,
            created_by=actor.user_id,
        ))
        created = await self.reservations.create(reservation)
        if created.is_ok:
            await self.notifications.send_reservation_status_notification(reservation)
        return created

    async def get_reservation(self, reservation_id: str, actor: CurrentUser) -> Result[Reservation, AppError]:
        return await self._get_accessible(reservation_id, actor)

    async def get_reservation_detail(self, reservation_id: str, actor: CurrentUser) -> Result[ReservationDetail, AppError]:
        found = await self._get_accessible(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value

        names: Dict[str, Optional[str]] = {}
        for key, repository, entity_id in (
            ("customer_name", self.customers, reservation.data.customer_id),
            ("staff_name", self.staff, reservation.data.staff_id),
            ("service_name", self.services, reservation.data.service_id),
            ("salon_name", self.salons, reservation.data.salon_id),
        ):
            related = await repository.get(entity_id)
            if related.is_ok:
                names[key] = related.value.data.name
            elif related.error.type != ErrorType.NOT_FOUND:
                return related
            else:
                names[key] = None

        return ok(ReservationDetail(
            reservation=reservation,
            duration_minutes=calculate_duration(reservation.data.start_time, reservation.data.end_time),
            can_be_modified=can_be_modified(reservation),
            **names
        ))

    async def list_reservations(self, filters: ReservationFilter, pagination: PaginationParams,
                                actor: CurrentUser) -> Result[Page[Reservation], AppError]:
        if actor.role == "customer":
            filters = filters.model_copy(update={"customer_id": actor.customer_id})
        elif not actor.is_admin and actor.salon_id:
            filters = filters.model_copy(update={"salon_id": actor.salon_id})
        return await self.reservations.list(filters, pagination)

    async def update_reservation(self, reservation_id: str, request: ReservationUpdate, actor: CurrentUser,
                                 now: Optional[datetime] = None) -> Result[Reservation, AppError]:
        found = await self._get_accessible(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value
        now = now or utcnow()
        if not can_be_modified(reservation, now):
            return err(AppError(ErrorType.RESERVATION_NOT_MODIFIABLE,
                                "Reservation can no longer be modified", "reservation", reservation_id))

        staff_id = request.staff_id or reservation.data.staff_id
        if request.staff_id and request.staff_id != reservation.data.staff_id:
            staff = await self._load_staff(reservation.data.salon_id, request.staff_id, reservation.data.service_id)
            if not staff.is_ok:
                return staff

        start_time, end_time = reservation.data.start_time, reservation.data.end_time
        if request.start_time:
            duration = end_time - start_time
            start_time, end_time = request.start_time, request.start_time + duration
            time_range = validate_time_range(start_time, end_time, now)
            if not time_range.is_ok:
                return time_range

        if staff_id != reservation.data.staff_id or start_time != reservation.data.start_time:
            conflict = await self.reservations.has_conflict(staff_id, start_time, end_time, exclude_id=reservation_id)
            if not conflict.is_ok:
                return conflict
            if conflict.value:
                return err(AppError(ErrorType.SLOT_NOT_AVAILABLE,
                                    "The staff member already has a reservation in this time slot",
                                    "reservation", reservation_id))

        reservation.data.staff_id = staff_id
        reservation.data.start_time = start_time
        reservation.data.end_time = end_time
        if "notes" in request.model_fields_set:
            reservation.data.notes = request.notes
        reservation.data.updated_at = utcnow()
        reservation.data.updated_by = actor.user_id
        return await self.reservations.save(reservation)

    async def confirm_reservation(self, reservation_id: str, actor: CurrentUser) -> Result[Reservation, AppError]:
        found = await self._get_managed(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value

        if isinstance(reservation, ConfirmedReservation):
            return err(AppError(ErrorType.RESERVATION_ALREADY_CONFIRMED, "Reservation is already confirmed",
                                "reservation", reservation_id))
        if isinstance(reservation, CancelledReservation):
            return err(_already_cancelled(reservation))
        if not isinstance(reservation, PendingReservation):
            return err(_invalid_status(reservation, "confirm"))

        confirmed = ConfirmedReservation(data=reservation.data, confirmed_at=utcnow(), confirmed_by=actor.user_id)
        return await self._store_transition(confirmed, actor)

    async def cancel_reservation(self, reservation_id: str, request: CancelRequest, actor: CurrentUser,
                                 now: Optional[datetime] = None) -> Result[Reservation, AppError]:
        found = await self._get_accessible(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value
        now = now or utcnow()

        if isinstance(reservation, CancelledReservation):
            return err(_already_cancelled(reservation))
        if isinstance(reservation, (CompletedReservation, NoShowReservation)):
            return err(_invalid_status(reservation, "cancel"))
        if now >= reservation.data.start_time:
            return err(AppError(ErrorType.RESERVATION_NOT_MODIFIABLE,
                                "Reservation has already started", "reservation", reservation_id))

        # Salon-initiated cancellations are free of charge
        fee = calculate_cancellation_fee(reservation, now) if actor.role == "customer" else 0.0
        cancelled = CancelledReservation(
            data=reservation.data,
            cancelled_at=now,
            cancelled_by=actor.user_id,
            reason=request.reason,
            cancellation_fee=fee,
        )
        return await self._store_transition(cancelled, actor)

    async def complete_reservation(self, reservation_id: str, actor: CurrentUser,
                                   now: Optional[datetime] = None) -> Result[Reservation, AppError]:
        found = await self._get_managed(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value
        now = now or utcnow()

        if isinstance(reservation, PendingReservation):
            return err(AppError(ErrorType.RESERVATION_NOT_CONFIRMED, "Reservation must be confirmed first",
                                "reservation", reservation_id))
        if isinstance(reservation, CancelledReservation):
            return err(_already_cancelled(reservation))
        if not isinstance(reservation, ConfirmedReservation):
            return err(_invalid_status(reservation, "complete"))
        if now < reservation.data.start_time:
            return err(AppError(ErrorType.RESERVATION_NOT_YET_PASSED, "Reservation has not started yet",
                                "reservation", reservation_id))

        completed = CompletedReservation(data=reservation.data, completed_at=now, completed_by=actor.user_id)
        saved = await self._store_transition(completed, actor)
        if not saved.is_ok:
            return saved

        points = int(reservation.data.total_amount // LOYALTY_POINT_UNIT)
        if points:
            awarded = await self.customer_service.add_loyalty_points(reservation.data.customer_id, points)
            if not awarded.is_ok:
                logger.warning(f"Could not award {points} points for reservation {reservation_id}: {awarded.error.message}")
        return saved

    async def mark_no_show(self, reservation_id: str, actor: CurrentUser,
                           now: Optional[datetime] = None) -> Result[Reservation, AppError]:
        found = await self._get_managed(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value
        now = now or utcnow()

        if isinstance(reservation, PendingReservation):
            return err(AppError(ErrorType.RESERVATION_NOT_CONFIRMED, "Reservation must be confirmed first",
                                "reservation", reservation_id))
        if isinstance(reservation, CancelledReservation):
            return err(_already_cancelled(reservation))
        if not isinstance(reservation, ConfirmedReservation):
            return err(_invalid_status(reservation, "mark as no-show"))
        if now < reservation.data.start_time:
            return err(AppError(ErrorType.RESERVATION_NOT_YET_PASSED, "Reservation time has not passed yet",
                                "reservation", reservation_id))

        no_show = NoShowReservation(data=reservation.data, marked_at=now, marked_by=actor.user_id)
        return await self._store_transition(no_show, actor)

    async def mark_paid(self, reservation_id: str, actor: CurrentUser) -> Result[Reservation, AppError]:
        found = await self._get_managed(reservation_id, actor)
        if not found.is_ok:
            return found
        reservation = found.value
        if isinstance(reservation, CancelledReservation):
            return err(_already_cancelled(reservation))

        reservation.data.is_paid = True
        reservation.data.updated_at = utcnow()
        reservation.data.updated_by = actor.user_id
        return await self.reservations.save(reservation)

    async def check_availability(self, request: AvailabilityCheckRequest) -> Result[AvailabilityCheckResponse, AppError]:
        time_range = validate_time_range(request.start_time, request.end_time, allow_past=True)
        if not time_range.is_ok:
            return time_range
        staff = await self.staff.get(request.staff_id)
        if not staff.is_ok:
            return staff

        conflict = await self.reservations.has_conflict(
            request.staff_id, request.start_time, request.end_time, exclude_id=request.exclude_reservation_id
        )
        if not conflict.is_ok:
            return conflict
        return ok(AvailabilityCheckResponse(
            staff_id=request.staff_id,
            start_time=request.start_time,
            end_time=request.end_time,
            available=not conflict.value,
        ))

    async def get_available_slots(self, salon_id: str, service_id: str, day: date, staff_id: Optional[str] = None,
                                  now: Optional[datetime] = None) -> Result[AvailableSlotsResponse, AppError]:
        """Free start times for ``service_id`` on ``day``.

        Candidates sit on a 30 minute grid inside each staff member's weekly
        availability (and the salon's opening hours when configured), skipping
        breaks and existing non-cancelled reservations.
        """
        salon = await self.salon_service.get_active_salon(salon_id)
        if not salon.is_ok:
            return salon
        service = await self._load_service(salon_id, service_id)
        if not service.is_ok:
            return service

        if staff_id:
            member = await self._load_staff(salon_id, staff_id, service_id)
            if not member.is_ok:
                return member
            members = [member.value]
        else:
            listed = await self.staff.list_active(salon_id, service_id)
            if not listed.is_ok:
                return listed
            members = listed.value

        empty = AvailableSlotsResponse(salon_id=salon_id, service_id=service_id, date=day, slots=[])
        weekday = day.weekday()
        opening = next((h for h in salon.value.data.opening_hours if h.day_of_week == weekday), None)
        if salon.value.data.opening_hours and (opening is None or opening.is_closed):
            return ok(empty)
        if not members:
            return ok(empty)

        day_start = datetime.combine(day, time.min)
        booked = await self.reservations.list_for_staff_between(
            [m.data.id for m in members], day_start, day_start + timedelta(days=1)
        )
        if not booked.is_ok:
            return booked
        busy: Dict[str, List[Tuple[datetime, datetime]]] = {}
        for reservation in booked.value:
            busy.setdefault(reservation.data.staff_id, []).append((reservation.data.start_time, reservation.data.end_time))

        now = now or utcnow()
        duration = timedelta(minutes=service.value.data.duration_minutes)
        step = timedelta(minutes=SLOT_INTERVAL_MINUTES)
        slots: List[TimeSlot] = []
        for member in members:
            for window in member.data.availability:
                if window.day_of_week != weekday:
                    continue
                window_start, window_end = at_time(day, window.start_time), at_time(day, window.end_time)
                if opening is not None:
                    window_start = max(window_start, at_time(day, opening.open_time))
                    window_end = min(window_end, at_time(day, opening.close_time))

                blocked = list(busy.get(member.data.id, []))
                if window.break_start:
                    blocked.append((at_time(day, window.break_start), at_time(day, window.break_end)))

                candidate = _round_up_to_grid(window_start)
                while candidate + duration <= window_end:
                    candidate_end = candidate + duration
                    if candidate > now and not any(
                        has_time_conflict(candidate, candidate_end, start, end) for start, end in blocked
                    ):
                        slots.append(TimeSlot(start_time=candidate, end_time=candidate_end, staff_id=member.data.id))
                    candidate += step

        slots.sort(key=lambda slot: (slot.start_time, slot.staff_id))
        return ok(empty.model_copy(update={"slots": slots}))

    async def count_reservations_by_date(self, salon_id: str, day: date,
                                         actor: CurrentUser) -> Result[ReservationCount, AppError]:
        allowed = ensure_salon_access(actor, salon_id)
        if not allowed.is_ok:
            return allowed
        day_start = datetime.combine(day, time.min)
        counts = await self.reservations.count_by_status(salon_id, day_start, day_start + timedelta(days=1))
        if not counts.is_ok:
            return counts
        return ok(ReservationCount(salon_id=salon_id, date=day, total=sum(counts.value.values()), by_status=counts.value))
