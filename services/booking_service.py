from datetime import datetime
from typing import Dict, List, Optional
import logging

from config.database import Database
from crud.booking_crud import BookingRepository
from crud.reservation_crud import ReservationRepository
from schemas.booking import (
    Booking, BookingCancelRequest, BookingCreate, BookingData, BookingFilter, BookingStatus,
    BookingUpdate, CancelledBooking, CompletedBooking, ConfirmedBooking, InProgressBooking,
    NoShowBooking, PaymentRequest, PendingBooking, calculate_final_amount, calculate_refund,
    check_transition, remaining_balance
)
from schemas.common import Page, PaginationParams, generate_id, utcnow
from schemas.errors import AppError, ErrorType, constraint_violation, reservation_not_found
from schemas.reservation import ACTIVE_STATUSES, CancelledReservation, Reservation
from schemas.result import Result, ok, err
from schemas.user import CurrentUser
from services.access import ensure_customer_access, ensure_salon_access
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(self, db: Database, notifications: Optional[NotificationService] = None):
        self.db = db
        self.bookings = BookingRepository(db)
        self.reservations = ReservationRepository(db)
        self.notifications = notifications or NotificationService(db)

    async def _get_accessible(self, booking_id: str, actor: CurrentUser) -> Result[Booking, AppError]:
        found = await self.bookings.get(booking_id)
        if not found.is_ok:
            return found
        allowed = ensure_customer_access(actor, found.value.data.customer_id, found.value.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found

    async def _get_managed(self, booking_id: str, actor: CurrentUser) -> Result[Booking, AppError]:
        found = await self.bookings.get(booking_id)
        if not found.is_ok:
            return found
        allowed = ensure_salon_access(actor, found.value.data.salon_id)
        if not allowed.is_ok:
            return allowed
        return found

    async def _load_reservations(self, reservation_ids: List[str]) -> Result[List[Reservation], AppError]:
        found = await self.reservations.get_many(reservation_ids)
        if not found.is_ok:
            return found
        by_id: Dict[str, Reservation] = {r.data.id: r for r in found.value}
        for reservation_id in reservation_ids:
            if reservation_id not in by_id:
                return err(reservation_not_found(reservation_id))
        return ok([by_id[reservation_id] for reservation_id in reservation_ids])

    async def create_booking(self, request: BookingCreate, actor: CurrentUser) -> Result[Booking, AppError]:
        reservation_ids = list(dict.fromkeys(request.reservation_ids))
        loaded = await self._load_reservations(reservation_ids)
        if not loaded.is_ok:
            return loaded
        reservations = loaded.value

        first = reservations[0]
        allowed = ensure_customer_access(actor, first.data.customer_id, first.data.salon_id)
        if not allowed.is_ok:
            return allowed
        for reservation in reservations:
            if reservation.data.customer_id != first.data.customer_id or reservation.data.salon_id != first.data.salon_id:
                return err(AppError(ErrorType.VALIDATION_ERROR,
                                    "All reservations of a booking must share the customer and salon",
                                    details={"field": "reservation_ids"}))
            if reservation.type not in ACTIVE_STATUSES:
                return err(AppError(ErrorType.INVALID_RESERVATION_STATUS,
                                    f"Reservation {reservation.data.id} is {reservation.type}",
                                    "reservation", reservation.data.id))
            if reservation.data.booking_id:
                return err(constraint_violation(f"Reservation {reservation.data.id} is already booked", "booking"))

        total = round(sum(r.data.total_amount for r in reservations), 2)
        final_amount = calculate_final_amount(total, request.discount_amount)
        if not final_amount.is_ok:
            return final_amount

        booking = PendingBooking(data=BookingData(
            id=generate_id("bkg"),
            salon_id=first.data.salon_id,
            customer_id=first.data.customer_id,
            reservation_ids=reservation_ids,
            starts_at=min(r.data.start_time for r in reservations),
            total_amount=total,
            discount_amount=request.discount_amount,
            final_amount=final_amount.value,
            payment_method=request.payment_method,
            notes=request.notes,
            created_by=actor.user_id,
        ))
        created = await self.bookings.create(booking)
        if not created.is_ok:
            return created

        linked = await self.reservations.link_to_booking(reservation_ids, booking.data.id)
        if not linked.is_ok or linked.value != len(reservation_ids):
            # Another request booked or cancelled one of them since they were loaded
            await self.reservations.unlink_booking(booking.data.id)
            await self.bookings.delete(booking.data.id)
            if not linked.is_ok:
                return linked
            logger.warning(f"Booking {booking.data.id} rolled back, reservations changed while booking")
            return err(constraint_violation("One of the reservations was booked or cancelled meanwhile", "booking"))
        logger.info(f"Booking {booking.data.id} created for {len(reservations)} reservation(s)")
        return created

    async def get_booking(self, booking_id: str, actor: CurrentUser) -> Result[Booking, AppError]:
        return await self._get_accessible(booking_id, actor)

    async def list_bookings(self, filters: BookingFilter, pagination: PaginationParams,
                            actor: CurrentUser) -> Result[Page[Booking], AppError]:
        if actor.role == "customer":
            filters = filters.model_copy(update={"customer_id": actor.customer_id})
        elif not actor.is_admin and actor.salon_id:
            filters = filters.model_copy(update={"salon_id": actor.salon_id})
        return await self.bookings.list(filters, pagination)

    async def update_booking(self, booking_id: str, request: BookingUpdate, actor: CurrentUser) -> Result[Booking, AppError]:
        found = await self._get_managed(booking_id, actor)
        if not found.is_ok:
            return found
        booking = found.value
        if booking.type not in ("pending", "confirmed"):
            return err(AppError(ErrorType.INVALID_STATUS_TRANSITION,
                                f"A {booking.type} booking cannot be changed", "booking", booking_id))

        changes = request.model_dump(exclude_unset=True)
        if "discount_amount" in changes:
            final_amount = calculate_final_amount(booking.data.total_amount, changes["discount_amount"])
            if not final_amount.is_ok:
                return final_amount
            if final_amount.value < booking.data.paid_amount:
                return err(AppError(ErrorType.INVALID_AMOUNT, "Discount would make the booking cost less than already paid"))
            changes["final_amount"] = final_amount.value

        booking.data = BookingData.model_validate({**booking.data.model_dump(), **changes, "updated_at": utcnow()})
        return await self.bookings.save(booking)

    async def transition_booking(self, booking_id: str, target: BookingStatus,
                                 actor: CurrentUser) -> Result[Booking, AppError]:
        """Move a booking along confirm / start / complete / no-show."""
        found = await self._get_managed(booking_id, actor)
        if not found.is_ok:
            return found
        booking = found.value
        if isinstance(booking, CancelledBooking) and target != "cancelled":
            return err(AppError(ErrorType.RESERVATION_ALREADY_CANCELLED, "Booking is already cancelled",
                                "booking", booking_id))
        allowed = check_transition(booking, target)
        if not allowed.is_ok:
            return allowed

        now = utcnow()
        booking.data.updated_at = now
        if target == "confirmed":
            moved = ConfirmedBooking(data=booking.data, confirmed_at=now, confirmed_by=actor.user_id)
        elif target == "in_progress":
            moved = InProgressBooking(data=booking.data, started_at=now)
        elif target == "completed":
            moved = CompletedBooking(data=booking.data, completed_at=now)
        elif target == "no_show":
            moved = NoShowBooking(data=booking.data, marked_at=now)
        else:
            return err(AppError(ErrorType.VALIDATION_ERROR, "Use the cancel operation to cancel a booking"))

        saved = await self.bookings.save(moved)
        if saved.is_ok:
            logger.info(f"Booking {booking_id} moved from {booking.type} to {target}")
        return saved

    async def cancel_booking(self, booking_id: str, request: BookingCancelRequest, actor: CurrentUser,
                             now: Optional[datetime] = None) -> Result[Booking, AppError]:
        found = await self._get_accessible(booking_id, actor)
        if not found.is_ok:
            return found
        booking = found.value
        now = now or utcnow()

        if isinstance(booking, CancelledBooking):
            return err(AppError(ErrorType.RESERVATION_ALREADY_CANCELLED, "Booking is already cancelled",
                                "booking", booking_id))
        allowed = check_transition(booking, "cancelled")
        if not allowed.is_ok:
            return allowed

        refund = calculate_refund(booking, now)
        booking.data.updated_at = now
        cancelled = CancelledBooking(
            data=booking.data,
            cancelled_at=now,
            cancelled_by=actor.user_id,
            reason=request.reason,
            refund_amount=refund,
        )
        saved = await self.bookings.save(cancelled)
        if not saved.is_ok:
            return saved

        linked = await self.reservations.get_many(booking.data.reservation_ids)
        if not linked.is_ok:
            return linked
        for reservation in linked.value:
            if reservation.type not in ACTIVE_STATUSES:
                continue
            reservation.data.updated_at = now
            reservation.data.updated_by = actor.user_id
            reservation_cancelled = CancelledReservation(
                data=reservation.data,
                cancelled_at=now,
                cancelled_by=actor.user_id,
                reason=request.reason or "Booking cancelled",
            )
            stored = await self.reservations.save(reservation_cancelled)
            if not stored.is_ok:
                return stored
            await self.notifications.send_reservation_status_notification(reservation_cancelled)

        logger.info(f"Booking {booking_id} cancelled with refund {refund}")
        return saved

    async def record_payment(self, booking_id: str, request: PaymentRequest, actor: CurrentUser) -> Result[Booking, AppError]:
        found = await self._get_managed(booking_id, actor)
        if not found.is_ok:
            return found
        booking = found.value

        if isinstance(booking, CancelledBooking):
            return err(AppError(ErrorType.RESERVATION_ALREADY_CANCELLED, "Booking is already cancelled",
                                "booking", booking_id))
        if isinstance(booking, NoShowBooking):
            return err(AppError(ErrorType.INVALID_RESERVATION_STATUS, "Cannot take payment for a no-show booking",
                                "booking", booking_id))
        balance = remaining_balance(booking)
        if request.amount > balance:
            return err(AppError(ErrorType.INVALID_AMOUNT, f"Payment exceeds the remaining balance of {balance}",
                                details={"remaining_balance": balance}))

        booking.data.paid_amount = round(booking.data.paid_amount + request.amount, 2)
        booking.data.payment_method = request.payment_method
        booking.data.updated_at = utcnow()
        saved = await self.bookings.save(booking)
        if not saved.is_ok:
            return saved

        if remaining_balance(booking) == 0:
            linked = await self.reservations.get_many(booking.data.reservation_ids)
            if not linked.is_ok:
                return linked
            for reservation in linked.value:
                if reservation.data.is_paid or isinstance(reservation, CancelledReservation):
                    continue
                reservation.data.is_paid = True
                reservation.data.updated_at = utcnow()
                stored = await self.reservations.save(reservation)
                if not stored.is_ok:
                    return stored
        return saved
