from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from crud.reservation_crud import ReservationRepository
from schemas.booking import BookingCancelRequest, BookingCreate, BookingUpdate, PaymentRequest
from schemas.errors import ErrorType
from schemas.reservation import ReservationCreate
from schemas.result import ok
from services.booking_service import BookingService
from services.reservation_service import ReservationService
from tests.factories import (
    ADMIN, NOW, at, create_customer, create_salon, create_service, create_staff, customer_actor
)


class TestBookingService:
    """Bookings grouping reservations, payments and cancellation"""

    @pytest.fixture
    async def setup(self, db):
        salon = await create_salon(db)
        cut = await create_service(db, salon.data.id)
        color = await create_service(db, salon.data.id, name="Color", category="color", price=8000.0)
        staff = await create_staff(db, salon.data.id)
        customer = await create_customer(db)
        actor = customer_actor(customer.data.id)
        notifications = AsyncMock()
        reservations = ReservationService(db, notifications=notifications)

        reservation_ids = []
        for service, start in ((cut, at(10)), (color, at(11))):
            created = await reservations.create_reservation(ReservationCreate(
                salon_id=salon.data.id, staff_id=staff.data.id, service_id=service.data.id, start_time=start
            ), actor, now=NOW)
            reservation_ids.append(created.value.data.id)

        return {
            "db": db,
            "salon": salon,
            "staff": staff,
            "cut": cut,
            "actor": actor,
            "reservation_ids": reservation_ids,
            "reservations": reservations,
            "notifications": notifications,
            "bookings": BookingService(db, notifications=notifications),
        }

    async def book(self, setup, discount=0.0):
        return await setup["bookings"].create_booking(
            BookingCreate(reservation_ids=setup["reservation_ids"], discount_amount=discount), setup["actor"]
        )

    async def test_create_booking_totals(self, setup):
        """Test the booking sums its reservations and applies the discount"""
        result = await self.book(setup, discount=1000)

        booking = result.value
        assert booking.type == "pending"
        assert booking.data.total_amount == 13000
        assert booking.data.final_amount == 12000
        assert booking.data.starts_at == at(10)

        linked = await ReservationRepository(setup["db"]).get(setup["reservation_ids"][0])
        assert linked.value.data.booking_id == booking.data.id

    async def test_discount_above_total(self, setup):
        result = await self.book(setup, discount=20000)
        assert result.error.type == ErrorType.INVALID_AMOUNT

    async def test_unknown_reservation(self, setup):
        result = await setup["bookings"].create_booking(
            BookingCreate(reservation_ids=["rsv_missing"]), setup["actor"]
        )
        assert result.error.type == ErrorType.RESERVATION_NOT_FOUND

    async def test_reservation_cannot_be_booked_twice(self, setup):
        assert (await self.book(setup)).is_ok
        again = await self.book(setup)
        assert again.error.type == ErrorType.CONSTRAINT_VIOLATION

    async def test_concurrent_booking_leaves_no_orphan(self, setup):
        """Test a reservation booked elsewhere after loading rolls the new booking back"""
        repository = ReservationRepository(setup["db"])
        loaded = (await repository.get_many(setup["reservation_ids"])).value
        await setup["db"].reservations.update_one(
            {"data.id": setup["reservation_ids"][1]}, {"$set": {"data.booking_id": "bkg_elsewhere"}}
        )
        setup["bookings"].reservations.get_many = AsyncMock(return_value=ok(loaded))

        result = await self.book(setup)

        assert result.error.type == ErrorType.CONSTRAINT_VIOLATION
        assert await setup["db"].bookings.count_documents({}) == 0
        first = await repository.get(setup["reservation_ids"][0])
        assert first.value.data.booking_id is None
        second = await repository.get(setup["reservation_ids"][1])
        assert second.value.data.booking_id == "bkg_elsewhere"

    async def test_reservations_must_share_customer(self, setup):
        other = await create_customer(setup["db"])
        foreign = await setup["reservations"].create_reservation(ReservationCreate(
            salon_id=setup["salon"].data.id, customer_id=other.data.id, staff_id=setup["staff"].data.id,
            service_id=setup["cut"].data.id, start_time=at(15)
        ), ADMIN, now=NOW)

        result = await setup["bookings"].create_booking(
            BookingCreate(reservation_ids=[setup["reservation_ids"][0], foreign.value.data.id]), ADMIN
        )
        assert result.error.type == ErrorType.VALIDATION_ERROR

    async def test_duplicate_ids_are_collapsed(self, setup):
        first = setup["reservation_ids"][0]
        result = await setup["bookings"].create_booking(BookingCreate(reservation_ids=[first, first]), setup["actor"])
        assert result.value.data.reservation_ids == [first]

    async def test_status_flow(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        bookings = setup["bookings"]

        assert (await bookings.transition_booking(booking_id, "confirmed", ADMIN)).value.type == "confirmed"
        assert (await bookings.transition_booking(booking_id, "in_progress", ADMIN)).value.type == "in_progress"
        assert (await bookings.transition_booking(booking_id, "completed", ADMIN)).value.type == "completed"

    async def test_invalid_transition(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        result = await setup["bookings"].transition_booking(booking_id, "completed", ADMIN)
        assert result.error.type == ErrorType.INVALID_STATUS_TRANSITION

    async def test_customer_cannot_confirm(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        result = await setup["bookings"].transition_booking(booking_id, "confirmed", setup["actor"])
        assert result.error.type == ErrorType.FORBIDDEN

    async def test_cancel_cascades_to_reservations(self, setup):
        booking_id = (await self.book(setup)).value.data.id

        result = await setup["bookings"].cancel_booking(
            booking_id, BookingCancelRequest(reason="sick"), setup["actor"], now=NOW
        )

        assert result.value.type == "cancelled"
        repository = ReservationRepository(setup["db"])
        for reservation_id in setup["reservation_ids"]:
            reservation = await repository.get(reservation_id)
            assert reservation.value.type == "cancelled"
            assert reservation.value.reason == "sick"

    async def test_cancel_twice(self, setup):
        """Test a second cancellation reports the booking as already cancelled"""
        booking_id = (await self.book(setup)).value.data.id
        await setup["bookings"].cancel_booking(booking_id, BookingCancelRequest(), setup["actor"], now=NOW)

        again = await setup["bookings"].cancel_booking(booking_id, BookingCancelRequest(), setup["actor"], now=NOW)

        assert again.error.type == ErrorType.RESERVATION_ALREADY_CANCELLED
        assert again.error.code == "RESERVATION_ALREADY_CANCELLED"

    async def test_refund_depends_on_notice(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        await setup["bookings"].record_payment(booking_id, PaymentRequest(amount=10000, payment_method="cash"), ADMIN)

        result = await setup["bookings"].cancel_booking(
            booking_id, BookingCancelRequest(), setup["actor"], now=at(10) - timedelta(hours=30)
        )
        assert result.value.refund_amount == 7000

    async def test_partial_then_full_payment(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        bookings = setup["bookings"]

        partial = await bookings.record_payment(booking_id, PaymentRequest(amount=3000, payment_method="cash"), ADMIN)
        assert partial.value.data.paid_amount == 3000
        reservation = await ReservationRepository(setup["db"]).get(setup["reservation_ids"][0])
        assert not reservation.value.data.is_paid

        full = await bookings.record_payment(booking_id, PaymentRequest(amount=10000, payment_method="credit_card"), ADMIN)
        assert full.value.data.paid_amount == 13000
        assert full.value.data.payment_method == "credit_card"
        reservation = await ReservationRepository(setup["db"]).get(setup["reservation_ids"][0])
        assert reservation.value.data.is_paid

    async def test_overpayment(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        result = await setup["bookings"].record_payment(
            booking_id, PaymentRequest(amount=13001, payment_method="cash"), ADMIN
        )
        assert result.error.type == ErrorType.INVALID_AMOUNT
        assert result.error.details == {"remaining_balance": 13000}

    async def test_update_discount(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        result = await setup["bookings"].update_booking(booking_id, BookingUpdate(discount_amount=3000), ADMIN)
        assert result.value.data.final_amount == 10000

    async def test_discount_below_paid_amount(self, setup):
        booking_id = (await self.book(setup)).value.data.id
        await setup["bookings"].record_payment(booking_id, PaymentRequest(amount=12000, payment_method="cash"), ADMIN)
        result = await setup["bookings"].update_booking(booking_id, BookingUpdate(discount_amount=3000), ADMIN)
        assert result.error.type == ErrorType.INVALID_AMOUNT
