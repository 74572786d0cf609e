from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from schemas.common import PaginationParams
from schemas.errors import ErrorType
from schemas.reservation import (
    AvailabilityCheckRequest, CancelRequest, ReservationCreate, ReservationFilter, ReservationUpdate
)
from schemas.salon import OpeningHours
from schemas.staff import AvailabilitySlot
from services.reservation_service import ReservationService
from tests.factories import (
    ADMIN, MONDAY, NOW, at, create_customer, create_salon, create_service, create_staff, customer_actor,
    staff_actor
)


class TestReservationService:
    """Reservation lifecycle against an in-memory database"""

    @pytest.fixture
    async def setup(self, db):
        salon = await create_salon(db)
        service = await create_service(db, salon.data.id)
        staff = await create_staff(db, salon.data.id)
        customer = await create_customer(db)
        notifications = AsyncMock()
        return {
            "db": db,
            "salon": salon,
            "service": service,
            "staff": staff,
            "customer": customer,
            "actor": customer_actor(customer.data.id),
            "notifications": notifications,
            "reservations": ReservationService(db, notifications=notifications),
        }

    def request_for(self, setup, start, **overrides):
        fields = {
            "salon_id": setup["salon"].data.id,
            "staff_id": setup["staff"].data.id,
            "service_id": setup["service"].data.id,
            "start_time": start,
        }
        fields.update(overrides)
        return ReservationCreate(**fields)

    async def create(self, setup, start, actor=None):
        return await setup["reservations"].create_reservation(
            self.request_for(setup, start), actor or setup["actor"], now=NOW
        )

    async def test_create_reservation(self, setup):
        """Test a new reservation is pending and priced from the service"""
        result = await self.create(setup, at(10))

        assert result.is_ok
        reservation = result.value
        assert reservation.type == "pending"
        assert reservation.data.end_time == at(11)
        assert reservation.data.total_amount == 5000.0
        assert reservation.data.customer_id == setup["customer"].data.id
        assert reservation.data.id.startswith("rsv_")
        setup["notifications"].send_reservation_status_notification.assert_awaited_once()

    async def test_overlapping_reservation_is_rejected(self, setup):
        """Test the same staff member cannot be double booked"""
        assert (await self.create(setup, at(10))).is_ok

        result = await self.create(setup, at(10, 30))

        assert not result.is_ok
        assert result.error.type == ErrorType.SLOT_NOT_AVAILABLE
        assert result.error.status_code == 409

    async def test_adjacent_reservation_is_allowed(self, setup):
        assert (await self.create(setup, at(10))).is_ok
        assert (await self.create(setup, at(11))).is_ok

    async def test_cancelled_reservation_frees_the_slot(self, setup):
        first = await self.create(setup, at(10))
        cancelled = await setup["reservations"].cancel_reservation(
            first.value.data.id, CancelRequest(reason="change of plans"), setup["actor"], now=NOW
        )
        assert cancelled.is_ok

        assert (await self.create(setup, at(10))).is_ok

    async def test_past_start_is_rejected(self, setup):
        result = await setup["reservations"].create_reservation(
            self.request_for(setup, NOW - timedelta(hours=1)), setup["actor"], now=NOW
        )
        assert result.error.type == ErrorType.PAST_TIME_NOT_ALLOWED

    async def test_customer_cannot_book_for_someone_else(self, setup):
        other = await create_customer(setup["db"])
        result = await setup["reservations"].create_reservation(
            self.request_for(setup, at(10), customer_id=other.data.id), setup["actor"], now=NOW
        )
        assert result.error.type == ErrorType.FORBIDDEN

    async def test_staff_must_name_the_customer(self, setup):
        actor = staff_actor(setup["salon"].data.id)
        missing = await setup["reservations"].create_reservation(self.request_for(setup, at(10)), actor, now=NOW)
        assert missing.error.type == ErrorType.VALIDATION_ERROR

        named = await setup["reservations"].create_reservation(
            self.request_for(setup, at(10), customer_id=setup["customer"].data.id), actor, now=NOW
        )
        assert named.is_ok

    async def test_staff_must_offer_the_service(self, setup):
        other_service = await create_service(setup["db"], setup["salon"].data.id, name="Color")
        picky = await create_staff(setup["db"], setup["salon"].data.id, service_ids=[other_service.data.id])

        result = await setup["reservations"].create_reservation(
            self.request_for(setup, at(10), staff_id=picky.data.id), setup["actor"], now=NOW
        )
        assert result.error.type == ErrorType.STAFF_UNAVAILABLE

    async def test_deposit_above_price_is_rejected(self, setup):
        result = await setup["reservations"].create_reservation(
            self.request_for(setup, at(10), deposit_amount=6000), setup["actor"], now=NOW
        )
        assert result.error.type == ErrorType.INVALID_AMOUNT

    async def test_unknown_reservation(self, setup):
        result = await setup["reservations"].get_reservation("rsv_missing", ADMIN)
        assert result.error.type == ErrorType.RESERVATION_NOT_FOUND
        assert result.error.status_code == 404

    async def test_other_customer_cannot_read(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].get_reservation(created.value.data.id, customer_actor("cus_other"))
        assert result.error.type == ErrorType.FORBIDDEN

    async def test_confirm_then_confirm_again(self, setup):
        created = await self.create(setup, at(10))
        reservation_id = created.value.data.id

        confirmed = await setup["reservations"].confirm_reservation(reservation_id, ADMIN)
        assert confirmed.value.type == "confirmed"
        assert confirmed.value.confirmed_by == ADMIN.user_id

        again = await setup["reservations"].confirm_reservation(reservation_id, ADMIN)
        assert again.error.type == ErrorType.RESERVATION_ALREADY_CONFIRMED

    async def test_customer_cancellation_fee(self, setup):
        """Test a customer cancelling 20 hours ahead pays half the price"""
        created = await self.create(setup, at(10))
        result = await setup["reservations"].cancel_reservation(
            created.value.data.id, CancelRequest(), setup["actor"], now=at(10) - timedelta(hours=20)
        )
        assert result.value.type == "cancelled"
        assert result.value.cancellation_fee == 2500.0

    async def test_salon_cancellation_is_free(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].cancel_reservation(
            created.value.data.id, CancelRequest(), ADMIN, now=at(10) - timedelta(hours=2)
        )
        assert result.value.cancellation_fee == 0

    async def test_cancel_twice(self, setup):
        created = await self.create(setup, at(10))
        reservation_id = created.value.data.id
        await setup["reservations"].cancel_reservation(reservation_id, CancelRequest(), setup["actor"], now=NOW)

        again = await setup["reservations"].cancel_reservation(reservation_id, CancelRequest(), setup["actor"], now=NOW)
        assert again.error.type == ErrorType.RESERVATION_ALREADY_CANCELLED

    async def test_cancel_after_start(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].cancel_reservation(
            created.value.data.id, CancelRequest(), setup["actor"], now=at(10, 15)
        )
        assert result.error.type == ErrorType.RESERVATION_NOT_MODIFIABLE

    async def test_complete_requires_confirmation(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].complete_reservation(created.value.data.id, ADMIN, now=at(11))
        assert result.error.type == ErrorType.RESERVATION_NOT_CONFIRMED

    async def test_complete_before_start(self, setup):
        created = await self.create(setup, at(10))
        await setup["reservations"].confirm_reservation(created.value.data.id, ADMIN)
        result = await setup["reservations"].complete_reservation(created.value.data.id, ADMIN, now=at(9))
        assert result.error.type == ErrorType.RESERVATION_NOT_YET_PASSED

    async def test_complete_awards_loyalty_points(self, setup):
        created = await self.create(setup, at(10))
        await setup["reservations"].confirm_reservation(created.value.data.id, ADMIN)

        result = await setup["reservations"].complete_reservation(created.value.data.id, ADMIN, now=at(11))

        assert result.value.type == "completed"
        customer = await setup["reservations"].customers.get(setup["customer"].data.id)
        assert customer.value.data.loyalty_points == 50

    async def test_no_show(self, setup):
        created = await self.create(setup, at(10))
        await setup["reservations"].confirm_reservation(created.value.data.id, ADMIN)

        early = await setup["reservations"].mark_no_show(created.value.data.id, ADMIN, now=at(9))
        assert early.error.type == ErrorType.RESERVATION_NOT_YET_PASSED

        marked = await setup["reservations"].mark_no_show(created.value.data.id, ADMIN, now=at(10, 30))
        assert marked.value.type == "no_show"

        cancel = await setup["reservations"].cancel_reservation(
            created.value.data.id, CancelRequest(), ADMIN, now=at(9)
        )
        assert cancel.error.type == ErrorType.INVALID_RESERVATION_STATUS

    async def test_staff_of_another_salon_cannot_confirm(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].confirm_reservation(created.value.data.id, staff_actor("sln_other"))
        assert result.error.type == ErrorType.FORBIDDEN

    async def test_update_moves_reservation(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].update_reservation(
            created.value.data.id, ReservationUpdate(start_time=at(15), notes="window seat"), setup["actor"], now=NOW
        )
        assert result.value.data.start_time == at(15)
        assert result.value.data.end_time == at(16)
        assert result.value.data.notes == "window seat"

    async def test_update_into_taken_slot(self, setup):
        await self.create(setup, at(10))
        second = await self.create(setup, at(12))

        result = await setup["reservations"].update_reservation(
            second.value.data.id, ReservationUpdate(start_time=at(10, 30)), setup["actor"], now=NOW
        )
        assert result.error.type == ErrorType.SLOT_NOT_AVAILABLE

    async def test_update_keeps_own_slot(self, setup):
        """Test moving a reservation by 30 minutes does not conflict with itself"""
        created = await self.create(setup, at(10))
        result = await setup["reservations"].update_reservation(
            created.value.data.id, ReservationUpdate(start_time=at(10, 30)), setup["actor"], now=NOW
        )
        assert result.is_ok

    async def test_update_too_late(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].update_reservation(
            created.value.data.id, ReservationUpdate(notes="late"), setup["actor"], now=at(10) - timedelta(hours=3)
        )
        assert result.error.type == ErrorType.RESERVATION_NOT_MODIFIABLE

    async def test_mark_paid(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].mark_paid(created.value.data.id, ADMIN)
        assert result.value.data.is_paid

    async def test_check_availability(self, setup):
        await self.create(setup, at(10))
        staff_id = setup["staff"].data.id

        busy = await setup["reservations"].check_availability(
            AvailabilityCheckRequest(staff_id=staff_id, start_time=at(10, 30), end_time=at(11, 30))
        )
        free = await setup["reservations"].check_availability(
            AvailabilityCheckRequest(staff_id=staff_id, start_time=at(11), end_time=at(12))
        )
        assert busy.value.available is False
        assert free.value.available is True

    async def test_available_slots(self, setup):
        """Test slots skip the break, existing reservations and the end of the shift"""
        await self.create(setup, at(10))

        result = await setup["reservations"].get_available_slots(
            setup["salon"].data.id, setup["service"].data.id, MONDAY, now=NOW
        )

        starts = [slot.start_time for slot in result.value.slots]
        assert at(10) not in starts
        assert at(10, 30) not in starts
        assert at(11) in starts
        assert at(12, 30) not in starts
        assert at(13) not in starts
        assert at(14) in starts
        assert at(18) in starts
        assert at(18, 30) not in starts

    async def test_no_slots_when_salon_closed(self, setup):
        closed_on_monday = await create_salon(setup["db"], opening_hours=[
            OpeningHours(day_of_week=0, is_closed=True),
            OpeningHours(day_of_week=1, open_time="09:00", close_time="18:00"),
        ])
        service = await create_service(setup["db"], closed_on_monday.data.id)
        await create_staff(setup["db"], closed_on_monday.data.id)

        result = await setup["reservations"].get_available_slots(
            closed_on_monday.data.id, service.data.id, MONDAY, now=NOW
        )
        assert result.value.slots == []

    async def test_slots_clamped_to_opening_hours(self, setup):
        salon = await create_salon(setup["db"], opening_hours=[OpeningHours(day_of_week=0, open_time="12:00", close_time="16:00")])
        service = await create_service(setup["db"], salon.data.id)
        await create_staff(setup["db"], salon.data.id)

        result = await setup["reservations"].get_available_slots(salon.data.id, service.data.id, MONDAY, now=NOW)

        starts = [slot.start_time for slot in result.value.slots]
        assert starts[0] == at(12)
        assert starts[-1] == at(15)

    async def test_slots_stay_on_the_half_hour_grid(self, setup):
        """Test a shift starting off the grid still offers :00 and :30 starts only"""
        salon = await create_salon(setup["db"])
        service = await create_service(setup["db"], salon.data.id)
        await create_staff(setup["db"], salon.data.id, availability=[
            AvailabilitySlot(day_of_week=0, start_time="09:15", end_time="12:00")
        ])

        result = await setup["reservations"].get_available_slots(salon.data.id, service.data.id, MONDAY, now=NOW)

        starts = [slot.start_time for slot in result.value.slots]
        assert starts == [at(9, 30), at(10), at(10, 30), at(11)]

    async def test_list_is_scoped_to_the_customer(self, setup):
        await self.create(setup, at(10))
        other = await create_customer(setup["db"])
        await setup["reservations"].create_reservation(
            self.request_for(setup, at(15), customer_id=other.data.id), ADMIN, now=NOW
        )

        own = await setup["reservations"].list_reservations(ReservationFilter(), PaginationParams(), setup["actor"])
        everyone = await setup["reservations"].list_reservations(ReservationFilter(), PaginationParams(), ADMIN)
        assert own.value.total == 1
        assert everyone.value.total == 2

    async def test_count_by_date(self, setup):
        first = await self.create(setup, at(10))
        await self.create(setup, at(15))
        await setup["reservations"].confirm_reservation(first.value.data.id, ADMIN)

        result = await setup["reservations"].count_reservations_by_date(setup["salon"].data.id, MONDAY, ADMIN)
        assert result.value.total == 2
        assert result.value.by_status == {"confirmed": 1, "pending": 1}

    async def test_detail_resolves_names(self, setup):
        created = await self.create(setup, at(10))
        result = await setup["reservations"].get_reservation_detail(created.value.data.id, ADMIN)
        assert result.value.staff_name == "Hanako Sato"
        assert result.value.service_name == "Haircut"
        assert result.value.salon_name == "Test Salon"
        assert result.value.duration_minutes == 60
