from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from schemas.booking import (
    BookingData, CancelledBooking, ConfirmedBooking, PendingBooking, calculate_final_amount, calculate_refund,
    check_transition, remaining_balance
)
from schemas.common import Page, generate_id, sanitize_text, to_naive_utc
from schemas.customer import membership_level_for
from schemas.errors import AppError, ErrorType
from schemas.reservation import (
    CancelledReservation, CompletedReservation, ConfirmedReservation, NoShowReservation, PendingReservation,
    ReservationData, calculate_cancellation_fee, can_be_modified, has_time_conflict, reservation_adapter,
    status_message, validate_deposit_amount, validate_time_range
)
from schemas.review import PublishedReview, ReviewData, is_editable, validate_rating, validate_review_content
from schemas.salon import OpeningHours, SalonCreate
from schemas.staff import AvailabilitySlot, StaffCreate
from schemas.user import validate_password_strength

START = datetime(2030, 1, 7, 10, 0)


def make_reservation(start=START, minutes=60, amount=5000.0):
    return PendingReservation(data=ReservationData(
        id="rsv_test", salon_id="sln_1", customer_id="cus_1", staff_id="stf_1", service_id="svc_1",
        start_time=start, end_time=start + timedelta(minutes=minutes), total_amount=amount,
    ))


def make_booking(paid=0.0, total=10000.0, discount=0.0):
    return PendingBooking(data=BookingData(
        id="bkg_test", salon_id="sln_1", customer_id="cus_1", reservation_ids=["rsv_test"],
        starts_at=START, total_amount=total, discount_amount=discount,
        final_amount=total - discount, paid_amount=paid,
    ))


class TestCommon:
    """Identifiers, timestamps and sanitizing"""

    def test_generate_id_format(self):
        """Test ids carry the prefix and 21 lowercase alphanumerics"""
        value = generate_id("rsv")
        prefix, random_part = value.split("_")
        assert prefix == "rsv"
        assert len(random_part) == 21
        assert random_part.isalnum() and random_part == random_part.lower()

    def test_generate_id_unique(self):
        assert len({generate_id("cus") for _ in range(200)}) == 200

    def test_to_naive_utc_truncates_to_milliseconds(self):
        value = to_naive_utc(datetime(2030, 1, 7, 10, 0, 0, 123456))
        assert value.microsecond == 123000
        assert value.tzinfo is None

    def test_sanitize_text_strips_tags(self):
        """Test HTML is removed from user supplied text"""
        assert sanitize_text("<script>alert(1)</script>Nice <b>cut</b>") == "alert(1)Nice cut"
        assert sanitize_text(None) is None

    def test_page_serializes_its_fields_only(self):
        page = Page[int](items=[1, 2], total=5, limit=2, offset=0)
        assert page.model_dump() == {"items": [1, 2], "total": 5, "limit": 2, "offset": 0}


class TestAppError:
    def test_code_is_upper_snake(self):
        error = AppError(ErrorType.SLOT_NOT_AVAILABLE, "taken")
        assert error.code == "SLOT_NOT_AVAILABLE"
        assert error.to_detail() == {"code": "SLOT_NOT_AVAILABLE", "message": "taken"}

    @pytest.mark.parametrize("error_type, status", [
        (ErrorType.NOT_FOUND, 404),
        (ErrorType.RESERVATION_NOT_FOUND, 404),
        (ErrorType.INVALID_RATING, 400),
        (ErrorType.UNAUTHORIZED, 401),
        (ErrorType.FORBIDDEN, 403),
        (ErrorType.ACCOUNT_LOCKED, 423),
        (ErrorType.SLOT_NOT_AVAILABLE, 409),
        (ErrorType.DUPLICATE_REVIEW, 409),
        (ErrorType.DATABASE_ERROR, 500),
        (ErrorType.CONNECTION_ERROR, 503),
    ])
    def test_status_codes(self, error_type, status):
        assert AppError(error_type, "x").status_code == status


class TestReservationRules:
    """Pure reservation validations"""

    def test_time_range_rejects_reversed_range(self):
        result = validate_time_range(START, START - timedelta(minutes=30), now=START - timedelta(days=1))
        assert not result.is_ok
        assert result.error.type == ErrorType.INVALID_TIME_RANGE

    def test_time_range_rejects_equal_bounds(self):
        result = validate_time_range(START, START, now=START - timedelta(days=1))
        assert result.error.type == ErrorType.INVALID_TIME_RANGE

    def test_time_range_rejects_past_start(self):
        result = validate_time_range(START, START + timedelta(hours=1), now=START + timedelta(minutes=1))
        assert result.error.type == ErrorType.PAST_TIME_NOT_ALLOWED

    def test_time_range_allows_past_when_asked(self):
        result = validate_time_range(START, START + timedelta(hours=1), now=START + timedelta(days=1), allow_past=True)
        assert result.is_ok

    def test_time_range_rejects_overlong_reservation(self):
        result = validate_time_range(START, START + timedelta(minutes=481), now=START - timedelta(days=1))
        assert result.error.type == ErrorType.INVALID_TIME_RANGE

    def test_deposit_cannot_exceed_total(self):
        assert validate_deposit_amount(1000, 5000).is_ok
        result = validate_deposit_amount(6000, 5000)
        assert result.error.type == ErrorType.INVALID_AMOUNT
        assert validate_deposit_amount(-1, 5000).error.type == ErrorType.INVALID_AMOUNT

    def test_touching_intervals_do_not_conflict(self):
        """Test a reservation ending at 11:00 does not block one starting at 11:00"""
        ten, eleven, noon = START, START + timedelta(hours=1), START + timedelta(hours=2)
        assert not has_time_conflict(ten, eleven, eleven, noon)
        assert has_time_conflict(ten, noon, eleven, eleven + timedelta(minutes=30))
        assert has_time_conflict(eleven, eleven + timedelta(minutes=30), ten, noon)

    @pytest.mark.parametrize("hours_before, expected_fee", [
        (72, 0.0),
        (48, 0.0),
        (30, 1500.0),
        (20, 2500.0),
        (12, 2500.0),
        (6, 5000.0),
    ])
    def test_cancellation_fee_policy(self, hours_before, expected_fee):
        reservation = make_reservation()
        now = START - timedelta(hours=hours_before)
        assert calculate_cancellation_fee(reservation, now) == expected_fee

    def test_can_be_modified_until_twelve_hours_before(self):
        reservation = make_reservation()
        assert can_be_modified(reservation, START - timedelta(hours=13))
        assert not can_be_modified(reservation, START - timedelta(hours=12))

    def test_finished_reservations_cannot_be_modified(self):
        completed = CompletedReservation(data=make_reservation().data, completed_at=START, completed_by="usr_1")
        assert not can_be_modified(completed, START - timedelta(days=5))

    def test_status_message_covers_every_variant(self):
        data = make_reservation().data
        variants = [
            PendingReservation(data=data),
            ConfirmedReservation(data=data, confirmed_at=START, confirmed_by="usr_1"),
            CancelledReservation(data=data, cancelled_at=START, cancelled_by="usr_1", cancellation_fee=2500),
            CompletedReservation(data=data, completed_at=START, completed_by="usr_1"),
            NoShowReservation(data=data, marked_at=START, marked_by="usr_1"),
        ]
        messages = [status_message(variant) for variant in variants]
        assert len(set(messages)) == 5
        assert "2500" in messages[2]

    def test_status_message_rejects_unknown_variant(self):
        with pytest.raises(TypeError):
            status_message(object())

    def test_adapter_picks_variant_from_type(self):
        """Test stored documents come back as the matching variant"""
        document = CancelledReservation(
            data=make_reservation().data, cancelled_at=START, cancelled_by="usr_1", reason="sick"
        ).model_dump()
        restored = reservation_adapter.validate_python(document)
        assert isinstance(restored, CancelledReservation)
        assert restored.reason == "sick"


class TestBookingRules:
    def test_final_amount(self):
        assert calculate_final_amount(10000, 1500).value == 8500
        assert calculate_final_amount(10000, 10001).error.type == ErrorType.INVALID_AMOUNT
        assert calculate_final_amount(10000, -1).error.type == ErrorType.INVALID_AMOUNT

    def test_booking_data_checks_final_amount(self):
        with pytest.raises(ValidationError):
            BookingData(
                id="bkg_1", salon_id="sln_1", customer_id="cus_1", reservation_ids=["rsv_1"], starts_at=START,
                total_amount=10000, discount_amount=1000, final_amount=10000,
            )

    def test_booking_needs_a_reservation(self):
        with pytest.raises(ValidationError):
            BookingData(
                id="bkg_1", salon_id="sln_1", customer_id="cus_1", reservation_ids=[], starts_at=START,
                total_amount=0, final_amount=0,
            )

    def test_transitions(self):
        pending = make_booking()
        assert check_transition(pending, "confirmed").is_ok
        result = check_transition(pending, "completed")
        assert result.error.type == ErrorType.INVALID_STATUS_TRANSITION
        assert result.error.details == {"from": "pending", "to": "completed"}

    def test_cancelled_is_terminal(self):
        cancelled = CancelledBooking(data=make_booking().data, cancelled_at=START, cancelled_by="usr_1")
        for target in ("pending", "confirmed", "in_progress", "completed", "no_show"):
            assert not check_transition(cancelled, target).is_ok

    @pytest.mark.parametrize("hours_before, expected_refund", [
        (50, 4000.0),
        (30, 2800.0),
        (13, 2000.0),
        (2, 0.0),
    ])
    def test_refund_policy(self, hours_before, expected_refund):
        booking = ConfirmedBooking(data=make_booking(paid=4000).data, confirmed_at=START, confirmed_by="usr_1")
        assert calculate_refund(booking, START - timedelta(hours=hours_before)) == expected_refund

    def test_remaining_balance(self):
        assert remaining_balance(make_booking(paid=2500, total=10000, discount=500)) == 7000


class TestReviewRules:
    @pytest.mark.parametrize("value", [0, 6, -1, None])
    def test_invalid_overall_rating(self, value):
        result = validate_rating(value)
        assert result.error.type == ErrorType.INVALID_RATING

    @pytest.mark.parametrize("value", [1, 3, 5])
    def test_valid_rating(self, value):
        assert validate_rating(value).value == value

    def test_sub_rating_may_be_missing(self):
        assert validate_rating(None, "staff_rating").is_ok
        result = validate_rating(7, "staff_rating")
        assert result.error.details == {"field": "staff_rating"}

    def test_content_limits(self):
        assert validate_review_content("t" * 255, "c" * 5000).is_ok
        assert validate_review_content("t" * 256, None).error.type == ErrorType.VALIDATION_ERROR
        assert validate_review_content(None, "c" * 5001).error.type == ErrorType.VALIDATION_ERROR

    def test_edit_window(self):
        review = PublishedReview(
            data=ReviewData(id="rev_1", salon_id="sln_1", customer_id="cus_1", reservation_id="rsv_1",
                            rating=4, created_at=START),
            published_at=START,
        )
        assert is_editable(review, START + timedelta(days=30))
        assert not is_editable(review, START + timedelta(days=31))


class TestRequestModels:
    def test_opening_hours_order(self):
        with pytest.raises(ValidationError):
            OpeningHours(day_of_week=0, open_time="18:00", close_time="09:00")
        assert OpeningHours(day_of_week=6, open_time="18:00", close_time="09:00", is_closed=True).is_closed

    def test_opening_hours_time_format(self):
        with pytest.raises(ValidationError):
            OpeningHours(day_of_week=0, open_time="9am", close_time="18:00")

    def test_salon_rejects_duplicate_days(self):
        with pytest.raises(ValidationError):
            SalonCreate(
                name="Salon", address={"street": "1 St", "city": "Tokyo"}, phone="0312345678",
                opening_hours=[{"day_of_week": 1}, {"day_of_week": 1}],
            )

    def test_salon_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            SalonCreate(name="Salon", address={"street": "1 St", "city": "Tokyo"}, phone="1", owner="me")

    def test_availability_break_inside_window(self):
        with pytest.raises(ValidationError):
            AvailabilitySlot(day_of_week=0, start_time="10:00", end_time="19:00",
                             break_start="09:00", break_end="10:30")
        with pytest.raises(ValidationError):
            AvailabilitySlot(day_of_week=0, start_time="10:00", end_time="19:00", break_start="13:00")

    def test_staff_rejects_overlapping_availability(self):
        with pytest.raises(ValidationError):
            StaffCreate(salon_id="sln_1", name="Ken", availability=[
                {"day_of_week": 0, "start_time": "09:00", "end_time": "13:00"},
                {"day_of_week": 0, "start_time": "12:00", "end_time": "18:00"},
            ])

    def test_staff_name_is_sanitized(self):
        staff = StaffCreate(salon_id="sln_1", name="<i>Ken</i>")
        assert staff.name == "Ken"


class TestAccountRules:
    @pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678", "a1" * 40])
    def test_weak_passwords(self, password):
        assert validate_password_strength(password).error.type == ErrorType.WEAK_PASSWORD

    def test_strong_password(self):
        assert validate_password_strength("Secret123").is_ok

    @pytest.mark.parametrize("points, level", [
        (0, "regular"), (999, "regular"), (1000, "silver"), (5000, "gold"), (10000, "platinum"),
    ])
    def test_membership_levels(self, points, level):
        assert membership_level_for(points) == level
