from unittest.mock import AsyncMock, MagicMock

import pytest
from twilio.base.exceptions import TwilioRestException

from config.settings import Settings
from schemas.common import PaginationParams
from schemas.reservation import CancelledReservation, PendingReservation, ReservationCreate, ReservationData
from services.notification_service import NotificationService
from services.reservation_service import ReservationService
from services.twilio_service import TwilioService
from tests.factories import (
    NOW, at, create_customer, create_salon, create_service, create_staff, customer_actor
)


@pytest.fixture
def twilio_settings():
    settings = Settings()
    settings.twilio_account_sid = "AC123"
    settings.twilio_auth_token = "token"
    settings.twilio_from_number = "+15550000000"
    return settings


class TestTwilioService:
    """SMS delivery through the Twilio client"""

    def test_missing_credentials(self):
        settings = Settings()
        settings.twilio_account_sid = None
        with pytest.raises(ValueError):
            TwilioService(settings, client=MagicMock())

    @pytest.mark.parametrize("raw, formatted", [
        ("090-1234-5678", "+819012345678"),
        ("+1 (555) 123-4567", "+15551234567"),
        ("819012345678", "+819012345678"),
    ])
    def test_format_phone_number(self, twilio_settings, raw, formatted):
        service = TwilioService(twilio_settings, client=MagicMock())
        assert service._format_phone_number(raw) == formatted

    async def test_send_sms(self, twilio_settings):
        client = MagicMock()
        service = TwilioService(twilio_settings, client=client)

        assert await service.send_sms("09012345678", "hello")

        client.messages.create.assert_called_once_with(body="hello", from_="+15550000000", to="+819012345678")

    async def test_rejected_sms(self, twilio_settings):
        client = MagicMock()
        client.messages.create.side_effect = TwilioRestException(400, "/Messages", msg="invalid number")
        service = TwilioService(twilio_settings, client=client)

        assert not await service.send_sms("0", "hello")

    async def test_unreachable_twilio(self, twilio_settings):
        client = MagicMock()
        client.messages.create.side_effect = ConnectionError("connection reset")
        service = TwilioService(twilio_settings, client=client)

        assert not await service.send_sms("09012345678", "hello")


class TestNotificationService:
    """Stored notifications with optional SMS"""

    async def reservation(self, db, status="pending"):
        salon = await create_salon(db, name="Ginza Salon")
        customer = await create_customer(db)
        data = ReservationData(
            id="rsv_1", salon_id=salon.data.id, customer_id=customer.data.id, staff_id="stf_1",
            service_id="svc_1", start_time=at(10), end_time=at(11), total_amount=5000.0
        )
        if status == "cancelled":
            return CancelledReservation(data=data, cancelled_at=at(9), cancelled_by="customer", cancellation_fee=0.0)
        return PendingReservation(data=data)

    async def test_stores_notification(self, db):
        reservation = await self.reservation(db)
        service = NotificationService(db)

        notification = await service.send_reservation_status_notification(reservation)

        assert notification["status"] == "pending"
        listed = await service.list_for_customer(reservation.data.customer_id, PaginationParams())
        assert len(listed) == 1
        assert listed[0]["reservation_id"] == "rsv_1"

    async def test_sends_sms(self, db):
        reservation = await self.reservation(db, status="cancelled")
        sms = AsyncMock()
        service = NotificationService(db, sms=sms)

        await service.send_reservation_status_notification(reservation)

        sms.send_reservation_update.assert_awaited_once()
        phone, salon_name, start_label, _ = sms.send_reservation_update.await_args.args
        assert phone == "09012345678"
        assert salon_name == "Ginza Salon"
        assert start_label == "2030-01-07 10:00"

    async def test_sms_outage_does_not_fail_booking(self, db, twilio_settings):
        """Test a reservation is still created when Twilio cannot be reached"""
        client = MagicMock()
        client.messages.create.side_effect = ConnectionError("connection reset")
        notifications = NotificationService(db, sms=TwilioService(twilio_settings, client=client))
        salon = await create_salon(db)
        service = await create_service(db, salon.data.id)
        staff = await create_staff(db, salon.data.id)
        customer = await create_customer(db)

        result = await ReservationService(db, notifications=notifications).create_reservation(ReservationCreate(
            salon_id=salon.data.id, staff_id=staff.data.id, service_id=service.data.id, start_time=at(10)
        ), customer_actor(customer.data.id), now=NOW)

        assert result.is_ok
        client.messages.create.assert_called_once()
        listed = await notifications.list_for_customer(customer.data.id, PaginationParams())
        assert listed[0]["status"] == "pending"
