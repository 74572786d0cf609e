from typing import Any, Dict, List, Optional
import logging

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from config.database import Database
from config.settings import get_settings
from schemas.common import PaginationParams, utcnow
from schemas.reservation import Reservation, status_message
from services.twilio_service import TwilioService

logger = logging.getLogger(__name__)


class NotificationService:
    """Stores customer notifications and optionally sends them by SMS."""

    def __init__(self, db: Database, sms: Optional[TwilioService] = None):
        self.db = db
        self.sms = sms
        if self.sms is None and get_settings().twilio_enabled:
            self.sms = TwilioService()

    async def send_reservation_status_notification(self, reservation: Reservation) -> Optional[Dict[str, Any]]:
        """Record a status notification for the reservation's customer.

        Notifications are best effort: a failure here never undoes the
        reservation change that triggered it.
        """
        notification = {
            "customer_id": reservation.data.customer_id,
            "reservation_id": reservation.data.id,
            "type": "reservation_status",
            "status": reservation.type,
            "message": status_message(reservation),
            "created_at": utcnow(),
            "read": False
        }
        try:
            await self.db.notifications.insert_one(notification)
            if self.sms is not None:
                await self._send_sms(reservation, notification["message"])
        except PyMongoError as e:
            logger.error(f"Failed to notify about reservation {reservation.data.id}: {str(e)}")
            return None

        notification.pop("_id", None)
        return notification

    async def _send_sms(self, reservation: Reservation, message: str) -> None:
        customer = await self.db.customers.find_one({"data.id": reservation.data.customer_id})
        phone = customer["data"].get("phone") if customer else None
        if not phone:
            return
        salon = await self.db.salons.find_one({"data.id": reservation.data.salon_id})
        salon_name = salon["data"]["name"] if salon else "Your salon"
        start_label = reservation.data.start_time.strftime("%Y-%m-%d %H:%M")
        await self.sms.send_reservation_update(phone, salon_name, start_label, message)

    async def list_for_customer(self, customer_id: str, pagination: PaginationParams) -> List[Dict[str, Any]]:
        cursor = self.db.notifications.find({"customer_id": customer_id}, {"_id": 0})
        cursor = cursor.sort("created_at", DESCENDING).skip(pagination.offset).limit(pagination.limit)
        return await cursor.to_list(length=pagination.limit)
