from twilio.rest import Client
from twilio.base.exceptions import TwilioException, TwilioRestException
from typing import Optional
import asyncio
import logging
import re

from config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class TwilioService:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[Client] = None):
        settings = settings or get_settings()
        self.account_sid = settings.twilio_account_sid
        self.auth_token = settings.twilio_auth_token
        self.from_number = settings.twilio_from_number

        if not all([self.account_sid, self.auth_token, self.from_number]):
            raise ValueError("Missing Twilio credentials")

        self.client = client or Client(self.account_sid, self.auth_token)

    def _format_phone_number(self, phone_number: str) -> str:
        """Format phone number to E.164, assuming Japan for local 0-prefixed numbers."""
        digits = re.sub(r'\D', '', phone_number)

        if phone_number.strip().startswith('+'):
            return '+' + digits
        if digits.startswith('0'):
            digits = '81' + digits[1:]
        return '+' + digits

    async def send_sms(self, to_number: str, message: str) -> bool:
        try:
            formatted_number = self._format_phone_number(to_number)
            # The Twilio client is blocking
            await asyncio.to_thread(
                self.client.messages.create,
                body=message,
                from_=self.from_number,
                to=formatted_number
            )
            logger.info(f"SMS sent to {formatted_number}")
            return True
        except TwilioRestException as e:
            logger.error(f"Twilio rejected SMS to {to_number}: {e.msg}")
            return False
        except (TwilioException, OSError) as e:
            # requests transport errors are OSError subclasses
            logger.error(f"Could not reach Twilio for SMS to {to_number}: {str(e)}")
            return False

    async def send_reservation_update(self, to_number: str, salon_name: str, start_label: str, status_text: str) -> bool:
        message = (
            f"{salon_name}\n"
            f"Reservation on {start_label}\n\n"
            f"{status_text}"
        )
        return await self.send_sms(to_number, message)
