import asyncio
import logging
from typing import Dict, List

from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from ..config import settings
from ..exceptions import ConfigurationError, DeliveryError

logger = logging.getLogger(__name__)


class SMSService:
    """Outbound SMS through Twilio. The SDK is blocking, so calls run in a thread."""

    @staticmethod
    def is_configured() -> bool:
        return settings.twilio_configured

    @staticmethod
    def client() -> TwilioClient:
        if not (settings.twilio_account_sid and settings.twilio_auth_token):
            raise ConfigurationError("Twilio")
        return TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)

    @staticmethod
    async def send(to: str, body: str) -> str:
        """Send a text message and return the Twilio message SID"""
        if not SMSService.is_configured():
            raise ConfigurationError("Twilio")
        client = SMSService.client()
        try:
            message = await asyncio.to_thread(
                client.messages.create,
                to=to,
                from_=settings.twilio_phone_number,
                body=body,
            )
        except TwilioException as e:
            logger.error(f"Twilio send to {to} failed: {e}")
            raise DeliveryError("sms", str(e) or "Failed to send SMS")
        return message.sid

    @staticmethod
    async def list_numbers() -> Dict[str, List[dict]]:
        """Numbers on the account plus a few SMS-capable US numbers for purchase"""
        client = SMSService.client()
        owned = await asyncio.to_thread(client.incoming_phone_numbers.list)
        available = await asyncio.to_thread(
            client.available_phone_numbers("US").local.list, sms_enabled=True, limit=10
        )
        return {
            "currentNumbers": [
                {
                    "phoneNumber": n.phone_number,
                    "friendlyName": n.friendly_name,
                    "smsCapable": bool((n.capabilities or {}).get("sms")),
                    "voiceCapable": bool((n.capabilities or {}).get("voice")),
                }
                for n in owned
            ],
            "smsCapableNumbers": [
                {"phoneNumber": n.phone_number, "friendlyName": n.friendly_name}
                for n in owned
                if (n.capabilities or {}).get("sms")
            ],
            "availableForPurchase": [
                {
                    "phoneNumber": n.phone_number,
                    "friendlyName": n.friendly_name,
                    "locality": n.locality,
                    "region": n.region,
                }
                for n in available
            ],
        }
