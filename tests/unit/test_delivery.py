"""Unit tests for the SMTP and Twilio senders with the vendor clients mocked."""

import smtplib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from twilio.base.exceptions import TwilioRestException

from loopreviews.config import settings
from loopreviews.exceptions import ConfigurationError, DeliveryError
from loopreviews.services.email_service import EmailService
from loopreviews.services.sms_service import SMSService


@pytest.fixture
def smtp_settings(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(settings, "smtp_user", "mailer@example.com")
    monkeypatch.setattr(settings, "smtp_password", "secret")
    monkeypatch.setattr(settings, "smtp_secure", False)


@pytest.fixture
def twilio_settings(monkeypatch):
    monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings, "twilio_auth_token", "token")
    monkeypatch.setattr(settings, "twilio_phone_number", "+15550009999")


class TestEmailService:
    def test_build_message(self):
        message = EmailService.build_message(
            to="sam@example.com",
            subject="Hi",
            text="Plain body",
            html="<p>Body</p>",
            from_email="hello@bluedoor.test",
            from_name="Blue Door",
            reply_to="owner@bluedoor.test",
        )
        assert message["From"] == "Blue Door <hello@bluedoor.test>"
        assert message["Reply-To"] == "owner@bluedoor.test"
        assert message["Message-ID"]
        assert message.is_multipart()

    @pytest.mark.asyncio
    async def test_send_uses_starttls(self, smtp_settings):
        message = EmailService.build_message(to="sam@example.com", subject="Hi", text="Body")
        with patch("loopreviews.services.email_service.smtplib.SMTP") as smtp_cls:
            message_id = await EmailService.send(message)

        smtp = smtp_cls.return_value
        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=settings.http_timeout_seconds)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("mailer@example.com", "secret")
        smtp.send_message.assert_called_once_with(message)
        assert message_id == message["Message-ID"]

    @pytest.mark.asyncio
    async def test_smtp_failure_becomes_delivery_error(self, smtp_settings):
        message = EmailService.build_message(to="sam@example.com", subject="Hi", text="Body")
        with patch("loopreviews.services.email_service.smtplib.SMTP") as smtp_cls:
            smtp_cls.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            with pytest.raises(DeliveryError):
                await EmailService.send(message)

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        message = EmailService.build_message(to="sam@example.com", subject="Hi", text="Body")
        with pytest.raises(ConfigurationError):
            await EmailService.send(message)


class TestSMSService:
    @pytest.mark.asyncio
    async def test_send_returns_sid(self, twilio_settings):
        with patch("loopreviews.services.sms_service.TwilioClient") as client_cls:
            client_cls.return_value.messages.create.return_value = MagicMock(sid="SM123")
            sid = await SMSService.send("+15550001111", "Hi Sam")

        assert sid == "SM123"
        client_cls.assert_called_once_with("AC123", "token")
        client_cls.return_value.messages.create.assert_called_once_with(
            to="+15550001111", from_="+15550009999", body="Hi Sam")

    @pytest.mark.asyncio
    async def test_twilio_error_becomes_delivery_error(self, twilio_settings):
        with patch("loopreviews.services.sms_service.TwilioClient") as client_cls:
            client_cls.return_value.messages.create.side_effect = TwilioRestException(
                400, "/Messages", msg="Invalid 'To' Phone Number")
            with pytest.raises(DeliveryError) as exc_info:
                await SMSService.send("+1", "Hi")
        assert exc_info.value.channel == "sms"

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        with pytest.raises(ConfigurationError):
            await SMSService.send("+15550001111", "Hi")

    @pytest.mark.asyncio
    async def test_list_numbers(self, twilio_settings):
        owned = [
            SimpleNamespace(phone_number="+15550009999", friendly_name="Main",
                            capabilities={"sms": True, "voice": True}),
            SimpleNamespace(phone_number="+15550008888", friendly_name="Voice only",
                            capabilities={"sms": False, "voice": True}),
        ]
        available = [SimpleNamespace(phone_number="+15550007777", friendly_name="(555) 000-7777",
                                     locality="Austin", region="TX")]
        with patch("loopreviews.services.sms_service.TwilioClient") as client_cls:
            client = client_cls.return_value
            client.incoming_phone_numbers.list.return_value = owned
            client.available_phone_numbers.return_value.local.list.return_value = available
            numbers = await SMSService.list_numbers()

        client.available_phone_numbers.assert_called_once_with("US")
        assert [n["phoneNumber"] for n in numbers["currentNumbers"]] == ["+15550009999", "+15550008888"]
        assert numbers["smsCapableNumbers"] == [{"phoneNumber": "+15550009999", "friendlyName": "Main"}]
        assert numbers["availableForPurchase"][0]["region"] == "TX"
