import pytest
from sqlalchemy import select

from loopreviews.config import settings
from loopreviews.exceptions import DeliveryError
from loopreviews.models import EmailTemplate, ReviewLink, ReviewRequest, SMSTemplate
from loopreviews.services.email_service import EmailService
from loopreviews.services.sms_service import SMSService

CONTACTS = [
    {"id": "cust_1", "name": "Sam Lee", "number": "+15550001111", "email": "sam@example.com"},
    {"id": "cust_2", "name": "Kim Park", "number": "", "email": "kim@example.com"},
]


@pytest.fixture
def twilio_configured(monkeypatch):
    monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings, "twilio_auth_token", "token")
    monkeypatch.setattr(settings, "twilio_phone_number", "+15550009999")


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(settings, "smtp_user", "mailer")
    monkeypatch.setattr(settings, "smtp_password", "secret")


@pytest.fixture
def sent_sms(monkeypatch):
    outbox = []

    async def fake_send(to, body):
        if to.endswith("0000"):
            raise DeliveryError("sms", "Unreachable number")
        outbox.append({"to": to, "body": body})
        return f"SM{len(outbox)}"

    monkeypatch.setattr(SMSService, "send", fake_send)
    return outbox


@pytest.fixture
def sent_email(monkeypatch):
    outbox = []

    async def fake_send(message):
        outbox.append(message)
        return message["Message-ID"]

    monkeypatch.setattr(EmailService, "send", fake_send)
    return outbox


class TestRecordRequests:
    @pytest.mark.asyncio
    async def test_records_sms_requests_for_contacts_with_numbers(self, client, owner):
        response = await client.post(
            "/api/review-requests",
            json={"type": "sms", "contacts": CONTACTS, "content": "Hi!", "sms_sender_name": "Bakery"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["requests_sent"] == 1
        request = data["requests"][0]
        assert request["contact_phone"] == "+15550001111"
        assert request["contact_email"] is None
        assert request["request_type"] == "sms"

    @pytest.mark.asyncio
    async def test_records_email_requests(self, client, owner):
        response = await client.post(
            "/api/review-requests",
            json={"type": "email", "contacts": CONTACTS, "subject_line": "How did we do?"},
        )
        data = response.json()["data"]
        assert data["requests_sent"] == 2
        assert {r["contact_email"] for r in data["requests"]} == {"sam@example.com", "kim@example.com"}

    @pytest.mark.asyncio
    async def test_requires_type_and_contacts(self, client, owner):
        response = await client.post("/api/review-requests", json={"type": "sms"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: type, contacts array"

    @pytest.mark.asyncio
    async def test_rejects_unknown_type(self, client, owner):
        response = await client.post("/api/review-requests", json={"type": "fax", "contacts": CONTACTS})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request type. Must be 'sms' or 'email'"

    @pytest.mark.asyncio
    async def test_no_valid_contacts(self, client, owner):
        response = await client.post(
            "/api/review-requests", json={"type": "sms", "contacts": [{"name": "Kim", "number": ""}]})
        assert response.status_code == 400
        assert response.json()["error"] == "No valid contacts found to send requests to"

    @pytest.mark.asyncio
    async def test_requires_review_link(self, client, owner, db_session):
        link = (await db_session.execute(
            select(ReviewLink).where(ReviewLink.user_id == owner["id"]))).scalar_one()
        await db_session.delete(link)
        await db_session.commit()

        response = await client.post("/api/review-requests", json={"type": "sms", "contacts": CONTACTS})
        assert response.status_code == 404
        assert response.json()["error"] == "Review link not found. Please set up your review link first."

    @pytest.mark.asyncio
    async def test_list_filters(self, client, owner):
        await client.post("/api/review-requests", json={"type": "sms", "contacts": CONTACTS})
        await client.post("/api/review-requests", json={"type": "email", "contacts": CONTACTS})

        everything = await client.get("/api/review-requests", params={"dateFilter": "Today"})
        assert len(everything.json()["data"]) == 3

        sms_only = await client.get("/api/review-requests", params={"contactType": "sms"})
        assert len(sms_only.json()["data"]) == 1

        by_name = await client.get("/api/review-requests", params={"query": "kim"})
        assert [r["contact_name"] for r in by_name.json()["data"]] == ["Kim Park"]


class TestSendSMS:
    async def _template(self, db_session, user_id, content="Hi {{customerName}}, review {{companyName}}: {{reviewUrl}}"):
        db_session.add(SMSTemplate(user_id=user_id, content=content, sender_name="Blue Door"))
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_sends_personalised_sms(self, client, owner, db_session, twilio_configured, sent_sms):
        await self._template(db_session, owner["id"])
        contacts = CONTACTS + [{"id": "cust_3", "name": "Lee", "number": "+15550000000"}]

        response = await client.post("/api/send-sms", json={"contacts": contacts})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_contacts"] == 2
        assert data["successful_sends"] == 1
        assert data["failed_sends"] == 1
        assert data["results"][0]["twilioSid"] == "SM1"
        assert data["errors"][0]["error"] == "Unreachable number"

        body = sent_sms[0]["body"]
        assert body.startswith("Hi Sam Lee, review Blue Door: ")
        assert body.endswith("?cid=cust_1")

        rows = (await db_session.execute(select(ReviewRequest))).scalars().all()
        assert sorted(r.status for r in rows) == ["failed", "sent"]

    @pytest.mark.asyncio
    async def test_requires_contacts(self, client, owner):
        response = await client.post("/api/send-sms", json={"contacts": []})
        assert response.status_code == 400
        assert response.json()["error"] == "No contacts provided"

    @pytest.mark.asyncio
    async def test_requires_template(self, client, owner):
        response = await client.post("/api/send-sms", json={"contacts": CONTACTS})
        assert response.status_code == 404
        assert response.json()["error"] == "SMS template not found. Please configure your SMS template first."

    @pytest.mark.asyncio
    async def test_empty_template(self, client, owner, db_session):
        await self._template(db_session, owner["id"], content="")
        response = await client.post("/api/send-sms", json={"contacts": CONTACTS})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_twilio_not_configured(self, client, owner, db_session):
        await self._template(db_session, owner["id"])
        response = await client.post("/api/send-sms", json={"contacts": CONTACTS})
        assert response.status_code == 500
        assert response.json()["error"] == "Twilio configuration is missing. Please check environment variables."

    @pytest.mark.asyncio
    async def test_no_contacts_with_numbers(self, client, owner, db_session, twilio_configured, sent_sms):
        await self._template(db_session, owner["id"])
        response = await client.post("/api/send-sms", json={"contacts": [CONTACTS[1]]})
        assert response.status_code == 400
        assert response.json()["error"] == "No valid contacts with phone numbers found"


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_default_template_used(self, client, owner, smtp_configured, sent_email):
        response = await client.post("/api/send-email", json={"contacts": CONTACTS})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_contacts"] == 2
        assert data["successful_sends"] == 2
        assert len(sent_email) == 2
        assert sent_email[0]["To"] == "sam@example.com"
        assert sent_email[0].get_body(preferencelist=("html",)) is not None

    @pytest.mark.asyncio
    async def test_owner_template_personalised(self, client, owner, db_session, smtp_configured, sent_email):
        db_session.add(EmailTemplate(
            user_id=owner["id"],
            subject="Thanks [Name]!",
            content="Hello {{customerName}}, please review {{companyName}}.",
            from_email="hello@bluedoor.test",
        ))
        await db_session.commit()

        await client.post("/api/send-email", json={"contacts": [CONTACTS[0]]})
        message = sent_email[0]
        assert message["Subject"] == "Thanks Sam Lee!"
        assert "hello@bluedoor.test" in message["From"]
        assert "Hello Sam Lee, please review Blue Door Bakery." in message.get_body(
            preferencelist=("plain",)).get_content()

    @pytest.mark.asyncio
    async def test_smtp_not_configured(self, client, owner):
        response = await client.post("/api/send-email", json={"contacts": CONTACTS})
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_no_contacts_with_email(self, client, owner, smtp_configured, sent_email):
        response = await client.post("/api/send-email", json={"contacts": [{"name": "Lee", "number": "+1555"}]})
        assert response.status_code == 400
        assert response.json()["error"] == "No valid contacts with email addresses found"


class TestSMSNumbers:
    @pytest.mark.asyncio
    async def test_unconfigured_twilio(self, client, owner):
        response = await client.get("/api/sms/numbers")
        assert response.status_code == 500
        assert response.json()["success"] is False
