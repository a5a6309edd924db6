import pytest

from loopreviews.config import settings
from loopreviews.exceptions import DeliveryError
from loopreviews.services.email_service import EmailService


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(settings, "smtp_user", "mailer")
    monkeypatch.setattr(settings, "smtp_password", "secret")


class TestProfile:
    @pytest.mark.asyncio
    async def test_defaults(self, client, owner):
        response = await client.get("/api/account/profile")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == owner["id"]
        assert data["first_name"] == "Dana"
        assert data["company"] == "Blue Door Bakery"
        assert data["phone"] == ""
        assert data["timezone"] == "UTC"
        assert data["language"] == "en"
        assert data["avatar_url"] == "/placeholder.svg?height=80&width=80"

    @pytest.mark.asyncio
    async def test_partial_update(self, client, owner):
        response = await client.put(
            "/api/account/profile",
            json={"phone": "+15550001111", "address": "1 Main St", "email": "Dana@BlueDoor.test"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["phone"] == "+15550001111"
        assert data["address"] == "1 Main St"
        assert data["email"] == "dana@bluedoor.test"
        assert data["company"] == "Blue Door Bakery"

        me = (await client.get("/api/auth/me")).json()["user"]
        assert me["phone_number"] == "+15550001111"

    @pytest.mark.asyncio
    async def test_email_taken(self, make_client, signup):
        alice = await make_client()
        bob = await make_client()
        await signup(alice, email="alice@example.com")
        await signup(bob, email="bob@example.com")

        response = await bob.put("/api/account/profile", json={"email": "alice@example.com"})
        assert response.status_code == 409
        assert response.json()["error"] == "Email is already in use"

    @pytest.mark.asyncio
    async def test_validation(self, client, owner):
        bad_email = await client.put("/api/account/profile", json={"email": "nope"})
        assert bad_email.status_code == 400
        assert bad_email.json()["error"] == "Invalid email format"

        empty_name = await client.put("/api/account/profile", json={"first_name": ""})
        assert empty_name.status_code == 400
        assert empty_name.json()["error"] == "First name cannot be empty"

    @pytest.mark.asyncio
    async def test_requires_session(self, client):
        response = await client.get("/api/account/profile")
        assert response.status_code == 401


class TestNotificationSettings:
    @pytest.mark.asyncio
    async def test_defaults_fall_back_to_account_email(self, client, owner):
        data = (await client.get("/api/account/notifications")).json()["data"]
        assert data == {
            "user_id": owner["id"],
            "email_notifications": True,
            "notification_email": "owner@example.com",
            "reply_email": "owner@example.com",
        }

    @pytest.mark.asyncio
    async def test_update(self, client, owner):
        response = await client.put(
            "/api/account/notifications",
            json={"email_notifications": False, "notification_email": "alerts@bluedoor.test"},
        )
        data = response.json()["data"]
        assert data["email_notifications"] is False
        assert data["notification_email"] == "alerts@bluedoor.test"
        assert data["reply_email"] == "owner@example.com"

    @pytest.mark.asyncio
    async def test_invalid_email(self, client, owner):
        response = await client.put("/api/account/notifications", json={"reply_email": "not-an-email"})
        assert response.status_code == 400


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_setup_company_and_category(self, client, owner):
        company = await client.post("/api/onboarding/setup-company", json={"companyName": "  Blue Door Two "})
        assert company.json()["data"]["company"] == "Blue Door Two"

        missing = await client.post("/api/onboarding/setup-company", json={"companyName": " "})
        assert missing.status_code == 400
        assert missing.json()["error"] == "Company name is required"

        category = await client.post(
            "/api/onboarding/business-category", json={"category": "bakery", "description": "Bread"})
        assert category.status_code == 200

        no_category = await client.post("/api/onboarding/business-category", json={})
        assert no_category.json()["error"] == "Business category is required"

    @pytest.mark.asyncio
    async def test_platform_links_rebuild_buttons(self, client, owner):
        response = await client.post(
            "/api/onboarding/platform-links",
            json={"platformLinks": {
                "google": "https://g.page/r/bluedoor",
                "facebook": "https://example.com",
                "yelp": "https://yelp.com/biz/bluedoor",
            }},
        )
        assert response.status_code == 200

        links = (await client.get("/api/review-link")).json()["data"]["links"]
        assert [(l["platformId"], l["title"], l["buttonText"]) for l in links] == [
            ("google", "Google Reviews", "Submit on Google"),
            ("yelp", "Yelp Reviews", "Submit on Yelp"),
        ]

    @pytest.mark.asyncio
    async def test_platform_links_must_be_object(self, client, owner):
        response = await client.post("/api/onboarding/platform-links", json={"platformLinks": ["google"]})
        assert response.status_code == 400
        assert response.json()["error"] == "Platform links must be an object"

    @pytest.mark.asyncio
    async def test_complete(self, client, owner):
        response = await client.post(
            "/api/onboarding/complete",
            json={
                "companyName": "Blue Door Two",
                "companyProfile": {
                    "displayName": "Blue Door",
                    "bio": "Fresh bread daily",
                    "profileImage": "data:image/png;base64,iVBORw0KGgo=",
                },
                "businessCategory": {"category": "bakery", "description": "Bread and pastries"},
                "selectedPlatforms": ["Google", "Trustpilot"],
                "platformLinks": {
                    "google": "https://g.page/r/bluedoor",
                    "trustpilot": "https://www.trustpilot.com/review/bluedoor.test",
                },
                "selectedTemplate": "classic",
            },
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["company"] == "Blue Door Two"
        assert data["user"]["store_type"] == "bakery"
        assert data["user"]["onboarding_completed"] is True

        link = data["reviewLink"]
        assert link["enabled_platforms"] == ["Google", "Trustpilot"]
        assert link["company_name"] == "Blue Door Two"
        assert link["google_review_link"] == "https://g.page/r/bluedoor"
        assert link["trustpilot_review_link"] == "https://www.trustpilot.com/review/bluedoor.test"
        assert [l["platformId"] for l in link["links"]] == ["google", "trustpilot"]

        assert data["onboarding"]["selected_template"] == "classic"
        assert data["onboarding"]["business_category"] == "bakery"

        profile = (await client.get("/api/account/profile")).json()["data"]
        assert profile["bio"] == "Fresh bread daily"
        assert profile["avatar_url"].startswith("data:image/png")


class TestSupport:
    def _payload(self, **overrides):
        payload = {
            "name": "Sam Lee",
            "email": "sam@example.com",
            "subject": "Billing question",
            "message": "How do I change plans?",
        }
        payload.update(overrides)
        return payload

    @pytest.mark.asyncio
    async def test_forwards_to_support_inbox(self, client, smtp_configured, monkeypatch):
        outbox = []

        async def fake_send(message):
            outbox.append(message)
            return message["Message-ID"]

        monkeypatch.setattr(EmailService, "send", fake_send)
        response = await client.post("/api/support", json=self._payload())
        assert response.status_code == 200
        assert response.json()["success"] is True

        assert len(outbox) == 1
        assert outbox[0]["To"] == settings.support_email
        assert outbox[0]["Reply-To"] == "sam@example.com"
        assert outbox[0]["Subject"] == "Support Request: Billing question"

    @pytest.mark.asyncio
    async def test_delivery_failure(self, client, smtp_configured, monkeypatch):
        async def failing_send(message):
            raise DeliveryError("email", "connection refused")

        monkeypatch.setattr(EmailService, "send", failing_send)
        response = await client.post("/api/support", json=self._payload())
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to send support email"

    @pytest.mark.asyncio
    async def test_all_fields_required(self, client):
        response = await client.post("/api/support", json=self._payload(message=""))
        assert response.status_code == 400
        assert response.json()["error"] == "All fields are required"

    @pytest.mark.asyncio
    async def test_invalid_email(self, client):
        response = await client.post("/api/support", json=self._payload(email="sam"))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid email format"

    @pytest.mark.asyncio
    async def test_email_not_configured(self, client):
        response = await client.post("/api/support", json=self._payload())
        assert response.status_code == 500
        assert response.json()["error"] == "Email service not configured"
