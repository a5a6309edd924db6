import pytest
from sqlalchemy import select

from loopreviews.config import settings
from loopreviews.models import Review
from loopreviews.services.email_service import EmailService


class TestReviewLinkSettings:
    @pytest.mark.asyncio
    async def test_default_link_created_at_signup(self, client, owner):
        response = await client.get("/api/review-link")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user_id"] == owner["id"]
        assert data["company_name"] == "Blue Door Bakery"
        assert data["review_url"].startswith("https://app.loopreview.test/r/")
        assert len(data["review_url"].rsplit("/r/", 1)[1]) == 8
        assert data["enabled_platforms"] == ["Google"]
        assert data["rating_page_content"] == "How was your experience with Blue Door Bakery?"

    @pytest.mark.asyncio
    async def test_update_ignores_protected_fields(self, client, owner):
        original = (await client.get("/api/review-link")).json()["data"]

        response = await client.put(
            "/api/review-link",
            json={
                "primary_color": "#112233",
                "enabled_platforms": ["Google", "Trustpilot"],
                "review_url": "https://evil.test/r/hijack",
                "user_id": 999,
                "not_a_column": "x",
            },
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["primary_color"] == "#112233"
        assert data["enabled_platforms"] == ["Google", "Trustpilot"]
        assert data["review_url"] == original["review_url"]
        assert data["user_id"] == owner["id"]

    @pytest.mark.asyncio
    async def test_regenerate_url(self, client, owner):
        original = (await client.get("/api/review-link")).json()["data"]["review_url"]
        response = await client.post("/api/review-link", json={"action": "regenerate_url"})
        assert response.status_code == 200
        regenerated = response.json()["data"]["review_url"]
        assert regenerated != original
        assert regenerated.startswith("https://app.loopreview.test/r/")

    @pytest.mark.asyncio
    async def test_unknown_action(self, client, owner):
        response = await client.post("/api/review-link", json={"action": "explode"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid action"

    @pytest.mark.asyncio
    async def test_requires_session(self, client):
        response = await client.get("/api/review-link")
        assert response.status_code == 401


class TestPublicReviewLink:
    @pytest.mark.asyncio
    async def test_public_fields_only(self, client, owner, review_url_id, make_client):
        slug = await review_url_id(client)
        visitor = await make_client()

        response = await visitor.get(f"/api/public/review-link/{slug}")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["review_url_id"] == slug
        assert data["company_name"] == "Blue Door Bakery"
        assert "user_id" not in data
        assert "review_qr_code" not in data
        assert "id" not in data

    @pytest.mark.asyncio
    async def test_unknown_slug(self, client):
        response = await client.get("/api/public/review-link/missing1")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Review link not found"}

    @pytest.mark.asyncio
    async def test_wildcard_slug_matches_nothing(self, client, owner, review_url_id):
        slug = await review_url_id(client)
        for wildcard in ("_" * len(slug), "%25", slug[:-1] + "_"):
            response = await client.get(f"/api/public/review-link/{wildcard}")
            assert response.status_code == 404, wildcard


class TestPublicFeedback:
    def _payload(self, slug, **overrides):
        payload = {
            "reviewUrlId": slug,
            "customerName": "Sam Lee",
            "customerEmail": "sam@example.com",
            "rating": 2,
            "feedback": "Bread was stale",
            "agreeToMarketing": True,
        }
        payload.update(overrides)
        return payload

    @pytest.mark.asyncio
    async def test_feedback_stored_and_owner_notified(
        self, client, owner, review_url_id, make_client, db_session, monkeypatch
    ):
        monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")
        monkeypatch.setattr(settings, "smtp_user", "mailer")
        monkeypatch.setattr(settings, "smtp_password", "secret")
        outbox = []

        async def fake_send(message):
            outbox.append(message)
            return message["Message-ID"]

        monkeypatch.setattr(EmailService, "send", fake_send)
        slug = await review_url_id(client)
        visitor = await make_client()

        response = await visitor.post("/api/public/feedback", json=self._payload(slug))
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["message"] == "Feedback submitted successfully"

        review = (await db_session.execute(select(Review))).scalar_one()
        assert review.user_id == owner["id"]
        assert review.platform == "internal"
        assert review.comment == "Bread was stale"

        assert len(outbox) == 1
        assert outbox[0]["To"] == "owner@example.com"
        assert outbox[0]["Subject"] == "New 2-star review from Sam Lee"

    @pytest.mark.asyncio
    async def test_feedback_without_smtp_still_saved(self, client, owner, review_url_id, db_session):
        slug = await review_url_id(client)
        response = await client.post("/api/public/feedback", json=self._payload(slug))
        assert response.status_code == 200
        assert (await db_session.execute(select(Review))).scalar_one().rating == 2

    @pytest.mark.asyncio
    async def test_missing_fields(self, client):
        response = await client.post("/api/public/feedback", json={"reviewUrlId": "abc"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields"

    @pytest.mark.asyncio
    async def test_invalid_email(self, client):
        response = await client.post(
            "/api/public/feedback", json=self._payload("abc", customerEmail="not-an-email"))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid email format"

    @pytest.mark.asyncio
    async def test_rating_out_of_range(self, client):
        response = await client.post("/api/public/feedback", json=self._payload("abc", rating=9))
        assert response.status_code == 400
        assert response.json()["error"] == "Rating must be between 1 and 5"

    @pytest.mark.asyncio
    async def test_unknown_link(self, client):
        response = await client.post("/api/public/feedback", json=self._payload("nothere1"))
        assert response.status_code == 404


class TestPublicTrackReview:
    @pytest.mark.asyncio
    async def test_track_review(self, client, owner, review_url_id, db_session):
        slug = await review_url_id(client)
        response = await client.post(
            "/api/public/track-review",
            json={"reviewUrlId": slug, "customerId": "cust_1", "rating": 5, "platform": "google"},
        )
        assert response.status_code == 200
        review = (await db_session.execute(select(Review))).scalar_one()
        assert review.comment == "Gave 5 stars and was redirected to google"
        assert review.customer_name == "Customer"

    @pytest.mark.asyncio
    async def test_track_review_requires_rating(self, client):
        response = await client.post("/api/public/track-review", json={"reviewUrlId": "abc"})
        assert response.status_code == 400
