from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from loopreviews.models import ClickTracking, Customer, Review, ReviewRequest
from loopreviews.services.stats_service import StatsService
from loopreviews.utils import utcnow


class TestDashboardStats:
    @pytest.mark.asyncio
    async def test_empty_account(self, client, owner):
        response = await client.get("/api/dashboard/stats", params={"days": 7})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalCustomers"] == 0
        assert data["totalRequestsSent"] == 0
        assert data["averageRating"] == 0
        assert data["responseRate"] == 0
        assert len(data["dailyStats"]) == 7
        assert data["ratingDistribution"] == {"1": 0, "2": 0, "3": 0, "4": 0, "5": 0}
        assert data["enabledPlatforms"] == ["Google"]

    @pytest.mark.asyncio
    async def test_funnel(self, client, owner, review_url_id, db_session):
        slug = await review_url_id(client)
        now = utcnow()
        db_session.add_all([
            Customer(id="cust_1", user_id=owner["id"], name="Sam", email="sam@example.com"),
            Customer(id="cust_2", user_id=owner["id"], name="Kim", email="kim@example.com"),
            ReviewRequest(user_id=owner["id"], request_type="email", contact_email="sam@example.com",
                          status="sent", sent_at=now),
            ReviewRequest(user_id=owner["id"], request_type="sms", contact_phone="+1555",
                          status="sent", sent_at=now),
            ClickTracking(customer_id="cust_1", event_type="page_visit", page=f"/r/{slug}", timestamp=now),
            ClickTracking(customer_id="cust_1", event_type="star_selection", star_rating=5, timestamp=now),
            ClickTracking(customer_id="cust_1", event_type="platform_redirect", redirect_platform="google",
                          redirect_url="https://g.page", timestamp=now),
            ClickTracking(customer_id="anon_1_x", event_type="page_visit", page=f"/r/{slug}", timestamp=now),
            ClickTracking(customer_id="anon_2_y", event_type="page_visit", page="/r/someoneelse", timestamp=now),
            Review(user_id=owner["id"], customer_email="sam@example.com", rating=5, platform="google",
                   status="published"),
        ])
        await db_session.commit()

        data = (await client.get("/api/dashboard/stats")).json()["data"]
        assert data["totalCustomers"] == 2
        assert data["totalRequestsSent"] == 2
        assert data["emailsSent"] == 1
        assert data["smsSent"] == 1
        assert data["totalPageVisits"] == 2
        assert data["anonymousVisits"] == 1
        assert data["customerVisits"] == 1
        assert data["averageRating"] == 5
        assert data["ratingDistribution"]["5"] == 1
        assert data["platformClicksByType"] == {"google": 1}
        assert data["externalRedirects"] == 1
        assert data["conversionFunnel"] == {
            "sent": 2,
            "opened": 2,
            "rated": 1,
            "clickedPlatform": 1,
            "leftReview": 1,
        }
        assert data["ratingRate"] == 50.0
        assert data["reviewsByPlatform"] == {"google": 1}
        assert data["dailyStats"][-1]["visits"] == 2
        assert data["dailyStats"][-1]["requests"] == 2

    @pytest.mark.asyncio
    async def test_days_bounds(self, client, owner):
        response = await client.get("/api/dashboard/stats", params={"days": 0})
        assert response.status_code == 400


class TestDailySeries:
    def test_buckets_by_utc_day(self):
        today = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)
        clicks = [
            SimpleNamespace(event_type="page_visit", timestamp=today - timedelta(hours=1)),
            SimpleNamespace(event_type="star_selection", timestamp=today - timedelta(days=1)),
        ]
        requests = [SimpleNamespace(sent_at=today - timedelta(days=2), created_at=None)]
        reviews = [SimpleNamespace(created_at=today.replace(tzinfo=None))]

        series = StatsService.daily_series(clicks, requests, reviews, days=3, today=today)

        assert [day["date"] for day in series] == ["2024-03-08", "2024-03-09", "2024-03-10"]
        assert [day["requests"] for day in series] == [1, 0, 0]
        assert [day["ratings"] for day in series] == [0, 1, 0]
        assert [day["visits"] for day in series] == [0, 0, 1]
        assert [day["reviews"] for day in series] == [0, 0, 1]
