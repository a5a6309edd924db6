from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ClickTracking, Customer, Review, ReviewLink, ReviewRequest
from ..utils import ensure_utc, isoformat, review_url_id, utcnow


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0


def _by_event(clicks: Iterable[ClickTracking], event_type: str) -> List[ClickTracking]:
    return [c for c in clicks if c.event_type == event_type]


def _unique_customers(clicks: Iterable[ClickTracking]) -> int:
    return len({c.customer_id for c in clicks})


def _is_anon(customer_id: Optional[str]) -> bool:
    return bool(customer_id and customer_id.startswith("anon_"))


class StatsService:
    @staticmethod
    async def owner_clicks(
        db: AsyncSession, user_id: int, customer_ids: List[str], since: datetime
    ) -> List[ClickTracking]:
        """Clicks from the owner's customers plus anonymous visits to the owner's review link"""
        link = (await db.execute(
            select(ReviewLink.review_url).where(ReviewLink.user_id == user_id)
        )).scalar_one_or_none()
        link_id = review_url_id(link)

        conditions = []
        if customer_ids:
            conditions.append(ClickTracking.customer_id.in_(customer_ids))
        if link_id:
            conditions.append(
                ClickTracking.customer_id.like("anon\\_%", escape="\\")
                & ClickTracking.page.contains(f"/r/{link_id}")
            )
        if not conditions:
            return []
        result = await db.execute(
            select(ClickTracking).where(ClickTracking.timestamp >= since, or_(*conditions))
        )
        return result.scalars().all()

    @staticmethod
    def daily_series(clicks, requests, reviews, days: int, today: Optional[datetime] = None) -> List[dict]:
        today = (today or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        series = []
        for offset in range(days - 1, -1, -1):
            start = today - timedelta(days=offset)
            end = start + timedelta(days=1)

            def in_day(value):
                value = ensure_utc(value)
                return value is not None and start <= value < end

            day_clicks = [c for c in clicks if in_day(c.timestamp)]
            series.append({
                "date": start.date().isoformat(),
                "requests": sum(1 for r in requests if in_day(r.sent_at or r.created_at)),
                "visits": len(_by_event(day_clicks, "page_visit")),
                "ratings": len(_by_event(day_clicks, "star_selection")),
                "platformClicks": len(_by_event(day_clicks, "platform_redirect")),
                "reviews": sum(1 for r in reviews if in_day(r.created_at)),
            })
        return series

    @staticmethod
    async def dashboard(db: AsyncSession, user_id: int, days: int = 30) -> Dict[str, Any]:
        since = utcnow() - timedelta(days=days)

        customers = (await db.execute(
            select(Customer).where(Customer.user_id == user_id)
        )).scalars().all()
        requests = (await db.execute(
            select(ReviewRequest).where(ReviewRequest.user_id == user_id,
                                        ReviewRequest.sent_at >= since)
        )).scalars().all()
        reviews = (await db.execute(
            select(Review).where(Review.user_id == user_id, Review.created_at >= since)
        )).scalars().all()
        link = (await db.execute(
            select(ReviewLink).where(ReviewLink.user_id == user_id)
        )).scalar_one_or_none()
        clicks = await StatsService.owner_clicks(db, user_id, [c.id for c in customers], since)

        visits = _by_event(clicks, "page_visit")
        stars = _by_event(clicks, "star_selection")
        redirects = _by_event(clicks, "platform_redirect")
        sent = len(requests)
        opened = _unique_customers(visits)
        rated = _unique_customers(stars)
        left_review = len({r.customer_email for r in reviews})

        ratings = [c.star_rating or 0 for c in stars]
        distribution = {str(n): 0 for n in range(1, 6)}
        for c in stars:
            if c.star_rating and str(c.star_rating) in distribution:
                distribution[str(c.star_rating)] += 1

        return {
            "totalCustomers": len(customers),
            "activeCustomers": sum(1 for c in customers if c.status == "active"),
            "totalRequestsSent": sent,
            "emailsSent": sum(1 for r in requests if r.request_type == "email"),
            "smsSent": sum(1 for r in requests if r.request_type == "sms"),
            "uniquePageVisitors": opened,
            "totalPageVisits": len(visits),
            "anonymousVisits": sum(1 for c in visits if _is_anon(c.customer_id)),
            "customerVisits": sum(1 for c in visits if not _is_anon(c.customer_id)),
            "customersWhoRated": rated,
            "averageRating": round(sum(ratings) / len(ratings), 1) if ratings else 0,
            "ratingDistribution": distribution,
            "platformClicksByType": dict(Counter(c.redirect_platform or "unknown" for c in redirects)),
            "customersWhoClickedPlatform": _unique_customers(redirects),
            "totalPlatformClicks": len(redirects),
            "anonymousPlatformClicks": sum(1 for c in redirects if _is_anon(c.customer_id)),
            "totalReviews": len(reviews),
            "reviewsByPlatform": dict(Counter(r.platform or "unknown" for r in reviews)),
            "repliedReviews": sum(1 for r in reviews if r.replied or r.status == "replied"),
            "conversionFunnel": {
                "sent": sent,
                "opened": opened,
                "rated": rated,
                "clickedPlatform": _unique_customers(redirects),
                "leftReview": left_review,
            },
            "dailyStats": StatsService.daily_series(clicks, requests, reviews, days),
            "internalFeedback": sum(1 for c in stars if c.star_rating and c.star_rating <= 3),
            "externalRedirects": sum(1 for c in stars if c.star_rating and c.star_rating >= 4),
            "enabledPlatforms": (link.enabled_platforms if link else None) or [],
            "responseRate": _rate(opened, sent),
            "ratingRate": _rate(rated, sent),
            "reviewRate": _rate(left_review, sent),
        }

    @staticmethod
    async def customers_with_activity(db: AsyncSession, user_id: int) -> List[Dict[str, Any]]:
        """Each customer with their funnel activity and the reviews matched to them"""
        customers = (await db.execute(
            select(Customer).where(Customer.user_id == user_id).order_by(Customer.created_at.desc())
        )).scalars().all()
        if not customers:
            return []
        ids = [c.id for c in customers]
        clicks = (await db.execute(
            select(ClickTracking)
            .where(ClickTracking.customer_id.in_(ids))
            .order_by(ClickTracking.timestamp.desc())
        )).scalars().all()
        reviews = (await db.execute(
            select(Review).where(Review.user_id == user_id).order_by(Review.created_at.desc())
        )).scalars().all()

        clicks_by_customer: Dict[str, List[ClickTracking]] = {}
        for click in clicks:
            clicks_by_customer.setdefault(click.customer_id, []).append(click)

        rows = []
        for customer in customers:
            history = clicks_by_customer.get(customer.id, [])
            visits = _by_event(history, "page_visit")
            stars = _by_event(history, "star_selection")
            redirects = _by_event(history, "platform_redirect")
            platforms: List[str] = []
            for click in redirects:
                if click.redirect_platform and click.redirect_platform not in platforms:
                    platforms.append(click.redirect_platform)
            matched = [
                r for r in reviews
                if (customer.email and r.customer_email == customer.email)
                or (customer.name and r.customer_name == customer.name)
            ]
            rows.append({
                "id": customer.id,
                "name": customer.name,
                "email": customer.email,
                "phone": customer.phone,
                "type": customer.type,
                "status": customer.status,
                "source": customer.source,
                "created_at": isoformat(customer.created_at),
                "activity": {
                    "totalPageVisits": len(visits),
                    "lastPageVisit": isoformat(visits[0].timestamp) if visits else None,
                    "lastStarRating": stars[0].star_rating if stars else None,
                    "lastStarSelection": isoformat(stars[0].timestamp) if stars else None,
                    "redirectPlatforms": platforms,
                    "lastPlatformRedirect": {
                        "platform": redirects[0].redirect_platform,
                        "timestamp": isoformat(redirects[0].timestamp),
                    } if redirects else None,
                    "hasActivity": bool(history),
                },
                "reviews": [
                    {
                        "id": r.id,
                        "platform": r.platform,
                        "rating": r.rating,
                        "text": r.comment,
                        "created_at": isoformat(r.created_at),
                        "replied": bool(r.replied),
                    }
                    for r in matched
                ],
                "totalReviews": len(matched),
            })

        rows.sort(
            key=lambda row: row["activity"]["lastPageVisit"] or row["created_at"] or "",
            reverse=True,
        )
        return rows
