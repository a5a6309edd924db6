import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ClickTracking, Customer, Review, ReviewLink, User
from ..utils import is_anonymous, review_url_id_from_page, truncate, utcnow
from .automation_service import AutomationService
from .review_link_service import ReviewLinkService

logger = logging.getLogger(__name__)

PREFERRED_PLATFORMS = ("google", "trustpilot", "facebook")

# Column widths enforced before insert
FIELD_LIMITS = {
    "page": 500,
    "user_agent": 1000,
    "referrer": 500,
    "session_id": 100,
    "event_type": 50,
    "redirect_platform": 100,
    "redirect_url": 1000,
}


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


class TrackingService:
    @staticmethod
    async def record_click(
        db: AsyncSession,
        customer_id: str,
        page: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        event_type: str = "page_visit",
        star_rating: Optional[int] = None,
        redirect_platform: Optional[str] = None,
        redirect_url: Optional[str] = None,
        review_completed: bool = False,
        additional_data: Optional[Dict[str, Any]] = None,
    ) -> ClickTracking:
        """Insert one funnel event, clipping every free-text field to its column width"""
        click = ClickTracking(
            customer_id=customer_id,
            page=truncate(page or f"/event/{event_type}", FIELD_LIMITS["page"]),
            user_agent=truncate(user_agent, FIELD_LIMITS["user_agent"]),
            referrer=truncate(referrer, FIELD_LIMITS["referrer"]),
            session_id=truncate(session_id, FIELD_LIMITS["session_id"]),
            ip_address=ip_address,
            event_type=truncate(event_type, FIELD_LIMITS["event_type"]),
            star_rating=star_rating,
            redirect_platform=truncate(redirect_platform, FIELD_LIMITS["redirect_platform"]),
            redirect_url=truncate(redirect_url, FIELD_LIMITS["redirect_url"]),
            review_completed=bool(review_completed),
            additional_data=json.dumps(additional_data) if additional_data else None,
            timestamp=utcnow(),
        )
        db.add(click)
        await db.commit()
        await db.refresh(click)
        return click

    @staticmethod
    async def list_clicks(db: AsyncSession, customer_id: str, limit: int = 50) -> List[ClickTracking]:
        result = await db.execute(
            select(ClickTracking)
            .where(ClickTracking.customer_id == customer_id)
            .order_by(ClickTracking.timestamp.desc())
            .limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    def pick_platform(link: ReviewLink, available_platforms: Optional[List[str]]) -> str:
        """Choose the platform a star rating is attributed to"""
        candidates = list(available_platforms or [])
        if not candidates:
            enabled = link.enabled_platforms or []
            candidates = [p.lower() for p in ("Google", "Trustpilot", "Facebook") if p in enabled]
        if not candidates:
            return "internal"
        for platform in PREFERRED_PLATFORMS:
            if platform in candidates:
                return platform
        return candidates[0]

    @staticmethod
    async def latest_star_rating(db: AsyncSession, customer_id: str) -> Optional[int]:
        result = await db.execute(
            select(ClickTracking.star_rating)
            .where(
                ClickTracking.customer_id == customer_id,
                ClickTracking.event_type == "star_selection",
                ClickTracking.star_rating.is_not(None),
            )
            .order_by(ClickTracking.timestamp.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def review_from_tracking(
        db: AsyncSession,
        customer_id: Optional[str],
        event_type: Optional[str],
        page: Optional[str],
        star_rating: Optional[int] = None,
        redirect_platform: Optional[str] = None,
        available_platforms: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Create or update the review behind a star selection or platform redirect.

        The review link is resolved from the ``/r/<id>`` segment of ``page``.
        Only the latest review per (owner, customer) is kept up to date.
        """
        if not customer_id or not event_type:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing customer_id or event_type",
            )
        url_id = review_url_id_from_page(page)
        if not url_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid review URL")
        link = await ReviewLinkService.find_by_url_id(db, url_id)
        if link is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Review link not found")

        customer_name = "Anonymous Visitor"
        customer_email = "noreply@anonymous.com"
        known = False
        if not is_anonymous(customer_id):
            customer = (await db.execute(
                select(Customer).where(Customer.id == customer_id,
                                       Customer.user_id == link.user_id)
            )).scalar_one_or_none()
            if customer:
                customer_name = customer.name or customer_name
                customer_email = customer.email or customer_email
                known = True

        if event_type == "star_selection" and star_rating:
            rating = star_rating
            comment = f"Customer selected {rating} star{_plural(rating)}"
            platform = TrackingService.pick_platform(link, available_platforms)
        elif event_type == "platform_redirect" and redirect_platform:
            rating = star_rating or await TrackingService.latest_star_rating(db, customer_id)
            if not rating:
                return {"success": True, "message": "Event tracked but no rating found to create review"}
            comment = (f"Customer gave {rating} star{_plural(rating)} "
                       f"and was redirected to {redirect_platform}")
            platform = redirect_platform
        else:
            return {"success": True, "message": "Event tracked but no review data to save"}

        existing = (await db.execute(
            select(Review)
            .where(Review.user_id == link.user_id, Review.customer_id == customer_id)
            .order_by(Review.created_at.desc())
            .limit(1)
        )).scalar_one_or_none()

        if existing:
            existing.rating = rating
            existing.comment = comment
            existing.platform = platform
            existing.updated_at = utcnow()
            review = existing
            action = "updated"
        else:
            review = Review(
                user_id=link.user_id,
                customer_id=customer_id,
                customer_name=customer_name,
                customer_email=customer_email,
                rating=rating,
                comment=comment,
                platform=platform,
                status="published",
            )
            db.add(review)
            action = "created"
        await db.commit()
        await db.refresh(review)

        await TrackingService._schedule_follow_up(db, link.user_id, review.id)

        return {
            "success": True,
            "data": {
                "id": review.id,
                "action": action,
                "customer_type": "known" if known else "anonymous",
            },
        }

    @staticmethod
    async def _schedule_follow_up(db: AsyncSession, owner_id: int, review_id: int) -> None:
        """Queue follow-ups for owners on an automation plan; never fails the caller"""
        try:
            owner = await db.get(User, owner_id)
            if not AutomationService.has_automation_access(owner):
                return
            await AutomationService.schedule_for_review(db, review_id)
        except Exception as e:
            logger.warning(f"Could not schedule automation for review {review_id}: {e}")
            await db.rollback()
