import logging
import time
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import ReviewLink, User
from ..utils import random_token

logger = logging.getLogger(__name__)

THANK_YOU_REDIRECT = "Thank you for your feedback! Please click the button below to leave a review."

# Columns a tenant may not overwrite through the settings API
PROTECTED_FIELDS = {"id", "user_id", "review_url",
                    "review_qr_code", "created_at", "updated_at"}

PLATFORM_CONFIGS = {
    "google": ("Google Reviews", "/google-logo-new.png"),
    "facebook": ("Facebook Reviews", "/facebook-logo.png"),
    "trustpilot": ("Trustpilot Reviews", "/trustpilot.svg"),
    "shopify": ("Shopify Reviews", "/shopify-logo.svg"),
    "amazon": ("Amazon Reviews", "/amazon-logo.png"),
    "booking": ("Booking.com Reviews", "/booking-logo.svg"),
    "airbnb": ("Airbnb Reviews", "/airbnb-logo.svg"),
    "tripadvisor": ("TripAdvisor Reviews", "/tripadvisor-logo.svg"),
    "yelp": ("Yelp Reviews", "/yelp-logo.svg"),
    "instagram": ("Instagram", "/instagram-logo.svg"),
    "linkedin": ("LinkedIn", "/linkedin-logo.svg"),
    "video-testimonial": ("Video Testimonial", "/video-testimonial-icon.svg"),
}

PLACEHOLDER_URLS = {
    "https://example.com",
    "https://www.example.com",
    "https://your-url-here.com",
    "https://placeholder.com",
    "Your product page",
    "Your product review URL",
    "Your listing URL",
    "Your business URL",
}


class ReviewLinkService:
    @staticmethod
    def build_review_url(slug: Optional[str] = None) -> str:
        return f"{settings.base_url.rstrip('/')}/r/{slug or random_token(8)}"

    @staticmethod
    async def unique_review_url(db: AsyncSession, attempts: int = 10) -> str:
        """Generate a review URL that no other tenant owns yet"""
        for _ in range(attempts):
            candidate = ReviewLinkService.build_review_url()
            existing = await db.execute(
                select(ReviewLink.id).where(ReviewLink.review_url == candidate)
            )
            if existing.scalar_one_or_none() is None:
                return candidate
        # Astronomically unlikely; widen the slug instead of failing
        return ReviewLinkService.build_review_url(random_token(16))

    @staticmethod
    async def create_default(db: AsyncSession, user: User) -> ReviewLink:
        """Create the review link every new account starts with"""
        company = user.company
        link = ReviewLink(
            user_id=user.id,
            company_name=company or "Your Company",
            review_url=await ReviewLinkService.unique_review_url(db),
            review_qr_code=random_token(8).upper(),
            primary_color="#000000",
            secondary_color="#000000",
            show_badge=True,
            rating_page_content=f"How was your experience with {company or 'us'}?",
            redirect_message=THANK_YOU_REDIRECT,
            internal_notification_message=(
                "Thank you for your feedback! We appreciate you taking the time to share your thoughts."
            ),
            video_upload_message=f"Record a short video testimonial for {company or 'us'}!",
            google_review_link="",
            trustpilot_review_link="",
            facebook_review_link="",
            enabled_platforms=["Google"],
            background_color="#F0F8FF",
            text_color="#1F2937",
            button_text_color="#FFFFFF",
            button_style="rounded-full",
            font="gothic-a1",
            links=[],
            header_settings={"header": "Great to hear!", "text": THANK_YOU_REDIRECT},
            initial_view_settings={
                "header": "How was your experience at {{companyName}}?",
                "text": "We'd love to hear about your experience with our service.",
            },
            negative_settings={
                "header": "We're sorry to hear that.",
                "text": "Please tell us how we can improve:",
            },
            video_upload_settings={
                "header": "Share your experience!",
                "text": "Record a short video testimonial to help others learn about our service.",
            },
            success_settings={
                "header": "Thank you!",
                "text": "Your feedback has been submitted successfully.",
            },
        )
        db.add(link)
        await db.flush()
        return link

    @staticmethod
    async def get_for_user(db: AsyncSession, user_id: int) -> Optional[ReviewLink]:
        result = await db.execute(select(ReviewLink).where(ReviewLink.user_id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_by_url_id(db: AsyncSession, review_url_id: str) -> Optional[ReviewLink]:
        """Resolve the public ``/r/<id>`` slug to its review link"""
        result = await db.execute(
            select(ReviewLink).where(ReviewLink.review_url.endswith(f"/r/{review_url_id}", autoescape=True))
        )
        return result.scalars().first()

    @staticmethod
    def links_from_platform_links(platform_links: Dict[str, str]) -> List[dict]:
        """Turn ``{platform: url}`` into the button list shown on the review page"""
        base_id = int(time.time() * 1000)
        links = []
        for platform_id, url in platform_links.items():
            if not url or not str(url).strip():
                continue
            url = str(url).strip()
            if platform_id == "video-testimonial" and url == "#video-upload":
                pass
            elif url in PLACEHOLDER_URLS:
                continue
            config = PLATFORM_CONFIGS.get(platform_id)
            title = config[0] if config else f"{platform_id[:1].upper()}{platform_id[1:]} Reviews"
            if platform_id == "video-testimonial":
                button_text = "Upload Video Testimonial"
            else:
                button_text = f"Submit on {title.replace(' Reviews', '')}"
            links.append({
                "id": base_id + len(links),
                "title": title,
                "url": url,
                "buttonText": button_text,
                "clicks": 0,
                "isActive": True,
                "platformId": platform_id,
                "platformLogo": config[1] if config else None,
            })
        return links
