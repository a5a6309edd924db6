import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas import (
    AuthUserResponse,
    BusinessCategory,
    CompanySetup,
    OnboardingComplete,
    PlatformLinks,
    ReviewLinkResponse,
)
from ..services.review_link_service import ReviewLinkService
from ..services.session_service import SessionService
from ..utils import isoformat, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/onboarding",
    tags=["onboarding"],
    responses={401: {"description": "Not authenticated"}},
)

# platform_links keys (either spelling) that feed dedicated review link columns
LINK_COLUMNS = {
    "google_review_link": ("google", "Google"),
    "facebook_review_link": ("facebook", "Facebook"),
    "trustpilot_review_link": ("trustpilot", "Trustpilot"),
    "video_testimonial_link": ("video-testimonial", "Video Testimonial"),
}


def _user_payload(user: User) -> dict:
    return AuthUserResponse.model_validate(user).model_dump(mode="json")


@router.post("/setup-company")
async def setup_company(
    payload: CompanySetup,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.company_name or not payload.company_name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Company name is required")
    current_user.company = payload.company_name.strip()
    current_user.updated_at = utcnow()
    await db.commit()
    await db.refresh(current_user)
    return {"success": True, "data": _user_payload(current_user)}


@router.post("/business-category")
async def save_business_category(
    payload: BusinessCategory,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.category or not payload.category.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Business category is required")
    current_user.business_category = payload.category.strip()
    current_user.business_description = (payload.description or "").strip()
    current_user.updated_at = utcnow()
    await db.commit()
    await db.refresh(current_user)
    return {"success": True, "data": _user_payload(current_user)}


@router.post("/platform-links")
async def save_platform_links(
    payload: PlatformLinks,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Store the raw links and rebuild the review page buttons from them"""
    if not isinstance(payload.platform_links, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Platform links must be an object")
    current_user.platform_links = payload.platform_links
    current_user.updated_at = utcnow()

    link = await ReviewLinkService.get_for_user(db, current_user.id)
    if link is not None:
        link.links = ReviewLinkService.links_from_platform_links(payload.platform_links)
        link.updated_at = utcnow()
    else:
        logger.warning(f"User {current_user.id} saved platform links without a review link")
    await db.commit()
    await db.refresh(current_user)
    return {"success": True, "data": _user_payload(current_user)}


@router.post("/complete")
async def complete_onboarding(
    payload: OnboardingComplete,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Apply everything collected by the onboarding wizard in one go.

    The user row gets company and category details, the review link gets
    the chosen platforms and their URLs, and the raw answers are kept in
    ``users.onboarding_data``.
    """
    profile = payload.company_profile
    category = payload.business_category
    platform_links = payload.platform_links or {}
    company = payload.company_name or (profile.display_name if profile else None)

    if company:
        current_user.company = company
    if category and category.category:
        current_user.store_type = category.category
        current_user.business_category = category.category
    if category and category.description:
        current_user.business_description = category.description
    if platform_links:
        current_user.platform_links = platform_links
    if profile and profile.bio:
        current_user.bio = profile.bio
    # Uploaded images arrive as data URLs and are stored as-is
    if profile and profile.profile_image and profile.profile_image.startswith("data:image/"):
        current_user.profile_picture_url = profile.profile_image

    current_user.onboarding_data = {
        "company_name": company,
        "business_category": category.category if category else None,
        "business_description": category.description if category else None,
        "selected_platforms": payload.selected_platforms or [],
        "platform_links": platform_links,
        "display_name": profile.display_name if profile else None,
        "bio": profile.bio if profile else None,
        "selected_template": payload.selected_template,
        "completed_at": isoformat(utcnow()),
    }
    current_user.onboarding_completed = True
    current_user.updated_at = utcnow()

    link = await ReviewLinkService.get_for_user(db, current_user.id)
    if link is None:
        link = await ReviewLinkService.create_default(db, current_user)
    if payload.selected_platforms:
        link.enabled_platforms = payload.selected_platforms
        link.company_name = company or link.company_name or "My Company"
        for column, keys in LINK_COLUMNS.items():
            url = next((platform_links[k] for k in keys if platform_links.get(k)), None)
            if url:
                setattr(link, column, url)
    if platform_links:
        link.links = ReviewLinkService.links_from_platform_links(platform_links)
    link.updated_at = utcnow()

    await db.commit()
    await db.refresh(current_user)
    await db.refresh(link)
    return {
        "success": True,
        "data": {
            "user": _user_payload(current_user),
            "reviewLink": ReviewLinkResponse.model_validate(link).model_dump(mode="json"),
            "onboarding": current_user.onboarding_data,
        },
    }
