from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import ReviewLink, User
from ..schemas import ReviewLinkAction, ReviewLinkResponse
from ..services.review_link_service import PROTECTED_FIELDS, ReviewLinkService
from ..services.session_service import SessionService

router = APIRouter(
    prefix="/api",
    tags=["review-link"],
    responses={404: {"description": "Review link not found"}},
)

# Fields the public review page needs; owner ids and QR codes stay private
PUBLIC_FIELDS = (
    "company_name",
    "review_url",
    "primary_color",
    "secondary_color",
    "show_badge",
    "rating_page_content",
    "redirect_message",
    "internal_notification_message",
    "video_upload_message",
    "google_review_link",
    "trustpilot_review_link",
    "facebook_review_link",
    "video_testimonial_link",
    "enabled_platforms",
    "background_color",
    "text_color",
    "button_text_color",
    "button_style",
    "font",
    "links",
    "header_settings",
    "initial_view_settings",
    "negative_settings",
    "video_upload_settings",
    "success_settings",
)


def _link_payload(link: ReviewLink) -> dict:
    return ReviewLinkResponse.model_validate(link).model_dump(mode="json")


async def _require_link(db: AsyncSession, user_id: int) -> ReviewLink:
    link = await ReviewLinkService.get_for_user(db, user_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review link not found")
    return link


@router.get("/review-link")
async def get_review_link(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    link = await _require_link(db, current_user.id)
    return {"success": True, "data": _link_payload(link)}


@router.put("/review-link")
async def update_review_link(
    updates: Dict[str, Any] = Body(...),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update styling and copy; identity columns are silently ignored"""
    link = await ReviewLinkService.get_for_user(db, current_user.id)
    if link is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Review link not found or not authorized")
    columns = set(ReviewLink.__table__.columns.keys()) - PROTECTED_FIELDS
    for key, value in updates.items():
        if key in columns:
            setattr(link, key, value)
    await db.commit()
    await db.refresh(link)
    return {"success": True, "data": _link_payload(link)}


@router.post("/review-link")
async def review_link_action(
    payload: ReviewLinkAction,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if payload.action != "regenerate_url":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
    link = await _require_link(db, current_user.id)
    link.review_url = await ReviewLinkService.unique_review_url(db)
    await db.commit()
    await db.refresh(link)
    return {"success": True, "data": _link_payload(link)}


@router.get("/public/review-link/{review_url_id}")
async def public_review_link(
    review_url_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Everything the public rating page renders for a ``/r/<id>`` link"""
    link = await ReviewLinkService.find_by_url_id(db, review_url_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review link not found")
    data = _link_payload(link)
    return {
        "success": True,
        "data": {key: data[key] for key in PUBLIC_FIELDS} | {"review_url_id": review_url_id},
    }
