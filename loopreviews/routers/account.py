from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas import NotificationSettings, ProfileUpdate
from ..services.session_service import SessionService
from ..utils import is_valid_email, utcnow

router = APIRouter(
    prefix="/api/account",
    tags=["account"],
    responses={401: {"description": "Not authenticated"}},
)

# Profile keys the settings page uses, mapped to user columns
PROFILE_COLUMNS = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone": "phone_number",
    "company": "company",
    "position": "position",
    "address": "street_address",
    "city": "city",
    "state": "state",
    "zip_code": "zip_code",
    "country": "country",
    "timezone": "timezone",
    "language": "language",
    "avatar_url": "profile_picture_url",
    "bio": "bio",
    "website": "website",
}
DEFAULT_AVATAR = "/placeholder.svg?height=80&width=80"


def _profile(user: User) -> dict:
    data = {key: getattr(user, column) or "" for key, column in PROFILE_COLUMNS.items()}
    data["id"] = user.id
    data["timezone"] = user.timezone or "UTC"
    data["language"] = user.language or "en"
    data["avatar_url"] = user.profile_picture_url or DEFAULT_AVATAR
    return data


def _notifications(user: User) -> dict:
    return {
        "user_id": user.id,
        "email_notifications": bool(user.email_notifications),
        "notification_email": user.notification_email or user.email,
        "reply_email": user.reply_email or user.email,
    }


@router.get("/profile")
async def get_profile(current_user: User = Depends(SessionService.get_current_user)):
    return {"success": True, "data": _profile(current_user)}


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Partial update; only keys present in the body are written"""
    updates = payload.model_dump(exclude_unset=True)
    if "email" in updates:
        email = (updates["email"] or "").strip().lower()
        if not is_valid_email(email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")
        if email != current_user.email:
            taken = await db.execute(select(User.id).where(User.email == email))
            if taken.scalar_one_or_none() is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email is already in use")
        updates["email"] = email
    if "first_name" in updates and not updates["first_name"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="First name cannot be empty")

    for key, value in updates.items():
        setattr(current_user, PROFILE_COLUMNS[key], value)
    current_user.updated_at = utcnow()
    await db.commit()
    await db.refresh(current_user)
    return {"success": True, "data": _profile(current_user)}


@router.get("/notifications")
async def get_notifications(current_user: User = Depends(SessionService.get_current_user)):
    return {"success": True, "data": _notifications(current_user)}


@router.put("/notifications")
async def update_notifications(
    payload: NotificationSettings,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updates = payload.model_dump(exclude_unset=True)
    for key in ("notification_email", "reply_email"):
        if updates.get(key) and not is_valid_email(updates[key]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")
    for key, value in updates.items():
        setattr(current_user, key, value)
    if updates:
        current_user.updated_at = utcnow()
        await db.commit()
        await db.refresh(current_user)
    return {"success": True, "data": _notifications(current_user)}
