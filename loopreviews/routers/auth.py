import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models import PasswordResetToken, User, UserSession
from ..schemas import (
    AuthUserResponse,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    StoreTypeRequest,
    UserResponse,
)
from ..services.review_link_service import ReviewLinkService
from ..services.session_service import SessionService
from ..utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

router = APIRouter(
    prefix="/api/auth",
    tags=["authentication"],
    responses={
        401: {"description": "Not authenticated"},
        500: {"description": "Internal server error"},
    },
)


def _user_payload(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump()


@router.post("/signup")
async def signup(
    payload: SignupRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """
    Create an account and sign it in.

    Also creates the account's review link with default styling so the
    dashboard has something to show immediately.
    """
    if not payload.email or not payload.password or not payload.first_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email, password, and first name are required",
        )
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters long",
        )

    email = payload.email.lower().strip()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists with this email",
        )

    user = User(
        email=email,
        password_hash=SessionService.hash_password(payload.password),
        first_name=payload.first_name.strip(),
        last_name=(payload.last_name or "").strip(),
        company=(payload.company or "").strip(),
        position=(payload.title or "").strip(),
        phone_number=(payload.phone or "").strip(),
    )
    db.add(user)
    await db.flush()
    try:
        await ReviewLinkService.create_default(db, user)
    except Exception as e:
        # The account is still usable; the link can be created from the dashboard
        logger.error(f"Default review link creation failed for user {user.id}: {e}")
    await db.commit()
    await db.refresh(user)

    session = await SessionService.create_session(db, user)
    SessionService.set_session_cookie(response, session.session_token)
    logger.info(f"New account {user.id} signed up")
    return {"success": True, "user": _user_payload(user)}


@router.post("/signin")
async def signin(
    payload: SigninRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    if not payload.email or not payload.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required",
        )
    result = await db.execute(select(User).where(User.email == payload.email.lower().strip()))
    user = result.scalar_one_or_none()
    if user is None or not SessionService.verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    session = await SessionService.create_session(db, user)
    SessionService.set_session_cookie(response, session.session_token)
    return {"success": True, "user": _user_payload(user)}


@router.get("/me")
async def me(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Current user; distinguishes unknown, expired and orphaned sessions"""
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="No session token found")

    session = (await db.execute(
        select(UserSession).where(UserSession.session_token == token)
    )).scalar_one_or_none()
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"set-cookie": f"{settings.session_cookie_name}=; Max-Age=0; Path=/"},
        )
    if ensure_utc(session.expires_at) < utcnow():
        await SessionService.delete_session(db, token)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired",
            headers={"set-cookie": f"{settings.session_cookie_name}=; Max-Age=0; Path=/"},
        )

    user = await db.get(User, session.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User data not found")
    return {"success": True, "user": AuthUserResponse.model_validate(user).model_dump(mode="json")}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        await SessionService.delete_session(db, token)
    SessionService.clear_session_cookie(response)
    return {"success": True, "message": "Logged out successfully"}


@router.post("/reset-password")
async def reset_password(
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    if not payload.token or not payload.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token and password are required",
        )
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters long",
        )

    reset_token = (await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token == payload.token)
    )).scalar_one_or_none()
    if reset_token is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid reset token")
    if reset_token.used_at is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Reset token has already been used")
    if utcnow() > ensure_utc(reset_token.expires_at):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reset token has expired")

    user = await db.get(User, reset_token.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid reset token")
    user.password_hash = SessionService.hash_password(
        payload.password, rounds=settings.reset_bcrypt_rounds)
    reset_token.used_at = utcnow()
    await db.commit()
    return {"success": True, "message": "Password reset successfully"}


@router.post("/store-type")
async def set_store_type(
    payload: StoreTypeRequest,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.store_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Store type is required")
    current_user.store_type = payload.store_type
    await db.commit()
    return {"success": True, "message": "Store type updated successfully"}
