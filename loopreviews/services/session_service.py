from datetime import timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, Response, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models import User, UserSession
from ..utils import ensure_utc, now_ms, random_token, utcnow


class SessionService:
    @staticmethod
    def hash_password(password: str, rounds: Optional[int] = None) -> str:
        """Hash a password with bcrypt"""
        salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed hash in the database
            return False

    @staticmethod
    def new_session_token(user_id: int) -> str:
        return f"session_{user_id}_{now_ms()}_{random_token(9)}"

    @staticmethod
    async def create_session(db: AsyncSession, user: User) -> UserSession:
        """Persist a new login session for the user"""
        session = UserSession(
            session_token=SessionService.new_session_token(user.id),
            user_id=user.id,
            expires_at=utcnow() + timedelta(days=settings.session_ttl_days),
        )
        db.add(session)
        await db.commit()
        await db.refresh(session)
        return session

    @staticmethod
    def set_session_cookie(response: Response, token: str) -> None:
        response.set_cookie(
            key=settings.session_cookie_name,
            value=token,
            httponly=True,
            secure=settings.environment == "production",
            samesite="lax",
            max_age=settings.session_ttl_days * 24 * 60 * 60,
            path="/",
        )

    @staticmethod
    def clear_session_cookie(response: Response) -> None:
        response.delete_cookie(settings.session_cookie_name, path="/")

    @staticmethod
    async def delete_session(db: AsyncSession, token: str) -> None:
        await db.execute(delete(UserSession).where(UserSession.session_token == token))
        await db.commit()

    @staticmethod
    async def resolve_user(db: AsyncSession, token: Optional[str]) -> Optional[User]:
        """Return the user behind a live session token, or None"""
        if not token:
            return None
        result = await db.execute(
            select(UserSession).where(UserSession.session_token == token)
        )
        session = result.scalar_one_or_none()
        if session is None or ensure_utc(session.expires_at) < utcnow():
            return None
        return await db.get(User, session.user_id)

    @staticmethod
    async def get_current_user(
        request: Request,
        db: AsyncSession = Depends(get_db),
    ) -> User:
        """Get the current authenticated user from the session cookie"""
        token = request.cookies.get(settings.session_cookie_name)
        user = await SessionService.resolve_user(db, token)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
            )
        return user
