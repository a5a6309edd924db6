from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..services.session_service import SessionService
from ..services.stats_service import StatsService

router = APIRouter(
    prefix="/api/dashboard",
    tags=["dashboard"],
    responses={401: {"description": "Not authenticated"}},
)


@router.get("/stats")
async def dashboard_stats(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Review funnel for the last ``days`` days: requests, visits, ratings, clicks, reviews"""
    stats = await StatsService.dashboard(db, current_user.id, days)
    return {"success": True, "data": stats}
