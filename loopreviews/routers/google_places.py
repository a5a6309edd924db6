from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..services.google_service import GoogleService
from ..services.session_service import SessionService

router = APIRouter(
    prefix="/api/google-places",
    tags=["google-places"],
    responses={500: {"description": "Google Maps API key missing or Places API error"}},
)


@router.get("/search")
async def search_places(query: Optional[str] = Query(None)):
    """Establishment autocomplete used by onboarding to find the business"""
    if not query or len(query) < 3:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Query must be at least 3 characters long")
    return {"success": True, "results": await GoogleService.search_places(query)}


@router.get("/reviews")
async def import_place_reviews(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pull the selected Place's latest reviews into the account"""
    GoogleService.require_places_key()
    integration = await GoogleService.get_integration(db, current_user.id)
    if integration is None or integration.status != "connected":
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No connected Google integration found")
    if not integration.business_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="No Google Place ID found for integration")
    data = await GoogleService.import_reviews(db, integration)
    return {"success": True, "data": data}
