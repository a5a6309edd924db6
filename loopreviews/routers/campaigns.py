from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas import (
    AutomationSettingsResponse,
    CampaignRequest,
    EmailTemplateResponse,
    SMSTemplateResponse,
)
from ..services.campaign_service import CampaignService
from ..services.session_service import SessionService

router = APIRouter(
    prefix="/api/campaigns",
    tags=["campaigns"],
    responses={401: {"description": "Not authenticated"}},
)


@router.get("")
async def get_campaigns(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Saved email/SMS templates and switches, or the defaults for new accounts"""
    return {"success": True, "data": await CampaignService.get_campaigns(db, current_user.id)}


@router.post("")
async def save_campaign(
    payload: CampaignRequest,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = payload.data or {}
    if payload.type == "email":
        template = await CampaignService.save_email(db, current_user.id, data)
        await CampaignService.refresh_automation(db, current_user.id, "email", template.initial_trigger)
        return {"success": True, "data": EmailTemplateResponse.model_validate(template).model_dump(mode="json")}
    if payload.type == "sms":
        template = await CampaignService.save_sms(db, current_user.id, data)
        await CampaignService.refresh_automation(db, current_user.id, "sms", template.initial_trigger)
        return {"success": True, "data": SMSTemplateResponse.model_validate(template).model_dump(mode="json")}
    if payload.type == "settings":
        row = await CampaignService.save_settings(db, current_user.id, data)
        return {"success": True, "data": AutomationSettingsResponse.model_validate(row).model_dump(mode="json")}
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid campaign type")
