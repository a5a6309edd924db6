from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import TemplateSetting, User
from ..schemas import (
    TemplateSettingCreate,
    TemplateSettingResponse,
    TemplateSettingUpdate,
    TemplateType,
)
from ..services.session_service import SessionService
from ..utils import utcnow

router = APIRouter(
    prefix="/api/templates",
    tags=["templates"],
    responses={404: {"description": "Template setting not found"}},
)

# Keys a client may change through PUT {id, updates}
UPDATABLE_FIELDS = {"sender_name", "sender_email", "subject", "content", "enabled"}


def _serialize(setting: TemplateSetting) -> dict:
    return TemplateSettingResponse.model_validate(setting).model_dump(mode="json")


async def _owned(db: AsyncSession, user_id: int, setting_id: Optional[int]) -> TemplateSetting:
    result = await db.execute(
        select(TemplateSetting).where(
            TemplateSetting.id == setting_id, TemplateSetting.user_id == user_id)
    )
    setting = result.scalar_one_or_none()
    if setting is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template setting not found or not authorized",
        )
    return setting


@router.get("")
async def list_template_settings(
    type: Optional[TemplateType] = Query(None),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(TemplateSetting).where(TemplateSetting.user_id == current_user.id)
    if type is not None:
        query = query.where(TemplateSetting.template_type == type.value)
    result = await db.execute(query.order_by(TemplateSetting.id))
    return {"success": True, "data": [_serialize(s) for s in result.scalars().all()]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_template_setting(
    payload: TemplateSettingCreate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if payload.type is None or not payload.content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Type and content are required")
    setting = TemplateSetting(
        user_id=current_user.id,
        template_type=payload.type.value,
        sender_name=payload.sender_name,
        sender_email=payload.sender_email,
        subject=payload.subject,
        content=payload.content,
        enabled=payload.enabled,
    )
    db.add(setting)
    await db.commit()
    await db.refresh(setting)
    return {"success": True, "data": _serialize(setting)}


@router.put("")
async def update_template_setting(
    payload: TemplateSettingUpdate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.id or not payload.updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Template ID and updates are required")
    setting = await _owned(db, current_user.id, payload.id)
    for key, value in payload.updates.items():
        if key in UPDATABLE_FIELDS:
            setattr(setting, key, value)
    setting.updated_at = utcnow()
    await db.commit()
    await db.refresh(setting)
    return {"success": True, "data": _serialize(setting)}


@router.delete("")
async def delete_template_setting(
    id: Optional[int] = Query(None),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template ID is required")
    setting = await _owned(db, current_user.id, id)
    await db.delete(setting)
    await db.commit()
    return {"success": True, "message": "Template setting deleted"}
