from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import AutomationSettings, AutomationWorkflow, EmailTemplate, ReviewTemplate, User
from ..schemas import (
    AutomationSettingsResponse,
    EmailTemplateResponse,
    ReviewTemplateCreate,
    ReviewTemplateResponse,
    WorkflowCreate,
    WorkflowResponse,
)
from ..services.session_service import SessionService
from ..utils import utcnow

router = APIRouter(
    prefix="/api/review-management",
    tags=["review-management"],
    responses={401: {"description": "Not authenticated"}},
)

SETTINGS_FIELDS = {"automation_enabled", "email_enabled", "sms_enabled"}
EMAIL_TEMPLATE_FIELDS = {
    "name", "subject", "content", "from_email", "sequence", "initial_trigger", "initial_wait_days",
}
WORKFLOW_EVENTS = {"positive_review", "negative_review", "neutral_review"}


def _not_found(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)


async def _owned_row(db: AsyncSession, model, user_id: int):
    result = await db.execute(select(model).where(model.user_id == user_id))
    return result.scalar_one_or_none()


def _apply(row, updates: Dict[str, Any], allowed: set) -> None:
    for key, value in updates.items():
        if key in allowed:
            setattr(row, key, value)


# Automation settings

@router.get("/automation-settings")
async def get_automation_settings(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _owned_row(db, AutomationSettings, current_user.id)
    if row is None:
        raise _not_found("Automation settings not found")
    return {"success": True, "data": AutomationSettingsResponse.model_validate(row).model_dump(mode="json")}


@router.put("/automation-settings")
async def update_automation_settings(
    updates: Dict[str, Any] = Body(...),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _owned_row(db, AutomationSettings, current_user.id)
    if row is None:
        raise _not_found("Automation settings not found or not authorized")
    _apply(row, updates, SETTINGS_FIELDS)
    row.updated_at = utcnow()
    await db.commit()
    await db.refresh(row)
    return {"success": True, "data": AutomationSettingsResponse.model_validate(row).model_dump(mode="json")}


# Email template

@router.get("/email-template")
async def get_email_template(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    template = await _owned_row(db, EmailTemplate, current_user.id)
    if template is None:
        raise _not_found("Email template not found")
    return {"success": True, "data": EmailTemplateResponse.model_validate(template).model_dump(mode="json")}


@router.put("/email-template")
async def update_email_template(
    updates: Dict[str, Any] = Body(...),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    template = await _owned_row(db, EmailTemplate, current_user.id)
    if template is None:
        raise _not_found("Email template not found or not authorized")
    _apply(template, updates, EMAIL_TEMPLATE_FIELDS)
    template.updated_at = utcnow()
    await db.commit()
    await db.refresh(template)
    return {"success": True, "data": EmailTemplateResponse.model_validate(template).model_dump(mode="json")}


# Workflows

@router.get("/workflows")
async def list_workflows(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(AutomationWorkflow)
        .where(AutomationWorkflow.user_id == current_user.id)
        .order_by(AutomationWorkflow.created_at.desc(), AutomationWorkflow.id.desc())
    )
    return {
        "success": True,
        "data": [WorkflowResponse.model_validate(w).model_dump(mode="json") for w in result.scalars().all()],
    }


@router.post("/workflows")
async def create_workflow(
    payload: WorkflowCreate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """New workflow; counters always start at zero"""
    if not payload.name or not payload.trigger_event:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Name and trigger_event are required")
    if payload.trigger_event not in WORKFLOW_EVENTS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid trigger_event")
    for template_id in (payload.email_template_id, payload.sms_template_id):
        if template_id is None:
            continue
        owned = await db.execute(select(ReviewTemplate.id).where(
            ReviewTemplate.id == template_id, ReviewTemplate.user_id == current_user.id))
        if owned.scalar_one_or_none() is None:
            raise _not_found("Review template not found")

    workflow = AutomationWorkflow(
        user_id=current_user.id,
        name=payload.name,
        trigger_event=payload.trigger_event,
        delay_days=payload.delay_days,
        email_template_id=payload.email_template_id,
        sms_template_id=payload.sms_template_id,
        is_active=payload.is_active,
        sent_count=0,
        opened_count=0,
        clicked_count=0,
    )
    db.add(workflow)
    await db.commit()
    await db.refresh(workflow)
    return {"success": True, "data": WorkflowResponse.model_validate(workflow).model_dump(mode="json")}


# Review templates (bodies referenced by workflows)

@router.get("/review-templates")
async def list_review_templates(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ReviewTemplate).where(ReviewTemplate.user_id == current_user.id).order_by(ReviewTemplate.id))
    return {
        "success": True,
        "data": [ReviewTemplateResponse.model_validate(t).model_dump(mode="json") for t in result.scalars().all()],
    }


@router.post("/review-templates", status_code=status.HTTP_201_CREATED)
async def create_review_template(
    payload: ReviewTemplateCreate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.body:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template body is required")
    if payload.template_type not in (None, "email", "sms"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid template_type")
    template = ReviewTemplate(
        user_id=current_user.id,
        name=payload.name,
        subject=payload.subject,
        body=payload.body,
        template_type=payload.template_type,
    )
    db.add(template)
    await db.commit()
    await db.refresh(template)
    return {"success": True, "data": ReviewTemplateResponse.model_validate(template).model_dump(mode="json")}


async def _owned_template(db: AsyncSession, user_id: int, template_id: int) -> ReviewTemplate:
    result = await db.execute(select(ReviewTemplate).where(
        ReviewTemplate.id == template_id, ReviewTemplate.user_id == user_id))
    template = result.scalar_one_or_none()
    if template is None:
        raise _not_found("Review template not found or not authorized")
    return template


@router.put("/review-templates/{template_id}")
async def update_review_template(
    template_id: int,
    payload: ReviewTemplateCreate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    template = await _owned_template(db, current_user.id, template_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(template, key, value)
    await db.commit()
    await db.refresh(template)
    return {"success": True, "data": ReviewTemplateResponse.model_validate(template).model_dump(mode="json")}


@router.delete("/review-templates/{template_id}")
async def delete_review_template(
    template_id: int,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a template; workflows pointing at it lose that channel"""
    template = await _owned_template(db, current_user.id, template_id)
    for column in (AutomationWorkflow.email_template_id, AutomationWorkflow.sms_template_id):
        result = await db.execute(select(AutomationWorkflow).where(column == template_id))
        for workflow in result.scalars().all():
            setattr(workflow, column.key, None)
    await db.delete(template)
    await db.commit()
    return {"success": True, "message": "Review template deleted"}
