import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import LoopReviewsError
from ..models import AutomationSettings, EmailTemplate, SMSTemplate
from ..schemas import AutomationSettingsResponse, EmailTemplateResponse, SMSTemplateResponse
from ..utils import utcnow
from . import templating
from .automation_service import AutomationService

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER = "immediate"
DEFAULT_WAIT_DAYS = 3


def default_sequence(channel: str, content: str, subject: Optional[str] = None) -> List[Dict[str, Any]]:
    """One message step followed by the "add a follow-up?" branch the editor shows"""
    step = {"id": "1", "type": channel, "isOpen": True, "content": content}
    if subject is not None:
        step["subject"] = subject
    return [
        step,
        {
            "id": "branch-1",
            "type": "branch",
            "isOpen": True,
            "content": "Add a follow-up sequence?",
            "branchDecision": "no",
        },
    ]


def _pick(data: Dict[str, Any], camel: str, snake: str, default=None):
    if camel in data:
        return data[camel]
    return data.get(snake, default)


async def _one(db: AsyncSession, model, user_id: int):
    result = await db.execute(select(model).where(model.user_id == user_id))
    return result.scalar_one_or_none()


class CampaignService:
    """Per-account campaign templates (email, SMS) and automation switches."""

    @staticmethod
    async def get_campaigns(db: AsyncSession, user_id: int) -> Dict[str, Any]:
        email = await _one(db, EmailTemplate, user_id)
        sms = await _one(db, SMSTemplate, user_id)
        campaign_settings = await _one(db, AutomationSettings, user_id)

        if email is not None:
            email_data = EmailTemplateResponse.model_validate(email).model_dump(mode="json")
        else:
            email_data = {
                "subject": templating.DEFAULT_EMAIL_SUBJECT,
                "content": templating.DEFAULT_EMAIL_CONTENT,
                "from_email": templating.DEFAULT_FROM_EMAIL,
                "sequence": default_sequence(
                    "email", templating.DEFAULT_EMAIL_CONTENT, templating.DEFAULT_EMAIL_SUBJECT),
                "initial_trigger": DEFAULT_TRIGGER,
                "initial_wait_days": DEFAULT_WAIT_DAYS,
            }
        if sms is not None:
            sms_data = SMSTemplateResponse.model_validate(sms).model_dump(mode="json")
        else:
            sms_data = {
                "content": templating.DEFAULT_SMS_CONTENT,
                "sender_name": templating.DEFAULT_SMS_SENDER,
                "sequence": default_sequence("sms", templating.DEFAULT_SMS_CONTENT),
                "initial_trigger": DEFAULT_TRIGGER,
                "initial_wait_days": DEFAULT_WAIT_DAYS,
            }
        settings_data = AutomationSettingsResponse.model_validate(
            campaign_settings or AutomationSettingsResponse()).model_dump(mode="json")

        email_data["user_id"] = sms_data["user_id"] = settings_data["user_id"] = user_id
        return {"email": email_data, "sms": sms_data, "settings": settings_data}

    @staticmethod
    async def save_email(db: AsyncSession, user_id: int, data: Dict[str, Any]) -> EmailTemplate:
        template = await _one(db, EmailTemplate, user_id)
        if template is None:
            template = EmailTemplate(user_id=user_id)
            db.add(template)
        template.name = data.get("name") or "Default Email Template"
        template.subject = data.get("subject")
        template.content = data.get("content")
        template.from_email = _pick(data, "fromEmail", "from_email")
        template.sequence = data.get("sequence") or []
        template.initial_trigger = _pick(data, "initialTrigger", "initial_trigger") or DEFAULT_TRIGGER
        template.initial_wait_days = _pick(data, "initialWaitDays", "initial_wait_days") or DEFAULT_WAIT_DAYS
        template.updated_at = utcnow()
        await db.commit()
        await db.refresh(template)
        return template

    @staticmethod
    async def save_sms(db: AsyncSession, user_id: int, data: Dict[str, Any]) -> SMSTemplate:
        template = await _one(db, SMSTemplate, user_id)
        if template is None:
            template = SMSTemplate(user_id=user_id)
            db.add(template)
        template.name = data.get("name") or "Default SMS Template"
        template.content = data.get("content")
        template.sender_name = _pick(data, "senderName", "sender_name")
        template.sequence = data.get("sequence") or []
        template.initial_trigger = _pick(data, "initialTrigger", "initial_trigger") or DEFAULT_TRIGGER
        template.initial_wait_days = _pick(data, "initialWaitDays", "initial_wait_days") or DEFAULT_WAIT_DAYS
        template.updated_at = utcnow()
        await db.commit()
        await db.refresh(template)
        return template

    @staticmethod
    async def save_settings(db: AsyncSession, user_id: int, data: Dict[str, Any]) -> AutomationSettings:
        row = await _one(db, AutomationSettings, user_id)
        if row is None:
            row = AutomationSettings(user_id=user_id)
            db.add(row)
        row.automation_enabled = bool(_pick(data, "automationEnabled", "automation_enabled", False))
        row.email_enabled = bool(_pick(data, "emailEnabled", "email_enabled", True))
        row.sms_enabled = bool(_pick(data, "smsEnabled", "sms_enabled", True))
        row.updated_at = utcnow()
        await db.commit()
        await db.refresh(row)
        return row

    @staticmethod
    async def refresh_automation(
        db: AsyncSession, user_id: int, template_type: str, initial_trigger: Optional[str]
    ) -> Dict[str, Any]:
        """
        Queue the saved template for the last 30 days of reviews.

        Reviews that already have a pending job of this type are left alone.
        With an ``immediate`` trigger the due queue is drained straight away.
        Failures are logged; saving the template has already succeeded.
        """
        try:
            scheduled = await AutomationService.schedule_for_user(
                db, user_id, template_type=template_type, days=30)
            if initial_trigger == DEFAULT_TRIGGER and scheduled["jobsScheduled"] > 0:
                await AutomationService.process_pending(db)
            return scheduled
        except (LoopReviewsError, SQLAlchemyError) as e:
            logger.warning(f"Automation refresh for user {user_id} ({template_type}) failed: {e}")
            await db.rollback()
            return {"success": False, "jobsScheduled": 0, "error": str(e)}
