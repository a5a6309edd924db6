import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import DeliveryError
from ..models import EmailTemplate, ReviewLink, ReviewRequest, SMSTemplate
from ..schemas import Contact
from ..utils import now_ms, utcnow
from . import templating
from .email_service import EmailService
from .review_link_service import ReviewLinkService
from .sms_service import SMSService

logger = logging.getLogger(__name__)

DATE_FILTERS = {
    "Last 7 Days": timedelta(days=7),
    "Last 30 Days": timedelta(days=30),
}


def _require_contacts(contacts: Optional[List[Contact]]) -> List[Contact]:
    if not contacts:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No contacts provided")
    return contacts


async def _require_review_link(db: AsyncSession, user_id: int) -> ReviewLink:
    link = await ReviewLinkService.get_for_user(db, user_id)
    if link is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Review link not found. Please set up your review link first.",
        )
    return link


class RequestService:
    """Review request bookkeeping and bulk SMS / email sends."""

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        user_id: int,
        contact_type: Optional[str] = None,
        query: Optional[str] = None,
        date_filter: Optional[str] = None,
    ) -> List[ReviewRequest]:
        stmt = select(ReviewRequest).where(ReviewRequest.user_id == user_id)
        if contact_type and contact_type != "all":
            stmt = stmt.where(ReviewRequest.request_type == contact_type)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(
                ReviewRequest.contact_name.ilike(pattern),
                ReviewRequest.contact_email.ilike(pattern),
                ReviewRequest.contact_phone.ilike(pattern),
            ))
        if date_filter == "Today":
            stmt = stmt.where(ReviewRequest.sent_at >= utcnow().replace(
                hour=0, minute=0, second=0, microsecond=0))
        elif date_filter in DATE_FILTERS:
            stmt = stmt.where(ReviewRequest.sent_at >= utcnow() - DATE_FILTERS[date_filter])
        result = await db.execute(stmt.order_by(ReviewRequest.sent_at.desc()))
        return result.scalars().all()

    @staticmethod
    async def record_requests(
        db: AsyncSession,
        user_id: int,
        request_type: Optional[str],
        contacts: Optional[List[Contact]],
        content: Optional[str] = None,
        subject_line: Optional[str] = None,
        from_email: Optional[str] = None,
        sms_sender_name: Optional[str] = None,
    ) -> List[ReviewRequest]:
        """Log requests sent outside the app (no delivery happens here)"""
        if not request_type or not contacts:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing required fields: type, contacts array",
            )
        if request_type not in ("sms", "email"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid request type. Must be 'sms' or 'email'",
            )
        link = await _require_review_link(db, user_id)
        is_sms = request_type == "sms"
        rows = [
            ReviewRequest(
                user_id=user_id,
                review_link_id=link.id,
                contact_name=c.name,
                contact_phone=c.number if is_sms else None,
                contact_email=None if is_sms else c.email,
                request_type=request_type,
                content=content or "",
                subject_line=None if is_sms else subject_line,
                from_email=None if is_sms else from_email,
                sms_sender_name=sms_sender_name if is_sms else None,
                status="sent",
                sent_at=utcnow(),
            )
            for c in contacts
            if c.name and (c.number if is_sms else c.email)
        ]
        if not rows:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid contacts found to send requests to",
            )
        db.add_all(rows)
        await db.commit()
        for row in rows:
            await db.refresh(row)
        return rows

    @staticmethod
    async def send_sms(db: AsyncSession, user_id: int, contacts: Optional[List[Contact]]) -> Dict[str, Any]:
        """Text every contact the owner's SMS template; each attempt is recorded"""
        contacts = _require_contacts(contacts)
        template = (await db.execute(
            select(SMSTemplate).where(SMSTemplate.user_id == user_id)
        )).scalar_one_or_none()
        if template is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="SMS template not found. Please configure your SMS template first.",
            )
        if not template.content:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="SMS template content is empty. Please configure your SMS template.",
            )
        if not SMSService.is_configured():
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Twilio configuration is missing. Please check environment variables.",
            )
        link = await _require_review_link(db, user_id)
        valid = [c for c in contacts if c.name and c.number and c.number.strip()]
        if not valid:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid contacts with phone numbers found",
            )

        company = template.sender_name or "Your Business"
        results, errors = [], []
        for contact in valid:
            review_url = f"{link.review_url}?cid={contact.id or f'sms-{now_ms()}'}"
            body = templating.personalize(template.content, contact.name, company, review_url)
            try:
                sid = await SMSService.send(contact.number, body)
                state = "sent"
                results.append({"contact": contact.name, "phone": contact.number,
                                "status": "sent", "twilioSid": sid})
            except DeliveryError as e:
                state = "failed"
                errors.append({"contact": contact.name, "phone": contact.number,
                               "error": str(e) or "Failed to send SMS"})
            db.add(ReviewRequest(
                user_id=user_id,
                review_link_id=link.id,
                contact_name=contact.name,
                contact_phone=contact.number,
                request_type="sms",
                content=body,
                sms_sender_name=template.sender_name,
                status=state,
                sent_at=utcnow(),
            ))
            await db.commit()

        logger.info(f"User {user_id} sent {len(results)}/{len(valid)} review SMS")
        return {
            "total_contacts": len(valid),
            "successful_sends": len(results),
            "failed_sends": len(errors),
            "results": results,
            "errors": errors,
        }

    @staticmethod
    async def send_email(db: AsyncSession, user_id: int, contacts: Optional[List[Contact]]) -> Dict[str, Any]:
        """Email every contact the owner's template (or the default copy)"""
        contacts = _require_contacts(contacts)
        template = (await db.execute(
            select(EmailTemplate).where(EmailTemplate.user_id == user_id)
        )).scalar_one_or_none()
        subject = (template.subject if template else None) or templating.DEFAULT_EMAIL_SUBJECT
        content = (template.content if template else None) or templating.DEFAULT_EMAIL_CONTENT
        from_email = ((template.from_email if template else None)
                      or settings.from_email or templating.DEFAULT_FROM_EMAIL)
        if not EmailService.is_configured():
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=("Email configuration is missing. Please check environment "
                        "variables and template settings."),
            )
        link = await _require_review_link(db, user_id)
        valid = [c for c in contacts if c.name and c.email and c.email.strip()]
        if not valid:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid contacts with email addresses found",
            )

        company = link.company_name or "Your Business"
        results, errors = [], []
        for contact in valid:
            review_url = f"{link.review_url}?cid={contact.id or f'email-{now_ms()}'}"
            personal_subject = templating.personalize(subject, contact.name, company, review_url)
            body = templating.personalize(content, contact.name, company, review_url)
            message = EmailService.build_message(
                to=contact.email,
                subject=personal_subject,
                text=body,
                html=templating.render_email_html(body, contact.name, company, review_url),
                from_email=from_email,
                from_name=company,
            )
            try:
                message_id = await EmailService.send(message)
                state = "sent"
                results.append({"contact": contact.name, "email": contact.email,
                                "status": "sent", "messageId": message_id})
            except DeliveryError as e:
                state = "failed"
                errors.append({"contact": contact.name, "email": contact.email,
                               "error": str(e) or "Failed to send email"})
            db.add(ReviewRequest(
                user_id=user_id,
                review_link_id=link.id,
                contact_name=contact.name,
                contact_email=contact.email,
                request_type="email",
                content=body,
                subject_line=personal_subject,
                from_email=from_email,
                status=state,
                sent_at=utcnow(),
            ))
            await db.commit()

        logger.info(f"User {user_id} sent {len(results)}/{len(valid)} review emails")
        return {
            "total_contacts": len(valid),
            "successful_sends": len(results),
            "failed_sends": len(errors),
            "results": results,
            "errors": errors,
        }
