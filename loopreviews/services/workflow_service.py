import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import LoopReviewsError
from ..models import AutomationJob, AutomationWorkflow, Customer, Review, ReviewLink, ReviewTemplate, User
from ..utils import is_anonymous, isoformat, utcnow
from . import templating
from .automation_service import AutomationService
from .email_service import EmailService
from .sms_service import SMSService

logger = logging.getLogger(__name__)


class WorkflowService:
    """Rating-driven follow-up workflows (positive / neutral / negative review)."""

    @staticmethod
    async def trigger_for_review(db: AsyncSession, review_id: int, test_mode: bool = False) -> Dict[str, Any]:
        review = await db.get(Review, review_id)
        if review is None:
            return {"success": False, "error": "Review not found", "workflowsTriggered": 0}

        trigger_event = templating.rating_class(review.rating)
        workflows = (await db.execute(
            select(AutomationWorkflow).where(
                AutomationWorkflow.user_id == review.user_id,
                AutomationWorkflow.trigger_event == trigger_event,
                AutomationWorkflow.is_active.is_(True),
            )
        )).scalars().all()
        if not workflows:
            return {"success": True, "message": "No workflows to trigger", "workflowsTriggered": 0}

        triggered = 0
        outcomes = []
        for workflow in workflows:
            if workflow.delay_days and workflow.delay_days > 0 and not test_mode:
                outcomes.append({
                    "workflowId": workflow.id,
                    "workflowName": workflow.name,
                    "status": "scheduled",
                    "scheduledFor": isoformat(utcnow() + timedelta(days=workflow.delay_days)),
                })
                continue
            try:
                outcome = await WorkflowService.execute(db, workflow, review, test_mode)
            except LoopReviewsError as e:
                outcome = {"workflowId": workflow.id, "workflowName": workflow.name,
                           "success": False, "error": str(e)}
            outcomes.append(outcome)
            if outcome.get("success"):
                triggered += 1
                if not test_mode:
                    workflow.sent_count = (workflow.sent_count or 0) + 1
        await db.commit()
        logger.info(f"Review {review_id}: {triggered}/{len(workflows)} {trigger_event} workflows ran"
                    f"{' (test mode)' if test_mode else ''}")

        return {
            "success": True,
            "reviewId": review_id,
            "triggerEvent": trigger_event,
            "workflowsTriggered": triggered,
            "workflows": outcomes,
        }

    @staticmethod
    async def trigger_for_event(
        db: AsyncSession, user_id: int, event_type: str, test_mode: bool = False, days: int = 7
    ) -> Dict[str, Any]:
        """Run workflows for the user's recent reviews that fall into ``event_type``"""
        since = utcnow() - timedelta(days=days)
        reviews = (await db.execute(
            select(Review).where(Review.user_id == user_id, Review.created_at >= since)
        )).scalars().all()
        matching = [r for r in reviews if templating.rating_class(r.rating) == event_type]

        triggered = 0
        for review in matching:
            result = await WorkflowService.trigger_for_review(db, review.id, test_mode)
            triggered += result.get("workflowsTriggered", 0)
        return {
            "success": True,
            "eventType": event_type,
            "reviewsMatched": len(matching),
            "workflowsTriggered": triggered,
        }

    @staticmethod
    async def execute(db: AsyncSession, workflow: AutomationWorkflow, review: Review,
                      test_mode: bool = False) -> Dict[str, Any]:
        customer_name = review.customer_name or "Valued Customer"
        customer_email = review.customer_email
        customer_phone = None
        if not is_anonymous(review.customer_id):
            customer = (await db.execute(
                select(Customer).where(Customer.id == review.customer_id,
                                       Customer.user_id == review.user_id)
            )).scalar_one_or_none()
            if customer:
                customer_name = customer.name or customer_name
                customer_email = customer.email or customer_email
                customer_phone = customer.phone

        link = (await db.execute(
            select(ReviewLink).where(ReviewLink.user_id == review.user_id)
        )).scalar_one_or_none()
        owner = await db.get(User, review.user_id)
        company = (link.company_name if link else None) or (owner.company if owner else None) or "Your Company"
        review_url = templating.trackable_url(link.review_url if link else None, review.customer_id)
        base = {"workflowId": workflow.id, "workflowName": workflow.name}

        if workflow.email_template_id:
            template = await db.get(ReviewTemplate, workflow.email_template_id)
            if template is None:
                return {**base, "success": False, "error": "Email template not found"}
            if not customer_email:
                return {**base, "success": False, "error": "No customer email available"}
            subject = templating.personalize(
                template.subject or "Follow-up from {{companyName}}",
                customer_name, company, review_url, review.rating)
            body = templating.personalize(template.body, customer_name, company, review_url, review.rating)
            if test_mode:
                return {**base, "success": True, "type": "email", "testMode": True,
                        "recipient": customer_email, "subject": subject}
            message = EmailService.build_message(
                to=customer_email,
                subject=subject,
                text=body,
                html=templating.render_email_html(body, customer_name, company, review_url),
                from_email=settings.from_email or "noreply@yourcompany.com",
                from_name=company,
            )
            message_id = await EmailService.send(message)
            return {**base, "success": True, "type": "email", "messageId": message_id}

        if workflow.sms_template_id:
            template = await db.get(ReviewTemplate, workflow.sms_template_id)
            if template is None:
                return {**base, "success": False, "error": "SMS template not found"}
            if not customer_phone:
                return {**base, "success": False, "error": "No customer phone available"}
            body = templating.personalize(template.body, customer_name, company, review_url, review.rating)
            if test_mode:
                return {**base, "success": True, "type": "sms", "testMode": True,
                        "recipient": customer_phone, "message": body}
            sid = await SMSService.send(customer_phone, body)
            return {**base, "success": True, "type": "sms", "messageSid": sid}

        return {**base, "success": False, "error": "No template configured"}

    @staticmethod
    async def pending_count(db: AsyncSession, user_id: int, event_type: Optional[str] = None) -> int:
        """Pending jobs for the user; narrowed to reviews of the given rating class"""
        if not event_type:
            return await AutomationService.count_pending(db, user_id)
        rows = (await db.execute(
            select(Review.rating)
            .join(AutomationJob, AutomationJob.review_id == Review.id)
            .where(AutomationJob.user_id == user_id, AutomationJob.status == "pending")
        )).scalars().all()
        return sum(1 for rating in rows if templating.rating_class(rating) == event_type)
