import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import AutomationAccessError, LoopReviewsError
from ..models import (
    AutomationJob,
    Customer,
    EmailTemplate,
    Review,
    ReviewLink,
    SMSTemplate,
    User,
)
from ..utils import is_anonymous, isoformat, utcnow
from . import templating
from .email_service import EmailService
from .sms_service import SMSService

logger = logging.getLogger(__name__)

AUTOMATION_PLANS = {"pro", "enterprise"}


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of short months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class AutomationService:
    """
    Turns reviews into delayed follow-up jobs and drains due jobs.

    Job lifecycle: ``pending`` -> ``processing`` -> ``completed`` | ``failed``.
    A job is claimed by flipping ``pending`` to ``processing`` with a
    conditional update, so two pollers never send the same job twice.
    """

    @staticmethod
    def has_automation_access(user: Optional[User]) -> bool:
        return bool(
            user
            and user.subscription_type in AUTOMATION_PLANS
            and user.subscription_status == "active"
        )

    @staticmethod
    def check_access(user: Optional[User]) -> None:
        if user is None:
            raise AutomationAccessError("User not found")
        if not AutomationService.has_automation_access(user):
            raise AutomationAccessError()

    @staticmethod
    def calculate_scheduled_time(
        trigger: Optional[str], wait_days: int = 0, now: Optional[datetime] = None
    ) -> datetime:
        now = now or utcnow()
        if trigger == "immediate":
            return now + timedelta(minutes=5)
        if trigger in ("after_purchase", "after_interaction"):
            return now + timedelta(days=wait_days)
        if trigger == "weekly":
            return now + timedelta(days=7)
        if trigger == "monthly":
            return add_months(now, 1)
        return now + timedelta(days=wait_days or 1)

    @staticmethod
    async def _customer_phone(db: AsyncSession, review: Review) -> Optional[str]:
        if is_anonymous(review.customer_id):
            return None
        result = await db.execute(
            select(Customer.phone).where(
                Customer.id == review.customer_id, Customer.user_id == review.user_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def schedule_for_review(
        db: AsyncSession, review_id: int, template_types: Optional[set] = None
    ) -> Dict[str, Any]:
        """Create pending email/SMS jobs for a review from the owner's templates"""
        template_types = template_types or {"email", "sms"}
        review = await db.get(Review, review_id)
        if review is None:
            return {"success": False, "error": "Review not found", "jobsScheduled": 0}

        email_template = (await db.execute(
            select(EmailTemplate).where(EmailTemplate.user_id == review.user_id)
        )).scalar_one_or_none()
        sms_template = (await db.execute(
            select(SMSTemplate).where(SMSTemplate.user_id == review.user_id)
        )).scalar_one_or_none()

        scheduled: List[Dict[str, Any]] = []
        skipped: List[Dict[str, Any]] = []

        if email_template and "email" in template_types:
            scheduled.append(AutomationService._add_job(
                db, review, email_template, "email"))

        if sms_template and "sms" in template_types:
            phone = await AutomationService._customer_phone(db, review)
            if phone:
                scheduled.append(AutomationService._add_job(
                    db, review, sms_template, "sms", phone))
            else:
                skipped.append({"type": "sms", "error": "No phone number available"})

        await db.commit()
        jobs = []
        for job in scheduled:
            await db.refresh(job)
            jobs.append({
                "jobId": job.id,
                "type": job.template_type,
                "scheduledFor": isoformat(job.scheduled_for),
                "triggerType": job.trigger_type,
                "waitDays": job.wait_days,
            })
        return {
            "success": True,
            "reviewId": review_id,
            "jobsScheduled": len(jobs),
            "scheduledJobs": jobs,
            "skipped": skipped,
        }

    @staticmethod
    def _add_job(db: AsyncSession, review: Review, template, template_type: str,
                 phone: Optional[str] = None) -> AutomationJob:
        wait_days = template.initial_wait_days or 0
        job = AutomationJob(
            user_id=review.user_id,
            review_id=review.id,
            template_id=template.id,
            template_type=template_type,
            customer_id=review.customer_id,
            customer_name=review.customer_name,
            customer_email=review.customer_email,
            customer_phone=phone,
            status="pending",
            trigger_type=template.initial_trigger,
            wait_days=wait_days,
            scheduled_for=AutomationService.calculate_scheduled_time(
                template.initial_trigger, wait_days),
        )
        db.add(job)
        return job

    @staticmethod
    async def schedule_for_user(
        db: AsyncSession,
        user_id: int,
        event_type: Optional[str] = None,
        template_type: Optional[str] = None,
        days: int = 30,
    ) -> Dict[str, Any]:
        """Schedule jobs for the user's recent reviews that have none pending"""
        types = {template_type} if template_type else {"email", "sms"}
        since = utcnow() - timedelta(days=days)
        reviews = (await db.execute(
            select(Review)
            .where(Review.user_id == user_id, Review.created_at >= since)
            .order_by(Review.created_at.desc())
            .limit(50)
        )).scalars().all()
        pending = select(AutomationJob.review_id).where(
            AutomationJob.user_id == user_id, AutomationJob.status == "pending")
        if template_type:
            pending = pending.where(AutomationJob.template_type == template_type)
        pending_ids = set((await db.execute(pending)).scalars().all())

        total = 0
        for review in reviews:
            if review.id in pending_ids:
                continue
            result = await AutomationService.schedule_for_review(db, review.id, types)
            total += result.get("jobsScheduled", 0)
        return {
            "success": True,
            "userId": user_id,
            "eventType": event_type,
            "jobsScheduled": total,
        }

    @staticmethod
    async def list_pending(
        db: AsyncSession, user_id: Optional[int] = None, limit: int = 100
    ) -> Dict[str, Any]:
        query = select(AutomationJob).where(AutomationJob.status == "pending")
        if user_id is not None:
            query = query.where(AutomationJob.user_id == user_id)
        jobs = (await db.execute(
            query.order_by(AutomationJob.scheduled_for.asc()).limit(limit)
        )).scalars().all()
        return {"pendingJobs": jobs, "count": len(jobs)}

    @staticmethod
    async def _claim(db: AsyncSession, job_id: int) -> bool:
        result = await db.execute(
            update(AutomationJob)
            .where(AutomationJob.id == job_id, AutomationJob.status == "pending")
            .values(status="processing", updated_at=utcnow())
        )
        await db.commit()
        return result.rowcount == 1

    @staticmethod
    async def process_pending(db: AsyncSession, test_mode: bool = False) -> Dict[str, Any]:
        """Send every due pending job, oldest first, in one bounded batch"""
        due = (await db.execute(
            select(AutomationJob)
            .where(AutomationJob.status == "pending", AutomationJob.scheduled_for <= utcnow())
            .order_by(AutomationJob.scheduled_for.asc())
            .limit(settings.automation_batch_size)
        )).scalars().all()

        if not due:
            return {
                "success": True,
                "message": "No pending automation jobs to process",
                "processedJobs": 0,
            }

        results = []
        succeeded = 0
        for job_id in [job.id for job in due]:
            if not await AutomationService._claim(db, job_id):
                continue
            job = await db.get(AutomationJob, job_id)
            template_type = job.template_type
            try:
                if template_type == "email":
                    outcome = await AutomationService.process_email_job(db, job, test_mode)
                elif template_type == "sms":
                    outcome = await AutomationService.process_sms_job(db, job, test_mode)
                else:
                    outcome = {"success": False, "error": "Unknown template type"}
            except LoopReviewsError as e:
                outcome = {"success": False, "error": str(e)}
            except Exception as e:
                logger.exception(f"Automation job {job_id} crashed")
                await db.rollback()
                outcome = {"success": False, "error": str(e)}

            now = utcnow()
            await db.execute(
                update(AutomationJob)
                .where(AutomationJob.id == job_id)
                .values(
                    status="completed" if outcome["success"] else "failed",
                    completed_at=now if outcome["success"] else None,
                    error_message=outcome.get("error"),
                    updated_at=now,
                )
            )
            await db.commit()
            if outcome["success"]:
                succeeded += 1
            results.append({
                "jobId": job_id,
                "type": template_type,
                "success": outcome["success"],
                "error": outcome.get("error"),
                "testMode": test_mode,
            })

        return {
            "success": True,
            "processedJobs": len(results),
            "successfulJobs": succeeded,
            "failedJobs": len(results) - succeeded,
            "results": results,
            "testMode": test_mode,
        }

    @staticmethod
    async def _job_context(db: AsyncSession, job: AutomationJob):
        user = await db.get(User, job.user_id)
        link = (await db.execute(
            select(ReviewLink).where(ReviewLink.user_id == job.user_id)
        )).scalar_one_or_none()
        company = (user.company if user else None) or (
            link.company_name if link else None) or "Your Company"
        review_url = templating.trackable_url(
            link.review_url if link else None, job.customer_id)
        return user, company, review_url

    @staticmethod
    async def process_email_job(db: AsyncSession, job: AutomationJob, test_mode: bool = False) -> Dict[str, Any]:
        if not job.customer_email:
            return {"success": False, "error": "No customer email available"}
        template = await db.get(EmailTemplate, job.template_id) if job.template_id else None
        if template is None:
            return {"success": False, "error": "Email template not found"}

        _, company, review_url = await AutomationService._job_context(db, job)
        name = job.customer_name or "Customer"
        subject = templating.personalize(
            template.subject or templating.AUTOMATION_SUBJECT, name, company, review_url)
        body = templating.personalize(template.content, name, company, review_url)

        if test_mode:
            return {"success": True, "messageId": "test-mode", "subject": subject}

        message = EmailService.build_message(
            to=job.customer_email,
            subject=subject,
            text=body,
            html=templating.render_email_html(body, name, company, review_url),
            from_email=template.from_email or settings.from_email or "noreply@yourcompany.com",
            from_name=company,
        )
        message_id = await EmailService.send(message)
        return {"success": True, "messageId": message_id}

    @staticmethod
    async def process_sms_job(db: AsyncSession, job: AutomationJob, test_mode: bool = False) -> Dict[str, Any]:
        if not job.customer_phone:
            return {"success": False, "error": "No customer phone available"}
        template = await db.get(SMSTemplate, job.template_id) if job.template_id else None
        if template is None:
            return {"success": False, "error": "SMS template not found"}

        _, company, review_url = await AutomationService._job_context(db, job)
        body = templating.personalize(
            template.content, job.customer_name or "Customer", company, review_url)

        if test_mode:
            return {"success": True, "messageSid": "test-mode"}

        sid = await SMSService.send(job.customer_phone, body)
        return {"success": True, "messageSid": sid}

    @staticmethod
    async def count_pending(db: AsyncSession, user_id: Optional[int] = None) -> int:
        query = select(func.count(AutomationJob.id)).where(AutomationJob.status == "pending")
        if user_id is not None:
            query = query.where(AutomationJob.user_id == user_id)
        return (await db.execute(query)).scalar_one()
