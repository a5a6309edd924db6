import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..exceptions import LoopReviewsError
from ..models import Review, User
from ..schemas import PublicFeedbackRequest, PublicTrackReviewRequest
from ..services import templating
from ..services.email_service import EmailService
from ..services.review_link_service import ReviewLinkService
from ..utils import is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/public",
    tags=["public"],
    responses={404: {"description": "Review link not found"}},
)


async def notify_owner(
    recipient: str,
    company_name: str,
    customer_name: str,
    customer_email: str,
    rating: int,
    feedback: str,
    agreed_to_marketing: bool,
) -> None:
    """Email the business about new private feedback; failures are only logged"""
    if not EmailService.is_configured():
        logger.info("SMTP not configured; skipping feedback notification")
        return
    message = EmailService.build_message(
        to=recipient,
        subject=f"New {rating}-star review from {customer_name}",
        text=(f"New customer feedback for {company_name}\n\n"
              f"Rating: {rating}/5 stars\n"
              f"Customer: {customer_name} ({customer_email})\n\n"
              f"Feedback:\n{feedback}"),
        html=templating.render_feedback_notification(
            company_name, customer_name, customer_email, rating, feedback, agreed_to_marketing),
        from_name="Loop Reviews",
    )
    try:
        await EmailService.send(message)
    except LoopReviewsError as e:
        logger.warning(f"Feedback notification to {recipient} failed: {e}")


@router.post("/feedback")
async def submit_feedback(
    payload: PublicFeedbackRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    Private feedback left on the public review page.

    Stored as a review against the link owner; the owner is emailed after
    the response has been sent.
    """
    if not (payload.review_url_id and payload.customer_name and payload.customer_email
            and payload.rating and payload.feedback):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    if not is_valid_email(payload.customer_email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")
    if not 1 <= payload.rating <= 5:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Rating must be between 1 and 5")

    link = await ReviewLinkService.find_by_url_id(db, payload.review_url_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review link not found")
    owner = await db.get(User, link.user_id)

    review = Review(
        user_id=link.user_id,
        customer_id=payload.customer_id,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        rating=payload.rating,
        title=f"Review from {payload.customer_name}",
        comment=payload.feedback,
        platform=payload.selected_platform or "internal",
        status="published",
        helpful_count=0,
        verified=False,
    )
    db.add(review)
    await db.commit()
    await db.refresh(review)

    recipient = owner and (owner.notification_email or owner.email)
    if recipient and (owner.email_notifications is None or owner.email_notifications):
        background_tasks.add_task(
            notify_owner,
            recipient,
            owner.company or link.company_name or "Your Business",
            payload.customer_name,
            payload.customer_email,
            payload.rating,
            payload.feedback,
            payload.agree_to_marketing,
        )

    return {"success": True, "data": {"id": review.id, "message": "Feedback submitted successfully"}}


@router.post("/track-review")
async def track_review(
    payload: PublicTrackReviewRequest,
    db: AsyncSession = Depends(get_db),
):
    """Record that a visitor rated and went on to an external platform"""
    if not payload.review_url_id or not payload.rating:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    link = await ReviewLinkService.find_by_url_id(db, payload.review_url_id)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review link not found")

    review = Review(
        user_id=link.user_id,
        customer_id=payload.customer_id,
        customer_name="Customer" if payload.customer_id else "Anonymous Visitor",
        customer_email="",
        rating=payload.rating,
        comment=f"Gave {payload.rating} stars and was redirected to {payload.platform}",
        platform="internal",
        status="published",
    )
    db.add(review)
    await db.commit()
    await db.refresh(review)
    return {"success": True, "data": {"id": review.id, "message": "Review tracked successfully"}}
