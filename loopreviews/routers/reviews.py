from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Customer, Review, User
from ..schemas import ReviewDeleteRequest, ReviewFromTrackingRequest, ReviewResponse, ReviewUpdateRequest
from ..services.session_service import SessionService
from ..services.stats_service import StatsService
from ..services.tracking_service import TrackingService
from ..utils import is_anonymous

router = APIRouter(
    prefix="/api/reviews",
    tags=["reviews"],
    responses={404: {"description": "Review not found"}},
)

# Columns an owner may edit from the dashboard
EDITABLE_FIELDS = {
    "customer_name",
    "customer_email",
    "rating",
    "title",
    "comment",
    "platform",
    "status",
    "helpful_count",
    "verified",
    "replied",
    "response",
    "review_url",
}


def _review_payload(review: Review, customer: Optional[Customer] = None) -> dict:
    data = ReviewResponse.model_validate(review).model_dump(mode="json")
    if customer is not None:
        data["customer_name"] = customer.name or data["customer_name"]
        data["customer_email"] = customer.email or data["customer_email"]
    data["is_linked_customer"] = customer is not None
    return data


@router.get("")
async def list_reviews(
    rating: Optional[str] = Query(None),
    platform: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Owner's reviews, newest first, with linked customer details merged in"""
    stmt = select(Review).where(Review.user_id == current_user.id)
    if rating and rating != "all":
        if not rating.isdigit():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid rating filter")
        stmt = stmt.where(Review.rating == int(rating))
    if platform and platform != "all":
        stmt = stmt.where(Review.platform.ilike(f"%{platform}%"))
    if query:
        pattern = f"%{query}%"
        stmt = stmt.where(or_(
            Review.customer_name.ilike(pattern),
            Review.comment.ilike(pattern),
            Review.title.ilike(pattern),
        ))
    reviews = (await db.execute(stmt.order_by(Review.created_at.desc()))).scalars().all()

    customer_ids = {r.customer_id for r in reviews if not is_anonymous(r.customer_id)}
    customers = {}
    if customer_ids:
        rows = await db.execute(
            select(Customer).where(Customer.id.in_(customer_ids), Customer.user_id == current_user.id))
        customers = {c.id: c for c in rows.scalars().all()}

    return {
        "success": True,
        "data": [_review_payload(r, customers.get(r.customer_id)) for r in reviews],
    }


@router.put("")
async def update_review(
    payload: ReviewUpdateRequest,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.id or not payload.updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Review ID and updates are required")
    review = (await db.execute(
        select(Review).where(Review.id == payload.id, Review.user_id == current_user.id)
    )).scalar_one_or_none()
    if review is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Review not found or not authorized")

    for key, value in payload.updates.items():
        if key in EDITABLE_FIELDS:
            setattr(review, key, value)
    await db.commit()
    await db.refresh(review)
    return {"success": True, "data": _review_payload(review)}


@router.delete("")
async def delete_review(
    payload: ReviewDeleteRequest,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Review ID is required")
    await db.execute(
        delete(Review).where(Review.id == payload.id, Review.user_id == current_user.id))
    await db.commit()
    return {"success": True, "message": "Review deleted successfully"}


@router.post("/from-tracking")
async def review_from_tracking(
    payload: ReviewFromTrackingRequest,
    db: AsyncSession = Depends(get_db),
):
    """Public: turn a star selection or platform redirect into a review"""
    return await TrackingService.review_from_tracking(
        db,
        customer_id=payload.customer_id,
        event_type=payload.event_type,
        page=payload.page,
        star_rating=payload.star_rating,
        redirect_platform=payload.redirect_platform,
        available_platforms=payload.available_platforms,
    )


@router.get("/with-activity")
async def customers_with_activity(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await StatsService.customers_with_activity(db, current_user.id)
    return {"success": True, "data": rows, "total": len(rows)}
