import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import User
from ..schemas import SubscriptionUpdate, TrialSetupRequest
from ..services.billing_service import BillingService
from ..services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["billing"],
    responses={500: {"description": "Stripe not configured"}},
)


@router.post("/stripe/create-trial-setup")
async def create_trial_setup(
    payload: TrialSetupRequest,
    current_user: User = Depends(SessionService.get_current_user),
):
    """Start the card-on-file checkout for a 7-day trial"""
    if not payload.user_id or not payload.user_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID and email are required")
    if payload.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot start a trial for another account")
    return await BillingService.create_trial_setup(
        str(payload.user_id), payload.user_email, payload.plan_name, payload.billing_period)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Stripe event sink; the signature is checked against the raw body"""
    payload = await request.body()
    event = BillingService.construct_event(payload, request.headers.get("stripe-signature"))
    event_type = await BillingService.handle_event(db, event)
    logger.info(f"Stripe event {event['id']} ({event_type}) processed")
    return {"received": True}


@router.get("/billing/invoices")
async def list_invoices(
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(SessionService.get_current_user),
):
    return {"success": True, "data": await BillingService.list_invoices(current_user, limit)}


@router.get("/billing/subscription")
async def get_subscription(
    current_user: User = Depends(SessionService.get_current_user),
):
    return {"success": True, "data": BillingService.subscription_summary(current_user)}


@router.put("/billing/subscription")
async def update_subscription(
    payload: SubscriptionUpdate,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Schedule or undo cancellation at the end of the current period"""
    if payload.cancel_at_period_end is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cancel_at_period_end is required")
    user = await BillingService.set_cancel_at_period_end(db, current_user, payload.cancel_at_period_end)
    return {"success": True, "data": BillingService.subscription_summary(user)}
