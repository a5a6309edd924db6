import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import ConfigurationError, WebhookVerificationError
from ..models import User
from ..utils import ensure_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

TRIAL_FEATURES = [
    "basic_analytics",
    "custom_review_page",
    "email_collection",
    "sms_collection",
    "basic_integrations",
]
PRO_FEATURES = TRIAL_FEATURES + [
    "advanced_analytics",
    "csv_export",
    "whatsapp_integration",
    "multi_channel_followups",
    "dynamic_routing",
]
ENTERPRISE_FEATURES = PRO_FEATURES + [
    "qr_code_reviews",
    "ai_responses",
    "automated_responses",
    "ai_suggestions",
    "custom_integrations",
]
PLAN_FEATURES = {"basic": TRIAL_FEATURES, "pro": PRO_FEATURES, "enterprise": ENTERPRISE_FEATURES}


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value else None


def _as_dict(obj) -> Dict[str, Any]:
    # StripeObject is not a dict subclass in current stripe releases
    return obj.to_dict() if hasattr(obj, "to_dict") else obj


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


def calculate_trial_status(user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Trial window and plan state derived from the user's billing columns"""
    now = now or utcnow()
    trial_start = ensure_utc(user.trial_start)
    trial_end = ensure_utc(user.trial_end)
    subscription_status = user.subscription_status or "free"
    subscription_type = user.subscription_type or "free"
    in_trial = subscription_status == "trialing"

    days_left = 0
    expired = False
    ending_soon = False
    if trial_end and in_trial:
        days_left = math.ceil((trial_end - now).total_seconds() / 86400)
        expired = days_left <= 0
        ending_soon = 0 < days_left <= 2

    return {
        "isInTrial": in_trial,
        "trialStartDate": isoformat(trial_start),
        "trialEndDate": isoformat(trial_end),
        "daysLeft": max(0, days_left),
        "isTrialExpired": expired,
        "isTrialEndingSoon": ending_soon,
        "subscriptionStatus": subscription_status,
        "subscriptionType": subscription_type,
    }


def has_trial_or_paid_access(trial_status: Dict[str, Any]) -> bool:
    return (
        (trial_status["isInTrial"] and not trial_status["isTrialExpired"])
        or trial_status["subscriptionStatus"] in ("active", "past_due")
    )


def upgrade_message(trial_status: Dict[str, Any]) -> str:
    days_left = trial_status["daysLeft"]
    if trial_status["isTrialExpired"]:
        return "Your 7-day free trial has ended. Upgrade now to continue using all features."
    if trial_status["isTrialEndingSoon"]:
        return f"Your trial ends in {days_left} day{_plural(days_left)}. Upgrade now to avoid interruption."
    if trial_status["isInTrial"]:
        return f"You have {days_left} days left in your free trial. Upgrade anytime!"
    return "Start your 7-day free trial today!"


def trial_progress(user: User, now: Optional[datetime] = None) -> float:
    start, end = ensure_utc(user.trial_start), ensure_utc(user.trial_end)
    if not start or not end or end <= start:
        return 0
    elapsed = ((now or utcnow()) - start).total_seconds()
    return min(100.0, max(0.0, elapsed / (end - start).total_seconds() * 100))


def can_access_feature(trial_status: Dict[str, Any], feature: str) -> bool:
    if not has_trial_or_paid_access(trial_status):
        return False
    return feature in PLAN_FEATURES.get(trial_status["subscriptionType"], TRIAL_FEATURES)


def plan_from_amount(unit_amount: Optional[int]) -> str:
    """Map a monthly price in cents to a plan tier"""
    amount = unit_amount or 0
    if 2900 <= amount <= 3900:
        return "basic"
    if 6900 <= amount <= 7900:
        return "pro"
    if amount >= 16000:
        return "enterprise"
    return "basic"


class BillingService:
    """Stripe checkout, webhook handling and invoice listing."""

    @staticmethod
    def _require_key() -> None:
        if not settings.stripe_secret_key:
            raise ConfigurationError("Stripe")
        stripe.api_key = settings.stripe_secret_key

    @staticmethod
    async def create_trial_setup(
        user_id: str, user_email: str, plan_name: Optional[str] = None, billing_period: str = "monthly"
    ) -> Dict[str, Any]:
        """Stripe customer plus a setup-mode checkout session ($0 due today)"""
        BillingService._require_key()
        plan = plan_name or "basic"
        base = settings.base_url.rstrip("/")
        customer = await asyncio.to_thread(
            stripe.Customer.create,
            email=user_email,
            metadata={"user_id": user_id, "plan_name": plan, "billing_period": billing_period},
        )
        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            payment_method_types=["card"],
            mode="setup",
            customer=customer["id"],
            metadata={
                "user_id": user_id,
                "user_email": user_email,
                "plan_name": plan,
                "billing_period": billing_period,
                "trial_signup": "true",
            },
            success_url=(f"{base}/payment/trial-setup-success?session_id={{CHECKOUT_SESSION_ID}}"
                         f"&plan={plan}&billing={billing_period}"),
            cancel_url=f"{base}/upgrade",
            custom_text={"submit": {"message": (
                "Start your 7-day free trial now - $0 due today! "
                "You'll only be charged after your trial ends.")}},
        )
        return {
            "success": True,
            "setupUrl": session["url"],
            "sessionId": session["id"],
            "customerId": customer["id"],
            "message": "Trial setup session created - $0 due today!",
        }

    @staticmethod
    def construct_event(payload: bytes, signature: Optional[str]):
        if not signature:
            raise WebhookVerificationError("stripe")
        if not settings.stripe_webhook_secret:
            raise ConfigurationError("Stripe webhook")
        try:
            event = stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Stripe webhook rejected: {e}")
            raise WebhookVerificationError("stripe")
        return _as_dict(event)

    @staticmethod
    async def handle_event(db: AsyncSession, event) -> str:
        """Apply a verified Stripe event to the matching user; returns the event type"""
        event_type = event["type"]
        obj = event["data"]["object"]
        if event_type == "checkout.session.completed":
            await BillingService._checkout_completed(db, obj)
        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            await BillingService._subscription_updated(db, obj)
        elif event_type == "customer.subscription.deleted":
            await BillingService._update_by_customer(
                db, obj.get("customer"),
                subscription_type="free",
                subscription_status="canceled",
                current_period_end=_from_timestamp(obj.get("current_period_end")),
            )
        elif event_type == "invoice.payment_succeeded":
            await BillingService._update_by_customer(db, obj.get("customer"), subscription_status="active")
        elif event_type == "invoice.payment_failed":
            await BillingService._update_by_customer(db, obj.get("customer"), subscription_status="past_due")
        elif event_type == "customer.subscription.trial_will_end":
            await BillingService._update_by_customer(db, obj.get("customer"), trial_ending_notified=True)
        else:
            logger.info(f"Ignoring Stripe event {event_type}")
        return event_type

    @staticmethod
    async def _update_by_customer(db: AsyncSession, customer_id: Optional[str], **values) -> Optional[User]:
        if not customer_id:
            return None
        user = (await db.execute(
            select(User).where(User.stripe_customer_id == customer_id)
        )).scalar_one_or_none()
        if user is None:
            logger.warning(f"No user for Stripe customer {customer_id}")
            return None
        for key, value in values.items():
            setattr(user, key, value)
        await db.commit()
        return user

    @staticmethod
    async def _checkout_completed(db: AsyncSession, session) -> None:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id") or session.get("client_reference_id")
        email = (session.get("customer_details") or {}).get("email")
        customer_id = session.get("customer")

        user = None
        if user_id and str(user_id).isdigit():
            user = await db.get(User, int(user_id))
        if user is None and email:
            user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
        if user is None:
            logger.warning(f"Checkout session {session.get('id')} matched no user")
            return
        user.stripe_customer_id = customer_id
        await db.commit()

        if session.get("subscription"):
            BillingService._require_key()
            subscription = _as_dict(await asyncio.to_thread(stripe.Subscription.retrieve, session["subscription"]))
            await BillingService._subscription_updated(db, subscription)

    @staticmethod
    async def _subscription_updated(db: AsyncSession, subscription) -> None:
        customer_id = subscription.get("customer")
        user = (await db.execute(
            select(User).where(User.stripe_customer_id == customer_id)
        )).scalar_one_or_none()
        if user is None and settings.stripe_secret_key:
            # Fall back to the Stripe customer's email and remember the id
            BillingService._require_key()
            customer = _as_dict(await asyncio.to_thread(stripe.Customer.retrieve, customer_id))
            email = None if customer.get("deleted") else customer.get("email")
            if email:
                user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
                if user is not None:
                    user.stripe_customer_id = customer_id
        if user is None:
            logger.warning(f"Subscription {subscription.get('id')} matched no user")
            return

        items = (subscription.get("items") or {}).get("data") or []
        price = items[0].get("price") if items else None
        user.subscription_id = subscription.get("id")
        user.subscription_type = plan_from_amount(price.get("unit_amount") if price else None)
        user.subscription_status = subscription.get("status")
        user.current_period_start = _from_timestamp(subscription.get("current_period_start"))
        user.current_period_end = _from_timestamp(subscription.get("current_period_end"))
        user.trial_start = _from_timestamp(subscription.get("trial_start"))
        user.trial_end = _from_timestamp(subscription.get("trial_end"))
        user.cancel_at_period_end = bool(subscription.get("cancel_at_period_end"))
        user.trial_ending_notified = False
        await db.commit()
        logger.info(f"User {user.id} is now on {user.subscription_type} ({user.subscription_status})")

    @staticmethod
    async def list_invoices(user: User, limit: int = 10) -> List[Dict[str, Any]]:
        if not user.stripe_customer_id:
            return []
        BillingService._require_key()
        invoices = _as_dict(await asyncio.to_thread(
            stripe.Invoice.list, customer=user.stripe_customer_id, limit=limit))
        rows = []
        for index, invoice in enumerate(invoices["data"]):
            status = invoice.get("status")
            rows.append({
                "id": invoice["id"],
                "invoice_number": invoice.get("number") or f"INV-{index + 1}",
                "issue_date": isoformat(_from_timestamp(invoice.get("created"))),
                "due_date": isoformat(_from_timestamp(invoice.get("due_date"))),
                "amount": (invoice.get("total") or 0) / 100,
                "currency": (invoice.get("currency") or "usd").upper(),
                "status": "paid" if status == "paid" else "pending" if status == "open" else "overdue",
                "download_url": invoice.get("invoice_pdf") or invoice.get("hosted_invoice_url") or "#",
            })
        return rows

    @staticmethod
    def subscription_summary(user: User) -> Dict[str, Any]:
        trial = calculate_trial_status(user)
        return {
            "plan": user.subscription_type or "free",
            "status": user.subscription_status or "inactive",
            "stripeCustomerId": user.stripe_customer_id,
            "subscriptionId": user.subscription_id,
            "currentPeriodStart": isoformat(ensure_utc(user.current_period_start)),
            "currentPeriodEnd": isoformat(ensure_utc(user.current_period_end)),
            "cancelAtPeriodEnd": bool(user.cancel_at_period_end),
            "trial": trial,
            "trialProgress": round(trial_progress(user), 1),
            "hasAccess": has_trial_or_paid_access(trial),
            "upgradeMessage": upgrade_message(trial),
        }

    @staticmethod
    async def set_cancel_at_period_end(db: AsyncSession, user: User, cancel: bool) -> User:
        if user.subscription_id:
            BillingService._require_key()
            await asyncio.to_thread(
                stripe.Subscription.modify, user.subscription_id, cancel_at_period_end=cancel)
        user.cancel_at_period_end = cancel
        await db.commit()
        await db.refresh(user)
        return user
