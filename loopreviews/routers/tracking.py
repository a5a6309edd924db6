import logging
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db, session_scope
from ..schemas import ClickResponse, RedirectTrackRequest, TrackClickRequest
from ..services.rate_limiter import click_key, click_rate_limiter
from ..services.tracking_service import TrackingService
from ..utils import client_ip, is_valid_customer_id, isoformat, now_ms, random_token, to_base36, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["tracking"],
    responses={
        400: {"description": "Invalid tracking payload"},
        429: {"description": "Rate limit exceeded"},
    },
)


def _require_customer_id(customer_id: str) -> None:
    if not is_valid_customer_id(customer_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid customer_id format")


def _new_session_id() -> str:
    return to_base36(now_ms()) + random_token(11)


def _tracked_url(redirect_url: str, customer_id: str, campaign: str = None, source: str = None) -> str:
    """Append the tracking parameters to the destination URL"""
    parsed = urlparse(redirect_url)
    params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    params["cid"] = customer_id
    if campaign:
        params["campaign"] = campaign
    if source:
        params["source"] = source
    params["tracked"] = "1"
    return urlunparse(parsed._replace(query=urlencode(params)))


def _check_redirect_target(redirect_url: str) -> None:
    parsed = urlparse(redirect_url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid redirect URL")
    allowed = settings.redirect_domains
    if allowed:
        host = parsed.hostname.lower()
        if not any(host == domain or host.endswith("." + domain) for domain in allowed):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Redirect URL not allowed")


@router.post("/track-click")
async def track_click(
    payload: TrackClickRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Record one review-funnel event.

    Star selections and platform redirects also create or update the review
    behind the event. A failed insert still answers 200 with a fallback id
    so the public review page never breaks on tracking.
    """
    event_type = payload.event_type or "page_visit"
    if event_type == "star_selection" and not (payload.star_rating and 1 <= payload.star_rating <= 5):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="star_rating must be between 1 and 5 for star_selection events",
        )
    if event_type == "platform_redirect" and (not payload.redirect_platform or not payload.redirect_url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="redirect_platform and redirect_url are required for platform_redirect events",
        )
    if payload.customer_id:
        _require_customer_id(payload.customer_id)

    customer_id = payload.customer_id or f"anon_{now_ms()}_{random_token(9)}"
    ip_address = client_ip(request)
    if not click_rate_limiter.hit(click_key(ip_address, customer_id)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")

    try:
        click = await TrackingService.record_click(
            db,
            customer_id=customer_id[:100],
            page=payload.page,
            user_agent=payload.user_agent,
            referrer=payload.referrer,
            session_id=payload.session_id,
            ip_address=ip_address,
            event_type=event_type,
            star_rating=payload.star_rating,
            redirect_platform=payload.redirect_platform,
            redirect_url=payload.redirect_url,
            review_completed=payload.review_completed,
            additional_data=payload.additional_data,
        )
        click_id, tracked_at = click.id, isoformat(click.timestamp)
    except SQLAlchemyError as e:
        logger.error(f"Click insert failed for {customer_id}: {e}")
        await db.rollback()
        click_id, tracked_at = f"fallback_{now_ms()}", isoformat(utcnow())

    review_result = None
    if event_type in ("star_selection", "platform_redirect"):
        try:
            review_result = await TrackingService.review_from_tracking(
                db,
                customer_id=customer_id,
                event_type=event_type,
                page=(payload.page or f"/event/{event_type}")[:500],
                star_rating=payload.star_rating,
                redirect_platform=payload.redirect_platform,
                available_platforms=(payload.additional_data or {}).get("available_platforms"),
            )
        except HTTPException as e:
            logger.info(f"No review saved for {customer_id}: {e.detail}")
        except SQLAlchemyError as e:
            logger.error(f"Review from tracking failed for {customer_id}: {e}")
            await db.rollback()

    review_data = (review_result or {}).get("data") or {}
    return {
        "success": True,
        "data": {
            "id": click_id,
            "tracked_at": tracked_at,
            "review_saved": bool(review_result and review_result.get("success")),
            "review_action": review_data.get("action"),
            "customer_type": review_data.get("customer_type"),
        },
    }


@router.get("/track-click")
async def list_clicks(
    customer_id: str = Query(None),
    limit: int = Query(50),
    db: AsyncSession = Depends(get_db),
):
    if not customer_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="customer_id is required")
    _require_customer_id(customer_id)
    clicks = await TrackingService.list_clicks(db, customer_id, max(1, min(limit, 1000)))
    return {
        "success": True,
        "data": [ClickResponse.model_validate(c).model_dump(mode="json") for c in clicks],
        "total_clicks": len(clicks),
    }


async def _record_redirect_click(customer_id: str, page: str, ip_address: str,
                                 user_agent: str, referrer: str) -> None:
    """Background insert for the redirect hop; failures only get logged"""
    try:
        async with session_scope() as db:
            await TrackingService.record_click(
                db,
                customer_id=customer_id[:100],
                page=page,
                user_agent=user_agent,
                referrer=referrer,
                session_id=_new_session_id(),
                ip_address=ip_address,
            )
    except Exception as e:
        logger.error(f"Redirect click for {customer_id} was not recorded: {e}")


@router.get("/redirect")
async def redirect(
    request: Request,
    background_tasks: BackgroundTasks,
    cid: str = Query(None),
    customer_id: str = Query(None),
    url: str = Query(None),
    redirect: str = Query(None),
    campaign: str = Query(None),
    source: str = Query(None),
):
    """Track a link click and bounce the visitor to the destination"""
    customer_id = cid or customer_id
    redirect_url = url or redirect
    if not customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Customer ID (cid) is required")
    if not redirect_url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Redirect URL is required")
    _require_customer_id(customer_id)
    _check_redirect_target(redirect_url)

    background_tasks.add_task(
        _record_redirect_click,
        customer_id,
        f"/redirect?{request.url.query}",
        client_ip(request),
        request.headers.get("user-agent", ""),
        request.headers.get("referer", ""),
    )
    return RedirectResponse(
        _tracked_url(redirect_url, customer_id, campaign, source),
        status_code=status.HTTP_302_FOUND,
    )


@router.post("/redirect")
async def track_redirect(
    payload: RedirectTrackRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    if not payload.customer_id or not payload.redirect_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="customer_id and redirect_url are required",
        )
    _require_customer_id(payload.customer_id)
    if not payload.track_only:
        _check_redirect_target(payload.redirect_url)

    click = await TrackingService.record_click(
        db,
        customer_id=payload.customer_id,
        page="API-tracked" if payload.track_only else "/redirect-api",
        user_agent=request.headers.get("user-agent", ""),
        referrer=request.headers.get("referer", ""),
        session_id=_new_session_id(),
        ip_address=client_ip(request),
    )
    if payload.track_only:
        return {
            "success": True,
            "data": {"id": click.id, "tracked_at": isoformat(click.timestamp)},
        }
    return {
        "success": True,
        "redirect_url": _tracked_url(
            payload.redirect_url, payload.customer_id, payload.campaign, payload.source),
        "tracking_id": click.id,
    }
