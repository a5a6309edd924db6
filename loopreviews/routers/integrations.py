import json
import logging
from typing import Optional
from urllib.parse import quote, urlencode

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db, session_scope
from ..exceptions import LoopReviewsError
from ..models import Integration, User
from ..schemas import GooglePlaceSelect, IntegrationResponse, ShopifyAuthRequest
from ..services.google_service import GoogleService
from ..services.session_service import SessionService
from ..services.shopify_service import ShopifyService
from ..utils import isoformat, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/integrations",
    tags=["integrations"],
    responses={401: {"description": "Not authenticated"}},
)

SHOPIFY_SETUP_MESSAGE = (
    "Shopify API credentials not configured. Please create a Shopify app and set "
    "APP_SHOPIFY_CLIENT_ID and APP_SHOPIFY_CLIENT_SECRET."
)


def _site_redirect(path: str, **params) -> RedirectResponse:
    url = f"{settings.base_url.rstrip('/')}{path}"
    if params:
        url = f"{url}?{urlencode(params, quote_via=quote)}"
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("")
async def list_integrations(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Integration).where(Integration.user_id == current_user.id).order_by(Integration.name))
    return {
        "success": True,
        "data": [IntegrationResponse.model_validate(i).model_dump(mode="json") for i in result.scalars().all()],
    }


# Shopify

@router.post("/shopify/auth")
async def shopify_auth(
    payload: ShopifyAuthRequest,
    current_user: User = Depends(SessionService.get_current_user),
):
    """Consent URLs for connecting a store"""
    if not payload.shop_domain:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Shop domain is required")
    if not ShopifyService.is_valid_shop_domain(payload.shop_domain):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid shop domain format. Must be in format: shop-name.myshopify.com",
        )
    if not ShopifyService.is_configured():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": SHOPIFY_SETUP_MESSAGE, "setup_required": True},
        )
    return {"success": True, **ShopifyService.build_auth_urls(payload.shop_domain)}


async def _shopify_initial_sync(user_id: int) -> None:
    """Register customer webhooks and import customers after a fresh connect"""
    try:
        async with session_scope() as db:
            integration = await ShopifyService.get_integration(db, user_id)
            if integration is None:
                return
            shop, token = ShopifyService.credentials(integration)
            webhooks = await ShopifyService.register_webhooks(shop, token)
            result = await ShopifyService.sync_customers(db, integration)
            integration.additional_data = {
                **(integration.additional_data or {}),
                "webhooks_registered": isoformat(utcnow()),
                "webhook_results": webhooks["results"],
                "initial_customer_sync": isoformat(utcnow()),
            }
            await db.commit()
            logger.info(f"Shopify initial sync for user {user_id}: {result['message']}")
    except Exception as e:
        logger.error(f"Shopify initial sync for user {user_id} failed: {e}")


@router.get("/shopify/callback")
async def shopify_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    OAuth return leg.

    Every failure redirects back to the site with an ``error`` query
    parameter; the browser never sees a JSON error here.
    """
    user = await SessionService.resolve_user(db, request.cookies.get(settings.session_cookie_name))
    if user is None:
        return _site_redirect("/", error="not_authenticated")

    params = dict(request.query_params)
    code, state, shop = params.get("code"), params.get("state"), params.get("shop")
    if not code or not state or not shop or not params.get("hmac"):
        return _site_redirect("/", error="missing_parameters")
    if not ShopifyService.verify_oauth_hmac(params):
        return _site_redirect("/", error="invalid_hmac")
    _, _, state_shop = state.partition(":")
    if not state_shop or state_shop != shop:
        return _site_redirect("/", error="invalid_state")

    try:
        token_data = await ShopifyService.exchange_code(shop, code)
        shop_info = await ShopifyService.fetch_shop(shop, token_data["access_token"])
        await ShopifyService.save_connection(db, user.id, shop, token_data, shop_info)
    except (LoopReviewsError, httpx.HTTPError) as e:
        logger.warning(f"Shopify connect for user {user.id} failed: {e}")
        return _site_redirect("/", error="callback_error", msg=str(e))

    background_tasks.add_task(_shopify_initial_sync, user.id)
    return _site_redirect("/", tab="integrations", shopify="connected", customers="syncing")


@router.post("/shopify/disconnect")
async def shopify_disconnect(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await ShopifyService.get_integration(db, current_user.id, connected_only=False)
    if integration is not None:
        integration.status = "disconnected"
        integration.updated_at = utcnow()
        await db.commit()
    return {"success": True, "message": "Shopify integration disconnected successfully"}


async def _connected_shopify(db: AsyncSession, user_id: int) -> Integration:
    integration = await ShopifyService.get_integration(db, user_id)
    if integration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shopify integration not found")
    return integration


@router.post("/shopify/register-webhooks")
async def shopify_register_webhooks(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await _connected_shopify(db, current_user.id)
    shop, token = ShopifyService.credentials(integration)
    result = await ShopifyService.register_webhooks(shop, token)
    return {"success": True, **result}


@router.post("/shopify/sync-customers")
async def shopify_sync_customers(
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await _connected_shopify(db, current_user.id)
    return {"success": True, "data": await ShopifyService.sync_customers(db, integration)}


@router.post("/shopify/webhook")
async def shopify_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """customers/create|update|delete pushed by Shopify, verified against the raw body"""
    body = await request.body()
    if not ShopifyService.verify_webhook(body, request.headers.get("x-shopify-hmac-sha256")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
    topic = request.headers.get("x-shopify-topic", "")
    shop = request.headers.get("x-shopify-shop-domain", "")
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")

    integration = await ShopifyService.find_by_shop(db, shop)
    if integration is None:
        logger.info(f"Shopify webhook {topic} for unknown shop {shop}")
        return {"success": True, "result": "ignored"}
    outcome = await ShopifyService.apply_webhook(db, integration.user_id, topic, payload)
    logger.info(f"Shopify webhook {topic} from {shop}: {outcome}")
    return {"success": True, "result": outcome}


# Google

@router.get("/google/auth")
async def google_auth(
    current_user: User = Depends(SessionService.get_current_user),
):
    return {"success": True, "authUrl": GoogleService.build_auth_url(current_user.id)}


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    if error:
        return _site_redirect("/dashboard", integration_error=error)
    if not code or not state:
        return _site_redirect("/dashboard", integration_error="missing_code_or_state")

    # state carries the user id; it must match whoever holds the session
    user = await SessionService.resolve_user(db, request.cookies.get(settings.session_cookie_name))
    if user is None or str(user.id) != state:
        return _site_redirect("/dashboard", integration_error="invalid_state")

    try:
        tokens = await GoogleService.exchange_code(code)
        profile = await GoogleService.fetch_profile(tokens["access_token"])
        await GoogleService.save_connection(db, user.id, tokens, profile)
    except (LoopReviewsError, httpx.HTTPError) as e:
        logger.warning(f"Google connect for user {user.id} failed: {e}")
        return _site_redirect("/dashboard", integration_error="callback_error")

    return _site_redirect(
        "/dashboard",
        integration_success="google",
        business_count=str(len(profile["accounts"])),
    )


@router.post("/google/place")
async def google_select_place(
    payload: GooglePlaceSelect,
    current_user: User = Depends(SessionService.get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not payload.place_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Place ID is required")
    integration = await GoogleService.select_place(db, current_user.id, payload.place_id, payload.name)
    return {"success": True, "data": IntegrationResponse.model_validate(integration).model_dump(mode="json")}
