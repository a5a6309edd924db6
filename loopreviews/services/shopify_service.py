import base64
import hashlib
import hmac
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import ConfigurationError, IntegrationError
from ..models import Customer, Integration
from ..utils import isoformat, random_token, utcnow

logger = logging.getLogger(__name__)

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]*\.myshopify\.com$")
NEXT_PAGE_PATTERN = re.compile(r'<[^>]*page_info=([^&>]+)[^>]*>;\s*rel="next"')
SCOPES = "read_content,read_customers,read_orders,read_products"
WEBHOOK_TOPICS = ("customers/create", "customers/update", "customers/delete")
PAGE_SIZE = 250
MAX_PAGES = 20
INSERT_BATCH = 100


def _digits(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


class ShopifyService:
    """Shopify OAuth, webhooks and customer import over the Admin REST API."""

    @staticmethod
    def is_valid_shop_domain(shop: Optional[str]) -> bool:
        return bool(shop and SHOP_DOMAIN_PATTERN.match(shop))

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.shopify_client_id and settings.shopify_client_secret)

    @staticmethod
    def redirect_uri() -> str:
        return f"{settings.base_url.rstrip('/')}/api/integrations/shopify/callback"

    @staticmethod
    def build_auth_urls(shop: str) -> Dict[str, str]:
        """Consent URLs for the admin.shopify.com and legacy per-shop hosts"""
        state = f"{random_token(13)}:{shop}"
        params = urlencode({
            "client_id": settings.shopify_client_id,
            "scope": SCOPES,
            "redirect_uri": ShopifyService.redirect_uri(),
            "state": state,
        })
        store_name = shop.replace(".myshopify.com", "")
        return {
            "authUrl": f"https://admin.shopify.com/store/{store_name}/oauth/authorize?{params}",
            "alternativeAuthUrl": f"https://{shop}/admin/oauth/authorize?{params}",
            "state": state,
            "shopDomain": shop,
        }

    @staticmethod
    def verify_oauth_hmac(params: Dict[str, str]) -> bool:
        """Hex HMAC-SHA256 over the sorted query string minus hmac/signature"""
        provided = params.get("hmac")
        if not provided or not settings.shopify_client_secret:
            return False
        message = "&".join(
            f"{key}={value}"
            for key, value in sorted(params.items())
            if key not in ("hmac", "signature")
        )
        digest = hmac.new(
            settings.shopify_client_secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(digest, provided)

    @staticmethod
    def verify_webhook(body: bytes, hmac_header: Optional[str]) -> bool:
        """Base64 HMAC-SHA256 of the raw webhook body"""
        if not hmac_header or not settings.shopify_client_secret:
            return False
        computed = base64.b64encode(
            hmac.new(settings.shopify_client_secret.encode("utf-8"), body, hashlib.sha256).digest()
        ).decode("utf-8")
        return hmac.compare_digest(computed, hmac_header)

    @staticmethod
    def _admin_url(shop: str, path: str) -> str:
        return f"https://{shop}/admin/api/{settings.shopify_api_version}/{path}"

    @staticmethod
    async def exchange_code(shop: str, code: str) -> Dict[str, Any]:
        if not ShopifyService.is_configured():
            raise ConfigurationError("Shopify")
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            response = await client.post(
                f"https://{shop}/admin/oauth/access_token",
                json={
                    "client_id": settings.shopify_client_id,
                    "client_secret": settings.shopify_client_secret,
                    "code": code,
                },
            )
        if response.status_code != 200:
            raise IntegrationError("shopify", f"Token exchange failed: {response.status_code}")
        return response.json()

    @staticmethod
    async def fetch_shop(shop: str, access_token: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            response = await client.get(
                ShopifyService._admin_url(shop, "shop.json"),
                headers={"X-Shopify-Access-Token": access_token},
            )
        if response.status_code != 200:
            raise IntegrationError("shopify", f"Shop lookup failed: {response.status_code}")
        return response.json().get("shop", {})

    @staticmethod
    async def save_connection(
        db: AsyncSession, user_id: int, shop: str, token_data: Dict[str, Any], shop_info: Dict[str, Any]
    ) -> Integration:
        """Upsert the (user, shopify) integration as connected"""
        integration = await ShopifyService.get_integration(db, user_id, connected_only=False)
        if integration is None:
            integration = Integration(user_id=user_id, platform="shopify", name="Shopify")
            db.add(integration)
        integration.status = "connected"
        integration.business_name = shop_info.get("name") or shop
        integration.business_id = str(shop_info.get("id") or shop)
        integration.access_token = token_data.get("access_token")
        integration.additional_data = {
            "shop_domain": shop,
            "access_token": token_data.get("access_token"),
            "scopes": token_data.get("scope"),
            "shop_name": shop_info.get("name"),
            "shop_email": shop_info.get("email"),
            "plan": shop_info.get("plan_name"),
            "country": shop_info.get("country_name"),
            "currency": shop_info.get("currency"),
            "timezone": shop_info.get("iana_timezone"),
            "connected_at": isoformat(utcnow()),
        }
        integration.updated_at = utcnow()
        await db.commit()
        await db.refresh(integration)
        return integration

    @staticmethod
    async def get_integration(
        db: AsyncSession, user_id: int, connected_only: bool = True
    ) -> Optional[Integration]:
        query = select(Integration).where(
            Integration.user_id == user_id, Integration.platform == "shopify")
        if connected_only:
            query = query.where(Integration.status == "connected")
        return (await db.execute(query)).scalar_one_or_none()

    @staticmethod
    async def find_by_shop(db: AsyncSession, shop: str) -> Optional[Integration]:
        """Connected integration whose stored shop domain matches a webhook's"""
        result = await db.execute(
            select(Integration).where(Integration.platform == "shopify",
                                      Integration.status == "connected"))
        for integration in result.scalars().all():
            if (integration.additional_data or {}).get("shop_domain") == shop:
                return integration
        return None

    @staticmethod
    def credentials(integration: Integration) -> Tuple[str, str]:
        data = integration.additional_data or {}
        shop = data.get("shop_domain")
        token = data.get("access_token") or integration.access_token
        if not shop or not token:
            raise IntegrationError("shopify", "Shopify integration not found or not connected", 404)
        return shop, token

    @staticmethod
    async def register_webhooks(shop: str, access_token: str) -> Dict[str, Any]:
        address = f"{settings.base_url.rstrip('/')}/api/integrations/shopify/webhook"
        results = []
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            for topic in WEBHOOK_TOPICS:
                try:
                    response = await client.post(
                        ShopifyService._admin_url(shop, "webhooks.json"),
                        headers={"X-Shopify-Access-Token": access_token},
                        json={"webhook": {"topic": topic, "address": address, "format": "json"}},
                    )
                    ok = response.status_code in (200, 201)
                    results.append({
                        "topic": topic,
                        "success": ok,
                        "webhookId": response.json().get("webhook", {}).get("id") if ok else None,
                        "error": None if ok else response.text[:500],
                    })
                except httpx.HTTPError as e:
                    logger.warning(f"Webhook registration for {topic} on {shop} failed: {e}")
                    results.append({"topic": topic, "success": False, "error": str(e)})
        registered = sum(1 for r in results if r["success"])
        return {
            "message": f"Successfully registered {registered}/{len(WEBHOOK_TOPICS)} webhooks",
            "results": results,
        }

    @staticmethod
    async def fetch_customers(shop: str, access_token: str) -> List[Dict[str, Any]]:
        """All customers, following ``Link: rel="next"`` cursors up to MAX_PAGES"""
        customers: List[Dict[str, Any]] = []
        page_info = None
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            for _ in range(MAX_PAGES):
                params = {"limit": PAGE_SIZE}
                if page_info:
                    params["page_info"] = page_info
                response = await client.get(
                    ShopifyService._admin_url(shop, "customers.json"),
                    headers={"X-Shopify-Access-Token": access_token},
                    params=params,
                )
                if response.status_code != 200:
                    raise IntegrationError(
                        "shopify", f"Shopify API error: {response.status_code} - {response.text[:200]}")
                customers.extend(response.json().get("customers", []))
                match = NEXT_PAGE_PATTERN.search(response.headers.get("link", ""))
                page_info = match.group(1) if match else None
                if not page_info:
                    break
        return customers

    @staticmethod
    def to_customer_fields(shopify_customer: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Map a Shopify customer onto our columns; None when it has no channel"""
        email = shopify_customer.get("email")
        addresses = shopify_customer.get("addresses") or []
        phone = shopify_customer.get("phone") or (addresses[0].get("phone") if addresses else None)
        if not email and not phone:
            return None
        if email and phone:
            kind = "both"
        elif email:
            kind = "email"
        else:
            kind = "sms"
        name = f"{shopify_customer.get('first_name') or ''} {shopify_customer.get('last_name') or ''}".strip()
        return {
            "name": name or email or "Shopify Customer",
            "email": email or None,
            "phone": phone or None,
            "type": kind,
            "status": "active" if shopify_customer.get("state") == "enabled" else "inactive",
            "source": "shopify",
            "shopify_customer_id": str(shopify_customer.get("id")),
            "tags": shopify_customer.get("tags") or None,
        }

    @staticmethod
    async def import_customers(
        db: AsyncSession, user_id: int, shopify_customers: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Insert customers we do not already know by Shopify id, email or phone"""
        transformed = [f for f in (ShopifyService.to_customer_fields(c) for c in shopify_customers) if f]

        existing = (await db.execute(
            select(Customer.shopify_customer_id, Customer.email, Customer.phone)
            .where(Customer.user_id == user_id)
        )).all()
        known_ids = {row.shopify_customer_id for row in existing if row.shopify_customer_id}
        known_emails = {row.email.lower().strip() for row in existing if row.email}
        known_phones = {_digits(row.phone) for row in existing if len(_digits(row.phone)) >= 10}

        fresh = []
        for fields in transformed:
            email = (fields["email"] or "").lower().strip()
            phone = _digits(fields["phone"])
            if fields["shopify_customer_id"] in known_ids:
                continue
            if email and email in known_emails:
                continue
            if len(phone) >= 10 and phone in known_phones:
                continue
            fresh.append(fields)
            # Shopify can return the same person twice across pages
            known_ids.add(fields["shopify_customer_id"])
            if email:
                known_emails.add(email)
            if len(phone) >= 10:
                known_phones.add(phone)

        duplicates = len(transformed) - len(fresh)
        inserted = 0
        errors = []
        for start in range(0, len(fresh), INSERT_BATCH):
            batch = fresh[start:start + INSERT_BATCH]
            try:
                db.add_all([Customer(user_id=user_id, **fields) for fields in batch])
                await db.commit()
                inserted += len(batch)
            except Exception as e:
                await db.rollback()
                logger.error(f"Customer import batch {start // INSERT_BATCH + 1} failed: {e}")
                errors.append({"batch": start // INSERT_BATCH + 1, "error": str(e)})

        if not fresh:
            message = (f"No new customers to import - all {len(transformed)} Shopify customers "
                       "already exist (matched by Shopify ID, email, or phone)")
        elif inserted:
            message = f"Successfully imported {inserted} new customers. Skipped {duplicates} duplicates."
        else:
            message = "No new customers imported - all customers already exist"

        return {
            "success": True,
            "totalFetched": len(shopify_customers),
            "totalTransformed": len(transformed),
            "totalInserted": inserted,
            "totalSkipped": duplicates,
            "duplicatesSkipped": duplicates,
            "errors": errors,
            "message": message,
        }

    @staticmethod
    async def sync_customers(db: AsyncSession, integration: Integration) -> Dict[str, Any]:
        shop, token = ShopifyService.credentials(integration)
        shopify_customers = await ShopifyService.fetch_customers(shop, token)
        result = await ShopifyService.import_customers(db, integration.user_id, shopify_customers)
        integration.additional_data = {
            **(integration.additional_data or {}),
            "last_customer_sync": isoformat(utcnow()),
            "last_sync_result": {k: v for k, v in result.items() if k != "errors"},
        }
        await db.commit()
        return result

    @staticmethod
    async def apply_webhook(db: AsyncSession, user_id: int, topic: str, payload: Dict[str, Any]) -> str:
        """Mirror a customers/* webhook into our customer table"""
        shopify_id = str(payload.get("id"))
        customer = (await db.execute(
            select(Customer).where(Customer.user_id == user_id,
                                   Customer.shopify_customer_id == shopify_id)
        )).scalar_one_or_none()

        if topic == "customers/delete":
            if customer is None:
                return "ignored"
            await db.delete(customer)
            await db.commit()
            return "deleted"

        fields = ShopifyService.to_customer_fields(payload)
        if fields is None:
            return "ignored"
        if customer is None:
            result = await ShopifyService.import_customers(db, user_id, [payload])
            return "created" if result["totalInserted"] else "ignored"
        for key, value in fields.items():
            setattr(customer, key, value)
        await db.commit()
        return "updated"
