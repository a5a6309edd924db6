import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import ConfigurationError, IntegrationError
from ..models import Integration, Review
from ..utils import isoformat, utcnow

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
AUTOCOMPLETE_URL = "https://maps.googleapis.com/maps/api/place/autocomplete/json"
DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
SCOPES = [
    "https://www.googleapis.com/auth/business.manage",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
MAX_SEARCH_RESULTS = 8

SEARCH_ERRORS = {
    "REQUEST_DENIED": "Google Places API access denied. Please check API key permissions.",
    "OVER_QUERY_LIMIT": "Search quota exceeded. Please try again later.",
    "INVALID_REQUEST": "Invalid search request. Please try a different search term.",
}


class GoogleService:
    """Google OAuth (Business Profile) and Places search / review import."""

    @staticmethod
    def redirect_uri() -> str:
        return f"{settings.base_url.rstrip('/')}/api/integrations/google/callback"

    @staticmethod
    def build_auth_url(user_id: int) -> str:
        if not settings.google_client_id or not settings.google_client_secret:
            raise ConfigurationError("Google")
        params = urlencode({
            "client_id": settings.google_client_id,
            "redirect_uri": GoogleService.redirect_uri(),
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": str(user_id),
        })
        return f"{AUTH_URL}?{params}"

    @staticmethod
    async def exchange_code(code: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            response = await client.post(TOKEN_URL, data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "redirect_uri": GoogleService.redirect_uri(),
                "grant_type": "authorization_code",
            })
        if response.status_code != 200:
            raise IntegrationError("google", f"Token exchange failed: {response.status_code}")
        return response.json()

    @staticmethod
    async def fetch_profile(access_token: str) -> Dict[str, Any]:
        """User info plus Business Profile accounts (empty when not permitted)"""
        headers = {"Authorization": f"Bearer {access_token}"}
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            response = await client.get(USERINFO_URL, headers=headers)
            if response.status_code != 200:
                raise IntegrationError("google", f"User info lookup failed: {response.status_code}")
            user_info = response.json()
            accounts: List[Dict[str, Any]] = []
            try:
                accounts_response = await client.get(ACCOUNTS_URL, headers=headers)
                if accounts_response.status_code == 200:
                    accounts = accounts_response.json().get("accounts") or []
                else:
                    logger.warning(f"Business accounts lookup returned {accounts_response.status_code}")
            except httpx.HTTPError as e:
                logger.warning(f"Business accounts lookup failed: {e}")
        return {"userInfo": user_info, "accounts": accounts}

    @staticmethod
    async def get_integration(db: AsyncSession, user_id: int) -> Optional[Integration]:
        return (await db.execute(
            select(Integration).where(Integration.user_id == user_id,
                                      Integration.platform == "google")
        )).scalar_one_or_none()

    @staticmethod
    async def save_connection(
        db: AsyncSession, user_id: int, tokens: Dict[str, Any], profile: Dict[str, Any]
    ) -> Integration:
        accounts = profile["accounts"]
        user_info = profile["userInfo"]
        integration = await GoogleService.get_integration(db, user_id)
        if integration is None:
            integration = Integration(user_id=user_id, platform="google", name="Google")
            db.add(integration)
        integration.status = "connected" if accounts else "pending"
        integration.business_name = accounts[0].get("accountName") if accounts else user_info.get("name")
        integration.business_id = accounts[0].get("name") if accounts else None
        integration.access_token = tokens.get("access_token")
        integration.refresh_token = tokens.get("refresh_token")
        expires_in = tokens.get("expires_in")
        integration.token_expires_at = utcnow() + timedelta(seconds=expires_in) if expires_in else None
        integration.additional_data = {
            "userInfo": {
                "email": user_info.get("email"),
                "name": user_info.get("name"),
                "picture": user_info.get("picture"),
            },
            "businessAccounts": [
                {
                    "name": account.get("name"),
                    "accountName": account.get("accountName"),
                    "type": account.get("type"),
                    "state": (account.get("verificationState") or account.get("state")),
                }
                for account in accounts
            ],
        }
        integration.updated_at = utcnow()
        await db.commit()
        await db.refresh(integration)
        return integration

    @staticmethod
    async def select_place(db: AsyncSession, user_id: int, place_id: str, name: Optional[str]) -> Integration:
        """Point the Google integration at a Place so its reviews can be imported"""
        integration = await GoogleService.get_integration(db, user_id)
        if integration is None:
            integration = Integration(user_id=user_id, platform="google", name="Google")
            db.add(integration)
        integration.status = "connected"
        integration.business_id = place_id
        integration.business_name = name or integration.business_name
        integration.additional_data = {
            **(integration.additional_data or {}),
            "place_id": place_id,
            "selected_at": isoformat(utcnow()),
        }
        await db.commit()
        await db.refresh(integration)
        return integration

    @staticmethod
    def require_places_key() -> str:
        if not settings.google_places_api_key:
            raise ConfigurationError("Google Maps", "Google Maps API key not configured")
        return settings.google_places_api_key

    @staticmethod
    async def search_places(query: str) -> List[Dict[str, Any]]:
        api_key = GoogleService.require_places_key()
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            response = await client.get(AUTOCOMPLETE_URL, params={
                "input": query, "types": "establishment", "key": api_key})
        data = response.json()
        if data.get("status") != "OK":
            message = SEARCH_ERRORS.get(data.get("status")) or data.get("error_message") or "Failed to search places"
            raise IntegrationError("google", message)

        results = []
        for prediction in data.get("predictions", [])[:MAX_SEARCH_RESULTS]:
            formatting = prediction.get("structured_formatting") or {}
            results.append({
                "place_id": prediction.get("place_id"),
                "name": formatting.get("main_text") or prediction.get("description"),
                "formatted_address": formatting.get("secondary_text") or prediction.get("description"),
                "business_status": "OPERATIONAL",
                "types": prediction.get("types") or ["establishment"],
            })
        return results

    @staticmethod
    async def fetch_place_reviews(place_id: str) -> Dict[str, Any]:
        api_key = GoogleService.require_places_key()
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds)) as client:
            response = await client.get(DETAILS_URL, params={
                "place_id": place_id,
                "fields": "name,reviews,rating,user_ratings_total",
                "reviews_sort": "newest",
                "key": api_key,
            })
        data = response.json()
        if data.get("status") != "OK":
            raise IntegrationError("google", data.get("error_message") or "Failed to fetch place reviews")
        return data["result"]

    @staticmethod
    def to_review_fields(user_id: int, google_review: Dict[str, Any]) -> Dict[str, Any]:
        created = datetime.fromtimestamp(google_review["time"], tz=timezone.utc)
        return {
            "user_id": user_id,
            "customer_name": google_review.get("author_name") or "Anonymous",
            "customer_email": "",
            "rating": google_review.get("rating"),
            "title": "",
            "comment": google_review.get("text") or "",
            "platform": "Google",
            "status": "published",
            "helpful_count": 0,
            "verified": True,
            "external_review_id": str(google_review["time"]),
            "author_url": google_review.get("author_url"),
            "profile_photo_url": google_review.get("profile_photo_url"),
            "created_at": created,
        }

    @staticmethod
    async def import_reviews(db: AsyncSession, integration: Integration) -> Dict[str, Any]:
        """Replace the owner's stored Google reviews with the Place's latest"""
        place = await GoogleService.fetch_place_reviews(integration.business_id)
        google_reviews = sorted(place.get("reviews") or [], key=lambda r: r.get("time", 0), reverse=True)
        rows = [GoogleService.to_review_fields(integration.user_id, r) for r in google_reviews]

        if rows:
            await db.execute(
                delete(Review).where(Review.user_id == integration.user_id, Review.platform == "Google"))
            db.add_all([Review(**row) for row in rows])
            await db.commit()
            logger.info(f"Imported {len(rows)} Google reviews for user {integration.user_id}")

        return {
            "place_name": place.get("name"),
            "overall_rating": place.get("rating"),
            "total_ratings": place.get("user_ratings_total"),
            "reviews": [{**row, "created_at": isoformat(row["created_at"])} for row in rows],
        }
