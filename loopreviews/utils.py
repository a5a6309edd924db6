import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request

CUSTOMER_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_BASE36 = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def now_ms() -> int:
    return int(time.time() * 1000)


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def random_token(length: int = 9) -> str:
    """Random lowercase base36 string."""
    return "".join(random.choices(_BASE36, k=length))


def is_valid_customer_id(customer_id: str) -> bool:
    return bool(CUSTOMER_ID_PATTERN.match(customer_id)) and len(customer_id) <= 100


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def is_anonymous(customer_id: Optional[str]) -> bool:
    return not customer_id or "anon" in customer_id


def client_ip(request: Request) -> str:
    """Best-effort client address behind proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("x-real-ip", "x-client-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def truncate(value: Optional[str], limit: int) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:limit]


def review_url_id(review_url: Optional[str]) -> Optional[str]:
    """Last path segment of a review link (``.../r/<id>``)."""
    if not review_url:
        return None
    return review_url.rstrip("/").split("/")[-1] or None


def review_url_id_from_page(page: Optional[str]) -> Optional[str]:
    if not page or "/r/" not in page:
        return None
    return page.split("/r/", 1)[1].split("?")[0] or None
