from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ..config import settings
from ..utils import utcnow


class FixedWindowRateLimiter:
    """
    Process-local fixed-window counter.

    Each key owns a window that starts on its first hit; hits beyond ``limit``
    inside the window are rejected. State lives in a plain dict, so it resets
    on restart and is not shared between workers.
    """

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._windows: Dict[str, Tuple[datetime, int]] = {}

    def hit(self, key: str, now: Optional[datetime] = None) -> bool:
        """Record a hit; returns False when the key is over its limit."""
        now = now or utcnow()
        started, count = self._windows.get(key, (None, 0))
        if started is None or now - started >= self.window:
            self._windows[key] = (now, 1)
            return True
        if count >= self.limit:
            return False
        self._windows[key] = (started, count + 1)
        return True

    def reset(self) -> None:
        self._windows.clear()


click_rate_limiter = FixedWindowRateLimiter(
    limit=settings.track_click_limit,
    window_seconds=settings.track_click_window_seconds,
)


def click_key(ip: str, customer_id: str) -> str:
    return f"{ip}-{customer_id}"
