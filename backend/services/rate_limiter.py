import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

class StravaRateLimiter:
    """
    In-memory outbound rate limiter for the Strava API.

    Strava Limits:
    - 100 requests every 15 minutes
    - 1000 requests every day (resets at midnight UTC)

    Defaults run at 80% of both. A 429 from Strava saturates the 15 minute
    window so every caller backs off until it drains.
    """

    WINDOW_15_MIN = 900

    def __init__(self, limit_15_min: int = 80, limit_daily: int = 800):
        self.limit_15_min = limit_15_min
        self.limit_daily = limit_daily
        self.requests_15m: List[float] = []
        self.requests_daily: List[float] = []

    def _cleanup(self, now: Optional[float] = None):
        """Remove timestamps older than the windows."""
        now = time.time() if now is None else now
        self.requests_15m = [t for t in self.requests_15m if now - t < self.WINDOW_15_MIN]

        today_utc = datetime.fromtimestamp(now, timezone.utc).date()
        self.requests_daily = [
            t for t in self.requests_daily
            if datetime.fromtimestamp(t, timezone.utc).date() == today_utc
        ]

    def can_request(self) -> bool:
        self._cleanup()
        if len(self.requests_15m) >= self.limit_15_min:
            logger.warning(f"Rate Limit Hit (15m): {len(self.requests_15m)}/{self.limit_15_min}")
            return False
        if len(self.requests_daily) >= self.limit_daily:
            logger.warning(f"Rate Limit Hit (Daily): {len(self.requests_daily)}/{self.limit_daily}")
            return False
        return True

    def record_attempt(self):
        """Record a request ATTEMPT (call this BEFORE the HTTP request)."""
        now = time.time()
        self.requests_15m.append(now)
        self.requests_daily.append(now)

    def saturate(self):
        """Fill the 15 minute window after Strava answered 429."""
        logger.error("Strava returned 429, halting outbound requests for this window")
        now = time.time()
        missing = self.limit_15_min - len(self.requests_15m)
        self.requests_15m.extend([now] * max(missing, 0))

    def get_stats(self) -> Dict[str, int]:
        self._cleanup()
        return {
            "15m_used": len(self.requests_15m),
            "15m_limit": self.limit_15_min,
            "daily_used": len(self.requests_daily),
            "daily_limit": self.limit_daily,
        }
