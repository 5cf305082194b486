"""
Async client for the Strava REST API.

Access tokens come from a TokenCache keyed by the caller's refresh token, so
the client never holds process-wide credentials. Every outbound API call goes
through the StravaRateLimiter first.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..models import Activity, ActivityWithKudoers, Kudoer
from .rate_limiter import StravaRateLimiter
from .token_cache import TokenCache

logger = logging.getLogger(__name__)


class StravaError(Exception):
    """Upstream Strava failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StravaAuthError(StravaError):
    """Strava rejected the credential, or the refresh failed."""


class StravaRateLimitError(StravaError):
    """Internal safety limit reached or Strava answered 429."""


def _preview(token: Optional[str]) -> str:
    return f"{token[:10]}..." if token else "MISSING"


class StravaClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        token_cache: TokenCache,
        rate_limiter: StravaRateLimiter,
        settings: Settings = default_settings,
    ):
        self.http = http
        self.token_cache = token_cache
        self.rate_limiter = rate_limiter
        self.settings = settings

    # --- OAuth ---

    def authorize_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self.settings.STRAVA_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": self.settings.REDIRECT_URI,
            "approval_prompt": "auto",
            "scope": self.settings.STRAVA_SCOPE,
        }
        if state:
            params["state"] = state
        request = httpx.Request("GET", f"{self.settings.STRAVA_OAUTH_URL}/authorize", params=params)
        return str(request.url)

    async def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        payload = {
            "client_id": self.settings.STRAVA_CLIENT_ID,
            "client_secret": self.settings.STRAVA_CLIENT_SECRET,
            **data,
        }
        try:
            response = await self.http.post(f"{self.settings.STRAVA_OAUTH_URL}/token", data=payload)
        except httpx.RequestError as e:
            logger.error(f"Strava token endpoint unreachable: {e}")
            raise StravaError(f"Connection error: {e}") from e

        if response.status_code != 200:
            logger.error(f"Strava token request failed ({response.status_code}): {response.text}")
            raise StravaAuthError("Failed to obtain Strava access token", response.status_code)
        try:
            return response.json()
        except ValueError as e:
            logger.error("Strava token endpoint returned a non-JSON body")
            raise StravaAuthError("Invalid token response from Strava", response.status_code) from e

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """Exchange an authorization code for tokens and seed the token cache."""
        logger.info(f"Exchanging authorization code {_preview(code)} for tokens")
        token_data = await self._token_request({"code": code, "grant_type": "authorization_code"})
        refresh_token = token_data.get("refresh_token")
        access_token = token_data.get("access_token")
        if not refresh_token or not access_token:
            raise StravaAuthError("Invalid token response from Strava")

        self.token_cache.store(refresh_token, access_token, int(token_data.get("expires_at", 0)))
        return token_data

    async def refresh_access_token(self, refresh_token: str) -> Tuple[str, int]:
        logger.info(f"Refreshing access token for {_preview(refresh_token)}")
        token_data = await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"}
        )
        if "access_token" not in token_data:
            raise StravaAuthError("Invalid token response from Strava")
        return token_data["access_token"], int(token_data.get("expires_at", 0))

    async def get_access_token(self, refresh_token: str) -> str:
        return await self.token_cache.get(refresh_token, self.refresh_access_token)

    # --- API requests ---

    async def _send(self, method: str, url: str, access_token: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        if not self.rate_limiter.can_request():
            stats = self.rate_limiter.get_stats()
            msg = f"Rate Limit Reached (Internal Safety). Used: 15m={stats['15m_used']}, Daily={stats['daily_used']}"
            logger.error(msg)
            raise StravaRateLimitError(msg, 429)

        self.rate_limiter.record_attempt()
        try:
            response = await self.http.request(
                method,
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                params=params,
            )
        except httpx.RequestError as e:
            logger.error(f"Strava API connection error: {e}")
            raise StravaError(f"Connection error: {e}") from e

        if response.status_code == 429:
            self.rate_limiter.saturate()
            raise StravaRateLimitError("Strava API Rate Limit Exceeded", 429)
        return response

    async def request(self, method: str, path: str, refresh_token: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call the Strava API on behalf of `refresh_token`.

        A 401 drops the cached access token and retries once with a fresh one.
        """
        url = f"{self.settings.STRAVA_API_BASE_URL}{path}"
        access_token = await self.get_access_token(refresh_token)
        response = await self._send(method, url, access_token, params)

        if response.status_code == 401:
            logger.info("Strava rejected cached access token, refreshing and retrying")
            self.token_cache.invalidate(refresh_token)
            access_token = await self.get_access_token(refresh_token)
            response = await self._send(method, url, access_token, params)
            if response.status_code == 401:
                raise StravaAuthError("Invalid or expired Strava token", 401)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Strava API request failed: {e}")
            raise StravaError(str(e), response.status_code) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Strava returned a non-JSON body for {path}: {response.text[:100]!r}")
            raise StravaError("Invalid JSON from Strava", response.status_code) from e

    async def get_athlete(self, refresh_token: str) -> Dict[str, Any]:
        return await self.request("GET", "/athlete", refresh_token)

    async def get_followed_athletes(self, refresh_token: str) -> List[Dict[str, Any]]:
        try:
            return await self.request("GET", "/athletes/following", refresh_token)
        except StravaError as e:
            logger.warning(f"Could not fetch followed athletes, returning empty list: {e}")
            return []

    async def get_activity(self, refresh_token: str, activity_id: int) -> Dict[str, Any]:
        return await self.request("GET", f"/activities/{activity_id}", refresh_token)

    async def get_activity_kudoers(self, refresh_token: str, activity_id: int) -> List[Kudoer]:
        data = await self.request("GET", f"/activities/{activity_id}/kudos", refresh_token)
        return [Kudoer.model_validate(k) for k in data or []]

    async def give_kudos(self, refresh_token: str, activity_id: int) -> None:
        await self.request("POST", f"/activities/{activity_id}/kudos", refresh_token)

    async def list_recent_activities(self, refresh_token: str, limit: int) -> List[Activity]:
        """Newest-first summary activities for the authenticated athlete."""
        data = await self.request("GET", "/athlete/activities", refresh_token, params={"per_page": limit})
        return [Activity.model_validate(a) for a in data or []]

    async def _kudoers_or_empty(self, refresh_token: str, activity: Activity) -> List[Kudoer]:
        try:
            kudoers = await self.get_activity_kudoers(refresh_token, activity.id)
        except StravaRateLimitError:
            # a partial fan-out would skew the ranking, so fail the whole fetch
            raise
        except (StravaError, ValidationError) as e:
            logger.error(f"Error fetching kudoers for activity {activity.name!r} ({activity.id}): {e}")
            return []
        logger.info(f"Found {len(kudoers)} kudoers for {activity.name!r}")
        return kudoers

    async def fetch_activities_with_kudoers(self, refresh_token: str, limit: int) -> List[ActivityWithKudoers]:
        """
        Fetch the newest `limit` activities and the kudoers of each.

        Kudoer lookups run concurrently and come back in activity order. A
        failed lookup leaves that activity with no kudoers; a failed activity
        list or hitting the rate limit raises.
        """
        activities = await self.list_recent_activities(refresh_token, limit)
        logger.info(f"Found {len(activities)} activities")

        kudoer_lists = await asyncio.gather(
            *(self._kudoers_or_empty(refresh_token, activity) for activity in activities),
            return_exceptions=True,
        )
        for result in kudoer_lists:
            if isinstance(result, BaseException):
                raise result
        return [
            ActivityWithKudoers(**activity.model_dump(), kudoers=kudoers)
            for activity, kudoers in zip(activities, kudoer_lists)
        ]
