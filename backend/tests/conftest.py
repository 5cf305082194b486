"""Test fixtures for the backend test suite."""

from __future__ import annotations

import os
import re
import time
from collections.abc import AsyncGenerator
from urllib.parse import parse_qs

os.environ.setdefault("STRAVA_CLIENT_ID", "test-client-id")
os.environ.setdefault("STRAVA_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.deps import get_strava_client
from backend.limiter import limiter
from backend.main import app
from backend.security import SESSION_COOKIE, create_session_token
from backend.services.rate_limiter import StravaRateLimiter
from backend.services.strava_client import StravaClient
from backend.services.token_cache import TokenCache

REFRESH_TOKEN = "refresh-token-abc123"

limiter.enabled = False


def strava_activity(activity_id: int, name: str, type_: str = "Run", distance: float = 5000.0) -> dict:
    """Summary activity in the shape Strava returns from /athlete/activities."""
    return {
        "id": activity_id,
        "name": name,
        "type": type_,
        "distance": distance,
        "moving_time": 1800,
        "start_date": "2024-05-01T07:00:00Z",
        "kudos_count": 0,
        "resource_state": 2,
    }


def strava_kudoer(firstname: str, lastname: str) -> dict:
    return {"firstname": firstname, "lastname": lastname, "resource_state": 2}


class FakeStrava:
    """In-memory stand-in for the Strava OAuth and REST endpoints."""

    def __init__(self) -> None:
        self.activities: list[dict] = []
        self.kudoers: dict[int, list[dict]] = {}
        self.failing_kudoers: set[int] = set()
        self.garbled_kudoers: set[int] = set()
        self.fail_activity_list = False
        self.fail_refresh = False
        self.rejected_tokens: set[str] = set()
        self.token_requests: list[dict] = []
        self.api_requests: list[httpx.Request] = []
        self.kudos_given: list[int] = []

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.token_requests.append(form)
        expires_at = int(time.time()) + 6 * 3600
        if form.get("grant_type") == "authorization_code":
            if form.get("code") == "bad-code":
                return httpx.Response(400, json={"message": "Bad Request"})
            return httpx.Response(200, json={
                "access_token": "access-initial",
                "refresh_token": REFRESH_TOKEN,
                "expires_at": expires_at,
                "athlete": {"id": 42, "firstname": "Grace", "lastname": "Hopper"},
            })
        if self.fail_refresh:
            return httpx.Response(400, json={"message": "Bad Request"})
        return httpx.Response(200, json={
            "access_token": f"access-{len(self.token_requests)}",
            "refresh_token": form["refresh_token"],
            "expires_at": expires_at,
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/oauth/token":
            return self._token(request)

        self.api_requests.append(request)
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token in self.rejected_tokens:
            return httpx.Response(401, json={"message": "Authorization Error"})

        if path == "/api/v3/athlete":
            return httpx.Response(200, json={"id": 42, "firstname": "Grace", "lastname": "Hopper"})
        if path == "/api/v3/athlete/activities":
            if self.fail_activity_list:
                return httpx.Response(500, json={"message": "Server Error"})
            per_page = int(request.url.params.get("per_page", 30))
            return httpx.Response(200, json=self.activities[:per_page])

        match = re.fullmatch(r"/api/v3/activities/(\d+)/kudos", path)
        if match:
            activity_id = int(match.group(1))
            if request.method == "POST":
                self.kudos_given.append(activity_id)
                return httpx.Response(201)
            if activity_id in self.failing_kudoers:
                return httpx.Response(500, json={"message": "Server Error"})
            if activity_id in self.garbled_kudoers:
                return httpx.Response(200, content=b"<html>upstream hiccup</html>")
            return httpx.Response(200, json=self.kudoers.get(activity_id, []))

        match = re.fullmatch(r"/api/v3/activities/(\d+)", path)
        if match:
            for activity in self.activities:
                if activity["id"] == int(match.group(1)):
                    return httpx.Response(200, json=activity)
        return httpx.Response(404, json={"message": "Record Not Found"})


@pytest.fixture
def fake_strava() -> FakeStrava:
    return FakeStrava()


@pytest_asyncio.fixture
async def strava_client(fake_strava: FakeStrava) -> AsyncGenerator[StravaClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_strava.handler)) as http:
        yield StravaClient(http, TokenCache(), StravaRateLimiter())


@pytest_asyncio.fixture
async def client(strava_client: StravaClient) -> AsyncGenerator[AsyncClient, None]:
    """Yield an async HTTP test client wired to the FastAPI app, without a session."""
    app.dependency_overrides[get_strava_client] = lambda: strava_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient) -> AsyncClient:
    """The test client carrying a valid session cookie."""
    client.headers["Cookie"] = f"{SESSION_COOKIE}={create_session_token(42, REFRESH_TOKEN)}"
    return client
