import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse

from .config import settings
from .deps import get_strava_client
from .security import SESSION_COOKIE, create_session_token, refresh_token_from_session
from .services.strava_client import StravaClient, StravaError

router = APIRouter()
logger = logging.getLogger(__name__)

def login_error_redirect(message: str) -> RedirectResponse:
    return RedirectResponse(url=f"/login.html?error={quote(message)}", status_code=302)

def _require_client_credentials():
    if not settings.STRAVA_CLIENT_ID or not settings.STRAVA_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Server misconfiguration: Missing Strava client credentials")

@router.get("/auth-url")
def get_auth_url(client: StravaClient = Depends(get_strava_client)):
    """
    Returns the Strava OAuth URL.
    Frontend should redirect the user to this URL.
    """
    _require_client_credentials()
    return {"url": client.authorize_url()}

@router.get("/login")
def login(client: StravaClient = Depends(get_strava_client)):
    _require_client_credentials()
    return RedirectResponse(url=client.authorize_url(), status_code=302)

@router.get("/callback")
async def strava_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    client: StravaClient = Depends(get_strava_client),
):
    """
    Handle Strava OAuth callback.
    Exchange code for tokens, set the session cookie, and redirect to the dashboard.
    """
    if error:
        logger.warning(f"OAuth error: {error}")
        return login_error_redirect(error)

    if not code:
        logger.warning("No authorization code received")
        return login_error_redirect("No authorization code received")

    try:
        token_data = await client.exchange_code(code)
    except StravaError as e:
        logger.error(f"Error in OAuth callback: {e}")
        return login_error_redirect("Failed to authenticate with Strava")

    athlete_id = (token_data.get("athlete") or {}).get("id")
    session_token = create_session_token(athlete_id, token_data["refresh_token"])
    logger.info(f"Tokens received for athlete {athlete_id}, session cookie set")

    response = RedirectResponse(url="/", status_code=302)
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        path="/",
    )
    return response

@router.post("/logout")
def logout(request: Request, client: StravaClient = Depends(get_strava_client)):
    refresh_token = refresh_token_from_session(request.cookies.get(SESSION_COOKIE))
    if refresh_token:
        client.token_cache.invalidate(refresh_token)

    response = RedirectResponse(url="/login.html", status_code=303)
    response.delete_cookie(key=SESSION_COOKIE, path="/")
    return response
