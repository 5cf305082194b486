from fastapi import HTTPException, Request, status

from .security import SESSION_COOKIE, refresh_token_from_session
from .services.strava_client import StravaClient

def get_refresh_token(request: Request) -> str:
    # Strava refresh token carried (encrypted) inside the signed session cookie
    refresh_token = refresh_token_from_session(request.cookies.get(SESSION_COOKIE))
    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token found",
        )
    return refresh_token

def get_strava_client(request: Request) -> StravaClient:
    return request.app.state.strava_client
