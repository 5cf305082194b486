import base64
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from .config import settings

SESSION_COOKIE = "strava_session"

# Fernet keys must be 32 url-safe base64-encoded bytes, derived from SECRET_KEY
_fernet = Fernet(base64.urlsafe_b64encode(hashlib.sha256(settings.SECRET_KEY.encode()).digest()))

def encrypt_token(value: str) -> str:
    return _fernet.encrypt(value.encode()).decode()

def decrypt_token(value: str) -> Optional[str]:
    """Returns None if the value was not produced by encrypt_token with this key."""
    try:
        return _fernet.decrypt(value.encode()).decode()
    except (InvalidToken, ValueError):
        return None

def create_session_token(athlete_id: Optional[int], refresh_token: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create the signed session JWT stored in the session cookie.
    The Strava refresh token rides along encrypted, never in plain text.
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(seconds=settings.SESSION_MAX_AGE_SECONDS))
    to_encode = {
        "sub": str(athlete_id) if athlete_id is not None else "",
        "rt": encrypt_token(refresh_token),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_session_token(token: str) -> Union[dict, None]:
    """
    Decode a session JWT. Returns None if invalid or expired.
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

def refresh_token_from_session(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    payload = decode_session_token(token)
    if not payload or not payload.get("rt"):
        return None
    return decrypt_token(payload["rt"])
