import asyncio
import hashlib
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

# Refresh callback: refresh_token -> (access_token, expires_at unix seconds)
Refresher = Callable[[str], Awaitable[Tuple[str, int]]]


@dataclass(frozen=True)
class CachedToken:
    access_token: str
    expires_at: int


def _credential_key(refresh_token: str) -> str:
    return hashlib.sha256(refresh_token.encode()).hexdigest()


class TokenCache:
    """
    Short-lived access tokens keyed by the refresh token they were minted from.

    Each credential has its own lock, so concurrent requests for one user
    share a single refresh while different users never block each other.
    Refresh tokens are only kept as sha256 digests.
    """

    def __init__(self, expiry_buffer_seconds: int = 300):
        self.expiry_buffer_seconds = expiry_buffer_seconds
        self._tokens: Dict[str, CachedToken] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _is_fresh(self, token: Optional[CachedToken]) -> bool:
        return token is not None and time.time() < token.expires_at - self.expiry_buffer_seconds

    def _prune(self) -> None:
        """Drop expired tokens, and locks nobody holds for credentials with no token."""
        now = time.time()
        for key in [k for k, t in self._tokens.items() if t.expires_at <= now]:
            del self._tokens[key]
        for key in [k for k, lock in self._locks.items() if k not in self._tokens and not lock.locked()]:
            del self._locks[key]

    def peek(self, refresh_token: str) -> Optional[CachedToken]:
        return self._tokens.get(_credential_key(refresh_token))

    def store(self, refresh_token: str, access_token: str, expires_at: int) -> None:
        self._prune()
        self._tokens[_credential_key(refresh_token)] = CachedToken(access_token, expires_at)

    def invalidate(self, refresh_token: str) -> None:
        key = _credential_key(refresh_token)
        self._tokens.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    async def get(self, refresh_token: str, refresher: Refresher) -> str:
        """Return a valid access token, calling `refresher` at most once per expiry."""
        key = _credential_key(refresh_token)
        cached = self._tokens.get(key)
        if self._is_fresh(cached):
            return cached.access_token

        async with self._locks[key]:
            # another request may have refreshed while we waited
            cached = self._tokens.get(key)
            if self._is_fresh(cached):
                return cached.access_token

            access_token, expires_at = await refresher(refresh_token)
            self._prune()
            self._tokens[key] = CachedToken(access_token, expires_at)
            return access_token

    def clear(self) -> None:
        self._tokens.clear()
        self._locks.clear()
