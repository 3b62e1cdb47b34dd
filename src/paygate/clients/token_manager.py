from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from ..logging_config import get_logger
from .schemas import AccessToken

logger = get_logger("paygate.processor")

DEFAULT_EXPIRY_MARGIN_SECONDS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CachedToken:
    value: str
    issued_at: datetime
    expires_at: datetime


class TokenManager:
    """
    Holds the processor access token for the whole process.

    States are Unauthenticated (`_cached is None`) and Authenticated. A
    cached token is only handed out while `now < expires_at - margin`, where
    the margin is capped at half the token lifetime so short-lived tokens
    stay usable. Refreshes are single-flight: concurrent callers wait on one lock and
    reuse whatever the first caller fetched.
    """

    def __init__(
        self,
        fetch_token: Callable[[], Awaitable[AccessToken]],
        default_ttl_seconds: int = 300,
        expiry_margin_seconds: int = DEFAULT_EXPIRY_MARGIN_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetch_token = fetch_token
        self.default_ttl = timedelta(seconds=default_ttl_seconds)
        self.margin = timedelta(seconds=expiry_margin_seconds)
        self._clock = clock
        self._cached: Optional[CachedToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def is_authenticated(self) -> bool:
        return self._usable(self._cached)

    def _usable(self, cached: Optional[CachedToken]) -> bool:
        if cached is None:
            return False
        margin = min(self.margin, (cached.expires_at - cached.issued_at) / 2)
        return self._clock() < cached.expires_at - margin

    async def get_token(self) -> str:
        cached = self._cached
        if self._usable(cached):
            return cached.value

        async with self._lock:
            # another caller may have refreshed while we waited
            cached = self._cached
            if self._usable(cached):
                return cached.value
            if cached is not None:
                logger.info("Processor token expired at %s; refreshing", cached.expires_at.isoformat())
                self._cached = None
            return await self._refresh()

    async def _refresh(self) -> str:
        token = await self._fetch_token()
        now = self._clock()
        ttl = timedelta(seconds=token.expires_in) if token.expires_in else self.default_ttl
        self._cached = CachedToken(value=token.access_token, issued_at=now, expires_at=now + ttl)
        self.refresh_count += 1
        logger.info("Processor token acquired; valid until %s", self._cached.expires_at.isoformat())
        return token.access_token

    def invalidate(self, token: Optional[str] = None) -> None:
        """
        Drop the cached token after the processor rejected it.

        When `token` is given, only that token is dropped; a newer one
        fetched by a concurrent request stays.
        """
        cached = self._cached
        if cached is None:
            return
        if token is not None and cached.value != token:
            return
        logger.warning("Processor token invalidated (issued at %s)", cached.issued_at.isoformat())
        self._cached = None

    def reset(self) -> None:
        self._cached = None
