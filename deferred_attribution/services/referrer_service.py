"""
Install referrer sources for deterministic attribution.
The raw referrer comes from the OS install mechanism (e.g. the Play Install
Referrer API); platforms without the concept use NullReferrerSource.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol
from urllib.parse import parse_qs

from deferred_attribution.infrastructure.observability.logging import get_logger, redact

logger = get_logger(__name__)

# Query keys that may carry the attribution token, in priority order
REFERRER_TOKEN_KEYS = ("smartlink_token", "linkgravity_token", "token", "referrer_token")

RawReferrerFetcher = Callable[[], Awaitable[str | None]]


class ReferrerSource(Protocol):
    """Capability: a deterministic attribution token for this install."""

    @property
    def available(self) -> bool: ...

    async def get_referrer_token(self) -> str | None: ...


def parse_referrer_token(raw: str | None) -> str | None:
    """
    Extract the attribution token from a raw install referrer.

    Accepts either a URL query string (`utm_source=x&smartlink_token=abc`)
    or a bare token.
    """
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    if "=" not in raw:
        return raw

    query = parse_qs(raw, keep_blank_values=False)
    for key in REFERRER_TOKEN_KEYS:
        values = query.get(key)
        if values and values[0].strip():
            return values[0].strip()
    return None


class NullReferrerSource:
    """Referrer source for platforms without an install referrer."""

    @property
    def available(self) -> bool:
        return False

    async def get_referrer_token(self) -> str | None:
        return None


class CachedReferrerSource:
    """
    Queries the OS referrer at most once and caches the parsed token until
    it is cleared (consumed).
    """

    def __init__(self, fetcher: RawReferrerFetcher):
        self._fetcher = fetcher
        self._queried = False
        self._token: str | None = None

    @property
    def available(self) -> bool:
        return True

    async def get_referrer_token(self) -> str | None:
        if self._queried:
            return self._token

        self._queried = True
        try:
            raw = await self._fetcher()
        except Exception as e:
            logger.warning("Install referrer query failed", error=str(e))
            return None

        self._token = parse_referrer_token(raw)
        if self._token:
            logger.info("Install referrer token found", token=redact(self._token))
        else:
            logger.debug("Install referrer carried no attribution token")
        return self._token

    def clear(self) -> None:
        """Mark the token as consumed. The OS is not queried again."""
        self._token = None

