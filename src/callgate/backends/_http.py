"""Shared aiohttp session handling for long-lived channel clients."""

from __future__ import annotations

import logging

import aiohttp

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


class HTTPClientBase:
    """Base class providing a lazily created, reused aiohttp session.

    The session is created on first use and reused across calls. Call
    ``close()`` to release the connection pool.
    """

    def __init__(self, *, timeout: aiohttp.ClientTimeout | None = None) -> None:
        self._timeout = timeout or _DEFAULT_TIMEOUT
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
