"""
Thin aiohttp wrapper shared by the publish channels and the OAuth refresh.

Unlike the engine clients, publish calls never retry on their own: the only
retry in the publish path is the single 401 refresh-and-retry in the GBP
adapter, and that lives with the adapter.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from content_autopilot.errors import ChannelAPIError

logger = logging.getLogger("channel_http")

DEFAULT_TIMEOUT = 30.0


class ChannelHttpClient:
    """Owns (or borrows) an aiohttp session and normalizes responses."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.timeout = timeout
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=10, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "ContentAutopilot/1.0"},
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        *,
        json_data: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any]:
        """
        Make one HTTP request.

        Returns
        -------
        tuple of (status_code, response_json_or_text)

        Raises
        ------
        ChannelAPIError
            With status 0 when the request never got a response.
        """
        session = await self._get_session()
        kwargs: Dict[str, Any] = {}
        if json_data is not None:
            kwargs["json"] = json_data
        if data is not None:
            kwargs["data"] = data
        if headers is not None:
            kwargs["headers"] = headers

        logger.debug("%s %s", method.upper(), url)
        try:
            async with session.request(method, url, **kwargs) as resp:
                try:
                    body = await resp.json(content_type=None)
                except (json.JSONDecodeError, ValueError):
                    body = await resp.text()
                return resp.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ChannelAPIError(f"Network error calling {url}: {exc}") from exc
