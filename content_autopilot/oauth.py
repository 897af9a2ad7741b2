"""
Google OAuth token handling for the GBP channel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from content_autopilot.config import GOOGLE_TOKEN_URL
from content_autopilot.errors import TokenRefreshError
from content_autopilot.http_client import ChannelHttpClient
from content_autopilot.models import parse_iso

logger = logging.getLogger("google_oauth")

DEFAULT_EXPIRES_IN = 3600


def is_token_expired(
    expires_at: Optional[str],
    buffer_seconds: int = 0,
    now: Optional[datetime] = None,
) -> bool:
    """True when ``expires_at`` is missing, unparsable, or within ``buffer_seconds`` of now."""
    now = now or datetime.now(timezone.utc)
    try:
        expiry = parse_iso(expires_at)
    except ValueError:
        return True
    if expiry is None:
        return True
    return expiry <= now + timedelta(seconds=buffer_seconds)


@dataclass
class RefreshedToken:
    access_token: str
    expires_at: str


async def refresh_google_token(
    http: ChannelHttpClient,
    refresh_token: str,
    client_id: str,
    client_secret: str,
    now: Optional[datetime] = None,
) -> RefreshedToken:
    """
    Exchange a refresh token for a new access token.

    Raises
    ------
    TokenRefreshError
        When the token endpoint answers non-2xx or omits ``access_token``.
    """
    status, body = await http.request(
        "POST",
        GOOGLE_TOKEN_URL,
        data={
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        },
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    if status >= 400:
        raise TokenRefreshError(
            f"Google token refresh failed: HTTP {status}: {body}",
            status_code=status,
            response_body=str(body),
        )
    if not isinstance(body, dict) or not body.get("access_token"):
        raise TokenRefreshError(
            "Google token refresh returned no access_token",
            status_code=status,
            response_body=str(body),
        )

    expires_in = int(body.get("expires_in") or DEFAULT_EXPIRES_IN)
    now = now or datetime.now(timezone.utc)
    logger.info("Refreshed Google access token (expires in %ds)", expires_in)
    return RefreshedToken(
        access_token=body["access_token"],
        expires_at=(now + timedelta(seconds=expires_in)).isoformat(),
    )
