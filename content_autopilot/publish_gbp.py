"""
Google Business Profile channel: publishes a draft as a GBP Local Post.

Flow:
    1. Load the org's Google OAuth token (missing -> ChannelNotConnectedError)
    2. Refresh it first if already expired
    3. Resolve the location's ``google_location_name``
       (missing -> ChannelNotConfiguredError)
    4. Truncate the body to 1500 characters at a sentence boundary
    5. POST to ``{GBP_API_BASE}/{location}/localPosts``; on a 401, refresh
       once and retry once. A second 401 means the connection is dead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from content_autopilot.config import GBP_API_BASE
from content_autopilot.errors import (
    ChannelAPIError,
    ChannelNotConfiguredError,
    ChannelNotConnectedError,
)
from content_autopilot.http_client import ChannelHttpClient
from content_autopilot.models import ContentDraft, PublishResult
from content_autopilot.oauth import is_token_expired, refresh_google_token
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("publish_gbp")

GBP_MAX_CHARS = 1500
SENTENCE_MIN_RATIO = 0.8
OAUTH_PROVIDER = "google"


def truncate_at_sentence(text: str, max_chars: int = GBP_MAX_CHARS) -> str:
    """
    Fit ``text`` into ``max_chars``, preferring a sentence boundary.

    A sentence end is used only if it keeps at least 80% of the budget;
    otherwise cut at the last space and append an ellipsis, or hard-cut
    three characters short when there is no space at all.
    """
    if len(text) <= max_chars:
        return text

    cut = text[:max_chars]
    sentence_end = max(cut.rfind("."), cut.rfind("!"), cut.rfind("?"))
    if sentence_end >= max_chars * SENTENCE_MIN_RATIO:
        return cut[: sentence_end + 1]

    # the ellipsis must still fit inside max_chars
    last_space = cut[: max_chars - 2].rfind(" ")
    if last_space > 0:
        return cut[:last_space] + "..."

    return cut[: max_chars - 3] + "..."


class GBPPublisher:
    """
    Publishes approved drafts as GBP Local Posts.

    Parameters
    ----------
    store : AutopilotStore
        Source of OAuth tokens and location identifiers; refreshed tokens are
        written back to it.
    http : ChannelHttpClient
        HTTP transport shared with the token refresh.
    client_id, client_secret : str
        Google OAuth client credentials used for refresh.
    """

    def __init__(
        self,
        store: AutopilotStore,
        http: ChannelHttpClient,
        client_id: str,
        client_secret: str,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _refresh(self, org_id: str, token_row: Dict[str, Any]) -> str:
        refresh_token = token_row.get("refresh_token")
        if not refresh_token:
            raise ChannelNotConnectedError(
                "GBP connection has no refresh token. Reconnect Google Business Profile in Settings."
            )
        refreshed = await refresh_google_token(
            self.http, refresh_token, self.client_id, self.client_secret, now=self._clock()
        )
        await self.store.save_oauth_token(
            org_id,
            OAUTH_PROVIDER,
            {"access_token": refreshed.access_token, "expires_at": refreshed.expires_at},
        )
        return refreshed.access_token

    async def _post(self, url: str, token: str, body: Dict[str, Any]):
        return await self.http.request(
            "POST",
            url,
            json_data=body,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )

    async def publish(self, draft: ContentDraft, org_id: str) -> PublishResult:
        """
        Publish ``draft`` for ``org_id``.

        Raises
        ------
        ChannelNotConnectedError
            No token on file, or a second 401 after refreshing.
        ChannelNotConfiguredError
            The location has no ``google_location_name``.
        TokenRefreshError
            The token endpoint rejected the refresh.
        ChannelAPIError
            Any other non-2xx response, carrying its HTTP status.
        """
        token_row = await self.store.get_oauth_token(org_id, OAUTH_PROVIDER)
        if not token_row or not token_row.get("access_token"):
            raise ChannelNotConnectedError(
                "GBP not connected. Go to Settings > Integrations to connect Google Business Profile."
            )

        access_token = token_row["access_token"]
        if is_token_expired(token_row.get("expires_at"), now=self._clock()):
            logger.info("GBP token for org %s expired, refreshing before publish", org_id)
            access_token = await self._refresh(org_id, token_row)

        location = await self.store.get_location(draft.location_id) if draft.location_id else None
        location_name = (location or {}).get("google_location_name")
        if not location_name:
            raise ChannelNotConfiguredError(
                "Location not linked to a Google Business Profile. "
                "Set the Google location name in location settings."
            )

        url = f"{GBP_API_BASE}/{location_name}/localPosts"
        body = {
            "languageCode": "en",
            "summary": truncate_at_sentence(draft.content, GBP_MAX_CHARS),
            "topicType": "STANDARD",
        }

        status, resp_body = await self._post(url, access_token, body)
        if status == 401:
            logger.warning("GBP returned 401 for org %s, refreshing token and retrying once", org_id)
            access_token = await self._refresh(org_id, token_row)
            status, resp_body = await self._post(url, access_token, body)
            if status == 401:
                raise ChannelNotConnectedError(
                    "GBP rejected the refreshed token. Reconnect Google Business Profile in Settings.",
                    status_code=401,
                    response_body=str(resp_body),
                )

        if status >= 400:
            raise ChannelAPIError(
                f"GBP post failed: HTTP {status}",
                status_code=status,
                response_body=str(resp_body),
            )

        published_url = resp_body.get("searchUrl") if isinstance(resp_body, dict) else None
        logger.info("Published draft %s to GBP %s", draft.id, location_name)
        return PublishResult(published_url=published_url, status="published")
