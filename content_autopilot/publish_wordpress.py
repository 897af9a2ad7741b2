"""
WordPress channel: pushes a draft to the org's WordPress site as a page.

Pages are created with ``status: draft`` so the site owner gets a second
review inside WordPress before anything goes live. Authentication uses a
WordPress application password over HTTP Basic auth.
"""

from __future__ import annotations

import base64
import html
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from content_autopilot.errors import ChannelAPIError, ChannelNotConnectedError
from content_autopilot.http_client import ChannelHttpClient
from content_autopilot.models import ContentDraft, PublishResult
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("publish_wordpress")


@dataclass
class WordPressConnection:
    """Credentials for one org's WordPress site."""

    site_url: str
    username: str = ""
    app_password: str = ""

    @property
    def api_url(self) -> str:
        return f"{self.site_url.rstrip('/')}/wp-json/wp/v2"

    @property
    def auth_header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.app_password}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"

    @property
    def is_configured(self) -> bool:
        return bool(self.site_url and self.username and self.app_password)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> WordPressConnection:
        return cls(
            site_url=row.get("site_url") or "",
            username=row.get("username") or "",
            app_password=row.get("app_password") or "",
        )


def content_to_wp_blocks(content: str) -> str:
    """Wrap each non-empty paragraph in a Gutenberg paragraph block."""
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", content or "") if p.strip()]
    return "\n\n".join(
        f"<!-- wp:paragraph -->\n<p>{html.escape(p, quote=False)}</p>\n<!-- /wp:paragraph -->"
        for p in paragraphs
    )


class WordPressPublisher:
    """Publishes drafts to WordPress through the REST API."""

    def __init__(self, store: AutopilotStore, http: ChannelHttpClient) -> None:
        self.store = store
        self.http = http

    async def publish(self, draft: ContentDraft, org_id: str) -> PublishResult:
        row = await self.store.get_wordpress_connection(org_id)
        conn: Optional[WordPressConnection] = WordPressConnection.from_row(row) if row else None
        if conn is None or not conn.is_configured:
            raise ChannelNotConnectedError(
                "WordPress credentials not configured. Add your site URL and application password in Settings."
            )

        status, body = await self.http.request(
            "POST",
            f"{conn.api_url}/pages",
            json_data={
                "title": draft.title,
                "content": content_to_wp_blocks(draft.content),
                "status": "draft",
            },
            headers={"Authorization": conn.auth_header, "Content-Type": "application/json"},
        )

        if status in (401, 403):
            raise ChannelNotConnectedError(
                f"WordPress authentication failed (HTTP {status}). Check the application password.",
                status_code=status,
                response_body=str(body),
            )
        if status >= 400:
            message = body.get("message", str(body)) if isinstance(body, dict) else body
            raise ChannelAPIError(
                f"WordPress publish failed: HTTP {status}: {message}",
                status_code=status,
                response_body=str(body),
            )

        link = body.get("link") if isinstance(body, dict) else None
        logger.info("Created WordPress page for draft %s at %s", draft.id, link or conn.site_url)
        return PublishResult(published_url=link, status="published")
