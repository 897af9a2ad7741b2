"""
Tests for the WordPress channel and the shared channel HTTP client.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from content_autopilot.errors import ChannelAPIError, ChannelNotConnectedError
from content_autopilot.http_client import ChannelHttpClient
from content_autopilot.models import ContentDraft
from content_autopilot.publish_wordpress import (
    WordPressConnection,
    WordPressPublisher,
    content_to_wp_blocks,
)

ORG = "org-001"


def _draft():
    return ContentDraft(org_id=ORG, location_id="loc-001", title="Date Night in Austin",
                        content="Bella Napoli is the spot.\n\nCall us to reserve & enjoy.",
                        status="approved", human_approved=True)


def _connect(store, **overrides):
    row = {"org_id": ORG, "site_url": "https://bellanapoli.example/", "username": "editor",
           "app_password": "abcd efgh ijkl"}
    row.update(overrides)
    store.add_rows("wordpress_connections", [row])


# ===================================================================
# Helpers
# ===================================================================


class TestWordPressConnection:

    @pytest.mark.unit
    def test_api_url_strips_trailing_slash(self):
        conn = WordPressConnection("https://site.example/")
        assert conn.api_url == "https://site.example/wp-json/wp/v2"

    @pytest.mark.unit
    def test_basic_auth_header(self):
        conn = WordPressConnection("https://s", "editor", "pw pw")
        token = conn.auth_header.split(" ", 1)[1]
        assert conn.auth_header.startswith("Basic ")
        assert base64.b64decode(token).decode() == "editor:pw pw"

    @pytest.mark.unit
    def test_is_configured(self):
        assert WordPressConnection("https://s", "u", "p").is_configured is True
        assert WordPressConnection("https://s", "u", "").is_configured is False


class TestContentToBlocks:

    @pytest.mark.unit
    def test_paragraph_blocks(self):
        blocks = content_to_wp_blocks("One.\n\nTwo & three.")
        assert blocks == (
            "<!-- wp:paragraph -->\n<p>One.</p>\n<!-- /wp:paragraph -->\n\n"
            "<!-- wp:paragraph -->\n<p>Two &amp; three.</p>\n<!-- /wp:paragraph -->"
        )

    @pytest.mark.unit
    def test_empty(self):
        assert content_to_wp_blocks("") == ""


# ===================================================================
# WordPressPublisher
# ===================================================================


class TestWordPressPublisher:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creates_draft_page(self, store, make_http, mock_aiohttp_response):
        _connect(store)
        http, session = make_http(
            mock_aiohttp_response(201, {"id": 42, "link": "https://bellanapoli.example/?page_id=42"})
        )
        result = await WordPressPublisher(store, http).publish(_draft(), ORG)

        assert result.published_url == "https://bellanapoli.example/?page_id=42"
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://bellanapoli.example/wp-json/wp/v2/pages")
        assert kwargs["json"]["status"] == "draft"
        assert kwargs["json"]["title"] == "Date Night in Austin"
        assert "<!-- wp:paragraph -->" in kwargs["json"]["content"]
        assert kwargs["headers"]["Authorization"].startswith("Basic ")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_link_gives_none(self, store, make_http, mock_aiohttp_response):
        _connect(store)
        http, _ = make_http(mock_aiohttp_response(201, {"id": 42}))
        result = await WordPressPublisher(store, http).publish(_draft(), ORG)
        assert result.published_url is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_connection(self, store, make_http):
        http, session = make_http()
        with pytest.raises(ChannelNotConnectedError):
            await WordPressPublisher(store, http).publish(_draft(), ORG)
        session.request.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_incomplete_connection(self, store, make_http):
        _connect(store, app_password="")
        http, _ = make_http()
        with pytest.raises(ChannelNotConnectedError):
            await WordPressPublisher(store, http).publish(_draft(), ORG)

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failure_is_not_connected(self, store, make_http, mock_aiohttp_response, status):
        _connect(store)
        http, _ = make_http(mock_aiohttp_response(status, {"code": "rest_forbidden"}))
        with pytest.raises(ChannelNotConnectedError) as exc_info:
            await WordPressPublisher(store, http).publish(_draft(), ORG)
        assert exc_info.value.status_code == status

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_other_error_carries_message(self, store, make_http, mock_aiohttp_response):
        _connect(store)
        http, _ = make_http(mock_aiohttp_response(500, {"message": "Database error"}))
        with pytest.raises(ChannelAPIError, match="Database error") as exc_info:
            await WordPressPublisher(store, http).publish(_draft(), ORG)
        assert exc_info.value.retryable is True


# ===================================================================
# ChannelHttpClient
# ===================================================================


class TestChannelHttpClient:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_text_fallback_when_body_not_json(self, make_http, mock_aiohttp_response):
        resp = mock_aiohttp_response(502, text="Bad Gateway")
        resp.json = AsyncMock(side_effect=ValueError("not json"))
        http, _ = make_http(resp)
        assert await http.request("GET", "https://x") == (502, "Bad Gateway")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_network_error_is_status_zero(self):
        session = AsyncMock()
        session.closed = False
        session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        http = ChannelHttpClient(session=session)
        with pytest.raises(ChannelAPIError) as exc_info:
            await http.request("POST", "https://x")
        assert exc_info.value.status_code == 0
        assert exc_info.value.retryable is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, make_http):
        http, session = make_http()
        async with http:
            pass
        session.close.assert_awaited_once()
