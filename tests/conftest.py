"""
Shared fixtures for the content autopilot test suite.

Provides a seeded JSON store, fixed clocks, mocked aiohttp plumbing and an
in-memory Redis so that all tests run WITHOUT any external services.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest

from content_autopilot.http_client import ChannelHttpClient
from content_autopilot.store import JsonAutopilotStore


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def location_row():
    """A fully populated location row."""
    return {
        "id": "loc-001",
        "org_id": "org-001",
        "business_name": "Bella Napoli",
        "city": "Austin",
        "state": "TX",
        "zip": "78701",
        "categories": ["Italian restaurant"],
        "amenities": {"outdoor_seating": True},
        "phone": "512-555-1234",
        "website_url": "https://bellanapoli.example",
        "address_line1": "100 Congress Ave",
        "google_location_name": "accounts/123/locations/456",
        "is_archived": False,
    }


@pytest.fixture
def store(tmp_path, location_row):
    """JSON store seeded with one growth-plan org and one active location."""
    s = JsonAutopilotStore(tmp_path / "autopilot")
    s.add_rows("organizations", [{"id": "org-001", "name": "Bella Napoli LLC", "plan": "growth"}])
    s.add_rows("locations", [location_row])
    return s


# ---------------------------------------------------------------------------
# Clock fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fixed_now():
    return datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    """Callable clock whose time tests can move forward."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock(fixed_now):
    return MutableClock(fixed_now)


# ---------------------------------------------------------------------------
# HTTP mock fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_aiohttp_response():
    """Create a mock aiohttp response factory."""

    def _make(status=200, json_data=None, text=""):
        resp = AsyncMock()
        resp.status = status
        resp.json = AsyncMock(return_value=json_data if json_data is not None else {})
        resp.text = AsyncMock(return_value=text)
        resp.headers = {"Content-Type": "application/json"}
        return resp

    return _make


def _make_ctx(resp):
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


@pytest.fixture
def make_http():
    """Build a ChannelHttpClient whose session replays the given responses in order.

    The source uses ``async with session.request(method, url, **kwargs) as resp``
    so ``session.request`` returns an async context manager per call.
    """

    def _make(*responses):
        session = AsyncMock()
        session.closed = False
        session.close = AsyncMock()
        session.request = MagicMock(side_effect=[_make_ctx(r) for r in responses])
        return ChannelHttpClient(session=session), session

    return _make


# ---------------------------------------------------------------------------
# Redis fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)
