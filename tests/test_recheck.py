"""
Tests for post-publish recheck scheduling.

Uses fakeredis for the Redis backend and a mutable clock so "14 days later"
is a single attribute assignment.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from content_autopilot.models import RecheckTask
from content_autopilot.recheck import (
    RECHECK_SET_KEY,
    RECHECK_TTL,
    NullSchedulerBackend,
    RecheckScheduler,
    RedisSchedulerBackend,
    backend_from_url,
    recheck_key,
)


@pytest.fixture
def backend(fake_redis):
    return RedisSchedulerBackend(fake_redis)


@pytest.fixture
def scheduler(backend, clock):
    return RecheckScheduler(backend, clock=clock)


def _broken_client():
    client = MagicMock()
    for name in ("set", "get", "delete", "sadd", "smembers", "srem"):
        setattr(client, name, AsyncMock(side_effect=RedisConnectionError("connection refused")))
    return client


# ===================================================================
# Scheduling
# ===================================================================


class TestSchedule:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_writes_task_and_index(self, scheduler, fake_redis, fixed_now):
        task = await scheduler.schedule("d-1", "loc-001", "best pizza austin")

        assert task.target_date == (fixed_now + timedelta(days=14)).isoformat()
        raw = json.loads(await fake_redis.get(recheck_key("d-1")))
        assert raw == {
            "taskType": "sov_recheck",
            "targetDate": task.target_date,
            "payload": {"draftId": "d-1", "locationId": "loc-001", "targetQuery": "best pizza austin"},
        }
        assert await fake_redis.smembers(RECHECK_SET_KEY) == {"d-1"}
        ttl = await fake_redis.ttl(recheck_key("d-1"))
        assert 0 < ttl <= RECHECK_TTL

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", [None, ""])
    async def test_no_query_is_noop(self, query):
        backend = MagicMock()
        backend.set = AsyncMock()
        backend.sadd = AsyncMock()
        assert await RecheckScheduler(backend).schedule("d-1", "loc-001", query) is None
        backend.set.assert_not_called()
        backend.sadd.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_write_skips_index(self, clock):
        backend = MagicMock()
        backend.set = AsyncMock(return_value=False)
        backend.sadd = AsyncMock()
        task = await RecheckScheduler(backend, clock=clock).schedule("d-1", "loc-001", "q")
        assert task is not None
        backend.sadd.assert_not_called()


# ===================================================================
# Listing and completing
# ===================================================================


class TestPendingRechecks:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_not_due_before_fourteen_days(self, scheduler, clock):
        await scheduler.schedule("d-1", "loc-001", "q")
        clock.now += timedelta(days=13)
        assert await scheduler.get_pending_rechecks() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_round_trip(self, scheduler, clock):
        await scheduler.schedule("d-1", "loc-001", "best pizza austin")
        clock.now += timedelta(days=14, seconds=1)

        pending = await scheduler.get_pending_rechecks()
        assert pending == [RecheckTask(
            draft_id="d-1",
            location_id="loc-001",
            target_query="best pizza austin",
            target_date=pending[0].target_date,
        )]

        await scheduler.complete_recheck("d-1")
        assert await scheduler.get_pending_rechecks() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stale_index_entry_pruned(self, scheduler, fake_redis):
        await fake_redis.sadd(RECHECK_SET_KEY, "expired-draft")
        assert await scheduler.get_pending_rechecks() == []
        assert await fake_redis.smembers(RECHECK_SET_KEY) == set()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unreadable_entry_dropped(self, scheduler, fake_redis):
        await fake_redis.set(recheck_key("bad"), "{not json")
        await fake_redis.sadd(RECHECK_SET_KEY, "bad")
        assert await scheduler.get_pending_rechecks() == []
        assert await fake_redis.get(recheck_key("bad")) is None
        assert await fake_redis.smembers(RECHECK_SET_KEY) == set()

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("target_date", ["soon", 20260329])
    async def test_bad_target_date_dropped_without_blocking_others(
        self, scheduler, fake_redis, clock, target_date
    ):
        bad = {"taskType": "sov_recheck", "targetDate": target_date,
               "payload": {"draftId": "bad", "locationId": "loc-001", "targetQuery": "q"}}
        await fake_redis.set(recheck_key("bad"), json.dumps(bad))
        await fake_redis.sadd(RECHECK_SET_KEY, "bad")
        await scheduler.schedule("d-1", "loc-001", "best pizza austin")
        clock.now += timedelta(days=15)

        pending = await scheduler.get_pending_rechecks()

        assert [t.draft_id for t in pending] == ["d-1"]
        assert await fake_redis.get(recheck_key("bad")) is None
        assert await fake_redis.smembers(RECHECK_SET_KEY) == {"d-1"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_multiple_tasks_in_stable_order(self, scheduler, clock):
        for draft_id in ("d-3", "d-1", "d-2"):
            await scheduler.schedule(draft_id, "loc-001", f"query {draft_id}")
        clock.now += timedelta(days=15)
        pending = await scheduler.get_pending_rechecks()
        assert [t.draft_id for t in pending] == ["d-1", "d-2", "d-3"]


# ===================================================================
# Degraded backends
# ===================================================================


class TestDegradedBackends:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unreachable_redis_never_raises(self, clock):
        scheduler = RecheckScheduler(RedisSchedulerBackend(_broken_client()), clock=clock)
        task = await scheduler.schedule("d-1", "loc-001", "q")
        assert task is not None
        assert await scheduler.get_pending_rechecks() == []
        await scheduler.complete_recheck("d-1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_null_backend(self, clock):
        scheduler = RecheckScheduler(NullSchedulerBackend(), clock=clock)
        await scheduler.schedule("d-1", "loc-001", "q")
        clock.now += timedelta(days=30)
        assert await scheduler.get_pending_rechecks() == []

    @pytest.mark.unit
    def test_backend_from_url_without_url(self):
        assert isinstance(backend_from_url(""), NullSchedulerBackend)
        assert isinstance(backend_from_url(None), NullSchedulerBackend)

    @pytest.mark.unit
    def test_backend_from_url_with_url(self):
        backend = backend_from_url("redis://localhost:6379/0")
        assert isinstance(backend, RedisSchedulerBackend)
