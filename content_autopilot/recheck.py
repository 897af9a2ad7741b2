"""
Post-publish recheck scheduling.

When a draft with a target query is published, a ``sov_recheck`` task is
parked in an expiring key-value store for 14 days. A periodic consumer asks
for due tasks, re-evaluates share of voice, and completes them.

The store is advisory: losing it loses a scheduled recheck, never data.
Backends therefore absorb their own failures. ``RedisSchedulerBackend``
logs and returns an empty result on any Redis error, and
``NullSchedulerBackend`` is used when no Redis URL is configured.

Usage:
    from content_autopilot.recheck import RecheckScheduler, backend_from_url

    scheduler = RecheckScheduler(backend_from_url(settings.redis_url))
    await scheduler.schedule(draft.id, draft.location_id, draft.target_prompt)
    for task in await scheduler.get_pending_rechecks():
        ...
        await scheduler.complete_recheck(task.draft_id)
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from content_autopilot.models import RecheckTask

logger = logging.getLogger("recheck_scheduler")

# ---------------------------------------------------------------------------
# Keys and timing
# ---------------------------------------------------------------------------

KEY_PREFIX = "autopilot:"
RECHECK_KEY_PREFIX = f"{KEY_PREFIX}recheck:"
RECHECK_SET_KEY = f"{KEY_PREFIX}recheck:pending"

RECHECK_DELAY_DAYS = 14
RECHECK_TTL = 86400 * 15  # one day of grace past the target date

_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def recheck_key(draft_id: str) -> str:
    return f"{RECHECK_KEY_PREFIX}{draft_id}"


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class SchedulerBackend:
    """
    Capability interface for the recheck store.

    Implementations must never raise: an unreachable store reads as empty and
    writes become no-ops.
    """

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def sadd(self, set_key: str, member: str) -> bool:
        raise NotImplementedError

    async def smembers(self, set_key: str) -> Set[str]:
        raise NotImplementedError

    async def srem(self, set_key: str, member: str) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class NullSchedulerBackend(SchedulerBackend):
    """Backend for environments without a recheck store. Everything is a no-op."""

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        return False

    async def get(self, key: str) -> Optional[str]:
        return None

    async def delete(self, key: str) -> bool:
        return False

    async def sadd(self, set_key: str, member: str) -> bool:
        return False

    async def smembers(self, set_key: str) -> Set[str]:
        return set()

    async def srem(self, set_key: str, member: str) -> bool:
        return False


class RedisSchedulerBackend(SchedulerBackend):
    """Redis-backed store. Errors are logged and degrade to empty results."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisSchedulerBackend:
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client)

    async def set(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
            return True
        except _STORE_ERRORS as exc:
            logger.warning("Recheck store set(%s) failed: %s", key, exc)
            return False

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except _STORE_ERRORS as exc:
            logger.warning("Recheck store get(%s) failed: %s", key, exc)
            return None

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except _STORE_ERRORS as exc:
            logger.warning("Recheck store delete(%s) failed: %s", key, exc)
            return False

    async def sadd(self, set_key: str, member: str) -> bool:
        try:
            return bool(await self._client.sadd(set_key, member))
        except _STORE_ERRORS as exc:
            logger.warning("Recheck store sadd(%s) failed: %s", set_key, exc)
            return False

    async def smembers(self, set_key: str) -> Set[str]:
        try:
            return set(await self._client.smembers(set_key))
        except _STORE_ERRORS as exc:
            logger.warning("Recheck store smembers(%s) failed: %s", set_key, exc)
            return set()

    async def srem(self, set_key: str, member: str) -> bool:
        try:
            return bool(await self._client.srem(set_key, member))
        except _STORE_ERRORS as exc:
            logger.warning("Recheck store srem(%s) failed: %s", set_key, exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()


def backend_from_url(url: Optional[str]) -> SchedulerBackend:
    """Redis backend for a configured URL, otherwise the no-op backend."""
    if not url:
        logger.info("No REDIS_URL configured, post-publish rechecks are disabled")
        return NullSchedulerBackend()
    return RedisSchedulerBackend.from_url(url)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class RecheckScheduler:
    """
    Schedules, lists and completes delayed share-of-voice rechecks.

    Parameters
    ----------
    backend : SchedulerBackend
        Expiring key-value store with a set index.
    clock : callable, optional
        Returns the current aware UTC datetime. Injected by tests.
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def schedule(self, draft_id: str, location_id: str, target_query: Optional[str]) -> Optional[RecheckTask]:
        """Park a recheck 14 days out. No-op when there is no query to re-verify."""
        if not target_query:
            return None

        task = RecheckTask(
            draft_id=draft_id,
            location_id=location_id,
            target_query=target_query,
            target_date=(self._clock() + timedelta(days=RECHECK_DELAY_DAYS)).isoformat(),
        )
        stored = await self.backend.set(recheck_key(draft_id), json.dumps(task.to_json_dict()), RECHECK_TTL)
        if stored:
            await self.backend.sadd(RECHECK_SET_KEY, draft_id)
            logger.info("Scheduled SOV recheck for draft %s at %s", draft_id, task.target_date)
        return task

    async def get_pending_rechecks(self) -> List[RecheckTask]:
        """Tasks whose target date has passed. Stale index entries are pruned."""
        now = self._clock()
        due: List[RecheckTask] = []
        for draft_id in sorted(await self.backend.smembers(RECHECK_SET_KEY)):
            raw = await self.backend.get(recheck_key(draft_id))
            if raw is None:
                await self.backend.srem(RECHECK_SET_KEY, draft_id)
                continue
            try:
                task = RecheckTask.from_json_dict(json.loads(raw))
                is_due = task.is_due(now)
            except (ValueError, TypeError, AttributeError) as exc:
                logger.warning("Dropping unreadable recheck task %s: %s", draft_id, exc)
                await self.complete_recheck(draft_id)
                continue
            if is_due:
                due.append(task)
        return due

    async def complete_recheck(self, draft_id: str) -> None:
        await self.backend.delete(recheck_key(draft_id))
        await self.backend.srem(RECHECK_SET_KEY, draft_id)
