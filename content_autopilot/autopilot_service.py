"""
Autopilot orchestrator.

Single entry point for the scheduler. For every active location of every
eligible org:

    detectors (parallel) -> priority sort -> dedup + cooldowns
        -> draft limit gate -> create drafts one at a time

Locations and orgs run sequentially to bound load on the store and the
generation provider. A failure inside one location is recorded and the
sweep moves on; nothing here raises to the scheduler.

Usage:
    from content_autopilot.autopilot_service import AutopilotService

    service = AutopilotService(store, DraftCreator(store, generator))
    summary = await service.run_for_all_orgs()
    print(summary.processed, summary.failed, summary.created)
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from content_autopilot.config import AUTOPILOT_PLANS
from content_autopilot.deduplicator import apply_cooldowns, deduplicate_triggers, existing_draft_keys
from content_autopilot.draft_creator import DraftCreator, archive_expired_occasion_drafts
from content_autopilot.draft_limits import can_run_autopilot, check_draft_limit
from content_autopilot.models import AutopilotRunResult, DraftStatus, DraftTrigger, SweepSummary, now_iso
from content_autopilot.store import AutopilotStore
from content_autopilot.triggers import (
    detect_competitor_gaps,
    detect_prompt_missing,
    detect_review_gaps,
    detect_schema_gaps,
)

logger = logging.getLogger("autopilot_service")
logger.setLevel(logging.DEBUG)

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_handler)

# (store, org_id, location_id, business_name) -> triggers
DetectorFn = Callable[[AutopilotStore, str, str, str], Awaitable[List[DraftTrigger]]]

DEFAULT_DETECTORS: Sequence[Tuple[str, DetectorFn]] = (
    ("competitor_gap", lambda s, o, l, b: detect_competitor_gaps(s, o, l, b)),
    ("prompt_missing", lambda s, o, l, b: detect_prompt_missing(s, o, l)),
    ("review_gap", lambda s, o, l, b: detect_review_gaps(s, o, l)),
    ("schema_gap", lambda s, o, l, b: detect_schema_gaps(s, o, l)),
)


class AutopilotService:
    """
    Composes detectors, dedup, the limit gate and the draft creator.

    Parameters
    ----------
    store : AutopilotStore
        System of record.
    creator : DraftCreator
        Draft synthesis (owns the generation provider).
    detectors : sequence of (name, fn), optional
        Overrides the four built-in detectors.
    """

    def __init__(
        self,
        store: AutopilotStore,
        creator: DraftCreator,
        detectors: Optional[Sequence[Tuple[str, DetectorFn]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.creator = creator
        self.detectors = list(detectors if detectors is not None else DEFAULT_DETECTORS)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -----------------------------------------------------------------------
    # Detection
    # -----------------------------------------------------------------------

    async def collect_triggers(
        self, org_id: str, location_id: str, business_name: str
    ) -> Tuple[List[DraftTrigger], List[str]]:
        """Run every detector concurrently; return priority-sorted triggers and error lines."""
        results = await asyncio.gather(
            *(fn(self.store, org_id, location_id, business_name) for _, fn in self.detectors),
            return_exceptions=True,
        )

        triggers: List[DraftTrigger] = []
        errors: List[str] = []
        for (name, _), outcome in zip(self.detectors, results):
            if isinstance(outcome, BaseException):
                logger.warning("Detector %s failed for %s: %s", name, location_id, outcome)
                errors.append(f"Trigger detector {name} failed: {outcome}")
                continue
            triggers.extend(outcome)

        triggers.sort(key=lambda t: t.priority)
        return triggers, errors

    # -----------------------------------------------------------------------
    # Per-location
    # -----------------------------------------------------------------------

    async def run_for_location(self, org_id: str, location_id: str, plan: Optional[str]) -> AutopilotRunResult:
        result = AutopilotRunResult(org_id=org_id, location_id=location_id)

        location = await self.store.get_location(location_id) or {}
        business_name = location.get("business_name") or "Local Business"

        candidates, detector_errors = await self.collect_triggers(org_id, location_id, business_name)
        result.triggers_found = len(candidates)
        result.errors.extend(detector_errors)

        drafts = await self.store.list_drafts(org_id, include_archived=False)
        fresh = deduplicate_triggers(candidates, existing_draft_keys(drafts))
        fresh = apply_cooldowns(
            fresh, [d for d in drafts if d.location_id == location_id], now=self._clock()
        )
        result.drafts_skipped_dedup = len(candidates) - len(fresh)

        if fresh:
            await self._create_drafts(result, fresh, plan)

        await self._update_location_tracking(result)
        logger.info(
            "Location %s: %d trigger(s), %d created, %d dedup-skipped, %d limit-skipped",
            location_id, result.triggers_found, result.drafts_created,
            result.drafts_skipped_dedup, result.drafts_skipped_limit,
        )
        return result

    async def _create_drafts(
        self, result: AutopilotRunResult, candidates: List[DraftTrigger], plan: Optional[str]
    ) -> None:
        gate = await check_draft_limit(
            self.store, result.org_id, result.location_id, plan, now=self._clock()
        )
        remaining = gate.limit - gate.current if gate.allowed else 0

        for index, trigger in enumerate(candidates):
            if remaining <= 0:
                result.drafts_skipped_limit += len(candidates) - index
                logger.info(
                    "Draft limit reached for %s (%d/%d), %d trigger(s) deferred",
                    result.location_id, gate.current + result.drafts_created, gate.limit,
                    len(candidates) - index,
                )
                break
            try:
                outcome = await self.creator.create(trigger)
            except Exception as exc:
                logger.error("Draft creation failed for %s: %s", trigger.key, exc)
                result.errors.append(f"Draft creation failed for {trigger.trigger_type}: {exc}")
                continue
            if outcome.created:
                result.drafts_created += 1
                remaining -= 1
            elif outcome.reason == "existing":
                result.drafts_skipped_dedup += 1

    async def _update_location_tracking(self, result: AutopilotRunResult) -> None:
        try:
            pending = await self.store.list_drafts(
                result.org_id, location_id=result.location_id, statuses=[DraftStatus.DRAFT.value]
            )
            await self.store.update_location(result.location_id, {
                "autopilot_last_run_at": now_iso(),
                "drafts_pending_count": len(pending),
            })
        except Exception as exc:
            logger.warning("Could not update autopilot tracking for %s: %s", result.location_id, exc)
            result.errors.append(f"Location tracking update failed: {exc}")

    # -----------------------------------------------------------------------
    # Org / all-org sweeps
    # -----------------------------------------------------------------------

    async def run_for_org(self, org_id: str, plan: Optional[str] = None) -> SweepSummary:
        summary = SweepSummary()
        if plan is None:
            org = await self.store.get_organization(org_id)
            plan = (org or {}).get("plan")
        if not can_run_autopilot(plan):
            logger.info("Org %s on plan %r cannot run autopilot, skipping", org_id, plan)
            summary.skipped_orgs = 1
            return summary

        try:
            await archive_expired_occasion_drafts(self.store, org_id, now=self._clock())
        except Exception as exc:
            logger.warning("Occasion expiry failed for org %s: %s", org_id, exc)

        for location in await self.store.list_active_locations(org_id):
            location_id = location["id"]
            try:
                run = await self.run_for_location(org_id, location_id, plan)
            except Exception as exc:
                logger.error("Autopilot failed for location %s: %s", location_id, exc)
                summary.failed += 1
                summary.errors.append(f"Location {location_id} failed: {exc}")
                continue
            summary.processed += 1
            summary.created += run.drafts_created
            summary.errors.extend(run.errors)
        return summary

    async def run_for_all_orgs(self) -> SweepSummary:
        summary = SweepSummary()
        orgs = await self.store.list_organizations(plans=AUTOPILOT_PLANS)
        for org in orgs:
            try:
                summary.merge(await self.run_for_org(org["id"], org.get("plan")))
            except Exception as exc:
                logger.error("Autopilot failed for org %s: %s", org.get("id"), exc)
                summary.failed += 1
                summary.errors.append(f"Org {org.get('id')} failed: {exc}")
        logger.info(
            "Autopilot sweep complete: %d location(s) processed, %d failed, %d draft(s) created",
            summary.processed, summary.failed, summary.created,
        )
        return summary
