"""
Delayed follow-up jobs.

``run_sov_rechecks``         consumes due post-publish rechecks and records
                             whether the business is now cited.
``run_correction_follow_up`` re-verifies hallucination alerts that have been
                             in ``verifying`` for at least 14 days.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from content_autopilot.correction_verifier import CorrectionVerifier
from content_autopilot.engines import DEFAULT_ENGINE, EngineRouter
from content_autopilot.models import FollowUpAlert, now_iso
from content_autopilot.recheck import RecheckScheduler
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("followup_jobs")

FOLLOW_UP_AFTER_DAYS = 14
FOLLOW_UP_BATCH = 50


@dataclass
class RecheckSummary:
    checked: int = 0
    cited: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FollowUpSummary:
    checked: int = 0
    fixed: int = 0
    recurring: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def run_sov_rechecks(
    scheduler: RecheckScheduler,
    store: AutopilotStore,
    router: EngineRouter,
) -> RecheckSummary:
    """Re-ask each due target query and record whether the business is cited."""
    summary = RecheckSummary()
    for task in await scheduler.get_pending_rechecks():
        draft = await store.get_draft(task.draft_id)
        if draft is None:
            logger.info("Recheck for missing draft %s dropped", task.draft_id)
            await scheduler.complete_recheck(task.draft_id)
            continue

        location = await store.get_location(task.location_id) or {}
        business_name = (location.get("business_name") or "").lower()
        try:
            response = await router.for_family(DEFAULT_ENGINE).query(task.target_query, "")
        except Exception as exc:
            logger.warning("Recheck query failed for draft %s: %s", task.draft_id, exc)
            summary.errors += 1
            continue
        if not response.ok:
            logger.warning("Recheck engine error for draft %s: %s", task.draft_id, response.content)
            summary.errors += 1
            continue

        cited = bool(business_name) and business_name in response.content.lower()
        draft.recheck_cited = cited
        draft.rechecked_at = now_iso()
        await store.update_draft(draft)
        await scheduler.complete_recheck(task.draft_id)

        summary.checked += 1
        if cited:
            summary.cited += 1
    logger.info("SOV rechecks: %s", summary.to_dict())
    return summary


async def run_correction_follow_up(
    store: AutopilotStore,
    verifier: CorrectionVerifier,
    now: Optional[datetime] = None,
) -> FollowUpSummary:
    """Mark long-verifying alerts as fixed or recurring."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=FOLLOW_UP_AFTER_DAYS)
    summary = FollowUpSummary()

    rows = await store.list_alerts(
        "verifying", verifying_before=cutoff, unchecked_only=True, limit=FOLLOW_UP_BATCH,
    )
    for row in rows:
        alert = FollowUpAlert.from_dict(row)
        checked_at = now.isoformat()
        try:
            result = await verifier.check_correction_status(alert)
            if result.still_hallucinating:
                await store.update_alert(alert.id, {
                    "correction_status": "recurring",
                    "follow_up_checked_at": checked_at,
                })
                summary.recurring += 1
            else:
                await store.update_alert(alert.id, {
                    "correction_status": "fixed",
                    "resolved_at": checked_at,
                    "follow_up_checked_at": checked_at,
                })
                summary.fixed += 1
            summary.checked += 1
        except Exception as exc:
            logger.error("Follow-up for alert %s failed: %s", alert.id, exc)
            summary.errors += 1
            try:
                await store.update_alert(alert.id, {"follow_up_checked_at": checked_at})
            except Exception as inner:
                logger.error("Could not stamp follow-up time on alert %s: %s", alert.id, inner)

    logger.info("Correction follow-up: %s", summary.to_dict())
    return summary
