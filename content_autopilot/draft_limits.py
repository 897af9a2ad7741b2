"""
Plan-tier gating and the monthly draft quota.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from content_autopilot.config import AUTOPILOT_PLANS, PLAN_DRAFT_LIMITS
from content_autopilot.models import DraftLimitResult
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("autopilot_limits")


def can_run_autopilot(plan: Optional[str]) -> bool:
    """Only growth and agency plans run the autopilot."""
    return plan in AUTOPILOT_PLANS


def draft_limit_for(plan: Optional[str]) -> int:
    return PLAN_DRAFT_LIMITS.get(plan or "", 0)


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def evaluate_limit(current: int, plan: Optional[str]) -> DraftLimitResult:
    """Pure gate: allowed while ``current`` is below the plan's ceiling."""
    limit = draft_limit_for(plan)
    return DraftLimitResult(allowed=limit > 0 and current < limit, current=current, limit=limit)


async def check_draft_limit(
    store: AutopilotStore,
    org_id: str,
    location_id: str,
    plan: Optional[str],
    now: Optional[datetime] = None,
) -> DraftLimitResult:
    """
    Compare this calendar month's drafts for the location against the plan ceiling.

    Parameters
    ----------
    store : AutopilotStore
        Source of the draft count.
    org_id, location_id : str
        Scope of the count.
    plan : str or None
        Plan tier. Trial, starter, and unknown plans are denied outright.

    Returns
    -------
    DraftLimitResult
    """
    if not can_run_autopilot(plan):
        return DraftLimitResult(allowed=False, current=0, limit=0)

    current = await store.count_drafts_since(org_id, location_id, month_start(now))
    result = evaluate_limit(current, plan)
    if not result.allowed:
        logger.info(
            "Draft limit reached for location %s (%d/%d, plan=%s)",
            location_id, result.current, result.limit, plan,
        )
    return result
