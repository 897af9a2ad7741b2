"""
Trigger deduplication.

Detectors are idempotent re-scans, so the same finding shows up on every
run. ``deduplicate_triggers`` drops candidates whose
``trigger_type:trigger_id`` already has a draft; ``apply_cooldowns`` adds a
softer rule that also catches the same *query* resurfacing under a new id.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

from content_autopilot.models import ContentDraft, DraftStatus, DraftTrigger, TriggerType, parse_iso

logger = logging.getLogger("autopilot_dedup")

# Days during which a repeated target query is suppressed.
QUERY_COOLDOWN_DAYS: Dict[str, int] = {
    TriggerType.COMPETITOR_GAP.value: 14,
    TriggerType.PROMPT_MISSING.value: 14,
}

# Days during which any second trigger of the type is suppressed per location.
LOCATION_COOLDOWN_DAYS: Dict[str, int] = {
    TriggerType.REVIEW_GAP.value: 60,
    TriggerType.SCHEMA_GAP.value: 30,
}


def deduplicate_triggers(
    candidates: Iterable[DraftTrigger],
    existing_draft_keys: Set[str],
) -> List[DraftTrigger]:
    """
    Drop candidates whose key is already drafted.

    Pure and order-preserving. Duplicates *within* ``candidates`` are also
    collapsed to their first occurrence.
    """
    seen = set(existing_draft_keys)
    kept: List[DraftTrigger] = []
    for trigger in candidates:
        if trigger.key in seen:
            continue
        seen.add(trigger.key)
        kept.append(trigger)
    return kept


def existing_draft_keys(drafts: Iterable[ContentDraft]) -> Set[str]:
    """Keys of all non-archived drafts that came from a trigger."""
    return {
        d.key for d in drafts
        if d.trigger_id and d.status != DraftStatus.ARCHIVED.value
    }


def apply_cooldowns(
    candidates: Iterable[DraftTrigger],
    recent_drafts: Iterable[ContentDraft],
    now: Optional[datetime] = None,
) -> List[DraftTrigger]:
    """Suppress candidates that repeat a recently drafted query or location-level gap."""
    now = now or datetime.now(timezone.utc)
    drafts = [d for d in recent_drafts if d.status != DraftStatus.ARCHIVED.value]

    kept: List[DraftTrigger] = []
    for trigger in candidates:
        if _in_cooldown(trigger, drafts, now):
            logger.debug("Cooldown suppressed %s", trigger.key)
            continue
        kept.append(trigger)
    return kept


def _in_cooldown(trigger: DraftTrigger, drafts: List[ContentDraft], now: datetime) -> bool:
    if trigger.trigger_type in LOCATION_COOLDOWN_DAYS:
        cutoff = now - timedelta(days=LOCATION_COOLDOWN_DAYS[trigger.trigger_type])
        return any(
            d.trigger_type == trigger.trigger_type
            and d.location_id == trigger.location_id
            and _created_after(d, cutoff)
            for d in drafts
        )

    days = QUERY_COOLDOWN_DAYS.get(trigger.trigger_type)
    query = trigger.target_query.strip().lower()
    if days is None or not query:
        return False
    cutoff = now - timedelta(days=days)
    return any(
        d.trigger_type == trigger.trigger_type
        and (d.target_prompt or "").strip().lower() == query
        and _created_after(d, cutoff)
        for d in drafts
    )


def _created_after(draft: ContentDraft, cutoff: datetime) -> bool:
    created = parse_iso(draft.created_at)
    return created is not None and created >= cutoff
