"""
Draft creation.

``DraftCreator`` is the only component that talks to the text-generation
provider. Provider failures, unusable output and the pending-draft cap all
end in "no draft for this trigger" with a reason, never an exception, so the
sweep moves on. Store write failures do propagate; the orchestrator records
them per draft.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from content_autopilot.brief_generator import TextGenerator, generate_draft_brief
from content_autopilot.models import (
    ContentDraft,
    ContentType,
    DraftStatus,
    DraftTrigger,
    LocationContext,
    TriggerType,
    now_iso,
)
from content_autopilot.scoring import score_content
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("draft_creator")
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

# Maximum drafts in status 'draft' per org before new ones are suppressed.
PENDING_DRAFT_CAP = 5

OCCASION_GRACE_DAYS = 7

CONTENT_TYPE_BY_TRIGGER = {
    TriggerType.COMPETITOR_GAP.value: ContentType.FAQ_PAGE.value,
    TriggerType.PROMPT_MISSING.value: ContentType.FAQ_PAGE.value,
    TriggerType.OCCASION.value: ContentType.OCCASION_PAGE.value,
}


def determine_content_type(trigger: DraftTrigger) -> str:
    return CONTENT_TYPE_BY_TRIGGER.get(trigger.trigger_type, ContentType.BLOG_POST.value)


@dataclass
class DraftOutcome:
    """What happened to one trigger at the creation step."""
    draft: Optional[ContentDraft]
    created: bool
    reason: str


# ---------------------------------------------------------------------------
# DraftCreator
# ---------------------------------------------------------------------------


class DraftCreator:
    """
    Synthesizes ``ContentDraft`` records from triggers.

    Parameters
    ----------
    store : AutopilotStore
        System of record for drafts and location facts.
    generator : TextGenerator, optional
        Text-generation provider. When omitted, template briefs are used.
    pending_cap : int
        Per-org ceiling on drafts awaiting review.
    """

    def __init__(
        self,
        store: AutopilotStore,
        generator: Optional[TextGenerator] = None,
        pending_cap: int = PENDING_DRAFT_CAP,
    ) -> None:
        self.store = store
        self.generator = generator
        self.pending_cap = pending_cap

    async def load_location_context(self, location_id: str) -> LocationContext:
        row = await self.store.get_location(location_id)
        if not row:
            return LocationContext(location_id=location_id)
        return LocationContext.from_row(row)

    async def create(self, trigger: DraftTrigger) -> DraftOutcome:
        """
        Create a draft for ``trigger`` unless one already exists or the cap is hit.

        Raises
        ------
        InvalidTriggerError
            When the trigger payload is malformed.
        """
        trigger.validate()

        existing = await self._find_existing(trigger)
        if existing is not None:
            logger.debug("Draft already exists for %s: %s", trigger.key, existing.id)
            return DraftOutcome(existing, created=False, reason="existing")

        pending = await self.store.list_drafts(trigger.org_id, statuses=[DraftStatus.DRAFT.value])
        if len(pending) >= self.pending_cap:
            logger.warning(
                "Org %s has %d pending drafts (cap %d), suppressing %s",
                trigger.org_id, len(pending), self.pending_cap, trigger.key,
            )
            return DraftOutcome(None, created=False, reason="pending_cap")

        ctx = await self.load_location_context(trigger.location_id)
        content_type = determine_content_type(trigger)

        try:
            brief = await generate_draft_brief(trigger, ctx, content_type, self.generator)
        except Exception as exc:
            logger.warning("Brief generation failed for %s: %s", trigger.key, exc)
            return DraftOutcome(None, created=False, reason="generation_failed")

        if not brief.content.strip():
            logger.warning("Provider returned empty content for %s, skipping", trigger.key)
            return DraftOutcome(None, created=False, reason="empty_content")

        draft = ContentDraft(
            org_id=trigger.org_id,
            location_id=trigger.location_id,
            trigger_type=trigger.trigger_type,
            trigger_id=trigger.trigger_id,
            title=brief.title,
            content=brief.content,
            content_type=content_type,
            status=DraftStatus.DRAFT.value,
            human_approved=False,
            target_prompt=trigger.target_query or None,
            target_keywords=brief.target_keywords,
            aeo_score=score_content(brief.content, brief.title, ctx),
        )
        await self.store.insert_draft(draft)
        logger.info(
            "Created %s draft %s for %s (aeo=%s)",
            content_type, draft.id, trigger.key, draft.aeo_score,
        )
        return DraftOutcome(draft, created=True, reason="created")

    async def _find_existing(self, trigger: DraftTrigger) -> Optional[ContentDraft]:
        drafts = await self.store.list_drafts(trigger.org_id, include_archived=False)
        for draft in drafts:
            if draft.trigger_type == trigger.trigger_type and draft.trigger_id == trigger.trigger_id:
                return draft
        return None


# ---------------------------------------------------------------------------
# Occasion expiry
# ---------------------------------------------------------------------------


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    for candidate in (day.day, 30, 29, 28):
        try:
            return date(year, month, candidate)
        except ValueError:
            continue
    raise ValueError(f"Cannot add {months} months to {day}")


def occasion_peak(annual_date: str, today: date) -> date:
    """Most relevant peak date for an ``MM-DD`` occasion (last year if >6 months ahead)."""
    month, day = (int(part) for part in annual_date.split("-")[:2])
    if month == 2 and day == 29:
        day = 28
    peak = date(today.year, month, day)
    if peak > _add_months(today, 6):
        peak = peak.replace(year=today.year - 1)
    return peak


async def archive_expired_occasion_drafts(
    store: AutopilotStore,
    org_id: str,
    now: Optional[datetime] = None,
) -> int:
    """Archive occasion drafts whose peak date plus grace has passed. Returns the count."""
    now = now or datetime.now(timezone.utc)
    today = now.date()
    drafts = await store.list_drafts(
        org_id, statuses=[DraftStatus.DRAFT.value, DraftStatus.APPROVED.value]
    )

    archived = 0
    for draft in drafts:
        if draft.trigger_type != TriggerType.OCCASION.value or not draft.trigger_id:
            continue
        occasion = await store.get_occasion(draft.trigger_id)
        if not occasion or not occasion.get("annual_date"):
            continue
        peak = occasion_peak(occasion["annual_date"], today)
        if today > peak + timedelta(days=OCCASION_GRACE_DAYS):
            draft.status = DraftStatus.ARCHIVED.value
            draft.archived_at = now_iso()
            draft.updated_at = draft.archived_at
            await store.update_draft(draft)
            archived += 1

    if archived:
        logger.info("Archived %d expired occasion draft(s) for org %s", archived, org_id)
    return archived
