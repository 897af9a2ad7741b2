"""
Human-in-the-loop approval workflow and publishing.

Transition table (action: allowed from -> to):

    submit          draft, rejected                              -> pending_approval
    mark_ready      pending_approval                             -> draft_ready
    approve         draft, pending_approval, draft_ready         -> approved
    reject          draft, pending_approval, draft_ready,
                    approved                                     -> rejected
    archive         anything but archived                        -> archived
    mark_published  approved (and human_approved)                -> published

Editing is allowed while a draft is still being worked on; an approved draft
must be rejected first so approval always covers the final text.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional, Tuple

from content_autopilot.errors import (
    AutopilotError,
    ChannelNotConfiguredError,
    DraftNotFoundError,
    DraftNotPublishableError,
    InvalidTransitionError,
)
from content_autopilot.models import (
    ContentDraft,
    DraftStatus,
    LocationContext,
    PublishChannel,
    PublishResult,
    now_iso,
)
from content_autopilot.publish_download import publish_as_download
from content_autopilot.publish_gbp import GBPPublisher
from content_autopilot.publish_wordpress import WordPressPublisher
from content_autopilot.recheck import NullSchedulerBackend, RecheckScheduler
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("draft_approval")

S = DraftStatus

TRANSITIONS: Dict[str, Tuple[FrozenSet[str], str]] = {
    "submit": (frozenset({S.DRAFT.value, S.REJECTED.value}), S.PENDING_APPROVAL.value),
    "mark_ready": (frozenset({S.PENDING_APPROVAL.value}), S.DRAFT_READY.value),
    "approve": (
        frozenset({S.DRAFT.value, S.PENDING_APPROVAL.value, S.DRAFT_READY.value}),
        S.APPROVED.value,
    ),
    "reject": (
        frozenset({S.PENDING_APPROVAL.value, S.DRAFT_READY.value, S.APPROVED.value}),
        S.REJECTED.value,
    ),
    "archive": (frozenset(s.value for s in S if s is not S.ARCHIVED), S.ARCHIVED.value),
    "mark_published": (frozenset({S.APPROVED.value}), S.PUBLISHED.value),
}

EDITABLE = frozenset({S.DRAFT.value, S.PENDING_APPROVAL.value, S.DRAFT_READY.value, S.REJECTED.value})


def apply_action(draft: ContentDraft, action: str) -> ContentDraft:
    """Apply ``action`` to ``draft`` in place and return it."""
    if action not in TRANSITIONS:
        raise InvalidTransitionError(f"Unknown action: {action}", draft_id=draft.id, action=action)

    allowed_from, target = TRANSITIONS[action]
    if draft.status not in allowed_from:
        raise InvalidTransitionError(
            f"Cannot {action} a draft in status '{draft.status}'",
            draft_id=draft.id,
            from_status=draft.status,
            action=action,
        )
    if action == "mark_published" and not draft.human_approved:
        raise DraftNotPublishableError("Draft must be approved by a person before publishing")

    stamp = now_iso()
    draft.status = target
    draft.updated_at = stamp
    if action == "approve":
        draft.human_approved = True
        draft.approved_at = stamp
    elif action == "reject":
        draft.human_approved = False
        draft.approved_at = None
    elif action == "archive":
        draft.archived_at = stamp
    elif action == "mark_published":
        draft.published_at = stamp
    return draft


def edit_draft(draft: ContentDraft, title: Optional[str] = None, content: Optional[str] = None) -> ContentDraft:
    if draft.status == S.APPROVED.value:
        raise InvalidTransitionError(
            "Draft is approved. Reject the draft before editing.",
            draft_id=draft.id, from_status=draft.status, action="edit",
        )
    if draft.status not in EDITABLE:
        raise InvalidTransitionError(
            f"Cannot edit a draft in status '{draft.status}'",
            draft_id=draft.id, from_status=draft.status, action="edit",
        )
    if title is not None:
        draft.title = title
    if content is not None:
        draft.content = content
    if draft.status == S.REJECTED.value:
        draft.status = S.DRAFT.value
    draft.updated_at = now_iso()
    return draft


# ---------------------------------------------------------------------------
# Workflow service
# ---------------------------------------------------------------------------


class DraftWorkflow:
    """
    Store-backed approval actions plus the publish entry point.

    Publishers are optional: a channel whose adapter was not supplied is
    reported as not configured rather than attempted.
    """

    def __init__(
        self,
        store: AutopilotStore,
        gbp: Optional[GBPPublisher] = None,
        wordpress: Optional[WordPressPublisher] = None,
        scheduler: Optional[RecheckScheduler] = None,
    ) -> None:
        self.store = store
        self.gbp = gbp
        self.wordpress = wordpress
        self.scheduler = scheduler or RecheckScheduler(NullSchedulerBackend())

    async def _load(self, draft_id: str) -> ContentDraft:
        draft = await self.store.get_draft(draft_id)
        if draft is None:
            raise DraftNotFoundError(f"Draft not found: {draft_id}")
        return draft

    async def transition(self, draft_id: str, action: str) -> ContentDraft:
        draft = apply_action(await self._load(draft_id), action)
        await self.store.update_draft(draft)
        logger.info("Draft %s: %s -> %s", draft_id, action, draft.status)
        return draft

    async def submit(self, draft_id: str) -> ContentDraft:
        return await self.transition(draft_id, "submit")

    async def approve(self, draft_id: str) -> ContentDraft:
        return await self.transition(draft_id, "approve")

    async def reject(self, draft_id: str) -> ContentDraft:
        return await self.transition(draft_id, "reject")

    async def archive(self, draft_id: str) -> ContentDraft:
        return await self.transition(draft_id, "archive")

    async def edit(self, draft_id: str, title: Optional[str] = None, content: Optional[str] = None) -> ContentDraft:
        draft = edit_draft(await self._load(draft_id), title=title, content=content)
        await self.store.update_draft(draft)
        return draft

    async def publish(self, draft_id: str, channel: str) -> PublishResult:
        """
        Publish an approved draft through ``channel`` and schedule its recheck.

        Raises
        ------
        DraftNotPublishableError
            The draft is not approved by a person.
        PublishError
            Any channel failure, unchanged from the adapter.
        """
        draft = await self._load(draft_id)
        if draft.status != S.APPROVED.value or not draft.human_approved:
            raise DraftNotPublishableError(
                f"Draft {draft_id} must be approved before publishing (status '{draft.status}')"
            )

        try:
            target = PublishChannel(channel)
        except ValueError as exc:
            raise AutopilotError(f"Unknown publish channel: {channel}") from exc

        if target is PublishChannel.DOWNLOAD:
            row = await self.store.get_location(draft.location_id) if draft.location_id else None
            ctx = LocationContext.from_row(row) if row else LocationContext()
            result = await publish_as_download(draft, ctx)
        elif target is PublishChannel.GBP:
            if self.gbp is None:
                raise ChannelNotConfiguredError("GBP publishing is not configured")
            result = await self.gbp.publish(draft, draft.org_id)
        else:
            if self.wordpress is None:
                raise ChannelNotConfiguredError("WordPress publishing is not configured")
            result = await self.wordpress.publish(draft, draft.org_id)

        apply_action(draft, "mark_published")
        draft.published_url = result.published_url
        await self.store.update_draft(draft)

        if draft.location_id:
            await self.scheduler.schedule(draft.id, draft.location_id, draft.target_prompt)
        logger.info("Published draft %s via %s", draft.id, target.value)
        return result
