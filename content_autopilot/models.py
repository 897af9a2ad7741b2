"""
Data model for the content autopilot.

Enums are ``str`` subclasses so values round-trip through JSON unchanged;
dataclasses store enum *values* (plain strings) for the same reason.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from content_autopilot.errors import InvalidTriggerError


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime (None passes through)."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TriggerType(str, Enum):
    """Signal families that can spawn a content draft."""
    COMPETITOR_GAP = "competitor_gap"
    PROMPT_MISSING = "prompt_missing"
    REVIEW_GAP = "review_gap"
    SCHEMA_GAP = "schema_gap"
    HALLUCINATION_CORRECTION = "hallucination_correction"
    OCCASION = "occasion"


class ContentType(str, Enum):
    FAQ_PAGE = "faq_page"
    OCCASION_PAGE = "occasion_page"
    BLOG_POST = "blog_post"
    LANDING_PAGE = "landing_page"
    GBP_POST = "gbp_post"


class DraftStatus(str, Enum):
    """Lifecycle states of a content draft."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    DRAFT_READY = "draft_ready"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PlanTier(str, Enum):
    TRIAL = "trial"
    STARTER = "starter"
    GROWTH = "growth"
    AGENCY = "agency"


class PublishChannel(str, Enum):
    DOWNLOAD = "download"
    GBP = "gbp"
    WORDPRESS = "wordpress"


# Lower number wins when several detectors fire in the same run.
TRIGGER_PRIORITY: Dict[str, int] = {
    TriggerType.COMPETITOR_GAP.value: 1,
    TriggerType.PROMPT_MISSING.value: 2,
    TriggerType.REVIEW_GAP.value: 3,
    TriggerType.SCHEMA_GAP.value: 4,
}
DEFAULT_TRIGGER_PRIORITY = 99


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


@dataclass
class DraftTrigger:
    """A detected, actionable signal. Never persisted as-is."""
    trigger_type: str
    trigger_id: str
    org_id: str
    location_id: str
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Deduplication key: ``trigger_type:trigger_id``."""
        return f"{self.trigger_type}:{self.trigger_id}"

    @property
    def target_query(self) -> str:
        return str(self.context.get("target_query") or "")

    @property
    def priority(self) -> int:
        return TRIGGER_PRIORITY.get(self.trigger_type, DEFAULT_TRIGGER_PRIORITY)

    def validate(self) -> None:
        """Raise InvalidTriggerError when the payload cannot produce a draft."""
        valid_types = {t.value for t in TriggerType}
        if self.trigger_type not in valid_types:
            raise InvalidTriggerError(f"Unknown trigger type: {self.trigger_type!r}")
        if not self.trigger_id:
            raise InvalidTriggerError(f"Trigger {self.trigger_type} has no trigger_id")
        if not self.org_id:
            raise InvalidTriggerError(f"Trigger {self.key} has no org_id")
        if not isinstance(self.context, dict):
            raise InvalidTriggerError(f"Trigger {self.key} context must be a mapping")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


@dataclass
class ContentDraft:
    """Persistent content draft record."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    org_id: str = ""
    location_id: Optional[str] = None
    trigger_type: str = TriggerType.COMPETITOR_GAP.value
    trigger_id: Optional[str] = None
    title: str = ""
    content: str = ""
    content_type: str = ContentType.BLOG_POST.value
    status: str = DraftStatus.DRAFT.value
    human_approved: bool = False
    target_prompt: Optional[str] = None
    target_keywords: List[str] = field(default_factory=list)
    aeo_score: Optional[int] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    approved_at: Optional[str] = None
    published_at: Optional[str] = None
    archived_at: Optional[str] = None
    published_url: Optional[str] = None
    recheck_cited: Optional[bool] = None
    rechecked_at: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.trigger_type}:{self.trigger_id}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ContentDraft:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


@dataclass
class LocationContext:
    """Business facts used to ground generated copy and structured data."""
    location_id: str = ""
    business_name: str = "Local Business"
    city: Optional[str] = None
    state: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    amenities: Dict[str, bool] = field(default_factory=dict)
    phone: Optional[str] = None
    website_url: Optional[str] = None
    address_line1: Optional[str] = None
    zip: Optional[str] = None
    google_location_name: Optional[str] = None

    @property
    def primary_category(self) -> str:
        return self.categories[0] if self.categories else "local business"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> LocationContext:
        return cls(
            location_id=str(row.get("id", "")),
            business_name=row.get("business_name") or "Local Business",
            city=row.get("city"),
            state=row.get("state"),
            categories=list(row.get("categories") or []),
            amenities=dict(row.get("amenities") or {}),
            phone=row.get("phone"),
            website_url=row.get("website_url"),
            address_line1=row.get("address_line1"),
            zip=row.get("zip"),
            google_location_name=row.get("google_location_name"),
        )


# ---------------------------------------------------------------------------
# Gate / run results
# ---------------------------------------------------------------------------


@dataclass
class DraftLimitResult:
    allowed: bool
    current: int
    limit: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AutopilotRunResult:
    """Outcome of one location's autopilot pass."""
    org_id: str
    location_id: str
    triggers_found: int = 0
    drafts_created: int = 0
    drafts_skipped_dedup: int = 0
    drafts_skipped_limit: int = 0
    errors: List[str] = field(default_factory=list)
    run_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SweepSummary:
    """Aggregate outcome of an org-wide or all-org sweep."""
    processed: int = 0
    failed: int = 0
    created: int = 0
    skipped_orgs: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, other: SweepSummary) -> None:
        self.processed += other.processed
        self.failed += other.failed
        self.created += other.created
        self.skipped_orgs += other.skipped_orgs
        self.errors.extend(other.errors)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


@dataclass
class PublishResult:
    """Shared result contract for every publish channel."""
    published_url: Optional[str]
    status: str = "published"
    download_payload: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.download_payload is None:
            data.pop("download_payload")
        return data


# ---------------------------------------------------------------------------
# Rechecks
# ---------------------------------------------------------------------------


@dataclass
class RecheckTask:
    """Delayed share-of-voice re-evaluation for a published draft."""
    draft_id: str
    location_id: str
    target_query: str
    target_date: str
    task_type: str = "sov_recheck"

    def is_due(self, now: Optional[datetime] = None) -> bool:
        target = parse_iso(self.target_date)
        now = now or datetime.now(timezone.utc)
        return target is not None and target <= now

    def to_json_dict(self) -> Dict[str, Any]:
        """Wire shape stored in the recheck backend."""
        return {
            "taskType": self.task_type,
            "targetDate": self.target_date,
            "payload": {
                "draftId": self.draft_id,
                "locationId": self.location_id,
                "targetQuery": self.target_query,
            },
        }

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> RecheckTask:
        payload = data.get("payload") or {}
        return cls(
            draft_id=payload.get("draftId", ""),
            location_id=payload.get("locationId", ""),
            target_query=payload.get("targetQuery", ""),
            target_date=data.get("targetDate", ""),
            task_type=data.get("taskType", "sov_recheck"),
        )


# ---------------------------------------------------------------------------
# Correction verification
# ---------------------------------------------------------------------------


@dataclass
class FollowUpAlert:
    """A previously detected inaccuracy awaiting verification."""
    id: str
    correction_query: Optional[str]
    model_provider: str
    claim_text: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FollowUpAlert:
        return cls(
            id=str(data.get("id", "")),
            correction_query=data.get("correction_query"),
            model_provider=data.get("model_provider", ""),
            claim_text=data.get("claim_text", ""),
        )


@dataclass
class FollowUpResult:
    alert_id: str
    still_hallucinating: bool
    checked_at: str = field(default_factory=now_iso)
    provider_used: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
