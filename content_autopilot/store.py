"""
Relational-store access for the content autopilot.

``AutopilotStore`` is the read/write surface the pipeline needs from the
system of record. ``JsonAutopilotStore`` implements it on top of one JSON
file per table (atomic writes), which is what the CLI and the test-suite
run against. A database-backed deployment subclasses ``AutopilotStore``.

Tables:
    organizations, locations, competitor_intercepts, target_queries,
    sov_evaluations, reviews, page_schemas, content_drafts, oauth_tokens,
    wordpress_connections, hallucination_alerts, occasions
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from content_autopilot.models import ContentDraft, DraftStatus, parse_iso

logger = logging.getLogger("autopilot_store")

TABLES = (
    "organizations",
    "locations",
    "competitor_intercepts",
    "target_queries",
    "sov_evaluations",
    "reviews",
    "page_schemas",
    "content_drafts",
    "oauth_tokens",
    "wordpress_connections",
    "hallucination_alerts",
    "occasions",
)


class StoreError(Exception):
    """Raised when the backing store cannot satisfy a query."""
    pass


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def _load_json(path: Path, default: Any = None) -> Any:
    """Load JSON from *path*, returning *default* when missing or corrupt."""
    if default is None:
        default = []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError):
        return default


def _save_json(path: Path, data: Any) -> None:
    """Atomic JSON write: write to .tmp then os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    with open(tmp_path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=str, ensure_ascii=False)
    os.replace(tmp_path, path)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class AutopilotStore:
    """Async access to the system of record. Subclasses implement every method."""

    # -- Organizations / locations ------------------------------------------

    async def list_organizations(self, plans: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def get_organization(self, org_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def list_active_locations(self, org_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def get_location(self, location_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def update_location(self, location_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    # -- Signal sources -----------------------------------------------------

    async def list_competitor_intercepts(
        self, org_id: str, location_id: str, limit: int = 10
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def list_target_queries(self, org_id: str, location_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def list_cited_query_ids(self, org_id: str, location_id: str) -> Set[str]:
        raise NotImplementedError

    async def list_negative_reviews(
        self, location_id: str, since: datetime, limit: int = 50
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def list_page_schemas(self, location_id: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def get_occasion(self, occasion_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    # -- Drafts -------------------------------------------------------------

    async def list_drafts(
        self,
        org_id: str,
        location_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        include_archived: bool = True,
    ) -> List[ContentDraft]:
        raise NotImplementedError

    async def get_draft(self, draft_id: str) -> Optional[ContentDraft]:
        raise NotImplementedError

    async def insert_draft(self, draft: ContentDraft) -> ContentDraft:
        raise NotImplementedError

    async def update_draft(self, draft: ContentDraft) -> ContentDraft:
        raise NotImplementedError

    async def count_drafts_since(self, org_id: str, location_id: str, since: datetime) -> int:
        raise NotImplementedError

    # -- Channel credentials ------------------------------------------------

    async def get_oauth_token(self, org_id: str, provider: str = "google") -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def save_oauth_token(self, org_id: str, provider: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def get_wordpress_connection(self, org_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    # -- Hallucination alerts -----------------------------------------------

    async def list_alerts(
        self,
        status: str,
        verifying_before: Optional[datetime] = None,
        unchecked_only: bool = False,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        """Alerts in ``status``, filtered by age and follow-up state before ``limit``."""
        raise NotImplementedError

    async def update_alert(self, alert_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# JSON file implementation
# ---------------------------------------------------------------------------


class JsonAutopilotStore(AutopilotStore):
    """
    File-backed store: ``<data_dir>/<table>.json`` holds a list of rows.

    Tables load lazily on first access and are written back atomically after
    every mutation.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self._tables: Dict[str, List[Dict[str, Any]]] = {}

    def _path(self, table: str) -> Path:
        return self.data_dir / f"{table}.json"

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        if table not in TABLES:
            raise StoreError(f"Unknown table: {table}")
        if table not in self._tables:
            self._tables[table] = _load_json(self._path(table), [])
        return self._tables[table]

    def _persist(self, table: str) -> None:
        _save_json(self._path(table), self._rows(table))

    def add_rows(self, table: str, rows: Iterable[Dict[str, Any]]) -> None:
        """Append raw rows to a table (seeding and imports)."""
        self._rows(table).extend(dict(r) for r in rows)
        self._persist(table)

    # -- Organizations / locations ------------------------------------------

    async def list_organizations(self, plans: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        rows = self._rows("organizations")
        if plans is None:
            return list(rows)
        wanted = set(plans)
        return [r for r in rows if r.get("plan") in wanted]

    async def get_organization(self, org_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self._rows("organizations") if r.get("id") == org_id), None)

    async def list_active_locations(self, org_id: str) -> List[Dict[str, Any]]:
        return [
            r for r in self._rows("locations")
            if r.get("org_id") == org_id and not r.get("is_archived", False)
        ]

    async def get_location(self, location_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self._rows("locations") if r.get("id") == location_id), None)

    async def update_location(self, location_id: str, fields: Dict[str, Any]) -> None:
        for row in self._rows("locations"):
            if row.get("id") == location_id:
                row.update(fields)
                self._persist("locations")
                return
        raise StoreError(f"Location not found: {location_id}")

    # -- Signal sources -----------------------------------------------------

    async def list_competitor_intercepts(
        self, org_id: str, location_id: str, limit: int = 10
    ) -> List[Dict[str, Any]]:
        rows = [
            r for r in self._rows("competitor_intercepts")
            if r.get("org_id") == org_id and r.get("location_id") == location_id
        ]
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return rows[:limit]

    async def list_target_queries(self, org_id: str, location_id: str) -> List[Dict[str, Any]]:
        return [
            r for r in self._rows("target_queries")
            if r.get("org_id") == org_id
            and r.get("location_id") == location_id
            and r.get("is_active", True)
        ]

    async def list_cited_query_ids(self, org_id: str, location_id: str) -> Set[str]:
        return {
            r["query_id"] for r in self._rows("sov_evaluations")
            if r.get("org_id") == org_id
            and r.get("location_id") == location_id
            and r.get("rank_position") is not None
            and r.get("query_id")
        }

    async def list_negative_reviews(
        self, location_id: str, since: datetime, limit: int = 50
    ) -> List[Dict[str, Any]]:
        rows = []
        for r in self._rows("reviews"):
            if r.get("location_id") != location_id or r.get("sentiment_label") != "negative":
                continue
            published = parse_iso(r.get("published_at"))
            if published is None or published < since:
                continue
            rows.append(r)
        rows.sort(key=lambda r: r.get("published_at") or "", reverse=True)
        return rows[:limit]

    async def list_page_schemas(self, location_id: str) -> List[Dict[str, Any]]:
        return [
            r for r in self._rows("page_schemas")
            if r.get("location_id") == location_id and r.get("status", "published") == "published"
        ]

    async def get_occasion(self, occasion_id: str) -> Optional[Dict[str, Any]]:
        return next((r for r in self._rows("occasions") if r.get("id") == occasion_id), None)

    # -- Drafts -------------------------------------------------------------

    async def list_drafts(
        self,
        org_id: str,
        location_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
        include_archived: bool = True,
    ) -> List[ContentDraft]:
        wanted = set(statuses) if statuses is not None else None
        drafts = []
        for row in self._rows("content_drafts"):
            if row.get("org_id") != org_id:
                continue
            if location_id is not None and row.get("location_id") != location_id:
                continue
            status = row.get("status")
            if wanted is not None and status not in wanted:
                continue
            if not include_archived and status == DraftStatus.ARCHIVED.value:
                continue
            drafts.append(ContentDraft.from_dict(row))
        return drafts

    async def get_draft(self, draft_id: str) -> Optional[ContentDraft]:
        row = next((r for r in self._rows("content_drafts") if r.get("id") == draft_id), None)
        return ContentDraft.from_dict(row) if row else None

    async def insert_draft(self, draft: ContentDraft) -> ContentDraft:
        self._rows("content_drafts").append(draft.to_dict())
        self._persist("content_drafts")
        return draft

    async def update_draft(self, draft: ContentDraft) -> ContentDraft:
        rows = self._rows("content_drafts")
        for idx, row in enumerate(rows):
            if row.get("id") == draft.id:
                rows[idx] = draft.to_dict()
                self._persist("content_drafts")
                return draft
        raise StoreError(f"Draft not found: {draft.id}")

    async def count_drafts_since(self, org_id: str, location_id: str, since: datetime) -> int:
        count = 0
        for row in self._rows("content_drafts"):
            if row.get("org_id") != org_id or row.get("location_id") != location_id:
                continue
            created = parse_iso(row.get("created_at"))
            if created is not None and created >= since:
                count += 1
        return count

    # -- Channel credentials ------------------------------------------------

    async def get_oauth_token(self, org_id: str, provider: str = "google") -> Optional[Dict[str, Any]]:
        return next(
            (
                r for r in self._rows("oauth_tokens")
                if r.get("org_id") == org_id and r.get("provider", "google") == provider
            ),
            None,
        )

    async def save_oauth_token(self, org_id: str, provider: str, fields: Dict[str, Any]) -> None:
        rows = self._rows("oauth_tokens")
        for row in rows:
            if row.get("org_id") == org_id and row.get("provider", "google") == provider:
                row.update(fields)
                break
        else:
            rows.append({"org_id": org_id, "provider": provider, **fields})
        self._persist("oauth_tokens")

    async def get_wordpress_connection(self, org_id: str) -> Optional[Dict[str, Any]]:
        return next(
            (r for r in self._rows("wordpress_connections") if r.get("org_id") == org_id),
            None,
        )

    # -- Hallucination alerts -----------------------------------------------

    async def list_alerts(
        self,
        status: str,
        verifying_before: Optional[datetime] = None,
        unchecked_only: bool = False,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        rows = []
        for row in self._rows("hallucination_alerts"):
            if row.get("correction_status") != status:
                continue
            if unchecked_only and row.get("follow_up_checked_at"):
                continue
            if verifying_before is not None:
                started = parse_iso(row.get("verifying_since"))
                if started is None or started > verifying_before:
                    continue
            rows.append(row)
        return rows[:limit]

    async def update_alert(self, alert_id: str, fields: Dict[str, Any]) -> None:
        for row in self._rows("hallucination_alerts"):
            if row.get("id") == alert_id:
                row.update(fields)
                self._persist("hallucination_alerts")
                return
        raise StoreError(f"Alert not found: {alert_id}")
