"""
Trigger detectors for the content autopilot.

Four independent scanners, each reading one signal source for a single
location and returning ``DraftTrigger`` candidates:

    competitor_gap   competitor intercepts where a rival won the AI answer
    prompt_missing   clusters of tracked queries with zero citations
    review_gap       negative-review keywords shared by several reviews
    schema_gap       low schema health with core page types missing

"No signal" is an empty list, never an exception. Store failures are logged
and also yield an empty list so one broken source cannot starve the others.
"""

from __future__ import annotations

import logging
from collections import Counter, OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from content_autopilot.models import DraftTrigger, TriggerType
from content_autopilot.store import AutopilotStore

logger = logging.getLogger("autopilot_triggers")

# ---------------------------------------------------------------------------
# Tunables
# ---------------------------------------------------------------------------

COMPETITOR_INTERCEPT_LIMIT = 10

MIN_CLUSTER_SIZE = 2
MAX_QUERIES_PER_CLUSTER = 5
UNCATEGORIZED = "uncategorized"
CONSECUTIVE_ZERO_WEEKS = 2

REVIEW_LOOKBACK_DAYS = 90
REVIEW_FETCH_LIMIT = 50
MIN_SHARED_KEYWORD_COUNT = 3
TOP_KEYWORDS = 3

SCHEMA_HEALTH_THRESHOLD = 60
REQUIRED_PAGE_TYPES = ("homepage", "faq", "about")


# ---------------------------------------------------------------------------
# Competitor gap
# ---------------------------------------------------------------------------


async def detect_competitor_gaps(
    store: AutopilotStore,
    org_id: str,
    location_id: str,
    business_name: str = "",
) -> List[DraftTrigger]:
    """One trigger per distinct query a competitor recently won."""
    try:
        intercepts = await store.list_competitor_intercepts(
            org_id, location_id, limit=COMPETITOR_INTERCEPT_LIMIT
        )
    except Exception as exc:
        logger.warning("Competitor intercept query failed for %s: %s", location_id, exc)
        return []

    seen: set = set()
    triggers: List[DraftTrigger] = []
    for row in intercepts:
        query = (row.get("query_asked") or "").strip()
        if not query:
            continue
        norm = query.lower()
        if norm in seen:
            continue
        seen.add(norm)

        context: Dict[str, Any] = {"target_query": query}
        if row.get("competitor_name"):
            context["competitor_name"] = row["competitor_name"]
        if row.get("winning_factor"):
            context["winning_factor"] = row["winning_factor"]
        if business_name:
            context["business_name"] = business_name

        triggers.append(DraftTrigger(
            trigger_type=TriggerType.COMPETITOR_GAP.value,
            trigger_id=str(row["id"]),
            org_id=org_id,
            location_id=location_id,
            context=context,
        ))

    logger.debug("competitor_gap: %d trigger(s) for %s", len(triggers), location_id)
    return triggers


# ---------------------------------------------------------------------------
# Prompt missing
# ---------------------------------------------------------------------------


async def detect_prompt_missing(
    store: AutopilotStore,
    org_id: str,
    location_id: str,
) -> List[DraftTrigger]:
    """One trigger per category cluster of never-cited tracked queries."""
    try:
        queries = await store.list_target_queries(org_id, location_id)
        if not queries:
            return []
        cited = await store.list_cited_query_ids(org_id, location_id)
    except Exception as exc:
        logger.warning("Prompt-missing query failed for %s: %s", location_id, exc)
        return []

    clusters: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for row in queries:
        if str(row.get("id")) in cited or not (row.get("query_text") or "").strip():
            continue
        category = row.get("query_category") or UNCATEGORIZED
        clusters.setdefault(category, []).append(row)

    triggers: List[DraftTrigger] = []
    for category, rows in clusters.items():
        if len(rows) < MIN_CLUSTER_SIZE:
            continue
        rows = rows[:MAX_QUERIES_PER_CLUSTER]
        texts = [r["query_text"].strip() for r in rows]
        triggers.append(DraftTrigger(
            trigger_type=TriggerType.PROMPT_MISSING.value,
            trigger_id=str(rows[0]["id"]),
            org_id=org_id,
            location_id=location_id,
            context={
                "target_query": texts[0],
                "query_category": category,
                "zero_citation_queries": texts,
                "consecutive_zero_weeks": CONSECUTIVE_ZERO_WEEKS,
            },
        ))

    logger.debug("prompt_missing: %d trigger(s) for %s", len(triggers), location_id)
    return triggers


# ---------------------------------------------------------------------------
# Review gap
# ---------------------------------------------------------------------------


async def detect_review_gaps(
    store: AutopilotStore,
    org_id: str,
    location_id: str,
    now: Optional[datetime] = None,
) -> List[DraftTrigger]:
    """At most one trigger, when 3+ recent negative reviews share a keyword."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=REVIEW_LOOKBACK_DAYS)
    try:
        reviews = await store.list_negative_reviews(location_id, since, limit=REVIEW_FETCH_LIMIT)
    except Exception as exc:
        logger.warning("Negative review query failed for %s: %s", location_id, exc)
        return []

    if len(reviews) < MIN_SHARED_KEYWORD_COUNT:
        return []

    counts: Counter = Counter()
    display: Dict[str, str] = {}
    for review in reviews:
        per_review: Dict[str, str] = {}
        for kw in review.get("keywords") or []:
            cleaned = (kw or "").strip()
            if cleaned:
                per_review.setdefault(cleaned.lower(), cleaned)
        for norm, original in per_review.items():
            counts[norm] += 1
            display.setdefault(norm, original)

    shared = [(kw, n) for kw, n in counts.most_common() if n >= MIN_SHARED_KEYWORD_COUNT]
    if not shared:
        return []

    top_keywords = [display[kw] for kw, _ in shared[:TOP_KEYWORDS]]
    unanswered = sum(1 for r in reviews if r.get("rating") is None or r["rating"] <= 2)

    return [DraftTrigger(
        trigger_type=TriggerType.REVIEW_GAP.value,
        trigger_id=str(reviews[0]["id"]),
        org_id=org_id,
        location_id=location_id,
        context={
            "target_query": f"{top_keywords[0]} review response",
            "top_negative_keywords": top_keywords,
            "negative_review_count": len(reviews),
            "unanswered_negative_count": unanswered,
        },
    )]


# ---------------------------------------------------------------------------
# Schema gap
# ---------------------------------------------------------------------------


async def detect_schema_gaps(
    store: AutopilotStore,
    org_id: str,
    location_id: str,
) -> List[DraftTrigger]:
    """One trigger when the location has a schema health score below threshold."""
    try:
        location = await store.get_location(location_id)
        if not location:
            return []
        score = location.get("schema_health_score")
        if score is None or location.get("schema_last_run_at") is None:
            return []
        if score >= SCHEMA_HEALTH_THRESHOLD:
            return []
        schemas = await store.list_page_schemas(location_id)
    except Exception as exc:
        logger.warning("Schema health query failed for %s: %s", location_id, exc)
        return []

    present = {s.get("page_type") for s in schemas}
    missing = [p for p in REQUIRED_PAGE_TYPES if p not in present]

    context: Dict[str, Any] = {"schema_health_score": score}
    if missing:
        context["missing_page_types"] = missing
        context["top_missing_impact"] = f"{missing[0]} schema missing, highest AEO impact"
        context["target_query"] = f"structured data for {missing[0]} page"
    else:
        context["target_query"] = "structured data for business page"

    return [DraftTrigger(
        trigger_type=TriggerType.SCHEMA_GAP.value,
        trigger_id=location_id,
        org_id=org_id,
        location_id=location_id,
        context=context,
    )]
