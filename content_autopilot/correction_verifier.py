"""
Correction verification.

Re-asks the engine that produced an inaccurate claim the same question and
checks whether the wrong facts come back. Fingerprints are pulled from the
original claim in priority order: phone numbers, times of day, street
addresses, dollar amounts. A failed engine call counts as "still
hallucinating" so an open issue is never closed by accident.
"""

from __future__ import annotations

import logging
import re
from typing import List

from content_autopilot.engines import EngineRouter, resolve_engine_family
from content_autopilot.errors import EngineQueryError
from content_autopilot.models import FollowUpAlert, FollowUpResult

logger = logging.getLogger("correction_verifier")

MAX_FINGERPRINTS = 4
FALLBACK_PREFIX_CHARS = 30

PHONE_RE = re.compile(r"\b\d{3}[-.\s)]\s*\d{3}[-.\s]\d{4}\b")
TIME_RE = re.compile(r"\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b", re.IGNORECASE)
ADDRESS_RE = re.compile(
    r"\b\d{1,5}\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:St|Ave|Dr|Blvd|Rd|Way|Pkwy|Ln|Ct|Pl)\b"
)
DOLLAR_RE = re.compile(r"\$\d+(?:\.\d{2})?")

FINGERPRINT_PATTERNS = (PHONE_RE, TIME_RE, ADDRESS_RE, DOLLAR_RE)


def extract_key_phrases(claim_text: str) -> List[str]:
    """Up to four distinctive wrong facts from ``claim_text``, deduplicated, in priority order."""
    phrases: List[str] = []
    for pattern in FINGERPRINT_PATTERNS:
        phrases.extend(m.group(0) for m in pattern.finditer(claim_text))

    if not phrases and len(claim_text) > 10:
        words = [w for w in claim_text.split() if len(w) > 4]
        if len(words) >= 2:
            phrases.append(" ".join(words[:3]))

    return list(dict.fromkeys(phrases))[:MAX_FINGERPRINTS]


def response_repeats_claim(response: str, claim_text: str) -> bool:
    """True if any fingerprint (or, lacking those, the claim prefix) appears in ``response``."""
    haystack = response.lower()
    phrases = extract_key_phrases(claim_text)
    if not phrases:
        return claim_text[:FALLBACK_PREFIX_CHARS].lower() in haystack
    return any(p.lower() in haystack for p in phrases)


class CorrectionVerifier:
    """Checks whether a flagged inaccuracy persists in the originating engine."""

    def __init__(self, router: EngineRouter) -> None:
        self.router = router

    async def check_correction_status(self, alert: FollowUpAlert) -> FollowUpResult:
        family = resolve_engine_family(alert.model_provider)
        if not alert.correction_query:
            logger.warning("Alert %s has no stored query to re-issue, leaving it open", alert.id)
            return FollowUpResult(alert_id=alert.id, still_hallucinating=True, provider_used=family.value)

        try:
            engine = self.router.for_family(family)
            response = await engine.query(alert.correction_query, "")
            if not response.ok:
                raise EngineQueryError(
                    f"Model query failed: {response.content}", provider=family.value
                )
        except Exception as exc:
            logger.warning("Correction check for alert %s failed: %s", alert.id, exc)
            return FollowUpResult(alert_id=alert.id, still_hallucinating=True, provider_used=family.value)

        still = response_repeats_claim(response.content, alert.claim_text)
        logger.info(
            "Alert %s re-checked on %s: %s",
            alert.id, family.value, "still hallucinating" if still else "fixed",
        )
        return FollowUpResult(alert_id=alert.id, still_hallucinating=still, provider_used=family.value)
