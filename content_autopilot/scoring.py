"""
Heuristic AEO (answer-engine optimization) score for generated drafts.

Pure Python, no external calls. Scores 0-100 from five signals:

    answer-first opening   25
    entity coverage        30   (business name, city, primary category)
    length window          20   (200-400 words is ideal)
    call to action         15
    title entities         10

An opening that starts with "Welcome to" loses the answer-first points and
takes a further penalty: answer engines quote the first sentence.
"""

from __future__ import annotations

import re
from typing import Optional

from content_autopilot.models import LocationContext

CTA_PHRASES = (
    "call us",
    "call ",
    "visit us",
    "stop by",
    "book ",
    "reserve",
    "reservation",
    "order online",
    "contact us",
    "get directions",
)

WELCOME_PENALTY = 10

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _first_sentence(text: str) -> str:
    return _SENTENCE_END.split(text.strip(), maxsplit=1)[0]


def _mentions(haystack: str, needle: Optional[str]) -> bool:
    return bool(needle) and needle.lower() in haystack


def _length_points(word_count: int) -> int:
    if 200 <= word_count <= 400:
        return 20
    if 100 <= word_count < 200 or 400 < word_count <= 600:
        return 12
    if word_count > 600:
        return 10
    return 4


def score_content(content: str, title: str, ctx: LocationContext) -> int:
    """Return an integer AEO score between 0 and 100."""
    if not content or not content.strip():
        return 0

    body = content.lower()
    opening = _first_sentence(content).lower()
    score = 0

    welcome = opening.startswith("welcome to")
    if welcome:
        score -= WELCOME_PENALTY
    elif _mentions(opening, ctx.business_name) or _mentions(opening, ctx.city):
        score += 25
    elif len(opening.split()) <= 30:
        score += 10

    if _mentions(body, ctx.business_name):
        score += 10
    if _mentions(body, ctx.city):
        score += 10
    if ctx.categories and _mentions(body, ctx.categories[0]):
        score += 10

    score += _length_points(len(content.split()))

    if any(phrase in body for phrase in CTA_PHRASES):
        score += 15

    title_lower = (title or "").lower()
    if _mentions(title_lower, ctx.business_name):
        score += 5
    if _mentions(title_lower, ctx.city):
        score += 5

    return max(0, min(100, int(score)))
