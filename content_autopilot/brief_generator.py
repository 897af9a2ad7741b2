"""
Draft brief generation.

Turns a trigger plus the location's business facts into a title and body.
The text-generation provider is injected: ``AnthropicTextGenerator`` in
production, any object with an async ``generate(system_prompt,
user_prompt)`` in tests. With no provider configured a deterministic
template brief is produced so local runs still exercise the full pipeline.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic

from content_autopilot.config import MODEL_SONNET
from content_autopilot.models import ContentType, DraftTrigger, LocationContext, TriggerType

logger = logging.getLogger("brief_generator")

MAX_TOKENS_BRIEF = 1200
TITLE_MAX_CHARS = 60

# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------


@dataclass
class DraftBrief:
    title: str
    content: str
    target_keywords: List[str] = field(default_factory=list)
    estimated_aeo_score: int = 0


class BriefParseError(ValueError):
    """Raised when provider output is not a usable brief."""
    pass


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class TextGenerator:
    """Interface for a text-generation provider."""

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class AnthropicTextGenerator(TextGenerator):
    """Text generation through the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = MODEL_SONNET,
        max_tokens: int = MAX_TOKENS_BRIEF,
        temperature: float = 0.4,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        start_time = time.monotonic()
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        text = response.content[0].text if response.content else ""
        logger.debug(
            "Brief generated: %d chars in %.1fs (model=%s)",
            len(text), time.monotonic() - start_time, self.model,
        )
        return text

    async def close(self) -> None:
        await self._client.close()


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------


def build_context_block(trigger: DraftTrigger, ctx: LocationContext) -> str:
    """Trigger-specific section of the user prompt."""
    name = ctx.business_name
    city = ctx.city or "the area"
    category = ctx.primary_category
    c = trigger.context
    query_line = f'Target query: "{c["target_query"]}"' if c.get("target_query") else ""

    if trigger.trigger_type == TriggerType.COMPETITOR_GAP.value:
        lines = [
            "TRIGGER: Competitor Gap Alert",
            f'Your business "{name}" in {city} is losing visibility to a competitor.',
            f"Competitor: {c['competitor_name']}" if c.get("competitor_name") else "",
            f"They're winning on: {c['winning_factor']}" if c.get("winning_factor") else "",
            query_line,
            f"Category: {category}",
        ]
    elif trigger.trigger_type == TriggerType.PROMPT_MISSING.value:
        lines = [
            "TRIGGER: Prompt Gap (zero citation)",
            f'Business: "{name}" in {city} ({category})',
        ]
        queries = c.get("zero_citation_queries") or []
        if queries:
            lines.append("Queries where NO business is cited:")
            lines.extend(f'  - "{q}"' for q in queries[:5])
    elif trigger.trigger_type == TriggerType.REVIEW_GAP.value:
        keywords = ", ".join(c.get("top_negative_keywords") or [])
        lines = [
            "TRIGGER: Review Gap",
            f'Business: "{name}" in {city} ({category})',
            f"Recurring complaints in recent negative reviews: {keywords}" if keywords else "",
            f"Negative reviews in the last 90 days: {c.get('negative_review_count', 0)}",
            "Write content that addresses these concerns directly and honestly.",
        ]
    elif trigger.trigger_type == TriggerType.SCHEMA_GAP.value:
        missing = ", ".join(c.get("missing_page_types") or [])
        lines = [
            "TRIGGER: Schema Coverage Gap",
            f'Business: "{name}" in {city} ({category})',
            f"Schema health score: {c.get('schema_health_score')}",
            f"Pages without structured data: {missing}" if missing else "",
            "Write page copy that states the business facts AI engines look for.",
        ]
    elif trigger.trigger_type == TriggerType.OCCASION.value:
        lines = [
            "TRIGGER: Seasonal Occasion Alert",
            f'Business: "{name}" in {city} ({category})',
            f"Occasion: {c['occasion_name']}" if c.get("occasion_name") else "",
            f"Days until peak: {c['days_until_peak']}" if c.get("days_until_peak") is not None else "",
            f'No AI engine is currently citing "{name}" for this occasion.',
        ]
    elif trigger.trigger_type == TriggerType.HALLUCINATION_CORRECTION.value:
        lines = [
            "TRIGGER: Incorrect AI Answer",
            f'Business: "{name}" in {city} ({category})',
            f"An AI engine claimed: {c['claim_text']}" if c.get("claim_text") else "",
            f"The correct fact is: {c['correct_fact']}" if c.get("correct_fact") else "",
            query_line,
        ]
    else:
        lines = [f'Business: "{name}" in {city} ({category})', query_line]

    return "\n".join(line for line in lines if line)


def build_system_prompt(content_type: str) -> str:
    if content_type == ContentType.FAQ_PAGE.value:
        format_rule = 'FAQ pages: include 3-5 Q&A pairs formatted as "Q: ..." / "A: ..."'
    elif content_type == ContentType.OCCASION_PAGE.value:
        format_rule = "occasion pages: emphasize timing, seasonal specials, and why this business is the ideal choice"
    else:
        format_rule = "blog posts: write informative content with a clear narrative"

    return f"""You are an AEO (Answer Engine Optimization) content writer for local businesses.
Your job is to create content that AI assistants will cite when answering user queries.

Rules:
1. Answer-first: the opening sentence MUST directly answer the likely query. No "Welcome to" or generic intros.
2. Include the business name and city in the first paragraph.
3. Be factual and specific.
4. For {format_rule}.
5. Include a call-to-action (reserve, visit, call) in the closing paragraph.
6. Keep content between 250-350 words.
7. Title should be under {TITLE_MAX_CHARS} characters and include the city name.

Return JSON with this exact structure:
{{
  "title": "title (max {TITLE_MAX_CHARS} chars)",
  "content": "full draft content",
  "estimated_aeo_score": <number 0-100>,
  "target_keywords": ["keyword1", "keyword2", "keyword3"]
}}"""


# ---------------------------------------------------------------------------
# Parsing / fallback
# ---------------------------------------------------------------------------

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def parse_brief(text: str) -> DraftBrief:
    """Parse provider JSON (optionally fenced) into a DraftBrief."""
    try:
        data: Dict[str, Any] = json.loads(_FENCE.sub("", text.strip()))
    except json.JSONDecodeError as exc:
        raise BriefParseError(f"Provider returned non-JSON output: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("content"), str):
        raise BriefParseError("Provider output has no 'content' string")

    keywords = data.get("target_keywords") or []
    try:
        score = int(data.get("estimated_aeo_score") or 0)
    except (TypeError, ValueError):
        score = 0
    return DraftBrief(
        title=str(data.get("title") or "")[:TITLE_MAX_CHARS],
        content=data["content"],
        target_keywords=[str(k) for k in keywords if k],
        estimated_aeo_score=max(0, min(100, score)),
    )


def template_brief(trigger: DraftTrigger, ctx: LocationContext, content_type: str) -> DraftBrief:
    """Deterministic brief used when no provider is configured."""
    name = ctx.business_name
    city = ctx.city or "your city"
    category = ctx.primary_category
    query = trigger.target_query or f"best {category} in {city}"
    title = f"{name}: Best {category} in {city}"[:TITLE_MAX_CHARS]

    if content_type == ContentType.FAQ_PAGE.value:
        content = (
            f"{name} is a {category} in {city} known for quality and service.\n\n"
            f"Q: {query[0].upper() + query[1:]}?\n"
            f"A: {name} in {city} is a strong answer, with a team focused on doing the basics well.\n\n"
            f"Q: Where is {name} located?\n"
            f"A: {name} is in {city}{', ' + ctx.address_line1 if ctx.address_line1 else ''}.\n\n"
            f"Q: How do I contact {name}?\n"
            f"A: Call {ctx.phone or 'the team'} or stop by during opening hours.\n\n"
            f"Visit {name} today. Call us to reserve your spot."
        )
    else:
        content = (
            f'{name} is a {category} in {city} for anyone searching for "{query}". '
            f"Locals choose {name} for consistent quality and a welcoming team.\n\n"
            f"Whether it is your first visit or your tenth, {name} aims to make it memorable.\n\n"
            f"Visit {name} in {city} today, or call us to reserve."
        )

    return DraftBrief(
        title=title,
        content=content,
        target_keywords=[name, city, category, query],
        estimated_aeo_score=65,
    )


async def generate_draft_brief(
    trigger: DraftTrigger,
    ctx: LocationContext,
    content_type: str,
    generator: Optional[TextGenerator] = None,
) -> DraftBrief:
    """
    Produce a brief for ``trigger``.

    Raises
    ------
    Exception
        Whatever the provider raises, or BriefParseError for unusable output.
        The draft creator treats any exception as "no draft for this trigger".
    """
    if generator is None:
        return template_brief(trigger, ctx, content_type)

    text = await generator.generate(
        build_system_prompt(content_type),
        build_context_block(trigger, ctx),
    )
    return parse_brief(text)
