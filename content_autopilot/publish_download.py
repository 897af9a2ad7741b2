"""
Download channel: a self-contained HTML page with JSON-LD in the head.

Nothing is sent anywhere. The page is returned base64-encoded so the caller
can offer it as a file, and ``published_url`` is always ``None``.
"""

from __future__ import annotations

import base64
import html
import json
import logging
import re
from typing import Any, Dict, List, Optional

from content_autopilot.models import ContentDraft, ContentType, LocationContext, PublishResult

logger = logging.getLogger("publish_download")

META_DESCRIPTION_MAX = 160

_QA_RE = re.compile(r"Q:\s*(.+?)\s*\n\s*A:\s*(.+?)(?=\n\s*Q:|\Z)", re.DOTALL)


def build_local_business_schema(ctx: LocationContext) -> Dict[str, Any]:
    """``LocalBusiness`` JSON-LD. Fields without data are omitted, not nulled."""
    schema: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "LocalBusiness",
        "name": ctx.business_name,
    }
    if ctx.address_line1 or ctx.city:
        address: Dict[str, Any] = {"@type": "PostalAddress"}
        if ctx.address_line1:
            address["streetAddress"] = ctx.address_line1
        if ctx.city:
            address["addressLocality"] = ctx.city
        if ctx.state:
            address["addressRegion"] = ctx.state
        if ctx.zip:
            address["postalCode"] = ctx.zip
        schema["address"] = address
    if ctx.phone:
        schema["telephone"] = ctx.phone
    if ctx.website_url:
        schema["url"] = ctx.website_url
    return schema


def extract_qa_pairs(content: str) -> List[Dict[str, str]]:
    return [
        {"question": q.strip(), "answer": " ".join(a.split())}
        for q, a in _QA_RE.findall(content)
        if q.strip() and a.strip()
    ]


def build_faq_schema_from_content(content: str) -> Optional[Dict[str, Any]]:
    """``FAQPage`` JSON-LD from ``Q:``/``A:`` pairs, or None when there are none."""
    pairs = extract_qa_pairs(content)
    if not pairs:
        return None
    return {
        "@context": "https://schema.org",
        "@type": "FAQPage",
        "mainEntity": [
            {
                "@type": "Question",
                "name": pair["question"],
                "acceptedAnswer": {"@type": "Answer", "text": pair["answer"]},
            }
            for pair in pairs
        ],
    }


def _json_ld(schema: Dict[str, Any]) -> str:
    # "</" would close the script element early.
    body = json.dumps(schema, indent=2, ensure_ascii=False).replace("</", "<\\/")
    return f'<script type="application/ld+json">\n{body}\n</script>'


def _meta_description(content: str) -> str:
    flat = " ".join(content.split())
    if len(flat) <= META_DESCRIPTION_MAX:
        return flat
    return flat[: META_DESCRIPTION_MAX - 3].rstrip() + "..."


def _body_html(content: str) -> str:
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", content) if p.strip()]
    return "\n".join(
        "<p>" + html.escape(p).replace("\n", "<br>\n") + "</p>" for p in paragraphs
    )


def build_html(draft: ContentDraft, ctx: LocationContext) -> str:
    blocks = [_json_ld(build_local_business_schema(ctx))]
    if draft.content_type == ContentType.FAQ_PAGE.value:
        faq = build_faq_schema_from_content(draft.content)
        if faq is not None:
            blocks.append(_json_ld(faq))

    title = html.escape(draft.title)
    description = html.escape(_meta_description(draft.content), quote=True)
    head_ld = "\n".join(blocks)
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{title}</title>\n"
        f'<meta name="description" content="{description}">\n'
        f"{head_ld}\n"
        "</head>\n"
        "<body>\n"
        "<article>\n"
        f"<h1>{title}</h1>\n"
        f"{_body_html(draft.content)}\n"
        "</article>\n"
        "</body>\n"
        "</html>\n"
    )


async def publish_as_download(draft: ContentDraft, ctx: LocationContext) -> PublishResult:
    page = build_html(draft, ctx)
    payload = base64.b64encode(page.encode("utf-8")).decode("ascii")
    logger.info("Built download artifact for draft %s (%d bytes)", draft.id, len(page))
    return PublishResult(published_url=None, status="published", download_payload=payload)
