"""
Tests for the download channel (standalone HTML with JSON-LD).
"""

import base64
import json
import re

import pytest

from content_autopilot.models import ContentDraft, LocationContext
from content_autopilot.publish_download import (
    build_faq_schema_from_content,
    build_html,
    build_local_business_schema,
    extract_qa_pairs,
    publish_as_download,
)

FULL_CTX = LocationContext(
    location_id="loc-001",
    business_name="Bella Napoli",
    city="Austin",
    state="TX",
    zip="78701",
    categories=["Italian restaurant"],
    phone="512-555-1234",
    website_url="https://bellanapoli.example",
    address_line1="100 Congress Ave",
)

FAQ_CONTENT = (
    "Bella Napoli is Austin's wood-fired pizza spot.\n\n"
    "Q: Do you take reservations?\n"
    "A: Yes, call us to reserve.\n\n"
    "Q: Is there parking?\n"
    "A: Street parking is available\non Congress Ave."
)


def _ld_blocks(page):
    return [
        json.loads(block)
        for block in re.findall(r'<script type="application/ld\+json">\n(.*?)\n</script>', page, re.DOTALL)
    ]


# ===================================================================
# Schemas
# ===================================================================


class TestLocalBusinessSchema:

    @pytest.mark.unit
    def test_full_context(self):
        schema = build_local_business_schema(FULL_CTX)
        assert schema["@type"] == "LocalBusiness"
        assert schema["name"] == "Bella Napoli"
        assert schema["address"] == {
            "@type": "PostalAddress",
            "streetAddress": "100 Congress Ave",
            "addressLocality": "Austin",
            "addressRegion": "TX",
            "postalCode": "78701",
        }
        assert schema["telephone"] == "512-555-1234"
        assert schema["url"] == "https://bellanapoli.example"

    @pytest.mark.unit
    def test_sparse_context_omits_fields(self):
        schema = build_local_business_schema(LocationContext(business_name="Pop-up"))
        assert schema == {"@context": "https://schema.org", "@type": "LocalBusiness", "name": "Pop-up"}


class TestFaqSchema:

    @pytest.mark.unit
    def test_pairs_extracted(self):
        pairs = extract_qa_pairs(FAQ_CONTENT)
        assert pairs == [
            {"question": "Do you take reservations?", "answer": "Yes, call us to reserve."},
            {"question": "Is there parking?", "answer": "Street parking is available on Congress Ave."},
        ]

    @pytest.mark.unit
    def test_schema_shape(self):
        schema = build_faq_schema_from_content(FAQ_CONTENT)
        assert schema["@type"] == "FAQPage"
        first = schema["mainEntity"][0]
        assert first["@type"] == "Question"
        assert first["name"] == "Do you take reservations?"
        assert first["acceptedAnswer"] == {"@type": "Answer", "text": "Yes, call us to reserve."}

    @pytest.mark.unit
    def test_no_pairs_returns_none(self):
        assert build_faq_schema_from_content("Just a paragraph.") is None


# ===================================================================
# HTML
# ===================================================================


class TestBuildHtml:

    @pytest.mark.unit
    def test_faq_page_has_both_schemas(self):
        draft = ContentDraft(title="Bella Napoli FAQ", content=FAQ_CONTENT, content_type="faq_page")
        page = build_html(draft, FULL_CTX)

        assert page.startswith("<!DOCTYPE html>")
        assert "<title>Bella Napoli FAQ</title>" in page
        assert "<h1>Bella Napoli FAQ</h1>" in page
        types = [b["@type"] for b in _ld_blocks(page)]
        assert types == ["LocalBusiness", "FAQPage"]

    @pytest.mark.unit
    def test_blog_post_has_only_local_business(self):
        draft = ContentDraft(title="Post", content=FAQ_CONTENT, content_type="blog_post")
        types = [b["@type"] for b in _ld_blocks(build_html(draft, FULL_CTX))]
        assert types == ["LocalBusiness"]

    @pytest.mark.unit
    def test_content_is_escaped(self):
        draft = ContentDraft(title="<Tom & Jerry>", content="Use <b>bold</b> & stuff.")
        page = build_html(draft, FULL_CTX)
        assert "<title>&lt;Tom &amp; Jerry&gt;</title>" in page
        assert "<p>Use &lt;b&gt;bold&lt;/b&gt; &amp; stuff.</p>" in page

    @pytest.mark.unit
    def test_script_close_in_data_is_neutralized(self):
        ctx = LocationContext(business_name="</script><script>alert(1)</script>")
        page = build_html(ContentDraft(title="t", content="c"), ctx)
        assert page.count("</script>") == 1
        assert _ld_blocks(page)[0]["name"] == "</script><script>alert(1)</script>"

    @pytest.mark.unit
    def test_meta_description_truncated(self):
        draft = ContentDraft(title="t", content="word " * 100)
        page = build_html(draft, FULL_CTX)
        description = re.search(r'<meta name="description" content="(.*?)">', page).group(1)
        assert len(description) <= 160
        assert description.endswith("...")

    @pytest.mark.unit
    def test_paragraphs(self):
        draft = ContentDraft(title="t", content="First para.\n\nSecond para.")
        page = build_html(draft, FULL_CTX)
        assert "<p>First para.</p>\n<p>Second para.</p>" in page


class TestPublishAsDownload:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_returns_base64_page_and_no_url(self):
        draft = ContentDraft(title="Bella Napoli FAQ", content=FAQ_CONTENT, content_type="faq_page")
        result = await publish_as_download(draft, FULL_CTX)

        assert result.published_url is None
        assert result.status == "published"
        page = base64.b64decode(result.download_payload).decode("utf-8")
        assert page == build_html(draft, FULL_CTX)
