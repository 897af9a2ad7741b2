"""
AI answer-engine clients used for re-verification.

Each engine family exposes ``query(text, context_hint) -> EngineResponse``.
Provider identifiers stored on alerts (``openai-gpt4o``, ``perplexity-sonar``
...) resolve to a family through ``resolve_engine_family``; anything not in
the table falls back to ``DEFAULT_ENGINE`` with a warning.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp
import anthropic

from content_autopilot.config import (
    GEMINI_API_BASE,
    GEMINI_MODEL,
    MODEL_HAIKU,
    OPENAI_API_URL,
    OPENAI_MODEL,
    PERPLEXITY_API_URL,
    PERPLEXITY_MODEL,
    AutopilotSettings,
)
from content_autopilot.errors import EngineQueryError

logger = logging.getLogger("ai_engines")

ENGINE_SYSTEM_PROMPT = (
    "You are a helpful assistant answering a question about local businesses. "
    "Answer concisely with specific facts."
)
ENGINE_MAX_TOKENS = 800


class EngineFamily(str, Enum):
    OPENAI = "openai"
    PERPLEXITY = "perplexity"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


DEFAULT_ENGINE = EngineFamily.OPENAI

PROVIDER_FAMILIES: Dict[str, EngineFamily] = {
    "openai": EngineFamily.OPENAI,
    "openai-gpt4o": EngineFamily.OPENAI,
    "openai-gpt4o-mini": EngineFamily.OPENAI,
    "chatgpt": EngineFamily.OPENAI,
    "microsoft-copilot": EngineFamily.OPENAI,
    "copilot": EngineFamily.OPENAI,
    "perplexity": EngineFamily.PERPLEXITY,
    "perplexity-sonar": EngineFamily.PERPLEXITY,
    "gemini": EngineFamily.GEMINI,
    "google-gemini": EngineFamily.GEMINI,
    "google-ai-overview": EngineFamily.GEMINI,
    "anthropic": EngineFamily.ANTHROPIC,
    "anthropic-claude": EngineFamily.ANTHROPIC,
    "claude": EngineFamily.ANTHROPIC,
}


def resolve_engine_family(provider: Optional[str]) -> EngineFamily:
    """Map a stored provider identifier to its engine family."""
    normalized = (provider or "").strip().lower()
    family = PROVIDER_FAMILIES.get(normalized)
    if family is None:
        logger.warning(
            "Unrecognized engine provider %r, falling back to %s",
            provider, DEFAULT_ENGINE.value,
        )
        return DEFAULT_ENGINE
    return family


@dataclass
class EngineResponse:
    status: str  # "complete" | "error"
    content: str
    family: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "complete"


# ---------------------------------------------------------------------------
# Engine clients
# ---------------------------------------------------------------------------


class EngineClient:
    """Interface for one AI engine family."""

    family: EngineFamily = DEFAULT_ENGINE

    async def query(self, text: str, context_hint: str = "") -> EngineResponse:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _user_prompt(text: str, context_hint: str) -> str:
    return f"{text}\n\nContext: {context_hint}" if context_hint else text


class _HttpEngine(EngineClient):
    """Shared aiohttp plumbing for the REST-based engines."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=10, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": "ContentAutopilot/1.0", "Accept": "application/json"},
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _post_json(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> EngineResponse:
        session = await self._get_session()
        try:
            async with session.request("POST", url, json=payload, headers=headers) as resp:
                try:
                    body = await resp.json(content_type=None)
                except (json.JSONDecodeError, ValueError):
                    body = await resp.text()
                if resp.status >= 400:
                    return EngineResponse(
                        status="error",
                        content=f"HTTP {resp.status}: {str(body)[:300]}",
                        family=self.family.value,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return EngineResponse(status="error", content=f"Network error: {exc}", family=self.family.value)

        try:
            text = self._extract_text(body)
        except (KeyError, IndexError, TypeError) as exc:
            return EngineResponse(status="error", content=f"Malformed response: {exc}", family=self.family.value)
        return EngineResponse(status="complete", content=text, family=self.family.value)

    def _extract_text(self, body: Any) -> str:
        return body["choices"][0]["message"]["content"]


class OpenAIEngine(_HttpEngine):
    family = EngineFamily.OPENAI

    async def query(self, text: str, context_hint: str = "") -> EngineResponse:
        payload = {
            "model": OPENAI_MODEL,
            "max_tokens": ENGINE_MAX_TOKENS,
            "messages": [
                {"role": "system", "content": ENGINE_SYSTEM_PROMPT},
                {"role": "user", "content": _user_prompt(text, context_hint)},
            ],
        }
        return await self._post_json(
            OPENAI_API_URL, payload, {"Authorization": f"Bearer {self.api_key}"}
        )


class PerplexityEngine(_HttpEngine):
    family = EngineFamily.PERPLEXITY

    async def query(self, text: str, context_hint: str = "") -> EngineResponse:
        payload = {
            "model": PERPLEXITY_MODEL,
            "messages": [
                {"role": "system", "content": ENGINE_SYSTEM_PROMPT},
                {"role": "user", "content": _user_prompt(text, context_hint)},
            ],
        }
        return await self._post_json(
            PERPLEXITY_API_URL, payload, {"Authorization": f"Bearer {self.api_key}"}
        )


class GeminiEngine(_HttpEngine):
    family = EngineFamily.GEMINI

    async def query(self, text: str, context_hint: str = "") -> EngineResponse:
        url = f"{GEMINI_API_BASE}/{GEMINI_MODEL}:generateContent"
        payload = {
            "systemInstruction": {"parts": [{"text": ENGINE_SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": _user_prompt(text, context_hint)}]}],
        }
        return await self._post_json(url, payload, {"x-goog-api-key": self.api_key})

    def _extract_text(self, body: Any) -> str:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(p.get("text", "") for p in parts)


class AnthropicEngine(EngineClient):
    family = EngineFamily.ANTHROPIC

    def __init__(self, api_key: str, client: Optional[anthropic.AsyncAnthropic] = None) -> None:
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def query(self, text: str, context_hint: str = "") -> EngineResponse:
        try:
            response = await self._client.messages.create(
                model=MODEL_HAIKU,
                max_tokens=ENGINE_MAX_TOKENS,
                system=ENGINE_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": _user_prompt(text, context_hint)}],
            )
        except anthropic.APIError as exc:
            return EngineResponse(status="error", content=str(exc), family=self.family.value)
        content = response.content[0].text if response.content else ""
        return EngineResponse(status="complete", content=content, family=self.family.value)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class EngineRouter:
    """Holds one client per configured engine family."""

    def __init__(self, engines: Dict[EngineFamily, EngineClient]) -> None:
        self.engines = dict(engines)

    def for_family(self, family: EngineFamily) -> EngineClient:
        engine = self.engines.get(family)
        if engine is None:
            raise EngineQueryError(f"No client configured for engine {family.value}", provider=family.value)
        return engine

    def for_provider(self, provider: Optional[str]) -> EngineClient:
        return self.for_family(resolve_engine_family(provider))

    async def close(self) -> None:
        for engine in self.engines.values():
            await engine.close()


def build_engine_router(settings: AutopilotSettings) -> EngineRouter:
    """Construct clients for every engine family that has an API key."""
    engines: Dict[EngineFamily, EngineClient] = {}
    if settings.openai_api_key:
        engines[EngineFamily.OPENAI] = OpenAIEngine(settings.openai_api_key, settings.http_timeout)
    if settings.perplexity_api_key:
        engines[EngineFamily.PERPLEXITY] = PerplexityEngine(settings.perplexity_api_key, settings.http_timeout)
    if settings.google_ai_api_key:
        engines[EngineFamily.GEMINI] = GeminiEngine(settings.google_ai_api_key, settings.http_timeout)
    if settings.anthropic_api_key:
        engines[EngineFamily.ANTHROPIC] = AnthropicEngine(settings.anthropic_api_key)
    return EngineRouter(engines)
