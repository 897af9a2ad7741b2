"""
Runtime configuration for the content autopilot.

Everything secret or deployment-specific comes from environment variables;
protocol endpoints and plan ceilings are module constants.

Usage:
    from content_autopilot.config import get_settings
    settings = get_settings()
    if settings.redis_url:
        ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

GBP_API_BASE = "https://mybusiness.googleapis.com/v4"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
PERPLEXITY_API_URL = "https://api.perplexity.ai/chat/completions"
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

MODEL_HAIKU = "claude-haiku-4-5-20251001"
MODEL_SONNET = "claude-sonnet-4-20250514"
OPENAI_MODEL = "gpt-4o-mini"
PERPLEXITY_MODEL = "sonar"
GEMINI_MODEL = "gemini-2.0-flash"

# ---------------------------------------------------------------------------
# Plan ceilings (drafts per location per calendar month)
# ---------------------------------------------------------------------------

PLAN_DRAFT_LIMITS: Dict[str, int] = {
    "trial": 0,
    "starter": 0,
    "growth": 10,
    "agency": 50,
}

AUTOPILOT_PLANS = ("growth", "agency")

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "autopilot"


@dataclass
class AutopilotSettings:
    """Deployment settings resolved from the environment."""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    perplexity_api_key: str = ""
    google_ai_api_key: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    redis_url: str = ""
    data_dir: Path = DEFAULT_DATA_DIR
    app_url: str = ""
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> AutopilotSettings:
        env = os.environ if environ is None else environ
        return cls(
            anthropic_api_key=env.get("ANTHROPIC_API_KEY", ""),
            openai_api_key=env.get("OPENAI_API_KEY", ""),
            perplexity_api_key=env.get("PERPLEXITY_API_KEY", ""),
            google_ai_api_key=env.get("GOOGLE_AI_API_KEY", ""),
            google_client_id=env.get("GOOGLE_CLIENT_ID", ""),
            google_client_secret=env.get("GOOGLE_CLIENT_SECRET", ""),
            redis_url=env.get("REDIS_URL", ""),
            data_dir=Path(env.get("AUTOPILOT_DATA_DIR", str(DEFAULT_DATA_DIR))),
            app_url=env.get("APP_URL", ""),
            http_timeout=float(env.get("HTTP_TIMEOUT", "30")),
        )


_settings: Optional[AutopilotSettings] = None


def get_settings() -> AutopilotSettings:
    """Return the process-wide settings, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = AutopilotSettings.from_env()
    return _settings
