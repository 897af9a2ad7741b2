"""
Exception hierarchy for the content autopilot.

Publish errors carry the HTTP status and raw body of the failing call so
callers can tell "reconnect this channel" apart from "try again later".
"""

from __future__ import annotations

from typing import Optional


class AutopilotError(Exception):
    """Base exception for all autopilot errors."""
    pass


class InvalidTriggerError(AutopilotError):
    """Raised when a trigger payload is malformed."""
    pass


class DraftNotFoundError(AutopilotError):
    """Raised when a draft id does not resolve to a stored draft."""
    pass


class InvalidTransitionError(AutopilotError):
    """Raised when an approval action is not allowed from the draft's status."""

    def __init__(self, message: str, draft_id: str = "", from_status: str = "", action: str = ""):
        self.draft_id = draft_id
        self.from_status = from_status
        self.action = action
        super().__init__(message)


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------


class PublishError(AutopilotError):
    """Base exception for publish channel failures."""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
        retryable: Optional[bool] = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class ChannelNotConnectedError(PublishError):
    """Raised when the org has no OAuth connection (or it was revoked)."""
    pass


class ChannelNotConfiguredError(PublishError):
    """Raised when the location lacks the channel-specific identifier."""
    pass


class ChannelAPIError(PublishError):
    """Raised on a non-2xx response (status 0 for network failures)."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(
            message,
            status_code=status_code,
            response_body=response_body,
            retryable=status_code in (0, 429) or status_code >= 500,
        )


class TokenRefreshError(PublishError):
    """Raised when the OAuth token endpoint rejects a refresh."""
    pass


class DraftNotPublishableError(PublishError):
    """Raised when a draft has not passed human approval."""
    pass


# ---------------------------------------------------------------------------
# Engines
# ---------------------------------------------------------------------------


class EngineQueryError(AutopilotError):
    """Raised when an AI engine query fails or reports an error status."""

    def __init__(self, message: str, provider: str = "", status_code: int = 0):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)
