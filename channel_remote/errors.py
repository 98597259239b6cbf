"""Error taxonomy for the session controller.

Per-tactic failures inside the recovery and fullscreen engines never surface
as exceptions; only the errors below reach callers (``PageLostError`` stays
internal to the session manager).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RemoteError(Exception):
    """Structured error with enough context for an operator to act on."""

    reason: str
    suggestion: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    kind = "remote_error"

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.reason}. Suggestion: {self.suggestion}"
        return self.reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.kind,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


class SessionInitError(RemoteError):
    """Attach, persistent launch and temporary-profile launch all failed."""

    kind = "session_init_failed"


class PageLostError(RemoteError):
    """The active page was closed or detached."""

    kind = "page_lost"


class BrowserFrozenError(RemoteError):
    """The page stayed unresponsive after the full recovery sequence."""

    kind = "browser_frozen"


class NavigationError(RemoteError):
    """Navigation failed even after reinitializing the session once."""

    kind = "navigation_failed"


class InvalidRequestError(RemoteError):
    """Rejected before any browser interaction."""

    kind = "invalid_request"


class InvalidTargetError(InvalidRequestError):
    """URL failed scheme or domain validation."""

    kind = "invalid_target"
