"""
Session Context: Browser-Captured Authentication State

After login, the cookies and user agent of the browser session are copied
here so host-side HTTP calls ride on the same server session. The bearer
token (if any) travels alongside.

SECURITY NOTES:
- Do NOT persist this long-term
- Each export owns its own SessionContext; never reuse one across exports
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional
import logging

from ..auth.token import AuthToken
from ..driver.base import BrowserDriver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    """
    Short-lived, session-derived auth context for one export.

    Attributes:
        base_url: Base URL of the server, without trailing slash
        cookies: Session cookies copied from the browser
        user_agent: Browser User-Agent string
        token: Captured bearer token, None when running cookie-only
    """
    base_url: str
    cookies: Dict[str, str] = field(default_factory=dict)
    user_agent: Optional[str] = None
    token: Optional[AuthToken] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    def url(self, path_or_url: str) -> str:
        """Absolute URL for a server path; absolute URLs pass through."""
        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.base_url}/{path_or_url.lstrip('/')}"

    @staticmethod
    async def from_driver(
        driver: BrowserDriver,
        base_url: str,
        token: Optional[AuthToken] = None
    ) -> "SessionContext":
        """Snapshot cookies and user agent from a logged-in browser session."""
        ctx = SessionContext(
            base_url=base_url,
            cookies=await driver.cookies(),
            user_agent=await driver.user_agent(),
            token=token,
        )
        logger.info(f"[SESSION] Captured: {ctx}")
        return ctx

    def __repr__(self) -> str:
        return (
            f"SessionContext(base_url='{self.base_url}', "
            f"cookies={len(self.cookies)}, "
            f"token={self.token.redacted() if self.token else None})"
        )
