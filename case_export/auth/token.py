"""
Auth Token and Credentials

AuthToken wraps the bearer string captured from the browser session. It is
sensitive: str/repr never show the full value, only a short prefix.

SECURITY NOTES:
- Never persist tokens or credentials from this package
- Tokens are discarded with the browser session that produced them
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import base64
import json
import logging

logger = logging.getLogger(__name__)

REDACT_PREFIX_LEN = 8


def _decode_jwt_payload(raw: str) -> Optional[Dict[str, Any]]:
    """Decode the payload segment of a JWT without verifying it."""
    parts = raw.split(".")
    if len(parts) != 3:
        return None
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeError):
        return None
    return payload if isinstance(payload, dict) else None


@dataclass(frozen=True)
class AuthToken:
    """
    Captured bearer token.

    Attributes:
        value: The raw bearer string
        source: Where it was captured (request_header, token_response, storage)
        expires_at: Expiry from the JWT "exp" claim, None for opaque tokens
    """
    value: str = field(repr=False)
    source: str = "unknown"
    expires_at: Optional[datetime] = None

    @staticmethod
    def from_raw(value: str, source: str = "unknown") -> "AuthToken":
        """Build a token, reading the expiry from the JWT payload when present."""
        expires_at = None
        payload = _decode_jwt_payload(value)
        exp = payload.get("exp") if payload else None
        if isinstance(exp, (int, float)) and not isinstance(exp, bool):
            try:
                expires_at = datetime.fromtimestamp(exp, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                # e.g. exp in milliseconds; treat the token as opaque
                logger.warning(f"[AUTH] Ignoring out-of-range exp claim: {exp}")
        return AuthToken(value=value, source=source, expires_at=expires_at)

    def redacted(self) -> str:
        """Short, non-reversible prefix safe for logs."""
        return f"{self.value[:REDACT_PREFIX_LEN]}…"

    def is_expired(self, skew_s: float = 300.0, now: Optional[datetime] = None) -> bool:
        """True if the token expires within skew_s seconds. Opaque tokens never expire."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at - timedelta(seconds=skew_s)

    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.value}"}

    def __str__(self) -> str:
        return self.redacted()


@dataclass(frozen=True)
class Credentials:
    """Username/password pair supplied by the caller's secret storage."""
    username: str
    password: str = field(repr=False)

    def is_complete(self) -> bool:
        return bool(self.username) and bool(self.password)
