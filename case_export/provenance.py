"""
Provenance: Traceability for Downloaded Export Packages

Every package written to disk carries a Provenance record so it can be
traced back to the job and the URL it came from, and verified by hash.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from datetime import datetime, timezone
import hashlib


def sha256_bytes(b: bytes) -> str:
    """Compute SHA-256 hash of raw bytes."""
    return hashlib.sha256(b).hexdigest()


@dataclass(frozen=True)
class Provenance:
    """
    Attributes:
        captured_at: ISO 8601 timestamp when the package was retrieved
        source_url: The URL the package was downloaded from
        job_id: Export job that produced the package
        transport: "native" (browser download) or "fetch" (in-page fetch)
        http_method: HTTP method used
        artifact_hash: SHA-256 over the package bytes
        meta: Additional metadata
    """
    captured_at: str  # ISO 8601
    source_url: str
    job_id: Optional[str] = None
    transport: Optional[str] = None
    http_method: str = "GET"
    artifact_hash: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def now(source_url: str, **kwargs) -> "Provenance":
        """Create a Provenance object stamped with the current UTC time."""
        return Provenance(
            captured_at=datetime.now(timezone.utc).isoformat(),
            source_url=source_url,
            **kwargs
        )

    def with_artifact_hash(self, artifact_bytes: bytes) -> "Provenance":
        return Provenance(
            captured_at=self.captured_at,
            source_url=self.source_url,
            job_id=self.job_id,
            transport=self.transport,
            http_method=self.http_method,
            artifact_hash=sha256_bytes(artifact_bytes),
            meta=self.meta,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "captured_at": self.captured_at,
            "source_url": self.source_url,
            "job_id": self.job_id,
            "transport": self.transport,
            "http_method": self.http_method,
            "artifact_hash": self.artifact_hash,
            "meta": self.meta,
        }
