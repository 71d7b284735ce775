"""
Status Models: Canonical Export Job Status

Whatever endpoint answered and whatever shape it used, callers only ever
see a StatusSnapshot. Snapshots are immutable; each poll produces a new one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

CREATING_PACKAGE_LABEL = "CREATING PACKAGE"
PACKAGE_CREATION_FAILED_LABEL = "PACKAGE CREATION FAILED"


class ExportState(str, Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    CREATING_PACKAGE = "CREATING_PACKAGE"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


class EndpointChoice(str, Enum):
    """Status endpoint strategies, in the order they are tried."""
    MODELLER = "modeller"
    PACKAGE = "package"
    PANEL = "panel"
    LEGACY = "legacy"
    CONFIGURATION = "configuration"
    LIST = "list"


_STATE_SYNONYMS = {
    ExportState.COMPLETE: ("complete", "completed", "done", "succeeded", "success"),
    ExportState.FAILED: ("failed", "package creation failed", "error", "errored"),
    ExportState.CREATED: ("created", "queued", "pending", "new"),
    ExportState.CREATING_PACKAGE: ("creating package", "creating_package", "packaging"),
    ExportState.RUNNING: ("running", "in_progress", "in progress", "processing", "exporting"),
}


def state_from_label(label: Optional[str]) -> ExportState:
    """Map a raw state/status string onto ExportState (case-insensitive)."""
    if not label:
        return ExportState.UNKNOWN
    key = str(label).strip().lower()
    for state, synonyms in _STATE_SYNONYMS.items():
        if key in synonyms:
            return state
    return ExportState.UNKNOWN


def is_completion_label(label: Optional[str]) -> bool:
    return state_from_label(label) is ExportState.COMPLETE


@dataclass(frozen=True)
class StatusSnapshot:
    """
    Normalized status of one export job at one poll tick.

    Invariants:
        complete implies package_available
        0 <= percentage <= 100

    Attributes:
        state: Canonical state
        state_label: The state string as reported (or "CREATING PACKAGE" after
            the two-phase override)
        percentage: Progress, clamped to [0, 100]
        package_available: Whether the output package exists
        complete: True only when the job is done AND its package exists
        current: Items being processed
        queued: Items waiting
        message: Server status message
        error: Server error message
        download_url: Where to fetch the package (may be relative)
        source: Strategy that produced this snapshot
    """
    state: ExportState
    state_label: str
    percentage: int
    package_available: bool
    complete: bool
    current: Tuple[str, ...] = field(default_factory=tuple)
    queued: Tuple[str, ...] = field(default_factory=tuple)
    message: Optional[str] = None
    error: Optional[str] = None
    download_url: Optional[str] = None
    source: Optional[EndpointChoice] = None

    @property
    def is_failed(self) -> bool:
        return self.state is ExportState.FAILED and not self.complete

    @property
    def is_terminal(self) -> bool:
        return self.complete or self.is_failed

    def to_raw(self) -> Dict[str, Any]:
        """Express this snapshot in the raw payload vocabulary."""
        raw: Dict[str, Any] = {
            "complete": self.complete,
            "percentage": self.percentage,
            "state": self.state_label,
            "packageAvailable": self.package_available,
            "current": list(self.current),
            "queued": list(self.queued),
        }
        if self.message is not None:
            raw["message"] = self.message
        if self.error is not None:
            raw["error"] = self.error
        if self.download_url is not None:
            raw["downloadUrl"] = self.download_url
        return raw

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "state": self.state.value,
            "state_label": self.state_label,
            "percentage": self.percentage,
            "package_available": self.package_available,
            "complete": self.complete,
            "current": list(self.current),
            "queued": list(self.queued),
            "message": self.message,
            "error": self.error,
            "download_url": self.download_url,
            "source": self.source.value if self.source else None,
        }
