"""
Progress Telemetry for the Export Flow
======================================

Emits structured ProgressEvents to whoever renders them (progress bar,
notification, websocket relay). The core never renders anything itself.

Listeners may be plain functions or coroutine functions. A listener that
raises is logged at debug level and skipped: presentation is optional and
must never affect the export.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import inspect
import logging

logger = logging.getLogger(__name__)

Listener = Callable[["ProgressEvent"], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ProgressEvent:
    """
    One step of the export flow.

    Attributes:
        stage: auth, submit, poll, download, export
        action: What happened (start, token_captured, tick, fallback, ...)
        success: Whether the action succeeded
        data: Stage-specific details
        job_id: Export job id once known
        timestamp: ISO 8601 UTC
    """
    stage: str
    action: str
    success: bool = True
    data: Dict[str, Any] = field(default_factory=dict)
    job_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "action": self.action,
            "success": self.success,
            "data": self.data,
            "job_id": self.job_id,
            "timestamp": self.timestamp,
        }


class ProgressEmitter:
    """Fan-out of ProgressEvents to registered listeners."""

    def __init__(self, listeners: Optional[List[Listener]] = None):
        self._listeners: List[Listener] = list(listeners or [])

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def emit(
        self,
        stage: str,
        action: str,
        success: bool = True,
        data: Optional[Dict[str, Any]] = None,
        job_id: Optional[str] = None
    ) -> ProgressEvent:
        event = ProgressEvent(
            stage=stage,
            action=action,
            success=success,
            data=data or {},
            job_id=job_id,
        )

        for listener in self._listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.debug(f"Progress listener failed for {stage}/{action}: {e}")

        return event
