"""
Export Status Poller

POLLING -> POLLING | DONE | TIMED_OUT

Each tick asks the cascade once. A complete snapshot ends the loop; no
answer, an incomplete snapshot, or an exception from the cascade means
sleep and try again. The loop makes at most max_attempts cascade calls.
A FAILED snapshot is also terminal and surfaces as ExportJobFailedError.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional
import asyncio
import logging

from ..errors import ExportJobFailedError, PollTimeoutError
from ..telemetry import ProgressEmitter
from .cascade import EndpointCascade
from .models import StatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 120
DEFAULT_INTERVAL_S = 0.5


class ExportStatusPoller:

    def __init__(
        self,
        cascade: EndpointCascade,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_s: float = DEFAULT_INTERVAL_S,
        emitter: Optional[ProgressEmitter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.cascade = cascade
        self.max_attempts = max_attempts
        self.interval_s = interval_s
        self.emitter = emitter or ProgressEmitter()
        self._sleep = sleep

    async def wait_for_completion(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        interval_s: Optional[float] = None
    ) -> StatusSnapshot:
        """
        Poll until the job is complete.

        Returns:
            The first snapshot with complete == True

        Raises:
            PollTimeoutError: Budget exhausted (carries the last snapshot seen)
            ExportJobFailedError: The server reported the job as failed
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        interval = interval_s if interval_s is not None else self.interval_s
        last: Optional[StatusSnapshot] = None

        logger.info(f"[POLL] Monitoring job {job_id} (max {attempts} checks, every {interval}s)")

        for attempt in range(1, attempts + 1):
            try:
                snapshot = await self.cascade.poll(job_id)
            except Exception as e:
                logger.warning(f"[POLL] Status check {attempt} failed: {e}")
                snapshot = None

            if snapshot is None:
                await self.emitter.emit("poll", "no_answer", data={"attempt": attempt}, job_id=job_id)
            else:
                last = snapshot
                await self.emitter.emit(
                    "poll",
                    "tick",
                    data={
                        "attempt": attempt,
                        "state": snapshot.state_label,
                        "percentage": snapshot.percentage,
                        "current": len(snapshot.current),
                        "queued": len(snapshot.queued),
                    },
                    job_id=job_id,
                )

                if snapshot.complete:
                    logger.info(f"[POLL] Job {job_id} complete after {attempt} checks")
                    await self.emitter.emit("poll", "done", data={"attempts": attempt}, job_id=job_id)
                    return snapshot

                if snapshot.is_failed:
                    reason = snapshot.error or snapshot.message or snapshot.state_label
                    logger.error(f"[POLL] Job {job_id} failed: {reason}")
                    raise ExportJobFailedError(
                        f"Export job failed: {reason}", job_id=job_id, snapshot=snapshot
                    )

            if attempt < attempts:
                await self._sleep(interval)

        logger.error(f"[POLL] Job {job_id} timed out after {attempts} checks")
        raise PollTimeoutError(
            f"Export timed out waiting for completion after {attempts} checks",
            job_id=job_id,
            attempts=attempts,
            last_snapshot=last,
        )
