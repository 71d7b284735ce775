"""
Endpoint Cascade

Tries the status strategies in order until one answers, then sticks to
that strategy for the job: later polls cost one request instead of up to
six. A sticky strategy that stops answering yields None ("try again next
tick"); the other strategies are not revisited for that job.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence
import logging

from ..clients.api_client import ExportApiClient
from ..errors import ApiRequestError
from .models import EndpointChoice, StatusSnapshot
from .normalizer import StatusNormalizer
from .strategies import DEFAULT_STRATEGIES, StatusStrategy, default_download_path

logger = logging.getLogger(__name__)


class EndpointCascade:
    """Status lookup across server API generations, sticky per job."""

    def __init__(
        self,
        api: ExportApiClient,
        strategies: Sequence[StatusStrategy] = DEFAULT_STRATEGIES,
        normalizer: Optional[StatusNormalizer] = None
    ):
        if not strategies:
            raise ValueError("EndpointCascade needs at least one strategy")
        self.api = api
        self.strategies = tuple(strategies)
        self.normalizer = normalizer or StatusNormalizer()
        self._sticky: Dict[str, StatusStrategy] = {}
        self._poll_counts: Dict[str, int] = {}

    def sticky_for(self, job_id: str) -> Optional[EndpointChoice]:
        strategy = self._sticky.get(job_id)
        return strategy.choice if strategy else None

    def reset(self, job_id: Optional[str] = None) -> None:
        """Forget sticky choices (for one job, or all)."""
        if job_id is None:
            self._sticky.clear()
            self._poll_counts.clear()
        else:
            self._sticky.pop(job_id, None)
            self._poll_counts.pop(job_id, None)

    def download_path(self, job_id: str) -> str:
        """Package download path for the job's sticky strategy (default template if none)."""
        strategy = self._sticky.get(job_id)
        return strategy.download_path(job_id) if strategy else default_download_path(job_id)

    async def poll(self, job_id: str) -> Optional[StatusSnapshot]:
        """
        Current status of job_id, or None if no strategy answered.

        ApiRequestErrors count as "no answer" for the strategy that raised
        them; any other exception propagates.
        """
        self._poll_counts[job_id] = self._poll_counts.get(job_id, 0) + 1
        first_poll = self._poll_counts[job_id] == 1

        sticky = self._sticky.get(job_id)
        if sticky is not None:
            return await self._ask(sticky, job_id, verbose=False)

        for strategy in self.strategies:
            snapshot = await self._ask(strategy, job_id, verbose=first_poll)
            if snapshot is not None:
                self._sticky[job_id] = strategy
                logger.info(f"[STATUS] Using {strategy.choice.value} endpoint for job {job_id}")
                return snapshot

        if first_poll:
            logger.warning(f"[STATUS] No status endpoints responding for job {job_id}")
        return None

    async def _ask(self, strategy: StatusStrategy, job_id: str, *, verbose: bool) -> Optional[StatusSnapshot]:
        path = strategy.status_path(job_id)
        try:
            payload = await self._get(path)
        except ApiRequestError as e:
            log = logger.info if verbose else logger.debug
            log(f"[STATUS] {strategy.choice.value}: {e.message}")
            return None

        record = strategy.extract(payload, job_id)
        if record is None:
            if verbose:
                logger.info(f"[STATUS] {strategy.choice.value}: no status for job {job_id} in response")
            return None

        snapshot = self.normalizer.normalize(
            record,
            source=strategy.choice,
            fallback_download_url=strategy.download_path(job_id),
        )
        logger.debug(
            f"[STATUS] {strategy.choice.value}: {snapshot.state_label} "
            f"{snapshot.percentage}% complete={snapshot.complete} "
            f"package={snapshot.package_available}"
        )
        return snapshot

    async def _get(self, path: str) -> Any:
        try:
            return await self.api.get_json(path)
        except ApiRequestError as e:
            if not (e.is_unauthorized and self.api.has_token):
                raise
        # Deployment rejects the bearer header; session cookies may still work
        return await self.api.get_json(path, use_token=False)
