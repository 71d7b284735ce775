"""
Export Orchestrator: End-to-End Export Flow

    AUTH -> SUBMIT -> POLL -> DOWNLOAD

One orchestrator run owns one browser session from start to finish:
- The session is opened with `async with` and closed on every exit path
- A missing bearer token is not fatal; the flow continues cookie-only
- Stage failures are typed ExportErrors; run() converts every failure into
  a failed ExportOutcome and never raises (task cancellation excepted)
- If the run is cancelled while polling, the job is cancelled on the server
  (best effort) before the session closes

USAGE:
    orchestrator = ExportOrchestrator(ExportSettings.from_env())
    outcome = await orchestrator.run(
        "https://tenant.example.com",
        "instruction-matter",
        Credentials("user", "secret"),
    )
    if outcome.success:
        print(outcome.result.file_path)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, Optional
import asyncio
import logging

import httpx

from .auth.session import AuthSession
from .auth.token import AuthToken, Credentials
from .clients.api_client import ExportApiClient
from .clients.session_context import SessionContext
from .clients.submitter import ExportJobSubmitter
from .config import ExportSettings
from .driver.base import BrowserDriver
from .driver.playwright_driver import PlaywrightDriver
from .errors import AuthTokenMissingError, ExportError
from .files.artifact_store import DiskArtifactStore
from .files.download_manager import ArtifactDownloader, DownloadResult
from .status.cascade import EndpointCascade
from .status.poller import ExportStatusPoller
from .telemetry import ProgressEmitter

logger = logging.getLogger(__name__)

DriverFactory = Callable[[ExportSettings], AsyncContextManager[BrowserDriver]]


def playwright_driver_factory(settings: ExportSettings) -> PlaywrightDriver:
    return PlaywrightDriver(
        headless=settings.headless,
        downloads_path=str(settings.download_path / ".browser"),
        ignore_https_errors=not settings.verify_ssl,
    )


@dataclass(frozen=True)
class ExportOutcome:
    """
    Result of one export run.

    success=True  -> result is set
    success=False -> error is set; job_id is set if the job was created
    """
    success: bool
    result: Optional[DownloadResult] = None
    job_id: Optional[str] = None
    error: Optional[ExportError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result.to_dict() if self.result else None,
            "job_id": self.job_id,
            "error": self.error.to_dict() if self.error else None,
        }


class ExportOrchestrator:
    """Composes auth, submission, polling and download for one export at a time."""

    def __init__(
        self,
        settings: Optional[ExportSettings] = None,
        *,
        driver_factory: Optional[DriverFactory] = None,
        emitter: Optional[ProgressEmitter] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.settings = settings or ExportSettings()
        self.driver_factory = driver_factory or playwright_driver_factory
        self.emitter = emitter or ProgressEmitter()
        self.http_transport = http_transport
        self._sleep = sleep
        self._job_id: Optional[str] = None

    async def run(
        self,
        base_url: str,
        work_type_key: str,
        credentials: Optional[Credentials] = None
    ) -> ExportOutcome:
        """
        Run one export end to end.

        Args:
            base_url: Server root, e.g. https://tenant.example.com
            work_type_key: systemName of the work type to export
            credentials: Login credentials; None means a human logs in

        Returns:
            ExportOutcome (never raises ExportError)
        """
        self._job_id = None
        logger.info(f"[EXPORT] Exporting {work_type_key} from {base_url}")

        try:
            async with self.driver_factory(self.settings) as driver:
                result = await self._run_in_session(driver, base_url, work_type_key, credentials)
        except ExportError as e:
            if e.job_id is None:
                e.job_id = self._job_id
            return await self._failed(e)
        except Exception as e:
            logger.exception(f"[EXPORT] Unexpected error: {e}")
            error = ExportError(f"Unexpected error: {e}", job_id=self._job_id)
            error.__cause__ = e
            return await self._failed(error)

        logger.info(f"[EXPORT] Done: {result.file_path} ({result.byte_size} bytes)")
        return ExportOutcome(success=True, result=result, job_id=result.job_id)

    async def _failed(self, error: ExportError) -> ExportOutcome:
        logger.error(f"[EXPORT] Failed at {error.stage}: {error.message}")
        await self.emitter.emit(
            "export", "failed", success=False, data=error.to_dict(), job_id=error.job_id
        )
        return ExportOutcome(success=False, job_id=error.job_id, error=error)

    async def _authenticate(
        self,
        driver: BrowserDriver,
        base_url: str,
        credentials: Optional[Credentials]
    ) -> Optional[AuthToken]:
        auth = AuthSession(
            driver,
            login_timeout_s=self.settings.login_timeout_s,
            token_grace_s=self.settings.token_grace_s,
            emitter=self.emitter,
        )
        try:
            return await auth.login(base_url, credentials)
        except AuthTokenMissingError as e:
            logger.warning(f"[EXPORT] {e.message}")
            return None

    async def _run_in_session(
        self,
        driver: BrowserDriver,
        base_url: str,
        work_type_key: str,
        credentials: Optional[Credentials]
    ) -> DownloadResult:
        token = await self._authenticate(driver, base_url, credentials)
        ctx = await SessionContext.from_driver(driver, base_url, token)

        async with ExportApiClient(
            ctx,
            timeout_s=self.settings.http_timeout_s,
            verify_ssl=self.settings.verify_ssl,
            transport=self.http_transport,
        ) as api:
            submitter = ExportJobSubmitter(
                api,
                export_config_name=self.settings.export_config_name,
                item_system_name=self.settings.item_system_name,
                created_by=self.settings.created_by,
            )
            job = await submitter.submit(work_type_key)
            self._job_id = job.job_id
            await self.emitter.emit("submit", "created", data=job.to_dict(), job_id=job.job_id)

            cascade = EndpointCascade(api)
            poller = ExportStatusPoller(
                cascade,
                max_attempts=self.settings.poll_max_attempts,
                interval_s=self.settings.poll_interval_s,
                emitter=self.emitter,
                sleep=self._sleep,
            )
            try:
                snapshot = await poller.wait_for_completion(job.job_id)
            except asyncio.CancelledError:
                logger.warning(f"[EXPORT] Cancelled while polling job {job.job_id}")
                await submitter.cancel(job.job_id)
                raise

            download_url = ctx.url(snapshot.download_url or cascade.download_path(job.job_id))
            cascade.reset(job.job_id)

            downloader = ArtifactDownloader(
                driver,
                DiskArtifactStore(self.settings.download_path),
                api=api,
                timeout_s=self.settings.download_timeout_s,
                verify_reachability=self.settings.verify_reachability,
                emitter=self.emitter,
            )
            return await downloader.download(download_url, job_id=job.job_id, token=token)
