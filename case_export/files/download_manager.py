"""
Download Manager: Native Download with In-Page Fetch Fallback

Retrieves a finished export package through one of two transports:

1. NATIVE (Preferred)
   - Optional HEAD check that the URL is reachable (token first, then
     cookies only if the server rejects the bearer)
   - The browser itself downloads the URL; we wait for its download event
   - Saved under the server-suggested filename (generated one otherwise);
     the save is bounded by the same timeout as the download start

2. FETCH FALLBACK
   - Only invoked when the native transport fails or times out
   - fetch() runs inside the page with the session's cookies, bounded by
     the download timeout
   - Bytes cross the page/host boundary as base64, are decoded here and
     written under the Content-Disposition filename (generated otherwise)

If both fail, one DownloadError names both causes. Every stored package
gets provenance (job id, source URL, transport, sha256).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import asyncio
import base64
import binascii
import logging

from ..auth.token import AuthToken
from ..clients.api_client import ExportApiClient, HttpFetchResult, filename_from_content_disposition
from ..driver.base import BrowserDriver
from ..errors import DownloadError
from ..provenance import Provenance
from ..telemetry import ProgressEmitter
from .artifact_store import DiskArtifactStore, StoredArtifact

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TIMEOUT_S = 30.0

# Binary cannot leave the page context, so the bytes are base64-encoded in
# chunks (String.fromCharCode has an argument-count limit). A rejected bearer
# is retried once on cookies alone.
FETCH_SCRIPT = """async ({ url, token }) => {
    const get = (withToken) => fetch(url, {
        credentials: 'include',
        headers: withToken && token ? { 'Authorization': 'Bearer ' + token } : {},
    });
    let response = await get(true);
    if (response.status === 401 && token) {
        response = await get(false);
    }
    if (!response.ok) {
        return { ok: false, status: response.status, error: response.statusText };
    }
    const bytes = new Uint8Array(await response.arrayBuffer());
    let binary = '';
    const chunk = 0x8000;
    for (let i = 0; i < bytes.length; i += chunk) {
        binary += String.fromCharCode.apply(null, bytes.subarray(i, i + chunk));
    }
    return {
        ok: true,
        status: response.status,
        contentType: response.headers.get('content-type'),
        contentDisposition: response.headers.get('content-disposition'),
        base64: btoa(binary),
    };
}"""


def generated_filename(job_id: Optional[str]) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"export-{job_id or 'package'}-{stamp}.zip"


@dataclass(frozen=True)
class DownloadResult:
    """
    A package on disk.

    Attributes:
        file_path: Where the package was written
        byte_size: Size in bytes (always > 0)
        job_id: Export job that produced it
        sha256: Hash of the package bytes
        transport: "native" or "fetch"
        source_url: URL the package came from
    """
    file_path: str
    byte_size: int
    job_id: Optional[str]
    sha256: str
    transport: str
    source_url: str

    @staticmethod
    def from_artifact(artifact: StoredArtifact) -> "DownloadResult":
        prov = artifact.provenance
        return DownloadResult(
            file_path=artifact.path,
            byte_size=artifact.size_bytes,
            job_id=prov.job_id,
            sha256=prov.artifact_hash or "",
            transport=prov.transport or "unknown",
            source_url=prov.source_url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "byte_size": self.byte_size,
            "job_id": self.job_id,
            "sha256": self.sha256,
            "transport": self.transport,
            "source_url": self.source_url,
        }


class ArtifactDownloader:
    """
    Usage:
        downloader = ArtifactDownloader(driver, DiskArtifactStore("data/exports"), api=api)
        result = await downloader.download(url, job_id="123", token=token)
    """

    def __init__(
        self,
        driver: BrowserDriver,
        store: DiskArtifactStore,
        *,
        api: Optional[ExportApiClient] = None,
        timeout_s: float = DEFAULT_DOWNLOAD_TIMEOUT_S,
        verify_reachability: bool = True,
        emitter: Optional[ProgressEmitter] = None
    ):
        self.driver = driver
        self.store = store
        self.api = api
        self.timeout_s = timeout_s
        self.verify_reachability = verify_reachability
        self.emitter = emitter or ProgressEmitter()

    async def download(
        self,
        download_url: str,
        *,
        job_id: Optional[str] = None,
        token: Optional[AuthToken] = None
    ) -> DownloadResult:
        """
        Download the package at download_url (absolute URL).

        Raises:
            DownloadError: Both transports failed
        """
        logger.info(f"[DOWNLOAD] Starting: {download_url}")
        await self.emitter.emit("download", "start", data={"url": download_url}, job_id=job_id)

        check = await self._check_reachable(download_url, token)
        header_filename = check.filename_from_header if check is not None else None

        # 1) Native browser download
        try:
            result = await self._download_native(
                download_url, check=check, header_filename=header_filename, job_id=job_id
            )
        except Exception as e:
            native_error = e
            logger.warning(f"[DOWNLOAD] Native download failed: {e}")
            await self.emitter.emit(
                "download", "fallback", success=False,
                data={"reason": str(e)}, job_id=job_id,
            )
        else:
            return await self._done(result)

        # 2) In-page fetch fallback
        logger.info("[DOWNLOAD] Attempting in-page fetch fallback...")
        try:
            result = await self._download_fetch(
                download_url, header_filename=header_filename, job_id=job_id, token=token
            )
        except Exception as fetch_error:
            logger.error(f"[DOWNLOAD] Fetch fallback failed: {fetch_error}")
            raise DownloadError(
                f"Download failed. Native: {native_error}; fetch: {fetch_error}",
                native_error=native_error,
                fetch_error=fetch_error,
                job_id=job_id,
            ) from fetch_error

        return await self._done(result)

    async def _done(self, result: DownloadResult) -> DownloadResult:
        logger.info(
            f"[DOWNLOAD] Success ({result.transport}): {result.file_path} "
            f"({result.byte_size} bytes)"
        )
        await self.emitter.emit(
            "download", "complete",
            data={"path": result.file_path, "bytes": result.byte_size, "transport": result.transport},
            job_id=result.job_id,
        )
        return result

    async def _check_reachable(
        self,
        url: str,
        token: Optional[AuthToken]
    ) -> Optional[HttpFetchResult]:
        """HEAD the download URL; a rejected bearer is retried once on cookies alone."""
        if not self.verify_reachability or self.api is None:
            return None

        check = await self.api.head(url, use_token=token is not None)
        if check.status == 401 and token is not None:
            logger.info("[DOWNLOAD] HEAD rejected the bearer token, retrying with cookies only")
            check = await self.api.head(url, use_token=False)
        return check

    # ------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------

    async def _download_native(
        self,
        url: str,
        *,
        check: Optional[HttpFetchResult],
        header_filename: Optional[str],
        job_id: Optional[str]
    ) -> DownloadResult:
        # Some servers do not implement HEAD on download routes
        if check is not None and not check.ok and check.status != 405:
            raise DownloadError(
                f"Download URL not reachable: {check.error or check.status}", job_id=job_id
            )

        await self.driver.trigger_download(url)
        handle = await self.driver.wait_for_download(self.timeout_s)

        filename = handle.suggested_filename or header_filename or generated_filename(job_id)
        artifact_id, path = self.store.reserve(filename)
        try:
            await asyncio.wait_for(handle.save_as(str(path)), self.timeout_s)
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        if not path.exists() or path.stat().st_size == 0:
            path.unlink(missing_ok=True)
            raise DownloadError("Browser download produced an empty file", job_id=job_id)

        artifact = self.store.register(
            artifact_id=artifact_id,
            path=path,
            filename=filename,
            provenance=Provenance.now(url, job_id=job_id, transport="native"),
        )
        return DownloadResult.from_artifact(artifact)

    async def _download_fetch(
        self,
        url: str,
        *,
        header_filename: Optional[str],
        job_id: Optional[str],
        token: Optional[AuthToken]
    ) -> DownloadResult:
        try:
            payload = await asyncio.wait_for(
                self.driver.evaluate(
                    FETCH_SCRIPT, {"url": url, "token": token.value if token else None}
                ),
                self.timeout_s,
            )
        except TimeoutError as e:
            raise DownloadError(
                f"In-page fetch did not finish within {self.timeout_s}s", job_id=job_id
            ) from e

        if not isinstance(payload, dict):
            raise DownloadError("In-page fetch returned no result", job_id=job_id)
        if not payload.get("ok"):
            raise DownloadError(
                f"In-page fetch failed: HTTP {payload.get('status')} {payload.get('error') or ''}".strip(),
                job_id=job_id,
            )

        try:
            data = base64.b64decode(payload.get("base64") or "", validate=True)
        except (binascii.Error, ValueError) as e:
            raise DownloadError(f"In-page fetch returned invalid base64: {e}", job_id=job_id) from e

        if not data:
            raise DownloadError("In-page fetch returned an empty body", job_id=job_id)

        filename = (
            filename_from_content_disposition(payload.get("contentDisposition"))
            or header_filename
            or generated_filename(job_id)
        )
        artifact = self.store.put(
            bytes_data=data,
            filename=filename,
            provenance=Provenance.now(
                url,
                job_id=job_id,
                transport="fetch",
                meta={"content_type": payload.get("contentType")},
            ),
        )
        return DownloadResult.from_artifact(artifact)
