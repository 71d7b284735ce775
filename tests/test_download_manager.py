"""Tests for ArtifactDownloader: transport order, fallback, provenance."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import json
from pathlib import Path
from typing import List

import httpx
import pytest

from case_export.errors import DownloadError
from case_export.files.artifact_store import DiskArtifactStore
from case_export.files.download_manager import FETCH_SCRIPT, ArtifactDownloader
from case_export.telemetry import ProgressEmitter, ProgressEvent
from conftest import BASE_URL, FakeDownload, FakeDriver, Router, make_api

DOWNLOAD_PATH = "/api/package/export/42/download"
DOWNLOAD_URL = f"{BASE_URL}{DOWNLOAD_PATH}"
PACKAGE_BYTES = b"PK\x03\x04export-package-bytes"


def fetch_ok(data: bytes = PACKAGE_BYTES) -> dict:
    return {"ok": True, "status": 200, "base64": base64.b64encode(data).decode("ascii")}


def fetch_calls(driver: FakeDriver) -> int:
    return sum(1 for script, _ in driver.evaluated if script == FETCH_SCRIPT)


@pytest.mark.asyncio
async def test_native_download_success_never_fetches(tmp_path: Path) -> None:
    driver = FakeDriver(
        download=FakeDownload(PACKAGE_BYTES, "Export_42.zip"),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )
    downloader = ArtifactDownloader(driver, DiskArtifactStore(tmp_path))

    result = await downloader.download(DOWNLOAD_URL, job_id="42")

    assert result.transport == "native"
    assert result.byte_size == len(PACKAGE_BYTES)
    assert result.job_id == "42"
    assert result.source_url == DOWNLOAD_URL
    assert result.sha256 == hashlib.sha256(PACKAGE_BYTES).hexdigest()
    assert result.file_path.endswith("Export_42.zip")
    assert Path(result.file_path).read_bytes() == PACKAGE_BYTES
    assert driver.download_urls == [DOWNLOAD_URL]
    assert fetch_calls(driver) == 0


@pytest.mark.asyncio
async def test_native_without_suggested_name_uses_generated(tmp_path: Path) -> None:
    driver = FakeDriver(download=FakeDownload(PACKAGE_BYTES, None))

    result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(
        DOWNLOAD_URL, job_id="42"
    )

    assert Path(result.file_path).name.split("__", 1)[1].startswith("export-42-")


@pytest.mark.asyncio
async def test_native_timeout_falls_back_to_fetch_once(tmp_path: Path, token) -> None:
    driver = FakeDriver(
        download_error=TimeoutError("no download event"),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )

    result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(
        DOWNLOAD_URL, job_id="42", token=token
    )

    assert result.transport == "fetch"
    assert Path(result.file_path).read_bytes() == PACKAGE_BYTES
    assert fetch_calls(driver) == 1
    assert driver.evaluated[-1][1] == {"url": DOWNLOAD_URL, "token": token.value}


@pytest.mark.asyncio
async def test_empty_native_file_falls_back(tmp_path: Path) -> None:
    driver = FakeDriver(
        download=FakeDownload(b"", "empty.zip"),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )

    result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(DOWNLOAD_URL)

    assert result.transport == "fetch"
    assert not list((tmp_path / "packages").glob("*empty.zip"))


@pytest.mark.asyncio
async def test_both_transports_fail(tmp_path: Path) -> None:
    driver = FakeDriver(
        download_error=TimeoutError("no download event"),
        evaluate_results={FETCH_SCRIPT: {"ok": False, "status": 500, "error": "Server Error"}},
    )

    with pytest.raises(DownloadError) as exc_info:
        await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(
            DOWNLOAD_URL, job_id="42"
        )

    error = exc_info.value
    assert isinstance(error.native_error, TimeoutError)
    assert isinstance(error.fetch_error, DownloadError)
    assert "no download event" in error.message
    assert "HTTP 500" in error.message
    assert error.job_id == "42"
    assert fetch_calls(driver) == 1


@pytest.mark.asyncio
async def test_fetch_script_exception_is_reported(tmp_path: Path) -> None:
    driver = FakeDriver(
        download_error=RuntimeError("download failed"),
        evaluate_results={FETCH_SCRIPT: RuntimeError("page crashed")},
    )

    with pytest.raises(DownloadError) as exc_info:
        await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(DOWNLOAD_URL)

    assert str(exc_info.value.fetch_error) == "page crashed"


@pytest.mark.asyncio
async def test_unreachable_url_skips_native_trigger(tmp_path: Path, router: Router) -> None:
    driver = FakeDriver(
        download=FakeDownload(PACKAGE_BYTES),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )

    async with make_api(router) as api:
        result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path), api=api).download(
            DOWNLOAD_URL
        )

    assert result.transport == "fetch"
    assert driver.download_urls == []
    assert router.paths("HEAD") == [DOWNLOAD_PATH]


@pytest.mark.asyncio
async def test_head_not_allowed_still_downloads_natively(tmp_path: Path, router: Router) -> None:
    router.routes[("HEAD", DOWNLOAD_PATH)] = lambda request: httpx.Response(405)
    driver = FakeDriver(download=FakeDownload(PACKAGE_BYTES))

    async with make_api(router) as api:
        result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path), api=api).download(
            DOWNLOAD_URL
        )

    assert result.transport == "native"


@pytest.mark.asyncio
async def test_emits_fallback_events(tmp_path: Path) -> None:
    events: List[ProgressEvent] = []
    driver = FakeDriver(
        download_error=TimeoutError("slow"),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )
    downloader = ArtifactDownloader(
        driver, DiskArtifactStore(tmp_path), emitter=ProgressEmitter([events.append])
    )

    await downloader.download(DOWNLOAD_URL, job_id="42")

    assert [e.action for e in events] == ["start", "fallback", "complete"]
    assert events[-1].data["bytes"] == len(PACKAGE_BYTES)


@pytest.mark.asyncio
async def test_stored_package_is_indexed_with_provenance(tmp_path: Path) -> None:
    store = DiskArtifactStore(tmp_path)
    driver = FakeDriver(download=FakeDownload(PACKAGE_BYTES, "pkg.zip"))

    result = await ArtifactDownloader(driver, store).download(DOWNLOAD_URL, job_id="42")

    [index_file] = (tmp_path / "index").glob("*.json")
    stored = json.loads(index_file.read_text())
    assert stored["path"] == result.file_path
    assert stored["provenance"]["job_id"] == "42"
    assert stored["provenance"]["transport"] == "native"
    assert stored["provenance"]["artifact_hash"] == result.sha256


class StalledDownload(FakeDownload):
    async def save_as(self, path: str) -> None:
        Path(path).write_bytes(self.data[:3])
        await asyncio.Event().wait()


class BrokenDownload(FakeDownload):
    async def save_as(self, path: str) -> None:
        Path(path).write_bytes(self.data[:3])
        raise RuntimeError("connection reset")


@pytest.mark.asyncio
async def test_stalled_native_save_times_out_and_falls_back(tmp_path: Path) -> None:
    driver = FakeDriver(
        download=StalledDownload(PACKAGE_BYTES, "stalled.zip"),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )

    result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path), timeout_s=0.05).download(
        DOWNLOAD_URL
    )

    assert result.transport == "fetch"
    assert not list((tmp_path / "packages").glob("*stalled.zip"))


@pytest.mark.asyncio
async def test_failed_native_save_leaves_no_partial_file(tmp_path: Path) -> None:
    driver = FakeDriver(
        download=BrokenDownload(PACKAGE_BYTES, "partial.zip"),
        evaluate_results={FETCH_SCRIPT: fetch_ok()},
    )

    result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(DOWNLOAD_URL)

    assert result.transport == "fetch"
    assert [p.name for p in (tmp_path / "packages").iterdir()] == [Path(result.file_path).name]


@pytest.mark.asyncio
async def test_fetch_that_never_resolves_is_bounded(tmp_path: Path) -> None:
    class HangingFetchDriver(FakeDriver):
        async def evaluate(self, script: str, arg=None):
            self.evaluated.append((script, arg))
            await asyncio.Event().wait()

    driver = HangingFetchDriver(download_error=TimeoutError("no download event"))

    with pytest.raises(DownloadError) as exc_info:
        await ArtifactDownloader(driver, DiskArtifactStore(tmp_path), timeout_s=0.05).download(
            DOWNLOAD_URL
        )

    assert "did not finish" in str(exc_info.value.fetch_error)


@pytest.mark.asyncio
async def test_rejected_bearer_on_head_retries_with_cookies(tmp_path: Path, router: Router, token) -> None:
    def head(request: httpx.Request) -> httpx.Response:
        if "authorization" in request.headers:
            return httpx.Response(401)
        return httpx.Response(200, headers={"Content-Disposition": 'attachment; filename="Export_42.zip"'})

    router.routes[("HEAD", DOWNLOAD_PATH)] = head
    driver = FakeDriver(download=FakeDownload(PACKAGE_BYTES, None))

    async with make_api(router, token=token) as api:
        result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path), api=api).download(
            DOWNLOAD_URL, token=token
        )

    assert result.transport == "native"
    assert driver.download_urls == [DOWNLOAD_URL]
    assert [("authorization" in r.headers) for r in router.requests] == [True, False]
    assert result.file_path.endswith("__Export_42.zip")


@pytest.mark.asyncio
async def test_fetch_fallback_uses_content_disposition_name(tmp_path: Path) -> None:
    payload = dict(fetch_ok(), contentDisposition="attachment; filename*=UTF-8''Export_7.zip")
    driver = FakeDriver(
        download_error=TimeoutError("no download event"),
        evaluate_results={FETCH_SCRIPT: payload},
    )

    result = await ArtifactDownloader(driver, DiskArtifactStore(tmp_path)).download(DOWNLOAD_URL)

    assert result.file_path.endswith("__Export_7.zip")
