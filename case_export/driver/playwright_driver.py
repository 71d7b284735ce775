"""
Playwright Driver: Production BrowserDriver

One Chromium browser, one context, one page per export. The context is
created with accept_downloads so the native download transport can capture
the file, and request/response listeners feed the token interceptor.

Playwright timeouts are re-raised as the built-in TimeoutError so callers
never import Playwright types.

USAGE:
    async with PlaywrightDriver(headless=False) as driver:
        await driver.navigate("https://tenant.example.com")
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import asyncio
import inspect
import logging

from playwright.async_api import (
    Browser,
    BrowserContext,
    Download,
    Page,
    Playwright,
    Request,
    Response,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .base import InterceptedRequest, InterceptedResponse, RequestCallback, ResponseCallback

logger = logging.getLogger(__name__)

IDLE_TIMEOUT_S = 15.0

# Clicking an anchor starts the download without navigating the page away
TRIGGER_DOWNLOAD_SCRIPT = """(url) => {
    const a = document.createElement('a');
    a.href = url;
    a.download = '';
    a.style.display = 'none';
    document.body.appendChild(a);
    a.click();
    a.remove();
}"""


class PlaywrightDownload:
    """DownloadHandle over a Playwright Download."""

    def __init__(self, download: Download):
        self._download = download

    @property
    def suggested_filename(self) -> Optional[str]:
        return self._download.suggested_filename or None

    async def save_as(self, path: str) -> None:
        await self._download.save_as(path)


class PlaywrightDriver:
    """BrowserDriver backed by Playwright (Chromium)."""

    def __init__(
        self,
        *,
        headless: bool = True,
        downloads_path: Optional[str] = None,
        user_agent: Optional[str] = None,
        ignore_https_errors: bool = False
    ):
        self.headless = headless
        self.downloads_path = downloads_path
        self._user_agent = user_agent
        self.ignore_https_errors = ignore_https_errors

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._pending_download: Optional[asyncio.Future] = None

    async def __aenter__(self) -> "PlaywrightDriver":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def start(self) -> None:
        logger.info(f"[BROWSER] Launching Chromium (headless={self.headless})")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                downloads_path=self.downloads_path,
            )
            self._context = await self._browser.new_context(
                accept_downloads=True,
                ignore_https_errors=self.ignore_https_errors,
                user_agent=self._user_agent,
            )
            self._page = await self._context.new_page()
        except Exception:
            await self.close()
            raise

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("PlaywrightDriver is not started")
        return self._page

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded")

    async def wait_for_idle(self) -> None:
        # Long-polling SPAs may never go idle; settling is best effort
        try:
            await self.page.wait_for_load_state("networkidle", timeout=IDLE_TIMEOUT_S * 1000)
        except PlaywrightTimeoutError:
            logger.debug(f"[BROWSER] Page not idle after {IDLE_TIMEOUT_S}s, continuing")

    def on_request(self, callback: RequestCallback) -> None:
        def handler(request: Request) -> None:
            callback(InterceptedRequest(
                url=request.url,
                method=request.method,
                headers={k.lower(): v for k, v in request.headers.items()},
            ))

        self.page.on("request", handler)

    def on_response(self, callback: ResponseCallback) -> None:
        async def handler(response: Response) -> None:
            result = callback(InterceptedResponse(
                url=response.url,
                status=response.status,
                read_json=response.json,
            ))
            if inspect.isawaitable(result):
                await result

        self.page.on("response", handler)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def query(self, selector: str, timeout_s: float = 0) -> bool:
        locator = self.page.locator(selector).first
        if timeout_s <= 0:
            return await locator.is_visible()
        try:
            await locator.wait_for(state="visible", timeout=timeout_s * 1000)
        except PlaywrightTimeoutError:
            return False
        return True

    async def fill(self, selector: str, value: str) -> None:
        await self.page.fill(selector, value)

    async def click(self, selector: str) -> None:
        await self.page.click(selector)

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def wait_for_function(self, expression: str, timeout_s: float) -> None:
        try:
            await self.page.wait_for_function(expression, timeout=timeout_s * 1000)
        except PlaywrightTimeoutError as e:
            raise TimeoutError(f"Condition not met within {timeout_s}s") from e

    async def cookies(self) -> Dict[str, str]:
        if self._context is None:
            return {}
        return {c["name"]: c["value"] for c in await self._context.cookies()}

    async def user_agent(self) -> Optional[str]:
        return await self.page.evaluate("() => navigator.userAgent")

    async def trigger_download(self, url: str) -> None:
        loop = asyncio.get_running_loop()
        pending = loop.create_future()

        def on_download(download: Download) -> None:
            if not pending.done():
                pending.set_result(download)

        # Armed before the click so a fast download is not missed
        self.page.once("download", on_download)
        self._pending_download = pending
        await self.page.evaluate(TRIGGER_DOWNLOAD_SCRIPT, url)

    async def wait_for_download(self, timeout_s: float) -> PlaywrightDownload:
        if self._pending_download is None:
            raise RuntimeError("wait_for_download called before trigger_download")
        pending, self._pending_download = self._pending_download, None
        try:
            download = await asyncio.wait_for(pending, timeout_s)
        except TimeoutError as e:
            raise TimeoutError(f"No download started within {timeout_s}s") from e

        # failure() resolves once the transfer ends
        try:
            failure = await asyncio.wait_for(download.failure(), timeout_s)
        except TimeoutError as e:
            await download.cancel()
            raise TimeoutError(f"Download did not finish within {timeout_s}s") from e
        if failure:
            raise RuntimeError(f"Browser download failed: {failure}")
        return PlaywrightDownload(download)

    async def close(self) -> None:
        """Close page, context, browser and the Playwright driver (each at most once)."""
        context, browser, playwright = self._context, self._browser, self._playwright
        self._page = self._context = self._browser = self._playwright = None

        if context is not None:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"[BROWSER] Error closing context: {e}")
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.debug(f"[BROWSER] Error closing browser: {e}")
        if playwright is not None:
            await playwright.stop()
            logger.info("[BROWSER] Closed")
