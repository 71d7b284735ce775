"""
Auth Session: Browser Login and Bearer Token Capture

Drives the server's login page through the browser driver and captures the
bearer token the web app uses for its own API calls.

Token sources, first one wins:
1. An outgoing request carrying "Authorization: Bearer ..."
2. A JSON response from an OAuth token endpoint (access_token)
3. After a short grace period: access_token / token in local or session storage

Login modes:
- Credentials supplied: fill the form (selectors vary by deployment, so an
  ordered list of candidates is tried) and submit
- No credentials: a human logs in in the visible browser; we wait for the
  page to leave the login path
"""

from __future__ import annotations

from typing import Optional, Sequence
import asyncio
import json
import logging

from ..driver.base import BrowserDriver, InterceptedRequest, InterceptedResponse
from ..errors import AuthFormNotFoundError, AuthTimeoutError, AuthTokenMissingError
from ..telemetry import ProgressEmitter
from .token import AuthToken, Credentials

logger = logging.getLogger(__name__)

LOGIN_PATHS = ("/Account/Login", "/login")

LOGIN_METHOD_SELECTORS = (
    'button:has-text("Client Login")',
    'a:has-text("Client Login")',
    'button[value="local"]',
)

USERNAME_SELECTORS = (
    'input[name="username"]',
    'input[name="Username"]',
    '#username',
    'input[autocomplete="username"]',
    'input[type="email"]',
)

PASSWORD_SELECTORS = (
    'input[type="password"]',
    'input[name="password"]',
    '#password',
)

SUBMIT_SELECTORS = (
    'button[type="submit"]',
    'input[type="submit"]',
    'button:has-text("Login")',
    'button:has-text("LOGIN")',
)

TOKEN_URL_MARKERS = ("/oauth/token", "/connect/token")

STORAGE_TOKEN_SCRIPT = """() => {
    for (const store of [localStorage, sessionStorage]) {
        for (const key of ['access_token', 'token']) {
            const value = store.getItem(key);
            if (value) return value;
        }
    }
    return null;
}"""

SELECTOR_POLL_S = 0.25


def _left_login_expression(login_paths: Sequence[str]) -> str:
    paths = json.dumps([p.lower() for p in login_paths])
    return f"!{paths}.includes(window.location.pathname.toLowerCase())"


class AuthSession:
    """
    One login on one browser driver.

    Usage:
        auth = AuthSession(driver, login_timeout_s=180)
        token = await auth.login("https://tenant.example.com", credentials)
    """

    def __init__(
        self,
        driver: BrowserDriver,
        *,
        login_timeout_s: float = 180.0,
        token_grace_s: float = 2.0,
        form_timeout_s: float = 10.0,
        login_paths: Sequence[str] = LOGIN_PATHS,
        emitter: Optional[ProgressEmitter] = None
    ):
        self.driver = driver
        self.login_timeout_s = login_timeout_s
        self.token_grace_s = token_grace_s
        self.form_timeout_s = form_timeout_s
        self.login_paths = tuple(login_paths)
        self.emitter = emitter or ProgressEmitter()
        self._captured: Optional[asyncio.Future] = None

    # ------------------------------------------------------------
    # Interception
    # ------------------------------------------------------------

    def _resolve(self, raw: Optional[str], source: str) -> None:
        if not raw or self._captured is None or self._captured.done():
            return
        token = AuthToken.from_raw(raw, source=source)
        self._captured.set_result(token)
        logger.info(f"[AUTH] Token captured from {source}: {token.redacted()}")

    def _on_request(self, request: InterceptedRequest) -> None:
        self._resolve(request.bearer_token, "request_header")

    async def _on_response(self, response: InterceptedResponse) -> None:
        if response.status >= 400 or not any(m in response.url for m in TOKEN_URL_MARKERS):
            return
        if self._captured is None or self._captured.done():
            return
        try:
            body = await response.read_json()
        except Exception as e:
            logger.debug(f"[AUTH] Unreadable token response from {response.url}: {e}")
            return
        if isinstance(body, dict) and isinstance(body.get("access_token"), str):
            self._resolve(body["access_token"], "token_response")

    # ------------------------------------------------------------
    # Login
    # ------------------------------------------------------------

    async def login(self, base_url: str, credentials: Optional[Credentials] = None) -> AuthToken:
        """
        Log in and return the captured bearer token.

        Raises:
            AuthFormNotFoundError: Credentials given but no login form found
            AuthTimeoutError: Manual login did not finish in time
            AuthTokenMissingError: Logged in, but no usable token (cookie-only)
        """
        self._captured = asyncio.get_running_loop().create_future()
        self.driver.on_request(self._on_request)
        self.driver.on_response(self._on_response)

        try:
            await self.emitter.emit("auth", "start", data={"base_url": base_url, "manual": credentials is None})
            logger.info(f"[AUTH] Navigating to {base_url}")
            await self.driver.navigate(base_url)
            await self.driver.wait_for_idle()

            await self._choose_direct_login()

            if credentials is not None and credentials.is_complete():
                await self._submit_credentials(credentials)
            else:
                await self._wait_for_manual_login()

            await self.driver.wait_for_idle()
            logger.info("[AUTH] Logged in")

            token = await self._await_token()
        finally:
            # Single cancellation path for the capture future
            if not self._captured.done():
                self._captured.cancel()

        if token is None:
            await self.emitter.emit("auth", "token_missing", success=False)
            raise AuthTokenMissingError("No bearer token captured; continuing with session cookies")

        if token.is_expired():
            logger.warning(f"[AUTH] Captured token {token.redacted()} is expired, discarding")
            await self.emitter.emit("auth", "token_missing", success=False, data={"reason": "expired"})
            raise AuthTokenMissingError("Captured token is expired; continuing with session cookies")

        await self.emitter.emit("auth", "token_captured", data={"source": token.source})
        return token

    async def _find_first(self, selectors: Sequence[str], timeout_s: float) -> Optional[str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        while True:
            for selector in selectors:
                if await self.driver.query(selector):
                    return selector
            if loop.time() >= deadline:
                return None
            await asyncio.sleep(SELECTOR_POLL_S)

    async def _choose_direct_login(self) -> None:
        """Some tenants show a "choose login method" step first."""
        selector = await self._find_first(LOGIN_METHOD_SELECTORS, 0)
        if selector:
            await self.driver.click(selector)
            logger.info(f"[AUTH] Selected direct login: {selector}")
            await self.driver.wait_for_idle()

    async def _submit_credentials(self, credentials: Credentials) -> None:
        user_selector = await self._find_first(USERNAME_SELECTORS, self.form_timeout_s)
        if not user_selector:
            raise AuthFormNotFoundError("Could not find username field")

        pass_selector = await self._find_first(PASSWORD_SELECTORS, self.form_timeout_s)
        if not pass_selector:
            raise AuthFormNotFoundError("Could not find password field")

        logger.info(f"[AUTH] Entering credentials for {credentials.username}")
        await self.driver.fill(user_selector, credentials.username)
        await self.driver.fill(pass_selector, credentials.password)

        submit_selector = await self._find_first(SUBMIT_SELECTORS, 0)
        if submit_selector:
            await self.driver.click(submit_selector)
            logger.info(f"[AUTH] Clicked submit: {submit_selector}")
        else:
            logger.info("[AUTH] Submitting via Enter key")
            await self.driver.press("Enter")

    async def _wait_for_manual_login(self) -> None:
        logger.info(f"[AUTH] Waiting up to {self.login_timeout_s}s for manual login")
        try:
            await self.driver.wait_for_function(
                _left_login_expression(self.login_paths), self.login_timeout_s
            )
        except TimeoutError as e:
            raise AuthTimeoutError(
                f"Login not completed within {self.login_timeout_s}s",
                timeout_s=self.login_timeout_s,
            ) from e

    async def _await_token(self) -> Optional[AuthToken]:
        try:
            return await asyncio.wait_for(asyncio.shield(self._captured), self.token_grace_s)
        except TimeoutError:
            pass

        raw = await self.driver.evaluate(STORAGE_TOKEN_SCRIPT)
        if isinstance(raw, str) and raw:
            token = AuthToken.from_raw(raw, source="storage")
            logger.info(f"[AUTH] Token captured from browser storage: {token.redacted()}")
            return token

        logger.warning("[AUTH] No token found - will rely on session cookies")
        return None
