"""Shared fixtures: a scripted browser driver and httpx MockTransport routing."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from case_export.auth.token import AuthToken
from case_export.clients.api_client import ExportApiClient
from case_export.clients.session_context import SessionContext
from case_export.driver.base import InterceptedRequest, InterceptedResponse

BASE_URL = "https://tenant.example.com"


def make_jwt(payload: Dict[str, Any]) -> str:
    def segment(data: Dict[str, Any]) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{segment({'alg': 'HS256', 'typ': 'JWT'})}.{segment(payload)}.signature"


# ============================================================
# Fake browser driver
# ============================================================

class FakeDownload:
    def __init__(self, data: bytes, filename: Optional[str] = "package.zip"):
        self.data = data
        self._filename = filename

    @property
    def suggested_filename(self) -> Optional[str]:
        return self._filename

    async def save_as(self, path: str) -> None:
        Path(path).write_bytes(self.data)


class FakeDriver:
    """
    Scripted BrowserDriver.

    visible: selectors that query() reports as present
    bearer_on_submit: token sent in an Authorization header once the login form is submitted
    evaluate_results: script -> value, callable(arg) or exception to raise
    manual_login_completes: whether wait_for_function succeeds
    download / download_error: what wait_for_download returns or raises
    """

    def __init__(
        self,
        *,
        visible: Tuple[str, ...] = (),
        bearer_on_submit: Optional[str] = None,
        evaluate_results: Optional[Dict[str, Any]] = None,
        manual_login_completes: bool = True,
        cookies: Optional[Dict[str, str]] = None,
        download: Optional[FakeDownload] = None,
        download_error: Optional[BaseException] = None
    ):
        self.visible = set(visible)
        self.bearer_on_submit = bearer_on_submit
        self.evaluate_results = dict(evaluate_results or {})
        self.manual_login_completes = manual_login_completes
        self._cookies = cookies if cookies is not None else {"session": "abc"}
        self.download = download
        self.download_error = download_error

        self.current_url = "about:blank"
        self.navigated: List[str] = []
        self.filled: Dict[str, str] = {}
        self.clicked: List[str] = []
        self.pressed: List[str] = []
        self.evaluated: List[Tuple[str, Any]] = []
        self.download_urls: List[str] = []
        self.request_callbacks: List[Callable] = []
        self.response_callbacks: List[Callable] = []
        self.closed = False

    async def __aenter__(self) -> "FakeDriver":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def url(self) -> str:
        return self.current_url

    async def navigate(self, url: str) -> None:
        self.navigated.append(url)
        self.current_url = url

    async def wait_for_idle(self) -> None:
        return None

    def on_request(self, callback) -> None:
        self.request_callbacks.append(callback)

    def on_response(self, callback) -> None:
        self.response_callbacks.append(callback)

    def fire_request(self, url: str, headers: Optional[Dict[str, str]] = None) -> None:
        request = InterceptedRequest(url=url, headers={k.lower(): v for k, v in (headers or {}).items()})
        for callback in self.request_callbacks:
            callback(request)

    async def fire_response(self, url: str, status: int, body: Any) -> None:
        async def read_json() -> Any:
            return body

        response = InterceptedResponse(url=url, status=status, read_json=read_json)
        for callback in self.response_callbacks:
            result = callback(response)
            if result is not None:
                await result

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append((script, arg))
        result = self.evaluate_results.get(script)
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            return result(arg)
        return result

    async def query(self, selector: str, timeout_s: float = 0) -> bool:
        return selector in self.visible

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    def _submitted(self) -> None:
        self.current_url = f"{BASE_URL}/dashboard"
        if self.bearer_on_submit:
            self.fire_request(
                f"{BASE_URL}/api/profile",
                {"Authorization": f"Bearer {self.bearer_on_submit}"},
            )

    async def click(self, selector: str) -> None:
        self.clicked.append(selector)
        if self.filled:
            self._submitted()

    async def press(self, key: str) -> None:
        self.pressed.append(key)
        if self.filled:
            self._submitted()

    async def wait_for_function(self, expression: str, timeout_s: float) -> None:
        if not self.manual_login_completes:
            raise TimeoutError("still on login page")
        self.current_url = f"{BASE_URL}/dashboard"

    async def cookies(self) -> Dict[str, str]:
        return dict(self._cookies)

    async def user_agent(self) -> Optional[str]:
        return "FakeBrowser/1.0"

    async def trigger_download(self, url: str) -> None:
        self.download_urls.append(url)

    async def wait_for_download(self, timeout_s: float) -> FakeDownload:
        if self.download_error is not None:
            raise self.download_error
        if self.download is None:
            raise TimeoutError(f"No download started within {timeout_s}s")
        return self.download

    async def close(self) -> None:
        self.closed = True


# ============================================================
# httpx MockTransport routing
# ============================================================

class Router:
    """
    Maps (method, path) to a response; records every request.

    A route value may be an httpx.Response, a JSON-able object (200), or a
    callable(request) -> httpx.Response. Unrouted requests get a 404.
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Any]] = None):
        self.routes: Dict[Tuple[str, str], Any] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_api(router: Router, token: Optional[AuthToken] = None) -> ExportApiClient:
    ctx = SessionContext(base_url=BASE_URL, cookies={"session": "abc"}, user_agent="FakeBrowser/1.0", token=token)
    return ExportApiClient(ctx, transport=router.transport)


@pytest.fixture
def router() -> Router:
    return Router()


@pytest.fixture
def token() -> AuthToken:
    return AuthToken.from_raw("opaque-test-token-value", source="request_header")
