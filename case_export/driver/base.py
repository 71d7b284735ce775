"""
Browser Driver Interface

The export flow needs a narrow set of browser capabilities: navigate,
observe outgoing requests and incoming responses, run a script in the page,
fill a login form, read cookies, and capture a download. Anything that
implements BrowserDriver can back an export; the Playwright adapter is the
production implementation, tests use a scripted fake.

Timeouts are expressed in seconds and surface as the built-in TimeoutError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union


@dataclass(frozen=True)
class InterceptedRequest:
    """An outgoing request observed in the page. Header names are lower-cased."""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def bearer_token(self) -> Optional[str]:
        """The token from an "Authorization: Bearer ..." header, if any."""
        value = self.headers.get("authorization", "")
        if value[:7].lower() == "bearer ":
            token = value[7:].strip()
            return token or None
        return None


@dataclass(frozen=True)
class InterceptedResponse:
    """
    A response observed in the page.

    The body is read lazily through read_json since most responses are
    never inspected.
    """
    url: str
    status: int
    read_json: Callable[[], Awaitable[Any]]


RequestCallback = Callable[[InterceptedRequest], None]
ResponseCallback = Callable[[InterceptedResponse], Union[None, Awaitable[None]]]


class DownloadHandle(Protocol):
    """A file download captured by the browser."""

    @property
    def suggested_filename(self) -> Optional[str]:
        ...

    async def save_as(self, path: str) -> None:
        ...


class BrowserDriver(Protocol):
    """Capabilities the export flow needs from a browser session."""

    @property
    def url(self) -> str:
        """Current page URL."""
        ...

    async def navigate(self, url: str) -> None:
        ...

    async def wait_for_idle(self) -> None:
        """Wait until the page has settled (no pending network)."""
        ...

    def on_request(self, callback: RequestCallback) -> None:
        ...

    def on_response(self, callback: ResponseCallback) -> None:
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a JavaScript function expression in the page with one argument."""
        ...

    async def query(self, selector: str, timeout_s: float = 0) -> bool:
        """True if a visible element matches selector within timeout_s."""
        ...

    async def fill(self, selector: str, value: str) -> None:
        ...

    async def click(self, selector: str) -> None:
        ...

    async def press(self, key: str) -> None:
        ...

    async def wait_for_function(self, expression: str, timeout_s: float) -> None:
        """Wait until a JavaScript expression is truthy; TimeoutError otherwise."""
        ...

    async def cookies(self) -> Dict[str, str]:
        ...

    async def user_agent(self) -> Optional[str]:
        ...

    async def trigger_download(self, url: str) -> None:
        """Start a browser-native download of url (download capture armed first)."""
        ...

    async def wait_for_download(self, timeout_s: float) -> DownloadHandle:
        """Wait for the download started by trigger_download to start and finish; TimeoutError otherwise."""
        ...

    async def close(self) -> None:
        ...
