"""
Export API Client: Host-Side HTTP Using Session Credentials

JSON calls against the export API made from the host, carrying the cookies
captured from the browser session and, when requested, the bearer token.

Every call can be made with or without the Authorization header because
some deployments reject the header and only accept session cookies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging
import re

import httpx

from ..errors import ApiRequestError
from .session_context import SessionContext

logger = logging.getLogger(__name__)


def filename_from_content_disposition(value: Optional[str]) -> Optional[str]:
    """
    Extract the filename from a Content-Disposition header value.

    Examples:
        attachment; filename="package.zip"
        attachment; filename*=UTF-8''package.zip
    """
    if not value:
        return None
    match = re.search(r"filename\*?=(?:UTF-8'')?[\"']?([^\"';\s]+)[\"']?", value, re.IGNORECASE)
    if match:
        return match.group(1)
    return None


@dataclass(frozen=True)
class HttpFetchResult:
    """
    Result of a lightweight (HEAD) check.

    Attributes:
        ok: True if the request succeeded (2xx status)
        status: HTTP status code, 0 on transport failure
        headers: Response headers
        error: Error message if request failed
    """
    ok: bool
    status: int
    headers: Dict[str, str]
    error: Optional[str] = None

    @property
    def filename_from_header(self) -> Optional[str]:
        cd = self.headers.get("Content-Disposition") or self.headers.get("content-disposition")
        return filename_from_content_disposition(cd)


class ExportApiClient:
    """
    Async JSON client bound to one SessionContext.

    Usage:
        async with ExportApiClient(ctx) as api:
            data = await api.get_json("/api/package/export/123")
    """

    def __init__(
        self,
        ctx: SessionContext,
        *,
        timeout_s: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.ctx = ctx
        headers = {"Accept": "application/json"}
        if ctx.user_agent:
            headers["User-Agent"] = ctx.user_agent

        self._client = httpx.AsyncClient(
            cookies=ctx.cookies,
            headers=headers,
            timeout=timeout_s,
            verify=verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "ExportApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def has_token(self) -> bool:
        return self.ctx.token is not None

    def _headers(self, use_token: bool, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        hdrs = dict(extra or {})
        if use_token and self.ctx.token is not None:
            hdrs.update(self.ctx.token.authorization_header())
        return hdrs

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        use_token: bool = True
    ) -> Any:
        """
        Make a JSON request.

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            ApiRequestError: On transport failure, non-2xx status, or invalid JSON
        """
        url = self.ctx.url(path)
        auth_mode = "bearer" if use_token and self.has_token else "cookies"
        logger.debug(f"[HTTP] {method} {url} ({auth_mode})")

        try:
            r = await self._client.request(
                method,
                url,
                json=body,
                headers=self._headers(use_token, headers),
            )
        except httpx.TimeoutException as e:
            raise ApiRequestError(f"Timeout: {method} {url}", url=url) from e
        except httpx.HTTPError as e:
            raise ApiRequestError(f"Connection error: {e}", url=url) from e

        if not r.is_success:
            raise ApiRequestError(
                f"HTTP {r.status_code}: {method} {url}",
                url=url,
                status_code=r.status_code,
            )

        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise ApiRequestError(
                f"JSON parse error from {url}: {e}",
                url=url,
                status_code=r.status_code,
            ) from e

    async def get_json(self, path: str, *, use_token: bool = True) -> Any:
        return await self.request_json("GET", path, use_token=use_token)

    async def post_json(
        self,
        path: str,
        body: Any,
        *,
        headers: Optional[Dict[str, str]] = None,
        use_token: bool = True
    ) -> Any:
        return await self.request_json("POST", path, body=body, headers=headers, use_token=use_token)

    async def delete(self, path: str, *, use_token: bool = True) -> None:
        await self.request_json("DELETE", path, use_token=use_token)

    async def head(self, url: str, *, use_token: bool = True) -> HttpFetchResult:
        """
        Perform HEAD request to check URL availability without downloading content.

        Never raises; failures are reported in the result.
        """
        url = self.ctx.url(url)
        try:
            r = await self._client.head(url, headers=self._headers(use_token))
        except httpx.HTTPError as e:
            return HttpFetchResult(ok=False, status=0, headers={}, error=str(e))

        return HttpFetchResult(
            ok=r.is_success,
            status=r.status_code,
            headers={k: v for k, v in r.headers.items()},
            error=None if r.is_success else f"HTTP {r.status_code}",
        )
