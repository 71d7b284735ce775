"""
Driver Module: Browser Automation Behind a Narrow Interface

Components:
- BrowserDriver: the capabilities the export flow needs (Protocol)
- PlaywrightDriver: Playwright/Chromium implementation
"""

from .base import (
    BrowserDriver,
    DownloadHandle,
    InterceptedRequest,
    InterceptedResponse,
)
from .playwright_driver import PlaywrightDownload, PlaywrightDriver

__all__ = [
    "BrowserDriver",
    "DownloadHandle",
    "InterceptedRequest",
    "InterceptedResponse",
    "PlaywrightDownload",
    "PlaywrightDriver",
]
