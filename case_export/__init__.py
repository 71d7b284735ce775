"""
case_export: Export-Package Jobs Against a Case-Management Server

Logs in through a real browser, submits an export-package job, polls the
server's (version-dependent) status API until the package truly exists,
and downloads it.

Quick start:
    from case_export import Credentials, ExportOrchestrator, ExportSettings

    outcome = await ExportOrchestrator(ExportSettings.from_env()).run(
        "https://tenant.example.com", "instruction-matter", Credentials("user", "secret")
    )
"""

from .auth import AuthSession, AuthToken, Credentials
from .config import ExportSettings
from .errors import (
    AuthError,
    AuthFormNotFoundError,
    AuthTimeoutError,
    AuthTokenMissingError,
    ConfigurationError,
    DownloadError,
    ExportError,
    ExportJobFailedError,
    PollTimeoutError,
    SubmissionError,
)
from .files import ArtifactDownloader, DownloadResult
from .logging_setup import setup_logging
from .orchestrator import ExportOrchestrator, ExportOutcome
from .status import EndpointChoice, ExportState, StatusNormalizer, StatusSnapshot
from .telemetry import ProgressEmitter, ProgressEvent

__version__ = "1.0.0"

__all__ = [
    "AuthSession",
    "AuthToken",
    "Credentials",
    "ExportSettings",
    "AuthError",
    "AuthFormNotFoundError",
    "AuthTimeoutError",
    "AuthTokenMissingError",
    "ConfigurationError",
    "DownloadError",
    "ExportError",
    "ExportJobFailedError",
    "PollTimeoutError",
    "SubmissionError",
    "ArtifactDownloader",
    "DownloadResult",
    "setup_logging",
    "ExportOrchestrator",
    "ExportOutcome",
    "EndpointChoice",
    "ExportState",
    "StatusNormalizer",
    "StatusSnapshot",
    "ProgressEmitter",
    "ProgressEvent",
]
