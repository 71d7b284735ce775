"""
Errors: Typed Failures for the Export Flow

Every stage of the export flow raises one of these. The orchestrator is the
only place that catches them wholesale; it converts them into a failed
ExportOutcome so nothing escapes across that boundary.

Hierarchy:
    ExportError
    ├── ConfigurationError
    ├── AuthError
    │   ├── AuthFormNotFoundError
    │   ├── AuthTimeoutError
    │   └── AuthTokenMissingError   (non-fatal, flow continues cookie-only)
    ├── ApiRequestError             (transport-level, internal)
    ├── SubmissionError
    ├── PollTimeoutError            (carries last snapshot)
    ├── ExportJobFailedError        (server reported FAILED)
    └── DownloadError               (carries both transport failures)
"""

from __future__ import annotations

from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .status.models import StatusSnapshot


class ExportError(Exception):
    """
    Base class for all export flow failures.

    Attributes:
        stage: Which stage failed (auth, submit, poll, download, export, config)
        job_id: Job identifier if one was assigned before the failure
    """
    stage = "export"

    def __init__(self, message: str, *, job_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured rendering."""
        return {
            "type": type(self).__name__,
            "stage": self.stage,
            "message": self.message,
            "job_id": self.job_id,
        }


class ConfigurationError(ExportError):
    stage = "config"


# ============================================================
# AUTH
# ============================================================

class AuthError(ExportError):
    stage = "auth"


class AuthFormNotFoundError(AuthError):
    """None of the username/password selector candidates matched."""


class AuthTimeoutError(AuthError):
    """The manual login did not leave the login page in time."""

    def __init__(self, message: str, *, timeout_s: float):
        super().__init__(message)
        self.timeout_s = timeout_s

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["timeout_s"] = self.timeout_s
        return data


class AuthTokenMissingError(AuthError):
    """
    No bearer token could be captured.

    Not fatal: some deployments only use session cookies, so the
    orchestrator logs this and carries on without an Authorization header.
    """


# ============================================================
# HTTP
# ============================================================

class ApiRequestError(ExportError):
    """A single HTTP call failed (non-2xx status or transport error)."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: Optional[int] = None,
        job_id: Optional[str] = None
    ):
        super().__init__(message, job_id=job_id)
        self.url = url
        self.status_code = status_code

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"url": self.url, "status_code": self.status_code})
        return data


# ============================================================
# SUBMIT / POLL / DOWNLOAD
# ============================================================

class SubmissionError(ExportError):
    stage = "submit"

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class PollTimeoutError(ExportError):
    """The poll budget ran out before the job completed."""
    stage = "poll"

    def __init__(
        self,
        message: str,
        *,
        job_id: str,
        attempts: int,
        last_snapshot: Optional["StatusSnapshot"] = None
    ):
        super().__init__(message, job_id=job_id)
        self.attempts = attempts
        self.last_snapshot = last_snapshot

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        data["last_snapshot"] = self.last_snapshot.to_dict() if self.last_snapshot else None
        return data


class ExportJobFailedError(ExportError):
    """The server reported the job as failed."""
    stage = "poll"

    def __init__(self, message: str, *, job_id: str, snapshot: "StatusSnapshot"):
        super().__init__(message, job_id=job_id)
        self.snapshot = snapshot

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["snapshot"] = self.snapshot.to_dict()
        return data


class DownloadError(ExportError):
    """Both download transports failed."""
    stage = "download"

    def __init__(
        self,
        message: str,
        *,
        native_error: Optional[BaseException] = None,
        fetch_error: Optional[BaseException] = None,
        job_id: Optional[str] = None
    ):
        super().__init__(message, job_id=job_id)
        self.native_error = native_error
        self.fetch_error = fetch_error

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["native_error"] = str(self.native_error) if self.native_error else None
        data["fetch_error"] = str(self.fetch_error) if self.fetch_error else None
        return data
