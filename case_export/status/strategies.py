"""
Status Endpoint Strategies

Different server generations expose export status in different places.
Each strategy knows one endpoint: where to GET status, how to pull the
status record for our job out of the response, and where that server
generation serves the finished package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .models import EndpointChoice

DEFAULT_DOWNLOAD_TEMPLATE = "/modeller/__importexport/export/package/{id}/download"

_LIST_ENVELOPE_FIELDS = ("items", "exports", "data", "results")
_LIST_ID_FIELDS = ("exportJobId", "jobId", "id")


@dataclass(frozen=True)
class StatusStrategy:
    """
    One status endpoint.

    Attributes:
        choice: Strategy id
        status_template: GET path, "{id}" is replaced by the job id
        download_template: Package download path for this server generation
    """
    choice: EndpointChoice
    status_template: str
    download_template: str = DEFAULT_DOWNLOAD_TEMPLATE

    def status_path(self, job_id: str) -> str:
        return self.status_template.format(id=job_id)

    def download_path(self, job_id: str) -> str:
        return self.download_template.format(id=job_id)

    def extract(self, payload: Any, job_id: str) -> Optional[Mapping[str, Any]]:
        """The status record for job_id, or None if this payload is not an answer."""
        if isinstance(payload, Mapping) and payload:
            return payload
        return None


@dataclass(frozen=True)
class ListStatusStrategy(StatusStrategy):
    """Fetches every export job and picks ours out by id."""

    def extract(self, payload: Any, job_id: str) -> Optional[Mapping[str, Any]]:
        jobs = payload
        if isinstance(payload, Mapping):
            jobs = next(
                (payload[name] for name in _LIST_ENVELOPE_FIELDS if isinstance(payload.get(name), list)),
                None,
            )
        if not isinstance(jobs, list):
            return None

        for job in jobs:
            if not isinstance(job, Mapping):
                continue
            if any(job.get(name) is not None and str(job.get(name)) == job_id for name in _LIST_ID_FIELDS):
                return job
        return None


MODELLER = StatusStrategy(
    EndpointChoice.MODELLER,
    "/api/modeller/importexport/export/package/{id}/progress/",
    DEFAULT_DOWNLOAD_TEMPLATE,
)
PACKAGE = StatusStrategy(
    EndpointChoice.PACKAGE,
    "/api/package/export/{id}",
    "/api/package/export/{id}/download",
)
PANEL = StatusStrategy(
    EndpointChoice.PANEL,
    "/api/package/export-panel/{id}",
    "/api/package/export-panel/{id}/download",
)
LEGACY = StatusStrategy(
    EndpointChoice.LEGACY,
    "/api/exports/{id}/status",
    "/api/exports/{id}/download",
)
CONFIGURATION = StatusStrategy(
    EndpointChoice.CONFIGURATION,
    "/api/configuration/export/{id}",
    "/api/configuration/export/{id}/download",
)
LIST = ListStatusStrategy(
    EndpointChoice.LIST,
    "/api/package/exports",
    DEFAULT_DOWNLOAD_TEMPLATE,
)

# Cheapest and most common first; the list scan is the most expensive
DEFAULT_STRATEGIES: Tuple[StatusStrategy, ...] = (
    MODELLER,
    PACKAGE,
    PANEL,
    LEGACY,
    CONFIGURATION,
    LIST,
)


def default_download_path(job_id: str) -> str:
    return DEFAULT_DOWNLOAD_TEMPLATE.format(id=job_id)
