"""
Export Job Submitter

Creates the server-side export job and returns its identifier.

Auth policy: the call goes out with the bearer token when one was captured.
A 401 with a token present is retried exactly once without the header,
relying on session cookies. Every other failure is surfaced immediately.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from ..errors import ApiRequestError, SubmissionError
from .api_client import ExportApiClient

logger = logging.getLogger(__name__)

EXPORT_PACKAGE_PATH = "/api/modeller/importexport/export/package"
JOB_ID_FIELDS = ("exportJobId", "jobId", "id")


@dataclass(frozen=True)
class ExportJob:
    """A submitted export job. job_id is assigned by the server and never changes."""
    job_id: str
    work_type_key: str
    base_url: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "work_type_key": self.work_type_key,
            "base_url": self.base_url,
            "created_at": self.created_at.isoformat(),
        }


def extract_job_id(response: Any) -> Optional[str]:
    """First non-empty of exportJobId, jobId, id."""
    if not isinstance(response, dict):
        return None
    for name in JOB_ID_FIELDS:
        value = response.get(name)
        if value not in (None, ""):
            return str(value)
    return None


class ExportJobSubmitter:
    """Issues the job-creation call for one work type."""

    def __init__(
        self,
        api: ExportApiClient,
        *,
        export_config_name: str = "VeryBasic",
        item_system_name: str = "sharedo-type",
        created_by: Optional[str] = None
    ):
        self.api = api
        self.export_config_name = export_config_name
        self.item_system_name = item_system_name
        self.created_by = created_by

    def build_request(self, work_type_key: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "exportConfigName": self.export_config_name,
            "items": [{
                "systemName": self.item_system_name,
                "selector": {"systemName": work_type_key},
            }],
        }
        if self.created_by:
            body["createdBy"] = self.created_by
        return body

    def _headers(self) -> Dict[str, str]:
        headers = {"X-Requested-With": "XMLHttpRequest"}
        if self.created_by:
            headers["X-Created-By"] = self.created_by
        return headers

    async def submit(self, work_type_key: str) -> ExportJob:
        """
        Create the export job.

        Raises:
            SubmissionError: On HTTP failure or a response without a job id
        """
        body = self.build_request(work_type_key)
        used_token = self.api.has_token

        logger.info(
            f"[SUBMIT] POST {EXPORT_PACKAGE_PATH} work_type={work_type_key} "
            f"config={self.export_config_name} "
            f"({'bearer ' + self.api.ctx.token.redacted() if used_token else 'session cookies'})"
        )

        try:
            response = await self.api.post_json(
                EXPORT_PACKAGE_PATH, body, headers=self._headers(), use_token=used_token
            )
        except ApiRequestError as e:
            if not (e.is_unauthorized and used_token):
                raise SubmissionError(
                    f"Export creation failed: {e.message}", status_code=e.status_code
                ) from e

            logger.warning("[SUBMIT] 401 with bearer token, retrying with session cookies only")
            try:
                response = await self.api.post_json(
                    EXPORT_PACKAGE_PATH, body, headers=self._headers(), use_token=False
                )
            except ApiRequestError as retry_error:
                raise SubmissionError(
                    f"Export creation failed without token: {retry_error.message}",
                    status_code=retry_error.status_code,
                ) from retry_error

        job_id = extract_job_id(response)
        if job_id is None:
            raise SubmissionError("malformed response")

        logger.info(f"[SUBMIT] Export job created: {job_id}")
        return ExportJob(
            job_id=job_id,
            work_type_key=work_type_key,
            base_url=self.api.ctx.base_url,
        )

    async def cancel(self, job_id: str) -> bool:
        """Best-effort server-side cancellation. Never raises."""
        try:
            await self.api.delete(f"{EXPORT_PACKAGE_PATH}/{job_id}")
        except ApiRequestError as e:
            logger.info(f"[SUBMIT] Could not cancel job {job_id}: {e.message}")
            return False
        logger.info(f"[SUBMIT] Cancelled job {job_id} on server")
        return True
