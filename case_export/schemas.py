"""
Pydantic schemas for the export service.
"""

from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from .orchestrator import ExportOutcome


class ExportRequest(BaseModel):
    """One export: which server, which work type, and how to log in."""
    base_url: str = Field(min_length=1, pattern=r"^https?://")
    work_type_key: str = Field(min_length=1)
    username: Optional[str] = None
    password: Optional[SecretStr] = None
    headless: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        if v is not None and not v.get_secret_value():
            raise ValueError("password must not be empty")
        return v


class ExportResponse(BaseModel):
    """Outcome of one export. Failures are reported here, not as HTTP errors."""
    success: bool
    job_id: Optional[str] = None
    file_path: Optional[str] = None
    byte_size: Optional[int] = None
    sha256: Optional[str] = None
    transport: Optional[str] = None
    error: Optional[str] = None
    error_stage: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: ExportOutcome) -> "ExportResponse":
        if outcome.success and outcome.result is not None:
            return cls(
                success=True,
                job_id=outcome.job_id,
                file_path=outcome.result.file_path,
                byte_size=outcome.result.byte_size,
                sha256=outcome.result.sha256,
                transport=outcome.result.transport,
            )
        return cls(
            success=False,
            job_id=outcome.job_id,
            error=outcome.error.message if outcome.error else "Unknown error",
            error_stage=outcome.error.stage if outcome.error else None,
        )


class HealthResponse(BaseModel):
    status: str
    playwright_available: bool
    download_dir: str
