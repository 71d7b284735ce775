"""
Export API Clients

Host-side HTTP to the export API, riding on the browser session's cookies
(and bearer token when one was captured).
"""

from .session_context import SessionContext
from .api_client import ExportApiClient, HttpFetchResult
from .submitter import ExportJob, ExportJobSubmitter, extract_job_id

__all__ = [
    "SessionContext",
    "ExportApiClient",
    "HttpFetchResult",
    "ExportJob",
    "ExportJobSubmitter",
    "extract_job_id",
]
