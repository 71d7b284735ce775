"""
Files Module: Package Download and Storage

Components:
- ArtifactDownloader: native browser download with in-page fetch fallback
- DiskArtifactStore: packages on disk with a JSON index and provenance
"""

from .artifact_store import DiskArtifactStore, StoredArtifact
from .download_manager import ArtifactDownloader, DownloadResult

__all__ = [
    "ArtifactDownloader",
    "DownloadResult",
    "DiskArtifactStore",
    "StoredArtifact",
]
