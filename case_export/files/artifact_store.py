"""
Artifact Store: Disk Storage for Downloaded Export Packages

Each stored package includes:
- Unique artifact ID
- Original (server-suggested or generated) filename
- File size
- Provenance (job id, source URL, transport, sha256)

Directory structure:
root_dir/
    packages/
        {artifact_id}__{safe_filename}
    index/
        {artifact_id}.json  (metadata)

Two ways in:
- put(): bytes already on the host (in-page fetch fallback)
- reserve() + register(): the browser saves the file itself (native download)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import json
import logging
import uuid

from ..provenance import Provenance, sha256_bytes

logger = logging.getLogger(__name__)

MAX_FILENAME_LEN = 200


def _sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe filesystem storage."""
    safe = Path(filename.replace("\\", "/")).name.replace("\x00", "").strip()
    if len(safe) > MAX_FILENAME_LEN:
        ext = Path(safe).suffix
        safe = safe[:MAX_FILENAME_LEN - len(ext)] + ext
    if safe in ("", ".", ".."):
        return "package.zip"
    return safe


@dataclass(frozen=True)
class StoredArtifact:
    """
    A package on disk.

    Attributes:
        artifact_id: Unique identifier for this artifact
        path: Filesystem path of the package
        size_bytes: Size of the package in bytes
        provenance: Provenance with job id, source URL and hash
        original_filename: Filename before sanitizing
        stored_at: ISO 8601 timestamp when the package was stored
    """
    artifact_id: str
    path: str
    size_bytes: int
    provenance: Provenance
    original_filename: Optional[str] = None
    stored_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact_id": self.artifact_id,
            "path": self.path,
            "size_bytes": self.size_bytes,
            "provenance": self.provenance.to_dict(),
            "original_filename": self.original_filename,
            "stored_at": self.stored_at,
        }


class DiskArtifactStore:
    """Filesystem-based package store with a JSON index."""

    def __init__(self, root_dir: str | Path):
        self.root = Path(root_dir)
        self.packages_dir = self.root / "packages"
        self.index_dir = self.root / "index"

        self.packages_dir.mkdir(parents=True, exist_ok=True)
        self.index_dir.mkdir(parents=True, exist_ok=True)

        logger.debug(f"[STORE] Initialized DiskArtifactStore at {self.root}")

    def reserve(self, filename: str) -> Tuple[str, Path]:
        """Allocate an artifact id and the path its file must be written to."""
        artifact_id = str(uuid.uuid4())
        return artifact_id, self.packages_dir / f"{artifact_id}__{_sanitize_filename(filename)}"

    def put(self, *, bytes_data: bytes, filename: str, provenance: Provenance) -> StoredArtifact:
        """Write bytes to disk and index them."""
        artifact_id, path = self.reserve(filename)
        path.write_bytes(bytes_data)
        return self._index(artifact_id, path, filename, bytes_data, provenance)

    def register(
        self,
        *,
        artifact_id: str,
        path: Path,
        filename: str,
        provenance: Provenance
    ) -> StoredArtifact:
        """Index a file that was written to a reserved path by someone else."""
        data = Path(path).read_bytes()
        return self._index(artifact_id, Path(path), filename, data, provenance)

    def _index(
        self,
        artifact_id: str,
        path: Path,
        filename: str,
        data: bytes,
        provenance: Provenance
    ) -> StoredArtifact:
        if provenance.artifact_hash is None:
            provenance = provenance.with_artifact_hash(data)
        elif provenance.artifact_hash != sha256_bytes(data):
            logger.warning(f"[STORE] Hash mismatch for {artifact_id}; recomputing")
            provenance = provenance.with_artifact_hash(data)

        stored = StoredArtifact(
            artifact_id=artifact_id,
            path=str(path),
            size_bytes=len(data),
            provenance=provenance,
            original_filename=filename,
            stored_at=datetime.now(timezone.utc).isoformat(),
        )

        index_path = self.index_dir / f"{artifact_id}.json"
        index_path.write_text(json.dumps(stored.to_dict(), indent=2))

        logger.info(f"[STORE] Stored package {artifact_id} ({len(data)} bytes) at {path}")
        return stored
