"""Tests for DiskArtifactStore."""

from __future__ import annotations

import json
from pathlib import Path

from case_export.files.artifact_store import DiskArtifactStore
from case_export.provenance import Provenance, sha256_bytes


def test_put_writes_file_and_index(tmp_path: Path) -> None:
    store = DiskArtifactStore(tmp_path)

    stored = store.put(
        bytes_data=b"zipdata",
        filename="Export.zip",
        provenance=Provenance.now("https://tenant.example.com/dl", job_id="42", transport="fetch"),
    )

    assert Path(stored.path).read_bytes() == b"zipdata"
    assert stored.size_bytes == 7
    assert stored.provenance.artifact_hash == sha256_bytes(b"zipdata")

    index = json.loads((tmp_path / "index" / f"{stored.artifact_id}.json").read_text())
    assert index["provenance"]["job_id"] == "42"
    assert index == stored.to_dict()


def test_filenames_cannot_escape_the_store(tmp_path: Path) -> None:
    store = DiskArtifactStore(tmp_path / "store")

    stored = store.put(
        bytes_data=b"x",
        filename="../../etc/passwd",
        provenance=Provenance.now("https://tenant.example.com/dl"),
    )

    assert Path(stored.path).parent == tmp_path / "store" / "packages"
    assert Path(stored.path).name.endswith("__passwd")


def test_register_indexes_a_reserved_file(tmp_path: Path) -> None:
    store = DiskArtifactStore(tmp_path)
    artifact_id, path = store.reserve("native.zip")
    path.write_bytes(b"native")

    stored = store.register(
        artifact_id=artifact_id,
        path=path,
        filename="native.zip",
        provenance=Provenance.now("https://tenant.example.com/dl", transport="native"),
    )

    assert stored.artifact_id == artifact_id
    assert stored.size_bytes == 6
    assert stored.provenance.artifact_hash == sha256_bytes(b"native")
