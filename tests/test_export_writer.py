from __future__ import annotations

import json
import shutil
import time
import zipfile
from pathlib import Path

import pytest
from conftest import BASE_MTIME, make_file, make_tombstones

from diagbundle.exception import ArchiveWriteError, IndexNotifyError
from diagbundle.export.collector import collect
from diagbundle.export.metadata import build_metadata
from diagbundle.export.models import CollectedArtifacts, HostFacts, MetadataRecord
from diagbundle.export.writer import write_bundle
from diagbundle.utils.logging import LogPaths


class RecordingIndexer:
    def __init__(self, error: Exception | None = None) -> None:
        self.scanned: list[Path] = []
        self._error = error

    def scan(self, path: Path) -> None:
        self.scanned.append(path)
        if self._error is not None:
            raise self._error


@pytest.fixture
def record(host_facts: HostFacts) -> MetadataRecord:
    return build_metadata({"a": "1"}, host_facts)


def _write(tmp_path: Path, artifacts: CollectedArtifacts, record: MetadataRecord, **kwargs):
    return write_bundle(
        tmp_path / "public" / "bundle.zip",
        artifacts,
        record,
        cache_dir=tmp_path / "cache",
        share_subdir="outbox",
        **kwargs,
    )


def test_empty_bundle_has_only_info(tmp_path: Path, record: MetadataRecord):
    copy = _write(tmp_path, CollectedArtifacts(), record)

    with zipfile.ZipFile(copy.source) as zf:
        assert zf.namelist() == ["info.json"]
        info = json.loads(zf.read("info.json").decode("utf-8"))
    assert info["module_settings"] == {"a": "1"}


def test_entries_in_collector_order(tmp_path: Path, record: MetadataRecord, log_paths: LogPaths):
    make_tombstones(tmp_path / "tombstones", 7)
    make_file(log_paths.current, "current log")
    make_file(log_paths.previous, "previous log")
    artifacts = collect(tmp_path / "tombstones", log_paths.current, log_paths.previous)

    copy = _write(tmp_path, artifacts, record)

    with zipfile.ZipFile(copy.source) as zf:
        assert zf.namelist() == [
            "tombstones/tombstone_06",
            "tombstones/tombstone_05",
            "tombstones/tombstone_04",
            "tombstones/tombstone_03",
            "tombstones/tombstone_02",
            "diagbundle.log",
            "diagbundle.old.log",
            "info.json",
        ]
        assert zf.read("tombstones/tombstone_06") == b"crash 6"
        assert zf.read("diagbundle.old.log") == b"previous log"
        assert zf.testzip() is None


def test_tombstone_timestamps_preserved(tmp_path: Path, record: MetadataRecord):
    make_file(tmp_path / "tombstones" / "t", "x", BASE_MTIME)
    artifacts = collect(tmp_path / "tombstones", tmp_path / "none", tmp_path / "none")

    copy = _write(tmp_path, artifacts, record)

    with zipfile.ZipFile(copy.source) as zf:
        info = zf.getinfo("tombstones/t")
    expected = time.localtime(BASE_MTIME)
    assert info.date_time[:5] == tuple(expected)[:5]
    # ZIP timestamps have two-second resolution
    assert info.date_time[5] == expected.tm_sec // 2 * 2
    assert info.compress_type == zipfile.ZIP_DEFLATED


def test_pre_1980_mtime_is_clamped(tmp_path: Path, record: MetadataRecord):
    make_file(tmp_path / "tombstones" / "old", "x", 86400 * 365)
    artifacts = collect(tmp_path / "tombstones", tmp_path / "none", tmp_path / "none")

    copy = _write(tmp_path, artifacts, record)

    with zipfile.ZipFile(copy.source) as zf:
        assert zf.getinfo("tombstones/old").date_time[0] == 1980


def test_shareable_copy_mirrors_bundle(tmp_path: Path, record: MetadataRecord):
    copy = _write(tmp_path, CollectedArtifacts(), record)

    assert copy.path == tmp_path / "cache" / "outbox" / "bundle.zip"
    assert copy.path.read_bytes() == copy.source.read_bytes()
    assert copy.content_uri("com.example.app") == (
        "content://com.example.app.fileprovider/internal/bundle.zip"
    )


def test_rerun_overwrites_both_files(tmp_path: Path, record: MetadataRecord):
    make_tombstones(tmp_path / "tombstones", 2)
    first = _write(
        tmp_path, collect(tmp_path / "tombstones", tmp_path / "n", tmp_path / "n"), record
    )
    shutil.rmtree(tmp_path / "tombstones")

    second = _write(tmp_path, CollectedArtifacts(), record)

    assert second == first
    for path in (second.source, second.path):
        with zipfile.ZipFile(path) as zf:
            assert zf.namelist() == ["info.json"]
    assert [p.name for p in (tmp_path / "public").iterdir()] == ["bundle.zip"]
    assert [p.name for p in (tmp_path / "cache" / "outbox").iterdir()] == ["bundle.zip"]


def test_indexer_notified(tmp_path: Path, record: MetadataRecord):
    indexer = RecordingIndexer()
    copy = _write(tmp_path, CollectedArtifacts(), record, indexer=indexer)
    assert indexer.scanned == [copy.source]


def test_indexer_failure_is_absorbed(tmp_path: Path, record: MetadataRecord):
    indexer = RecordingIndexer(IndexNotifyError("scanner unavailable"))
    copy = _write(tmp_path, CollectedArtifacts(), record, indexer=indexer)
    assert copy.path.exists()


def test_write_failure_removes_partial_bundle(
    tmp_path: Path, record: MetadataRecord, monkeypatch: pytest.MonkeyPatch
):
    make_tombstones(tmp_path / "tombstones", 3)
    artifacts = collect(tmp_path / "tombstones", tmp_path / "n", tmp_path / "n")
    dest = tmp_path / "public" / "bundle.zip"
    make_file(dest, "stale bundle")

    def _disk_full(*args, **kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(shutil, "copyfileobj", _disk_full)
    indexer = RecordingIndexer()

    with pytest.raises(ArchiveWriteError, match="No space left"):
        _write(tmp_path, artifacts, record, indexer=indexer)

    assert not dest.exists()
    assert not (tmp_path / "cache" / "outbox" / "bundle.zip").exists()
    assert indexer.scanned == []


def test_vanished_tombstone_fails(tmp_path: Path, record: MetadataRecord):
    make_tombstones(tmp_path / "tombstones", 1)
    artifacts = collect(tmp_path / "tombstones", tmp_path / "n", tmp_path / "n")
    shutil.rmtree(tmp_path / "tombstones")

    with pytest.raises(ArchiveWriteError):
        _write(tmp_path, artifacts, record)
    assert not (tmp_path / "public" / "bundle.zip").exists()


def test_unwritable_destination_fails(tmp_path: Path, record: MetadataRecord):
    blocker = make_file(tmp_path / "public")  # a file where the directory should be

    with pytest.raises(ArchiveWriteError, match="Cannot prepare"):
        _write(tmp_path, CollectedArtifacts(), record)
    assert blocker.read_bytes() == b"data"


def test_copy_failure_is_fatal(tmp_path: Path, record: MetadataRecord):
    make_file(tmp_path / "cache" / "outbox")  # a file where the directory should be

    with pytest.raises(ArchiveWriteError, match="Failed to copy"):
        _write(tmp_path, CollectedArtifacts(), record)
    assert (tmp_path / "public" / "bundle.zip").exists()
