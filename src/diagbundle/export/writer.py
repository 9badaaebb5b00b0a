from __future__ import annotations

import shutil
import time
import zipfile
from pathlib import Path

from diagbundle.exception import ArchiveWriteError
from diagbundle.export.host import MediaIndexer
from diagbundle.export.models import (
    CollectedArtifacts,
    DiagnosticFile,
    MetadataRecord,
    ShareableCopy,
)
from diagbundle.utils.logging import logger

TOMBSTONE_PREFIX = "tombstones/"
INFO_ENTRY_NAME = "info.json"


def _add_file(zf: zipfile.ZipFile, file: DiagnosticFile, arcname: str) -> None:
    # from_file takes the entry timestamp from the file's mtime
    info = zipfile.ZipInfo.from_file(file.path, arcname, strict_timestamps=False)
    info.compress_type = zipfile.ZIP_DEFLATED
    with open(file.path, "rb") as src, zf.open(info, "w") as dst:
        shutil.copyfileobj(src, dst)


def _add_info(zf: zipfile.ZipFile, record: MetadataRecord) -> None:
    info = zipfile.ZipInfo(INFO_ENTRY_NAME, date_time=time.localtime()[:6])
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    zf.writestr(info, record.to_json().encode("utf-8"))


def _write_archive(dest: Path, artifacts: CollectedArtifacts, record: MetadataRecord) -> None:
    with zipfile.ZipFile(dest, "w", zipfile.ZIP_DEFLATED) as zf:
        for tombstone in artifacts.tombstones:
            _add_file(zf, tombstone, f"{TOMBSTONE_PREFIX}{tombstone.name}")
        if artifacts.current_log is not None:
            _add_file(zf, artifacts.current_log, artifacts.current_log.name)
        if artifacts.previous_log is not None:
            _add_file(zf, artifacts.previous_log, artifacts.previous_log.name)
        _add_info(zf, record)


def _discard(dest: Path) -> None:
    try:
        dest.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove partial bundle {path}: {error}", path=dest, error=e)


def _notify_indexer(indexer: MediaIndexer | None, dest: Path) -> None:
    if indexer is None:
        return
    try:
        indexer.scan(dest)
    except Exception as e:
        logger.warning("Media index notification failed for {path}: {error}", path=dest, error=e)


def write_bundle(
    dest: Path,
    artifacts: CollectedArtifacts,
    record: MetadataRecord,
    *,
    cache_dir: Path,
    share_subdir: str,
    indexer: MediaIndexer | None = None,
) -> ShareableCopy:
    """Write the bundle to ``dest`` and mirror it into the private cache.

    Raises ArchiveWriteError if the archive or its copy cannot be written. A
    partially written archive is removed before raising.
    """
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.unlink(missing_ok=True)
    except OSError as e:
        raise ArchiveWriteError(f"Cannot prepare {dest}: {e}") from e

    try:
        _write_archive(dest, artifacts, record)
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        _discard(dest)
        raise ArchiveWriteError(f"Failed to write bundle {dest}: {e}") from e

    logger.info("Bundle written to {path}", path=dest)
    _notify_indexer(indexer, dest)

    copy_path = cache_dir / share_subdir / dest.name
    try:
        copy_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(dest, copy_path)
    except OSError as e:
        raise ArchiveWriteError(f"Failed to copy bundle to {copy_path}: {e}") from e
    logger.debug("Shareable copy at {path}", path=copy_path)
    return ShareableCopy(path=copy_path, source=dest)
