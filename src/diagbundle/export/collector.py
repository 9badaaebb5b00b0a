from __future__ import annotations

import os
import stat
from pathlib import Path

from diagbundle.exception import CollectionError
from diagbundle.export.models import CollectedArtifacts, DiagnosticFile
from diagbundle.utils.logging import logger

MAX_TOMBSTONES = 5


def _stat_regular_file(path: Path) -> DiagnosticFile | None:
    try:
        st = path.stat()
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return DiagnosticFile(path=path, modified=st.st_mtime, size=st.st_size)


def _list_regular_files(directory: Path) -> list[DiagnosticFile]:
    """List regular files in enumeration order. A missing directory is empty."""
    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return []
    except OSError as e:
        raise CollectionError(f"Cannot list {directory}: {e}") from e

    files: list[DiagnosticFile] = []
    for entry in entries:
        try:
            if not entry.is_file():
                continue
            st = entry.stat()
        except OSError:
            # Removed between listing and stat
            continue
        files.append(DiagnosticFile(path=Path(entry.path), modified=st.st_mtime, size=st.st_size))
    return files


def collect_tombstones(
    tombstone_dir: Path, max_tombstones: int = MAX_TOMBSTONES
) -> list[DiagnosticFile]:
    """Most recent crash artifacts first, at most ``max_tombstones`` of them."""
    if max_tombstones < 0:
        raise ValueError(f"max_tombstones must be >= 0, got {max_tombstones}")
    try:
        files = _list_regular_files(tombstone_dir)
    except CollectionError as e:
        logger.warning("Skipping tombstones: {error}", error=e.message)
        return []
    # sorted() is stable with reverse=True, so equal mtimes keep enumeration order
    files = sorted(files, key=lambda f: f.modified, reverse=True)
    return files[:max_tombstones]


def collect(
    tombstone_dir: Path,
    current_log: Path,
    previous_log: Path,
    max_tombstones: int = MAX_TOMBSTONES,
) -> CollectedArtifacts:
    tombstones = collect_tombstones(tombstone_dir, max_tombstones)
    artifacts = CollectedArtifacts(
        tombstones=tombstones,
        current_log=_stat_regular_file(current_log),
        previous_log=_stat_regular_file(previous_log),
    )
    logger.debug(
        "Collected {count} tombstones, current log: {current}, previous log: {previous}",
        count=len(tombstones),
        current=artifacts.current_log is not None,
        previous=artifacts.previous_log is not None,
    )
    return artifacts
