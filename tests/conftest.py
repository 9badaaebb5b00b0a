from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from diagbundle.export.models import DeviceInfo, HostFacts, ModuleInfo, PackageInfo
from diagbundle.utils.logging import LogPaths, logger

BASE_MTIME = 1_700_000_000


@pytest.fixture(autouse=True)
def share_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the share directory at a temporary location for every test."""
    from diagbundle.share import _resolve_share_dir

    share = tmp_path / "share"
    monkeypatch.setenv("DIAGBUNDLE_SHARE_DIR", str(share))
    _resolve_share_dir.cache_clear()
    yield share
    _resolve_share_dir.cache_clear()
    logger.remove()


@pytest.fixture
def host_facts() -> HostFacts:
    return HostFacts(
        device=DeviceInfo(
            os_release="14",
            api_level=34,
            manufacturer="Google",
            model="Pixel 8",
            supported_abis=["arm64-v8a", "armeabi-v7a", "armeabi"],
            supported_64bit_abis=["arm64-v8a"],
        ),
        package=PackageInfo(
            package_name="com.example.app",
            version_name="7.1.0",
            version_code=7100000,
            native_library_dir="/data/app/com.example.app/lib/arm64",
        ),
        module=ModuleInfo(version_name="1.2.3", version_code=10203),
        signature_matches=True,
    )


@pytest.fixture
def log_paths(tmp_path: Path) -> LogPaths:
    return LogPaths.in_dir(tmp_path / "logs")


def make_file(path: Path, content: bytes | str = b"data", mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def make_tombstones(directory: Path, count: int) -> list[Path]:
    """Create ``count`` tombstones, tombstone_00 oldest, with distinct mtimes."""
    return [
        make_file(directory / f"tombstone_{i:02d}", f"crash {i}", BASE_MTIME + i * 60)
        for i in range(count)
    ]
