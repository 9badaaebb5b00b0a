"""Collaborators supplied by the host: facts, media indexing and storage permission."""

from __future__ import annotations

import asyncio
import os
import platform
import re
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from diagbundle.config import HostConfig
from diagbundle.exception import IndexNotifyError
from diagbundle.export.models import DeviceInfo, HostFacts, ModuleInfo, PackageInfo
from diagbundle.utils.logging import logger

_ABI_ALIASES = {
    "aarch64": "arm64",
    "arm64": "arm64",
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
}
_ABIS_64 = frozenset({"arm64", "x86_64"})


class MediaIndexer(Protocol):
    def scan(self, path: Path) -> None: ...


class PermissionGate(Protocol):
    def is_required(self) -> bool: ...

    async def request(self) -> bool: ...


class NullMediaIndexer:
    def scan(self, path: Path) -> None:
        pass


class CommandMediaIndexer:
    """Announces a new file by running ``command + [path]``."""

    def __init__(self, command: Sequence[str], timeout: float = 10.0) -> None:
        if not command:
            raise ValueError("Index command cannot be empty")
        self._command = list(command)
        self._timeout = timeout

    def scan(self, path: Path) -> None:
        try:
            proc = subprocess.run(
                [*self._command, str(path)],
                capture_output=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise IndexNotifyError(f"Failed to run index command: {e}") from e
        if proc.returncode != 0:
            detail = proc.stderr.decode("utf-8", errors="replace").strip()
            raise IndexNotifyError(f"Index command exited with {proc.returncode}: {detail}")


class NoPermissionGate:
    def is_required(self) -> bool:
        return False

    async def request(self) -> bool:
        return True


class StaticPermissionGate:
    def __init__(self, *, required: bool = True, granted: bool = True) -> None:
        self._required = required
        self._granted = granted
        self.requests = 0

    def is_required(self) -> bool:
        return self._required

    async def request(self) -> bool:
        self.requests += 1
        return self._granted


class WritableDirectoryGate:
    """Grants storage access when the nearest existing ancestor of ``target`` is writable."""

    def __init__(self, target: Path) -> None:
        self._target = target

    def is_required(self) -> bool:
        return os.name == "posix"

    async def request(self) -> bool:
        return await asyncio.to_thread(self._check)

    def _check(self) -> bool:
        candidate = self._target.parent.absolute()
        while not candidate.exists():
            if candidate.parent == candidate:
                return False
            candidate = candidate.parent
        granted = os.access(candidate, os.W_OK)
        if not granted:
            logger.info("Storage access denied for {path}", path=candidate)
        return granted


def _normalize_abi(machine: str) -> str:
    return _ABI_ALIASES.get(machine.lower(), machine.lower())


def _api_level(release: str) -> int:
    match = re.match(r"\d+", release)
    return int(match.group(0)) if match else 0


def version_code(version: str) -> int:
    """``major*10000 + minor*100 + patch`` for a dotted version string."""
    parts = [int(m) for m in re.findall(r"\d+", version)[:3]]
    parts += [0] * (3 - len(parts))
    major, minor, patch = parts
    return major * 10000 + minor * 100 + patch


def detect_device() -> DeviceInfo:
    release = platform.release()
    abi = _normalize_abi(platform.machine())
    return DeviceInfo(
        os_release=release,
        api_level=_api_level(release),
        manufacturer=platform.system() or "unknown",
        model=platform.machine() or "unknown",
        supported_abis=[abi] if abi else [],
        supported_64bit_abis=[abi] if abi in _ABIS_64 else [],
    )


def _signature_matches(host: HostConfig) -> bool:
    if not host.signature_digest or not host.prebuilt_signature_digest:
        return False
    return host.signature_digest.lower() == host.prebuilt_signature_digest.lower()


def detect_host_facts(host: HostConfig) -> HostFacts:
    from diagbundle.constant import VERSION

    return HostFacts(
        device=detect_device(),
        package=PackageInfo(
            package_name=host.app_id,
            version_name=host.app_version_name,
            version_code=host.app_version_code,
            native_library_dir=host.native_library_dir,
        ),
        module=ModuleInfo(version_name=VERSION, version_code=version_code(VERSION)),
        signature_matches=_signature_matches(host),
    )


def load_host_facts(path: Path) -> HostFacts:
    return HostFacts.model_validate_json(path.read_text(encoding="utf-8"))
