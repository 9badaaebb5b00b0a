from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from diagbundle.export.models import HostFacts, MetadataRecord

ARCH64_LIBRARY_DIRS = frozenset({"arm64", "x86_64"})


def is_arch64_library_dir(native_library_dir: str | None) -> bool:
    """True iff the last path segment names a 64-bit ABI directory."""
    if not native_library_dir:
        return False
    return native_library_dir.rsplit("/", 1)[-1] in ARCH64_LIBRARY_DIRS


def _flatten_settings(settings: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in settings.items()}


def build_metadata(settings: Mapping[Any, Any], facts: HostFacts) -> MetadataRecord:
    device = facts.device
    package = facts.package
    return MetadataRecord(
        os_ver=device.os_release,
        api_level=device.api_level,
        device=f"{device.manufacturer} {device.model}",
        abi_list=",".join(device.supported_abis),
        os_arch64=bool(device.supported_64bit_abis),
        prebuilt=facts.signature_matches,
        app_id=package.package_name,
        app_ver_name=package.version_name,
        app_ver_code=package.version_code,
        app_arch64=is_arch64_library_dir(package.native_library_dir),
        module_ver_name=facts.module.version_name,
        module_ver_code=facts.module.version_code,
        module_settings=_flatten_settings(settings),
    )
