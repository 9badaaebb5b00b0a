from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ZIP_MIME_TYPE = "application/zip"


@dataclass(frozen=True, slots=True)
class DiagnosticFile:
    """Read-only view of a file owned by the host."""

    path: Path
    modified: float
    size: int

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True, slots=True)
class CollectedArtifacts:
    tombstones: list[DiagnosticFile] = field(default_factory=list)
    current_log: DiagnosticFile | None = None
    previous_log: DiagnosticFile | None = None


class DeviceInfo(BaseModel):
    os_release: str
    api_level: int
    manufacturer: str
    model: str
    supported_abis: list[str] = Field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]
    supported_64bit_abis: list[str] = Field(default_factory=list)  # pyright: ignore[reportUnknownVariableType]


class PackageInfo(BaseModel):
    package_name: str
    version_name: str
    version_code: int
    native_library_dir: str | None = None


class ModuleInfo(BaseModel):
    version_name: str
    version_code: int


class HostFacts(BaseModel):
    device: DeviceInfo
    package: PackageInfo
    module: ModuleInfo
    signature_matches: bool = False


class MetadataRecord(BaseModel):
    """Contents of ``info.json``. Field order is the document's key order."""

    model_config = ConfigDict(frozen=True)

    os_ver: str
    api_level: int
    device: str
    abi_list: str
    os_arch64: bool
    prebuilt: bool
    app_id: str
    app_ver_name: str
    app_ver_code: int
    app_arch64: bool
    module_ver_name: str
    module_ver_code: int
    module_settings: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2, ensure_ascii=False)


class ShareRequest(BaseModel):
    path: Path
    uri: str
    mime_type: str = ZIP_MIME_TYPE
    title: str = ""


@dataclass(frozen=True, slots=True)
class ShareableCopy:
    """Private cache copy of a finished bundle; this is what gets shared."""

    path: Path
    source: Path

    def content_uri(self, app_id: str) -> str:
        return f"content://{app_id}.fileprovider/internal/{self.path.name}"

    def share_request(self, app_id: str, title: str = "") -> ShareRequest:
        return ShareRequest(path=self.path, uri=self.content_uri(app_id), title=title)


class ExportStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PERMISSION_DENIED = "permission_denied"
    BUSY = "busy"


class ExportOutcome(BaseModel):
    status: ExportStatus
    message_key: str
    output_path: Path | None = None
    share: ShareRequest | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ExportStatus.SUCCESS

    def message(self, locale: str = "en") -> str:
        from diagbundle.i18n import get_message

        return get_message(self.message_key, locale, path=self.output_path or "")
