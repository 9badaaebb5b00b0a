"""Diagnostic bundle export: collect artifacts, build metadata, write and share the archive."""

from diagbundle.export.collector import collect, collect_tombstones
from diagbundle.export.exporter import DiagnosticExporter
from diagbundle.export.metadata import build_metadata, is_arch64_library_dir
from diagbundle.export.models import (
    CollectedArtifacts,
    DiagnosticFile,
    ExportOutcome,
    ExportStatus,
    HostFacts,
    MetadataRecord,
    ShareableCopy,
    ShareRequest,
)
from diagbundle.export.writer import write_bundle

__all__ = [
    "CollectedArtifacts",
    "DiagnosticExporter",
    "DiagnosticFile",
    "ExportOutcome",
    "ExportStatus",
    "HostFacts",
    "MetadataRecord",
    "ShareRequest",
    "ShareableCopy",
    "build_metadata",
    "collect",
    "collect_tombstones",
    "is_arch64_library_dir",
    "write_bundle",
]
