from __future__ import annotations


class DiagBundleError(Exception):
    """Base exception class for diagbundle."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigError(DiagBundleError, ValueError):
    """Configuration error."""

    pass


class CollectionError(DiagBundleError):
    """Crash artifact directory could not be listed."""

    pass


class MetadataError(DiagBundleError):
    """Host facts needed for info.json could not be obtained."""

    pass


class ArchiveWriteError(DiagBundleError, OSError):
    """The bundle archive or its shareable copy could not be written."""

    pass


class IndexNotifyError(DiagBundleError):
    """The media index service rejected a scan request."""

    pass


class PermissionDeniedError(DiagBundleError):
    """Storage permission was declined."""

    pass


class ExportInProgressError(DiagBundleError):
    """Another export is already running."""

    pass
