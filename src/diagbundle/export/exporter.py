from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from diagbundle.config import Config
from diagbundle.exception import (
    ArchiveWriteError,
    ExportInProgressError,
    MetadataError,
    PermissionDeniedError,
)
from diagbundle.export.collector import MAX_TOMBSTONES, collect
from diagbundle.export.host import (
    CommandMediaIndexer,
    MediaIndexer,
    NoPermissionGate,
    NullMediaIndexer,
    PermissionGate,
    detect_host_facts,
)
from diagbundle.export.metadata import build_metadata
from diagbundle.export.models import ExportOutcome, ExportStatus, HostFacts, ShareableCopy
from diagbundle.export.writer import write_bundle
from diagbundle.i18n import DEFAULT_LOCALE, get_message
from diagbundle.utils.logging import LogPaths, default_log_paths, logger

FactsSource = Callable[[], HostFacts]
SettingsSource = Callable[[], Mapping[str, Any]]


class DiagnosticExporter:
    """Runs one diagnostic export at a time, off the caller's event loop."""

    def __init__(
        self,
        *,
        tombstone_dir: Path,
        log_paths: LogPaths,
        output_path: Path,
        cache_dir: Path,
        facts_source: FactsSource,
        settings_source: SettingsSource = dict,
        app_id: str,
        share_subdir: str = "outbox",
        max_tombstones: int = MAX_TOMBSTONES,
        permission_gate: PermissionGate | None = None,
        indexer: MediaIndexer | None = None,
        locale: str = DEFAULT_LOCALE,
    ) -> None:
        self.tombstone_dir = tombstone_dir
        self.log_paths = log_paths
        self.output_path = output_path
        self.cache_dir = cache_dir
        self.share_subdir = share_subdir
        self.max_tombstones = max_tombstones
        self.app_id = app_id
        self.locale = locale
        self._facts_source = facts_source
        self._settings_source = settings_source
        self._gate: PermissionGate = permission_gate or NoPermissionGate()
        self._indexer: MediaIndexer = indexer or NullMediaIndexer()
        self._latch = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Config,
        *,
        log_paths: LogPaths | None = None,
        facts_source: FactsSource | None = None,
        permission_gate: PermissionGate | None = None,
        locale: str = DEFAULT_LOCALE,
    ) -> DiagnosticExporter:
        export = config.export
        indexer: MediaIndexer | None = None
        if export.index_command:
            indexer = CommandMediaIndexer(export.index_command)
        return cls(
            tombstone_dir=export.resolved_tombstone_dir(),
            log_paths=log_paths or default_log_paths(),
            output_path=export.resolved_output_path(),
            cache_dir=export.resolved_cache_dir(),
            facts_source=facts_source or (lambda: detect_host_facts(config.host)),
            settings_source=lambda: config.settings,
            app_id=config.host.app_id,
            share_subdir=export.share_subdir,
            max_tombstones=export.max_tombstones,
            permission_gate=permission_gate,
            indexer=indexer,
            locale=locale,
        )

    @property
    def busy(self) -> bool:
        return self._latch.locked()

    async def export(self) -> ExportOutcome:
        """Export and report the result as an outcome instead of raising."""
        try:
            return await self.export_or_raise()
        except ExportInProgressError:
            return ExportOutcome(status=ExportStatus.BUSY, message_key="export_in_progress")
        except PermissionDeniedError as e:
            return ExportOutcome(
                status=ExportStatus.PERMISSION_DENIED,
                message_key="write_storage_failed",
                error=e.message,
            )
        except (ArchiveWriteError, MetadataError) as e:
            return ExportOutcome(
                status=ExportStatus.FAILURE, message_key="save_log_failed", error=e.message
            )

    async def export_or_raise(self) -> ExportOutcome:
        if not self._latch.acquire(blocking=False):
            logger.info("Export already running, ignoring trigger")
            raise ExportInProgressError("An export is already running")
        try:
            if self._gate.is_required() and not await self._gate.request():
                logger.info("Storage permission denied, export skipped")
                raise PermissionDeniedError("Storage permission denied")
            settings = self._snapshot_settings()
        except BaseException:
            self._latch.release()
            raise

        # The latch now belongs to the worker thread; whoever takes `claim` releases it.
        claim = threading.Lock()
        work = asyncio.ensure_future(asyncio.to_thread(self._run_exclusive, settings, claim))
        work.add_done_callback(lambda fut: self._release_unclaimed(fut, claim))
        logger.info("Starting diagnostic export to {path}", path=self.output_path)
        try:
            # a cancelled caller leaves the worker running with the latch held
            copy = await asyncio.shield(work)
        except (ArchiveWriteError, MetadataError) as e:
            logger.error("Diagnostic export failed: {error}", error=e.message)
            raise

        logger.info("Diagnostic export finished: {path}", path=self.output_path)
        title = get_message("share_log_title", self.locale)
        return ExportOutcome(
            status=ExportStatus.SUCCESS,
            message_key="save_log_success",
            output_path=self.output_path,
            share=copy.share_request(self.app_id, title),
        )

    def start(
        self, on_complete: Callable[[ExportOutcome], None] | None = None
    ) -> asyncio.Task[ExportOutcome]:
        """Schedule an export on the running loop; ``on_complete`` is called on that loop.

        A cancelled export reports nothing. An unexpected error is reported as a failure.
        """
        task = asyncio.get_running_loop().create_task(self.export())
        if on_complete is not None:

            def _deliver(t: asyncio.Task[ExportOutcome]) -> None:
                if t.cancelled():
                    return
                exc = t.exception()
                if exc is None:
                    on_complete(t.result())
                    return
                logger.error("Diagnostic export crashed: {error}", error=exc)
                on_complete(
                    ExportOutcome(
                        status=ExportStatus.FAILURE, message_key="save_log_failed", error=str(exc)
                    )
                )

            task.add_done_callback(_deliver)
        return task

    def _run_exclusive(self, settings: dict[str, Any], claim: threading.Lock) -> ShareableCopy:
        if not claim.acquire(blocking=False):
            # the awaiting task was torn down before this thread started
            raise asyncio.CancelledError()
        try:
            return self._run(settings)
        finally:
            self._latch.release()

    def _release_unclaimed(self, fut: asyncio.Future[ShareableCopy], claim: threading.Lock) -> None:
        if not fut.cancelled():
            # nobody awaits the result once the caller was cancelled
            fut.exception()
        if claim.acquire(blocking=False):
            self._latch.release()

    def _snapshot_settings(self) -> dict[str, Any]:
        try:
            return dict(self._settings_source())
        except Exception as e:
            raise MetadataError(f"Failed to snapshot settings: {e}") from e

    def _load_facts(self) -> HostFacts:
        try:
            return self._facts_source()
        except Exception as e:
            raise MetadataError(f"Failed to read host facts: {e}") from e

    def _run(self, settings: dict[str, Any]) -> ShareableCopy:
        artifacts = collect(
            self.tombstone_dir,
            self.log_paths.current,
            self.log_paths.previous,
            self.max_tombstones,
        )
        record = build_metadata(settings, self._load_facts())
        return write_bundle(
            self.output_path,
            artifacts,
            record,
            cache_dir=self.cache_dir,
            share_subdir=self.share_subdir,
            indexer=self._indexer,
        )
