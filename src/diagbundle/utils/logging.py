from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record
else:  # pragma: no cover - runtime fallback for typing-only import
    Record = dict[str, Any]  # type: ignore[assignment]

MODULE_ROOTS = ("diagbundle",)
DEFAULT_LEVEL_KEY = "default"
LOG_FILE_NAME = "diagbundle.log"
OLD_LOG_FILE_NAME = "diagbundle.old.log"

logger.remove()


@dataclass(frozen=True, slots=True)
class LogPaths:
    """Fixed locations of the current and the previous (rotated) log file."""

    current: Path
    previous: Path

    @classmethod
    def in_dir(cls, log_dir: Path) -> LogPaths:
        return cls(current=log_dir / LOG_FILE_NAME, previous=log_dir / OLD_LOG_FILE_NAME)


def default_log_paths() -> LogPaths:
    from diagbundle.share import get_share_dir

    return LogPaths.in_dir(get_share_dir() / "logs")


def configure_file_logging(
    paths: LogPaths,
    *,
    base_level: str,
    module_levels: Mapping[str, str] | None = None,
    rotation: str = "5 MB",
) -> None:
    """Configure the global loguru logger with per-module filtering.

    The log left over from the previous run becomes the previous log, and a
    size-rotated log is moved onto the same fixed path.
    """

    logger.remove()
    paths.current.parent.mkdir(parents=True, exist_ok=True)
    rotate_error = _rotate_on_start(paths)
    normalized_levels = _normalize_levels(module_levels or {}, base_level)
    module_filter = _ModuleLevelFilter(normalized_levels)
    logger.add(
        paths.current,
        level="TRACE",  # capture everything, filter decides what to keep
        rotation=rotation,
        compression=_move_to(paths.previous),
        filter=module_filter,
    )
    if rotate_error is not None:
        logger.warning(
            "Failed to move the previous log to {path}: {error}",
            path=paths.previous,
            error=rotate_error,
        )
    logger.debug("Configured log levels: {levels}", levels=normalized_levels)


def _rotate_on_start(paths: LogPaths) -> OSError | None:
    try:
        if paths.current.is_file() and paths.current.stat().st_size > 0:
            os.replace(paths.current, paths.previous)
    except OSError as e:
        # Keep appending to the current log.
        return e
    return None


def _move_to(target: Path) -> Callable[[str], None]:
    def _compress(rotated: str) -> None:
        os.replace(rotated, target)

    return _compress


def _normalize_levels(levels: Mapping[str, str], base_level: str) -> dict[str, int]:
    normalized: dict[str, int] = {}
    for module, level_name in levels.items():
        key = module.strip().rstrip(".").lower() or DEFAULT_LEVEL_KEY
        normalized[key] = _level_to_no(level_name)
    if DEFAULT_LEVEL_KEY not in normalized:
        normalized[DEFAULT_LEVEL_KEY] = _level_to_no(base_level)
    return normalized


def _level_to_no(level_name: str) -> int:
    normalized = level_name.strip().upper()
    try:
        return logger.level(normalized).no
    except ValueError as exc:  # pragma: no cover - loguru raises ValueError
        raise ValueError(f"Invalid log level '{level_name}'") from exc


class _ModuleLevelFilter:
    """Filter that enforces module-specific log levels."""

    def __init__(self, levels: Mapping[str, int]) -> None:
        self._levels = dict(levels)
        self._module_keys = sorted(
            (key for key in self._levels if key != DEFAULT_LEVEL_KEY),
            key=len,
            reverse=True,
        )

    def __call__(self, record: Record) -> bool:
        module_path = self._derive_module_path(record)
        threshold = self._resolve_threshold(module_path)
        return record["level"].no >= threshold

    def _resolve_threshold(self, module_path: str | None) -> int:
        if module_path:
            for key in self._module_keys:
                if module_path == key or module_path.startswith(f"{key}."):
                    return self._levels[key]
        return self._levels[DEFAULT_LEVEL_KEY]

    @staticmethod
    def _derive_module_path(record: Record) -> str | None:
        file_info = record.get("file")
        path_str = getattr(file_info, "path", None)
        if not path_str:
            return None
        path = Path(path_str)
        module_parts = path.with_suffix("").parts
        for idx, part in enumerate(module_parts):
            if part.lower() in MODULE_ROOTS:
                return ".".join(module_parts[idx:]).lower()
        module_name = record.get("module")
        return module_name.lower() if module_name else None
