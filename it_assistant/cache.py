"""Scan and clean cache directories."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import os
from typing import Iterable, List, Sequence

from .errors import PermissionDenied

logger = logging.getLogger(__name__)

PROTECTED_SUFFIXES = (".lock", ".db")


@dataclass(frozen=True)
class CacheLocation:
    path: str
    size_bytes: int
    last_modified: datetime


@dataclass(frozen=True)
class SkippedPath:
    path: str
    reason: str


@dataclass
class PathCleanResult:
    path: str
    bytes_freed: int = 0
    files_removed: int = 0
    skipped: List[SkippedPath] = field(default_factory=list)


@dataclass
class CacheCleanReport:
    cleaned: List[PathCleanResult] = field(default_factory=list)
    skipped_roots: List[SkippedPath] = field(default_factory=list)

    @property
    def total_bytes_freed(self) -> int:
        return sum(result.bytes_freed for result in self.cleaned)

    @property
    def success_count(self) -> int:
        return len(self.cleaned)

    @property
    def error_count(self) -> int:
        return len(self.skipped_roots)


@dataclass(frozen=True)
class LargeFile:
    path: str
    size_bytes: int


class CacheProvider:
    """Filesystem-backed cache scanning and cleaning."""

    def scan(self, paths: Iterable[str]) -> List[CacheLocation]:
        locations: List[CacheLocation] = []
        for cache_path in paths:
            try:
                stats = os.stat(cache_path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Error reading cache location %s: %s", cache_path, exc)
                continue
            size = directory_size(cache_path) if os.path.isdir(cache_path) else stats.st_size
            locations.append(
                CacheLocation(
                    path=cache_path,
                    size_bytes=size,
                    last_modified=datetime.fromtimestamp(stats.st_mtime),
                )
            )
        logger.info("Found %d cache locations", len(locations))
        return locations

    def clean(self, path: str) -> PathCleanResult:
        """Remove everything removable under ``path``.

        Raises PermissionDenied when the root itself cannot be listed; failures
        below the root are recorded in the result and skipped.
        """
        result = PathCleanResult(path=path)
        if not os.path.exists(path):
            logger.info("Cache directory does not exist: %s", path)
            return result
        try:
            entries = list(os.scandir(path))
        except OSError as exc:
            raise PermissionDenied(path, str(exc)) from exc
        self._clean_entries(entries, result)
        return result

    def clean_all(self, paths: Sequence[str]) -> CacheCleanReport:
        report = CacheCleanReport()
        for cache_path in paths:
            try:
                report.cleaned.append(self.clean(cache_path))
            except PermissionDenied as exc:
                logger.warning("Skipping cache location %s: %s", cache_path, exc.reason)
                report.skipped_roots.append(SkippedPath(cache_path, exc.reason))
        return report

    def _clean_entries(self, entries: Iterable[os.DirEntry], result: PathCleanResult) -> None:
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    if entry.name.startswith("."):
                        continue
                    self._clean_directory(entry.path, result)
                elif not entry.name.endswith(PROTECTED_SUFFIXES):
                    size = entry.stat(follow_symlinks=False).st_size
                    os.unlink(entry.path)
                    result.bytes_freed += size
                    result.files_removed += 1
            except OSError as exc:
                logger.debug("Could not remove %s: %s", entry.path, exc)
                result.skipped.append(SkippedPath(entry.path, str(exc)))

    def _clean_directory(self, path: str, result: PathCleanResult) -> None:
        with os.scandir(path) as iterator:
            entries = list(iterator)
        self._clean_entries(entries, result)
        try:
            os.rmdir(path)
        except OSError:
            # Not empty (protected or unremovable files remain)
            pass


def directory_size(path: str) -> int:
    total = 0
    try:
        entries = list(os.scandir(path))
    except OSError as exc:
        logger.warning("Cannot read directory %s: %s", path, exc)
        return 0
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                if not entry.name.startswith("."):
                    total += directory_size(entry.path)
            else:
                total += entry.stat(follow_symlinks=False).st_size
        except OSError as exc:
            logger.debug("Error getting stats for %s: %s", entry.path, exc)
    return total


def find_large_files(directory: str, min_bytes: int) -> List[LargeFile]:
    """Files under ``directory`` strictly larger than ``min_bytes``, biggest first."""
    found: List[LargeFile] = []
    for root, _dirs, files in os.walk(directory, onerror=_log_walk_error):
        for name in files:
            file_path = os.path.join(root, name)
            try:
                size = os.stat(file_path, follow_symlinks=False).st_size
            except OSError:
                continue
            if size > min_bytes:
                found.append(LargeFile(path=file_path, size_bytes=size))
    return sorted(found, key=lambda f: f.size_bytes, reverse=True)


def _log_walk_error(exc: OSError) -> None:
    logger.debug("Error walking %s: %s", exc.filename, exc)
