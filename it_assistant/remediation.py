"""Remediation actions for detected issues.

Fixes are looked up by issue id in a handler table. Process optimisation never
terminates anything: it returns a ``suggestion`` naming the candidate, and the
caller must confirm before invoking :meth:`RemediationDispatcher.close_process`.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import Enum
import logging
import os
import threading
from typing import Any, Callable, Dict, Iterator, List, Optional

from .cache import CacheProvider, find_large_files
from .config import Settings
from .diagnostics import HIGH_CPU_USAGE, HIGH_DISK_USAGE, LARGE_CACHE_FILES, LOW_MEMORY
from .errors import ProcessVanished, TerminationFailed, UnknownIssue
from .events import Event, EventSink, record_event
from .formatting import format_bytes
from .processes import ProcessControl
from .system_state import MetricsProvider, ProcessUsage

logger = logging.getLogger(__name__)

CACHE_LOCK = "cache"


class Outcome(str, Enum):
    FIXED = "fixed"
    SUGGESTION = "suggestion"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ProcessInfo:
    pid: int
    name: str


@dataclass(frozen=True)
class RemediationResult:
    outcome: Outcome
    message: str
    process_info: Optional[ProcessInfo] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome in (Outcome.FIXED, Outcome.SUGGESTION)


Handler = Callable[[], RemediationResult]


class ResourceLocks:
    """One lock per named resource, acquired in sorted order.

    A lock is dropped once no thread holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, *names: str) -> Iterator[None]:
        names = tuple(sorted(set(names)))
        with self._guard:
            locks = []
            for name in names:
                locks.append(self._locks.setdefault(name, threading.Lock()))
                self._users[name] = self._users.get(name, 0) + 1
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            with self._guard:
                for name in names:
                    self._users[name] -= 1
                    if not self._users[name]:
                        del self._users[name]
                        del self._locks[name]


class RemediationDispatcher:
    def __init__(
        self,
        settings: Settings,
        metrics: MetricsProvider,
        cache_provider: CacheProvider,
        process_control: ProcessControl,
        events: Optional[EventSink] = None,
        own_pid: Optional[int] = None,
    ) -> None:
        self.settings = settings
        self.metrics = metrics
        self.cache_provider = cache_provider
        self.process_control = process_control
        self.events = events
        self.own_pid = os.getpid() if own_pid is None else own_pid
        self._locks = ResourceLocks()
        self._handlers: Dict[str, Handler] = {}

        self.register(self.optimize_cpu, HIGH_CPU_USAGE, "optimizeCpu")
        self.register(self.optimize_memory, LOW_MEMORY, "optimizeMemory")
        self.register(self.clean_disk, HIGH_DISK_USAGE, "cleanDisk")
        self.register(self.clean_cache, LARGE_CACHE_FILES, "cleanCache")

    def register(self, handler: Handler, *issue_ids: str) -> None:
        for issue_id in issue_ids:
            self._handlers[issue_id] = handler

    def handles(self, issue_id: str) -> bool:
        return issue_id in self._handlers

    def fix(self, issue_id: str) -> RemediationResult:
        handler = self._handlers.get(issue_id)
        if handler is None:
            error = UnknownIssue(issue_id)
            logger.warning("%s", error)
            return RemediationResult(Outcome.UNSUPPORTED, str(error))
        logger.info("Attempting to fix issue: %s", issue_id)
        try:
            return handler()
        except Exception as exc:
            logger.exception("Error fixing issue %s", issue_id)
            return RemediationResult(Outcome.FAILED, f"Error fixing issue {issue_id}: {exc}")

    def optimize_cpu(self) -> RemediationResult:
        return self._suggest_close("cpu_percent", self.settings.thresholds.process_cpu_percent, "CPU")

    def optimize_memory(self) -> RemediationResult:
        return self._suggest_close("memory_percent", self.settings.thresholds.process_memory_percent, "memory")

    def clean_cache(self, path: Optional[str] = None) -> RemediationResult:
        paths = [path] if path else list(self.settings.cache_paths)
        logger.info("Cleaning cache at %s", path or "all cache locations")
        # Cache roots nest (Caches and Caches/Google/Chrome), so every clean shares one lock
        with self._locks.hold(CACHE_LOCK):
            report = self.cache_provider.clean_all(paths)

        freed = report.total_bytes_freed
        record_event(
            self.events,
            Event(
                "cache_cleaned",
                f"Cleaned {report.success_count} cache locations. {report.error_count} locations skipped "
                f"due to permissions. Freed {format_bytes(freed)}.",
            ),
        )
        details = {
            "total_bytes_freed": freed,
            "cleaned_paths": [
                {
                    "path": result.path,
                    "bytes_freed": result.bytes_freed,
                    "files_removed": result.files_removed,
                    "skipped": [asdict(skip) for skip in result.skipped],
                }
                for result in report.cleaned
            ],
            "skipped_paths": [asdict(skip) for skip in report.skipped_roots],
        }
        if not report.cleaned and report.skipped_roots:
            return RemediationResult(
                Outcome.FAILED,
                f"Cache cleaning failed: all {report.error_count} locations were skipped due to permission restrictions.",
                details=details,
            )
        return RemediationResult(
            Outcome.FIXED,
            f"Cache cleaning completed. Successfully cleaned {report.success_count} locations "
            f"({format_bytes(freed)} freed). {report.error_count} locations were skipped due to "
            "permission restrictions.",
            details=details,
        )

    def clean_disk(self) -> RemediationResult:
        cache_result = self.clean_cache()
        if cache_result.outcome is Outcome.FAILED:
            return RemediationResult(Outcome.FAILED, "Failed to clean cache files", details=cache_result.details)

        downloads = self.settings.downloads_path
        with self._locks.hold(f"scan:{os.path.abspath(downloads)}"):
            large_files = find_large_files(downloads, self.settings.thresholds.large_file_bytes)

        details = dict(cache_result.details)
        details["large_files"] = [
            {"path": f.path, "size_bytes": f.size_bytes, "location": "Downloads"} for f in large_files
        ]
        return RemediationResult(
            Outcome.FIXED,
            f"Cleaned cache files ({format_bytes(cache_result.details['total_bytes_freed'])} freed) and "
            f"identified {len(large_files)} large files that could be removed",
            details=details,
        )

    def close_process(self, pid: int) -> RemediationResult:
        """Terminate ``pid``. Only call after the user confirmed a suggestion."""
        if pid <= 0:
            return RemediationResult(Outcome.FAILED, "Invalid process ID", details={"reason": "invalid"})
        if pid == self.own_pid:
            return RemediationResult(
                Outcome.FAILED, "Cannot close it-assistant itself", details={"reason": "self"}
            )

        with self._locks.hold(f"pid:{pid}"):
            if not self.process_control.exists(pid):
                return _vanished(pid)
            try:
                self.process_control.terminate(pid)
            except ProcessVanished:
                return _vanished(pid)
            except TerminationFailed as exc:
                logger.error("%s", exc)
                return RemediationResult(
                    Outcome.FAILED, str(exc), details={"reason": "termination_failed", "pid": pid}
                )

        record_event(self.events, Event("process_terminated", f"Process {pid} terminated"))
        return RemediationResult(
            Outcome.FIXED, f"Process {pid} terminated successfully", details={"pid": pid}
        )

    def _suggest_close(self, attribute: str, limit: float, label: str) -> RemediationResult:
        with self._locks.hold("processes"):
            processes = self.metrics.running_processes()

        candidates: List[ProcessUsage] = [
            proc
            for proc in sorted(processes, key=lambda p: getattr(p, attribute), reverse=True)
            if getattr(proc, attribute) > limit and not self._is_protected(proc)
        ]
        if not candidates:
            return RemediationResult(
                Outcome.FAILED, f"No non-essential high {label} processes found to optimize"
            )

        top = candidates[0]
        usage = getattr(top, attribute)
        suffix = "CPU" if label == "CPU" else "of memory"
        return RemediationResult(
            Outcome.SUGGESTION,
            f"Identified {top.name} (PID: {top.pid}) using {usage:.1f}% {suffix}",
            process_info=ProcessInfo(pid=top.pid, name=top.name),
            details={"action": "suggest_close", attribute: usage},
        )

    def _is_protected(self, proc: ProcessUsage) -> bool:
        if proc.pid == self.own_pid:
            return True
        return any(name in proc.name for name in self.settings.essential_processes)


def _vanished(pid: int) -> RemediationResult:
    return RemediationResult(
        Outcome.FAILED, str(ProcessVanished(pid)), details={"reason": "vanished", "pid": pid}
    )
