"""Collect a point-in-time snapshot of host metrics."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime
import logging
import os
import time
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, TypeVar

import psutil

from .cache import CacheLocation, CacheProvider
from .config import Settings
from .errors import ProviderUnavailable
from .hardware import HardwareHealth, read_hardware_health
from .security import Vulnerability, VulnerabilityScanner

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProcessUsage:
    pid: int
    name: str
    cpu_percent: float
    memory_percent: float


@dataclass(frozen=True)
class MemoryUsage:
    total: int
    free: int

    def __post_init__(self):
        if self.total < 0 or not 0 <= self.free <= self.total:
            raise ValueError(f"invalid memory reading: free={self.free} total={self.total}")

    @property
    def used(self) -> int:
        return self.total - self.free

    @property
    def free_ratio(self) -> float:
        return self.free / self.total if self.total else 1.0


@dataclass(frozen=True)
class DiskUsage:
    total: int
    used: int
    percent: float


@dataclass
class MetricsSnapshot:
    timestamp: datetime
    cpu_load: Tuple[float, float, float]
    memory: Optional[MemoryUsage] = None
    disk: Optional[DiskUsage] = None
    running_processes: List[ProcessUsage] = field(default_factory=list)
    hardware: Optional[HardwareHealth] = None
    cache_locations: List[CacheLocation] = field(default_factory=list)
    # None when the scan did not run or failed
    vulnerabilities: Optional[List[Vulnerability]] = None


class MetricsProvider(Protocol):
    def snapshot(self) -> MetricsSnapshot: ...

    def running_processes(self) -> List[ProcessUsage]: ...


class PsutilMetricsProvider:
    """MetricsProvider backed by psutil and the cache/security helpers.

    In-process sub-metrics run under ``settings.metrics_timeout``. The hardware
    reports and the update check wait for their own command timeouts. A
    sub-metric that fails or times out is left absent instead of failing the
    snapshot.
    """

    def __init__(
        self,
        settings: Settings,
        cache_provider: Optional[CacheProvider] = None,
        scanner: Optional[VulnerabilityScanner] = None,
    ) -> None:
        self.settings = settings
        self.cache_provider = cache_provider or CacheProvider()
        self.scanner = scanner or VulnerabilityScanner(settings.scanned_ports, settings.update_check_timeout)

    def budgets(self) -> Dict[str, float]:
        """Seconds to wait for each sub-metric."""
        base = self.settings.metrics_timeout
        budgets = dict.fromkeys(("cpu_load", "memory", "disk", "processes", "cache"), base)
        # system_profiler and diskutil run one after the other
        budgets["hardware"] = 2 * self.settings.report_timeout + base
        # softwareupdate, then the port checks
        budgets["vulnerabilities"] = self.settings.update_check_timeout + base
        return budgets

    def snapshot(self) -> MetricsSnapshot:
        budgets = self.budgets()
        executor = ThreadPoolExecutor(max_workers=7, thread_name_prefix="metrics")
        # Every sub-metric runs at once, so each budget counts from here
        started = time.monotonic()
        try:
            futures = {
                "cpu_load": executor.submit(_load_average),
                "memory": executor.submit(_memory_usage),
                "disk": executor.submit(_disk_usage),
                "processes": executor.submit(gather_processes),
                "hardware": executor.submit(read_hardware_health, self.settings.report_timeout),
                "cache": executor.submit(self.cache_provider.scan, self.settings.cache_paths),
                "vulnerabilities": executor.submit(self.scanner.scan),
            }
            results = {
                name: self._collect(name, future, budgets[name], started)
                for name, future in futures.items()
            }
        finally:
            # A hung call must not keep snapshot() waiting
            executor.shutdown(wait=False, cancel_futures=True)

        return MetricsSnapshot(
            timestamp=datetime.now(),
            cpu_load=results["cpu_load"] or (0.0, 0.0, 0.0),
            memory=results["memory"],
            disk=results["disk"],
            running_processes=results["processes"] or [],
            hardware=results["hardware"],
            cache_locations=results["cache"] or [],
            vulnerabilities=results["vulnerabilities"],
        )

    def running_processes(self) -> List[ProcessUsage]:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="metrics")
        try:
            future = executor.submit(gather_processes)
            return self._collect("processes", future, self.settings.metrics_timeout) or []
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _collect(self, name: str, future, budget: float, started: Optional[float] = None) -> Optional[T]:
        try:
            return _result(name, future, budget, started)
        except ProviderUnavailable as exc:
            logger.warning("%s", exc)
            return None


def _result(name: str, future, budget: float, started: Optional[float] = None):
    remaining = budget if started is None else budget - (time.monotonic() - started)
    try:
        return future.result(timeout=max(remaining, 0))
    except FutureTimeout as exc:
        raise ProviderUnavailable(name, f"timed out after {budget:g}s") from exc
    except Exception as exc:
        raise ProviderUnavailable(name, str(exc)) from exc


def gather_processes() -> List[ProcessUsage]:
    """List running processes with CPU and memory shares, highest memory first."""
    processes = list(psutil.process_iter())
    _prime_cpu_percent(processes)
    usage = _process_usage(processes)
    return sorted(usage, key=lambda p: p.memory_percent, reverse=True)


def _load_average() -> Tuple[float, float, float]:
    if hasattr(os, "getloadavg"):
        return os.getloadavg()
    return psutil.getloadavg()


def _memory_usage() -> MemoryUsage:
    memory = psutil.virtual_memory()
    return MemoryUsage(total=memory.total, free=min(memory.available, memory.total))


def _disk_usage() -> DiskUsage:
    usage = psutil.disk_usage(os.path.abspath(os.sep))
    return DiskUsage(total=usage.total, used=usage.used, percent=usage.percent)


def _prime_cpu_percent(processes: Iterable[psutil.Process]) -> None:
    for proc in processes:
        try:
            proc.cpu_percent(None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    time.sleep(0.1)


def _process_usage(processes: Iterable[psutil.Process]) -> List[ProcessUsage]:
    usage: List[ProcessUsage] = []
    seen = set()
    for proc in processes:
        if proc.pid in seen:
            continue
        try:
            with proc.oneshot():
                usage.append(
                    ProcessUsage(
                        pid=proc.pid,
                        name=proc.name(),
                        cpu_percent=proc.cpu_percent(None),
                        memory_percent=proc.memory_percent(),
                    )
                )
                seen.add(proc.pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return usage
