"""Turn a metrics snapshot into a ranked list of actionable issues."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .config import Thresholds
from .formatting import format_bytes
from .hardware import BatteryHealth
from .security import Vulnerability
from .system_state import MetricsSnapshot, ProcessUsage


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Category(str, Enum):
    PERFORMANCE = "performance"
    STORAGE = "storage"
    SECURITY = "security"
    HARDWARE = "hardware"


SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}

HIGH_CPU_USAGE = "high_cpu_usage"
LOW_MEMORY = "low_memory"
HIGH_DISK_USAGE = "high_disk_usage"
LARGE_CACHE_FILES = "large_cache_files"
SECURITY_VULNERABILITIES = "security_vulnerabilities"
HIGH_CPU_TEMPERATURE = "high_cpu_temperature"
POOR_BATTERY_HEALTH = "poor_battery_health"


@dataclass(frozen=True)
class Issue:
    id: str
    category: Category
    severity: Severity
    description: str
    details: str
    recommendation: str
    can_fix: bool


def evaluate(snapshot: MetricsSnapshot, thresholds: Optional[Thresholds] = None) -> List[Issue]:
    """Apply every threshold rule to ``snapshot``. Pure: no I/O."""
    limits = thresholds or Thresholds()
    issues: List[Issue] = []

    for rule in (_check_cpu, _check_memory, _check_disk, _check_cache):
        issue = rule(snapshot, limits)
        if issue:
            issues.append(issue)

    if snapshot.vulnerabilities:
        issues.append(_security_issue(snapshot.vulnerabilities))

    issues.extend(_check_hardware(snapshot, limits))
    return issues


def rank(issues: Iterable[Issue]) -> List[Issue]:
    """Order by severity, highest first; equal severities keep their input order."""
    return sorted(issues, key=lambda issue: SEVERITY_ORDER[issue.severity])


def overall_severity(issues: Sequence[Issue]) -> Optional[Severity]:
    if not issues:
        return None
    return min((issue.severity for issue in issues), key=SEVERITY_ORDER.__getitem__)


def _check_cpu(snapshot: MetricsSnapshot, limits: Thresholds) -> Optional[Issue]:
    load_1m = snapshot.cpu_load[0]
    if load_1m <= limits.cpu_load_high:
        return None
    top = sorted(snapshot.running_processes, key=lambda p: p.cpu_percent, reverse=True)
    return Issue(
        id=HIGH_CPU_USAGE,
        category=Category.PERFORMANCE,
        severity=Severity.HIGH,
        description=f"High CPU usage detected ({load_1m * 100:.1f}%)",
        details=f"Top processes: {_process_summary(top, 'cpu_percent')}",
        recommendation="Consider closing unnecessary applications or investigate potential CPU-intensive processes",
        can_fix=True,
    )


def _check_memory(snapshot: MetricsSnapshot, limits: Thresholds) -> Optional[Issue]:
    memory = snapshot.memory
    if memory is None or memory.total == 0:
        return None
    free_ratio = memory.free_ratio
    if free_ratio >= limits.memory_free_low:
        return None
    top = sorted(snapshot.running_processes, key=lambda p: p.memory_percent, reverse=True)
    return Issue(
        id=LOW_MEMORY,
        category=Category.PERFORMANCE,
        severity=Severity.HIGH,
        description=f"Low available memory ({free_ratio * 100:.1f}% free)",
        details=f"Top memory consumers: {_process_summary(top, 'memory_percent')}",
        recommendation="Close unnecessary applications or consider adding more RAM",
        can_fix=True,
    )


def _check_disk(snapshot: MetricsSnapshot, limits: Thresholds) -> Optional[Issue]:
    disk = snapshot.disk
    if disk is None or disk.percent <= limits.disk_percent_high:
        return None
    return Issue(
        id=HIGH_DISK_USAGE,
        category=Category.STORAGE,
        severity=Severity.MEDIUM,
        description=f"High disk usage ({disk.percent:.0f}% used)",
        details=f"Available: {format_bytes(disk.total - disk.used)}, Total: {format_bytes(disk.total)}",
        recommendation="Clean temporary files, remove unused applications, or consider upgrading storage",
        can_fix=True,
    )


def _check_cache(snapshot: MetricsSnapshot, limits: Thresholds) -> Optional[Issue]:
    total = sum(location.size_bytes for location in snapshot.cache_locations)
    if total <= limits.cache_size_high:
        return None
    return Issue(
        id=LARGE_CACHE_FILES,
        category=Category.STORAGE,
        severity=Severity.LOW,
        description=f"Large cache files detected ({format_bytes(total)})",
        details=f"{len(snapshot.cache_locations)} cache locations found",
        recommendation="Clean cache files to free up disk space",
        can_fix=True,
    )


def _security_issue(vulnerabilities: Sequence[Vulnerability]) -> Issue:
    high = [v for v in vulnerabilities if v.severity == Severity.HIGH.value]
    if high:
        return Issue(
            id=SECURITY_VULNERABILITIES,
            category=Category.SECURITY,
            severity=Severity.HIGH,
            description=f"{len(high)} high-severity security vulnerabilities detected",
            details=", ".join(v.details for v in high),
            recommendation="Address security vulnerabilities immediately",
            can_fix=False,
        )
    return Issue(
        id=SECURITY_VULNERABILITIES,
        category=Category.SECURITY,
        severity=Severity.MEDIUM,
        description=f"{len(vulnerabilities)} security vulnerabilities detected",
        details=", ".join(v.details for v in vulnerabilities),
        recommendation="Review and address security vulnerabilities",
        can_fix=False,
    )


def _check_hardware(snapshot: MetricsSnapshot, limits: Thresholds) -> List[Issue]:
    hardware = snapshot.hardware
    if hardware is None:
        return []
    findings: List[Issue] = []
    temperature = hardware.cpu_temperature_celsius
    if temperature is not None and temperature > limits.cpu_temperature_high:
        findings.append(
            Issue(
                id=HIGH_CPU_TEMPERATURE,
                category=Category.HARDWARE,
                severity=Severity.HIGH,
                description=f"High CPU temperature ({temperature:.1f}°C)",
                details="CPU is running at a temperature that may cause thermal throttling or damage",
                recommendation="Check cooling system, clean dust, or reduce CPU load",
                can_fix=False,
            )
        )
    if hardware.battery_health == BatteryHealth.POOR:
        cycles = hardware.battery_cycles if hardware.battery_cycles is not None else "unknown"
        findings.append(
            Issue(
                id=POOR_BATTERY_HEALTH,
                category=Category.HARDWARE,
                severity=Severity.MEDIUM,
                description="Battery health is poor",
                details=f"Battery cycles: {cycles}",
                recommendation="Consider replacing the battery",
                can_fix=False,
            )
        )
    return findings


def _process_summary(processes: Sequence[ProcessUsage], attribute: str) -> str:
    if not processes:
        return "none identified"
    return ", ".join(f"{proc.name} ({getattr(proc, attribute):.1f}%)" for proc in processes[:3])
