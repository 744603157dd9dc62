"""Console-friendly formatting utilities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:
    from .diagnostics import Issue
    from .system_state import MetricsSnapshot, ProcessUsage


def format_bytes(num: float) -> str:
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB"]
    value = float(num)
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}"
        value /= 1024
    return f"{value:.1f} TiB"


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    lines = []
    lines.append(_format_row(headers, widths))
    lines.append(_format_row(["-" * w for w in widths], widths))
    for row in rows:
        lines.append(_format_row(row, widths))
    return "\n".join(lines)


def format_process_table(processes: Iterable[ProcessUsage]) -> str:
    rows = [
        [str(proc.pid), proc.name, f"{proc.cpu_percent:.1f}%", f"{proc.memory_percent:.1f}%"]
        for proc in processes
    ]
    return render_table(["PID", "Process", "CPU", "Memory"], rows) if rows else "No process data"


def format_issue_table(issues: Iterable[Issue]) -> str:
    rows = [
        [issue.severity.value, issue.id, issue.description, "yes" if issue.can_fix else "no"]
        for issue in issues
    ]
    return render_table(["Severity", "Issue", "Description", "Fixable"], rows) if rows else "No issues found"


def format_snapshot(snapshot: MetricsSnapshot, top: int = 5) -> str:
    load = snapshot.cpu_load
    lines = [
        f"Time: {snapshot.timestamp:%Y-%m-%d %H:%M:%S}",
        f"Load (1/5/15): {load[0]:.2f} / {load[1]:.2f} / {load[2]:.2f}",
    ]
    if snapshot.memory:
        memory = snapshot.memory
        lines.append(f"Memory: used {format_bytes(memory.used)} / {format_bytes(memory.total)}")
    if snapshot.disk:
        disk = snapshot.disk
        lines.append(f"Disk: {disk.percent:.0f}% | used {format_bytes(disk.used)} / {format_bytes(disk.total)}")
    if snapshot.hardware:
        hardware = snapshot.hardware
        temperature = (
            f"{hardware.cpu_temperature_celsius:.1f}°C" if hardware.cpu_temperature_celsius is not None else "n/a"
        )
        lines.append(
            f"Hardware: CPU {temperature} | battery {hardware.battery_health.value} | storage {hardware.storage_health}"
        )
    if snapshot.cache_locations:
        total = sum(location.size_bytes for location in snapshot.cache_locations)
        lines.append(f"Caches: {format_bytes(total)} in {len(snapshot.cache_locations)} locations")
    lines.append("Top CPU:")
    lines.append(
        format_process_table(
            sorted(snapshot.running_processes, key=lambda p: p.cpu_percent, reverse=True)[:top]
        )
    )
    lines.append("Top memory:")
    lines.append(
        format_process_table(
            sorted(snapshot.running_processes, key=lambda p: p.memory_percent, reverse=True)[:top]
        )
    )
    return "\n".join(lines)


def _format_row(row: Sequence[str], widths: Sequence[int]) -> str:
    padded = [cell.ljust(width) for cell, width in zip(row, widths)]
    return " | ".join(padded)
