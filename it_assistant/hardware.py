"""Hardware health readings: CPU temperature, battery and storage condition.

Real sensors are used where psutil exposes them. Otherwise the temperature is
estimated from the 1-minute load average and battery/storage condition comes
from the macOS system reports, falling back to ``Unknown``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import os
import re
import subprocess
import sys
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

_CYCLE_RE = re.compile(r"Cycle Count:\s*(\d+)")
_CONDITION_RE = re.compile(r"Condition:\s*(\w+)")
_SMART_RE = re.compile(r"SMART Status:\s+(\w+)")

REPORT_TIMEOUT = 5.0


class BatteryHealth(str, Enum):
    NORMAL = "Normal"
    POOR = "Poor"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class HardwareHealth:
    cpu_temperature_celsius: Optional[float]
    battery_health: BatteryHealth = BatteryHealth.UNKNOWN
    storage_health: str = "Unknown"
    battery_cycles: Optional[int] = None


def read_hardware_health(timeout: float = REPORT_TIMEOUT) -> HardwareHealth:
    """Collect a best-effort hardware health reading.

    ``timeout`` applies to each platform report separately.
    """
    temperature = _sensor_temperature()
    if temperature is None:
        temperature = estimate_temperature(_load_1m())

    battery_health = BatteryHealth.UNKNOWN
    battery_cycles: Optional[int] = None
    storage_health = "Unknown"

    if sys.platform == "darwin":
        power_report = _run_report(["system_profiler", "SPPowerDataType"], timeout)
        if power_report:
            battery_health, battery_cycles = parse_power_report(power_report)
        disk_report = _run_report(["diskutil", "info", "disk0"], timeout)
        if disk_report:
            storage_health = parse_smart_status(disk_report)

    return HardwareHealth(
        cpu_temperature_celsius=temperature,
        battery_health=battery_health,
        storage_health=storage_health,
        battery_cycles=battery_cycles,
    )


def estimate_temperature(load_1m: float) -> float:
    # Rough approximation only, used when no sensor is exposed
    return 40.0 + load_1m * 5.0


def parse_power_report(output: str) -> tuple[BatteryHealth, Optional[int]]:
    cycles_match = _CYCLE_RE.search(output)
    cycles = int(cycles_match.group(1)) if cycles_match else None

    condition_match = _CONDITION_RE.search(output)
    if not condition_match:
        return BatteryHealth.UNKNOWN, cycles
    condition = condition_match.group(1)
    if condition == "Normal":
        return BatteryHealth.NORMAL, cycles
    # Service, Replace, Poor, ... all mean the battery is degraded
    return BatteryHealth.POOR, cycles


def parse_smart_status(output: str) -> str:
    match = _SMART_RE.search(output)
    return match.group(1) if match else "Unknown"


def _sensor_temperature() -> Optional[float]:
    reader = getattr(psutil, "sensors_temperatures", None)
    if reader is None:
        return None
    try:
        sensors = reader()
    except (OSError, RuntimeError) as exc:
        logger.debug("Temperature sensors unavailable: %s", exc)
        return None
    for key in ("coretemp", "k10temp", "cpu_thermal", "acpitz"):
        entries = sensors.get(key)
        if entries:
            return max(entry.current for entry in entries)
    return None


def _load_1m() -> float:
    if hasattr(os, "getloadavg"):
        return os.getloadavg()[0]
    return 0.0


def _run_report(command: list[str], timeout: float) -> Optional[str]:
    try:
        completed = subprocess.run(
            command, capture_output=True, text=True, timeout=timeout, check=True
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Could not run %s: %s", command[0], exc)
        return None
    return completed.stdout
