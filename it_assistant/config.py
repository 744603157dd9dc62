"""
it-assistant configuration

Thresholds and paths. A value passed to the constructor wins, then the
matching IT_ASSISTANT_* environment variable, then the built-in default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .hardware import REPORT_TIMEOUT
from .security import UPDATE_CHECK_TIMEOUT

GIB = 1024**3

DEFAULT_CPU_LOAD_HIGH = 0.8
DEFAULT_MEMORY_FREE_LOW = 0.10
DEFAULT_DISK_PERCENT_HIGH = 90.0
DEFAULT_CPU_TEMPERATURE_HIGH = 80.0
DEFAULT_METRICS_TIMEOUT = 5.0


def _resolve(explicit, name: str, default, parse=str):
    if explicit is not None:
        return explicit
    value = os.getenv(name)
    if not value:
        return default
    try:
        return parse(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _default_cache_paths() -> List[str]:
    home = Path.home()
    return [
        str(home / "Library" / "Caches"),
        str(home / "Library" / "Caches" / "Google" / "Chrome"),
        str(home / ".cache"),
    ]


@dataclass
class Thresholds:
    """Limits used to turn metrics into issues and remediation candidates.

    Fields left as ``None`` are filled from the environment or the defaults.
    """

    cpu_load_high: Optional[float] = None
    memory_free_low: Optional[float] = None
    disk_percent_high: Optional[float] = None
    cache_size_high: int = GIB
    cpu_temperature_high: Optional[float] = None
    process_cpu_percent: float = 10.0
    process_memory_percent: float = 5.0
    large_file_bytes: int = GIB

    def __post_init__(self):
        self.cpu_load_high = _resolve(
            self.cpu_load_high, "IT_ASSISTANT_CPU_LOAD_HIGH", DEFAULT_CPU_LOAD_HIGH, float
        )
        self.memory_free_low = _resolve(
            self.memory_free_low, "IT_ASSISTANT_MEMORY_FREE_LOW", DEFAULT_MEMORY_FREE_LOW, float
        )
        self.disk_percent_high = _resolve(
            self.disk_percent_high, "IT_ASSISTANT_DISK_PERCENT_HIGH", DEFAULT_DISK_PERCENT_HIGH, float
        )
        self.cpu_temperature_high = _resolve(
            self.cpu_temperature_high, "IT_ASSISTANT_CPU_TEMP_HIGH", DEFAULT_CPU_TEMPERATURE_HIGH, float
        )


@dataclass
class Settings:
    """Main assistant configuration."""

    thresholds: Thresholds = field(default_factory=Thresholds)
    cache_paths: Optional[List[str]] = None
    downloads_path: Optional[str] = None
    database_path: Optional[str] = None

    # Upper bound for a single in-process metrics call, in seconds
    metrics_timeout: Optional[float] = None
    # External commands get their own limits
    update_check_timeout: float = UPDATE_CHECK_TIMEOUT
    report_timeout: float = REPORT_TIMEOUT

    # Matched as substrings of the process name
    essential_processes: Tuple[str, ...] = (
        "Finder",
        "Dock",
        "SystemUIServer",
        "WindowServer",
        "explorer.exe",
        "gnome-shell",
        "kwin",
        "Xorg",
        "it-assistant",
    )
    scanned_ports: Tuple[int, ...] = (21, 22, 23, 25, 80, 443, 3389, 5900)

    def __post_init__(self):
        if self.cache_paths is None:
            cache_env = os.getenv("IT_ASSISTANT_CACHE_PATHS")
            if cache_env:
                self.cache_paths = [p for p in cache_env.split(os.pathsep) if p]
            else:
                self.cache_paths = _default_cache_paths()
        self.downloads_path = _resolve(
            self.downloads_path, "IT_ASSISTANT_DOWNLOADS_PATH", str(Path.home() / "Downloads")
        )
        self.database_path = _resolve(
            self.database_path,
            "IT_ASSISTANT_DB_PATH",
            str(Path.home() / ".it-assistant" / "it-assistant.db"),
        )
        self.metrics_timeout = _resolve(
            self.metrics_timeout, "IT_ASSISTANT_METRICS_TIMEOUT", DEFAULT_METRICS_TIMEOUT, float
        )
