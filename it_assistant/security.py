"""Heuristic security checks: already-bound local ports and pending OS updates.

This is not a vulnerability scanner. The findings only feed the
``security_vulnerabilities`` issue.
"""

from __future__ import annotations

from dataclasses import dataclass
import errno
import logging
import socket
import subprocess
import sys
from typing import List, Sequence

logger = logging.getLogger(__name__)

# softwareupdate -l contacts Apple and is often slower than the local reports
UPDATE_CHECK_TIMEOUT = 10.0


@dataclass(frozen=True)
class Vulnerability:
    type: str
    severity: str  # "low" | "medium" | "high"
    details: str


class VulnerabilityScanner:
    def __init__(self, ports: Sequence[int], timeout: float = UPDATE_CHECK_TIMEOUT) -> None:
        self.ports = tuple(ports)
        self.timeout = timeout

    def scan(self) -> List[Vulnerability]:
        logger.info("Scanning for vulnerabilities")
        found: List[Vulnerability] = []
        found.extend(self._check_updates())
        found.extend(self._check_open_ports())
        logger.info("Found %d potential vulnerabilities", len(found))
        return found

    def _check_updates(self) -> List[Vulnerability]:
        if sys.platform != "darwin":
            return []
        try:
            completed = subprocess.run(
                ["softwareupdate", "-l"], capture_output=True, text=True, timeout=self.timeout
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Error checking for software updates: %s", exc)
            return []
        output = completed.stdout + completed.stderr
        if "Software Update found" in output:
            return [Vulnerability("outdated_software", "medium", "System software updates are available")]
        return []

    def _check_open_ports(self) -> List[Vulnerability]:
        found: List[Vulnerability] = []
        for port in self.ports:
            if port_in_use(port):
                found.append(Vulnerability("open_port", "low", f"Port {port} is open"))
        return found


def port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """True when something is already listening on ``host:port``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        # Ports in TIME_WAIT are free for a listener, so they do not count
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError as exc:
        return exc.errno == errno.EADDRINUSE
    finally:
        sock.close()
    return False
