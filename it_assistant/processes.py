"""Process existence checks and termination via psutil."""

from __future__ import annotations

import logging
from typing import Protocol

import psutil

from .errors import ProcessVanished, TerminationFailed

logger = logging.getLogger(__name__)


class ProcessControl(Protocol):
    def exists(self, pid: int) -> bool: ...

    def terminate(self, pid: int) -> None: ...


class PsutilProcessControl:
    """Terminate processes with SIGTERM, escalating to SIGKILL after ``grace`` seconds."""

    def __init__(self, grace: float = 3.0) -> None:
        self.grace = grace

    def exists(self, pid: int) -> bool:
        return psutil.pid_exists(pid)

    def terminate(self, pid: int) -> None:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
            try:
                proc.wait(timeout=self.grace)
            except psutil.TimeoutExpired:
                logger.info("Process %d ignored SIGTERM, killing", pid)
                proc.kill()
                proc.wait(timeout=self.grace)
        except psutil.NoSuchProcess as exc:
            raise ProcessVanished(pid) from exc
        except (psutil.AccessDenied, psutil.TimeoutExpired) as exc:
            raise TerminationFailed(pid, str(exc) or type(exc).__name__) from exc
