"""Diagnostics orchestration: snapshot -> evaluate -> rank, and fix delegation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import List, Optional

from .cache import CacheProvider
from .config import Settings, Thresholds
from .diagnostics import Issue, Severity, evaluate, overall_severity, rank
from .events import Event, EventSink, SerializedEventSink, record_event
from .processes import ProcessControl, PsutilProcessControl
from .remediation import RemediationDispatcher, RemediationResult
from .system_state import MetricsProvider, PsutilMetricsProvider

logger = logging.getLogger(__name__)


@dataclass
class DiagnosticsResponse:
    success: bool
    issues: List[Issue] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class FixResponse:
    success: bool
    result: Optional[RemediationResult] = None
    error: Optional[str] = None


class DiagnosticsEngine:
    """Runs diagnostics and routes fix requests.

    ``run`` only reads system state. Anything that changes the system goes
    through ``fix``, ``clean_cache`` or ``close_process``. Confirming that a
    fix worked means calling ``run`` again; the engine keeps no state between
    calls.
    """

    def __init__(
        self,
        metrics: MetricsProvider,
        dispatcher: RemediationDispatcher,
        thresholds: Optional[Thresholds] = None,
        events: Optional[EventSink] = None,
    ) -> None:
        self.metrics = metrics
        self.dispatcher = dispatcher
        self.thresholds = thresholds or Thresholds()
        self.events = events

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        events: Optional[EventSink] = None,
        process_control: Optional[ProcessControl] = None,
    ) -> "DiagnosticsEngine":
        settings = settings or Settings()
        sink = SerializedEventSink(events) if events is not None else None
        cache_provider = CacheProvider()
        metrics = PsutilMetricsProvider(settings, cache_provider=cache_provider)
        dispatcher = RemediationDispatcher(
            settings,
            metrics,
            cache_provider,
            process_control or PsutilProcessControl(),
            events=sink,
        )
        return cls(metrics, dispatcher, thresholds=settings.thresholds, events=sink)

    def run(self) -> List[Issue]:
        logger.info("Running automated diagnostics")
        snapshot = self.metrics.snapshot()
        if snapshot.vulnerabilities is not None:
            record_event(
                self.events,
                Event(
                    "vulnerability_scan",
                    f"Found {len(snapshot.vulnerabilities)} potential vulnerabilities",
                    "warning" if snapshot.vulnerabilities else "info",
                ),
            )

        issues = rank(evaluate(snapshot, self.thresholds))

        severity = "warning" if overall_severity(issues) is Severity.HIGH else "info"
        record_event(self.events, Event("diagnostics_run", f"Found {len(issues)} issues", severity))
        logger.info("Diagnostics completed - Found %d issues", len(issues))
        return issues

    def fix(self, issue_id: str) -> RemediationResult:
        return self.dispatcher.fix(issue_id)

    def clean_cache(self, path: Optional[str] = None) -> RemediationResult:
        return self.dispatcher.clean_cache(path)

    def close_process(self, pid: int) -> RemediationResult:
        return self.dispatcher.close_process(pid)

    def run_diagnostics(self) -> DiagnosticsResponse:
        try:
            return DiagnosticsResponse(success=True, issues=self.run())
        except Exception as exc:
            logger.exception("Error running diagnostics")
            return DiagnosticsResponse(success=False, error=str(exc))

    def fix_issue(self, issue_id: str) -> FixResponse:
        try:
            result = self.fix(issue_id)
        except Exception as exc:
            logger.exception("Error fixing issue %s", issue_id)
            return FixResponse(success=False, error=str(exc))
        if result.success:
            return FixResponse(success=True, result=result)
        return FixResponse(success=False, result=result, error=result.message)

    async def arun_diagnostics(self) -> DiagnosticsResponse:
        return await asyncio.to_thread(self.run_diagnostics)

    async def afix_issue(self, issue_id: str) -> FixResponse:
        return await asyncio.to_thread(self.fix_issue, issue_id)
