import asyncio

from fakes import GB, MB, BrokenSink, FakeMetrics, FakeProcessControl, make_snapshot, proc

from it_assistant.cache import CacheProvider
from it_assistant.config import Settings
from it_assistant.engine import DiagnosticsEngine
from it_assistant.events import MemoryEventSink
from it_assistant.remediation import Outcome, RemediationDispatcher
from it_assistant.security import Vulnerability


def make_engine(tmp_path, snapshot, events=None, control=None):
    settings = Settings(cache_paths=[str(tmp_path / "cache")], downloads_path=str(tmp_path / "dl"))
    metrics = FakeMetrics(snapshot)
    control = control or FakeProcessControl(alive={p.pid for p in snapshot.running_processes})
    dispatcher = RemediationDispatcher(settings, metrics, CacheProvider(), control, events=events, own_pid=1)
    return DiagnosticsEngine(metrics, dispatcher, thresholds=settings.thresholds, events=events)


def busy_snapshot():
    return make_snapshot(
        load_avg=(3.0, 2.0, 1.0),
        memory_total=2000 * MB,
        memory_free=100 * MB,
        cache_sizes=(int(1.2 * GB),),
        disk_percent=95,
        processes=[proc(100, "renderer", cpu=70.0, mem=40.0)],
    )


def test_run_returns_ranked_issues(tmp_path):
    issues = make_engine(tmp_path, busy_snapshot()).run()
    assert [i.id for i in issues] == ["high_cpu_usage", "low_memory", "high_disk_usage", "large_cache_files"]


def test_run_is_idempotent(tmp_path):
    engine = make_engine(tmp_path, busy_snapshot())
    assert {i.id for i in engine.run()} == {i.id for i in engine.run()}


def test_run_records_summary_event(tmp_path):
    events = MemoryEventSink()
    snapshot = busy_snapshot()
    snapshot.vulnerabilities = [Vulnerability("open_port", "low", "Port 80 is open")]
    make_engine(tmp_path, snapshot, events=events).run()

    by_type = {e.event_type: e for e in events.events}
    assert by_type["diagnostics_run"].description == "Found 5 issues"
    assert by_type["diagnostics_run"].severity == "warning"
    assert by_type["vulnerability_scan"].description == "Found 1 potential vulnerabilities"


def test_quiet_run_records_info_event(tmp_path):
    events = MemoryEventSink()
    assert make_engine(tmp_path, make_snapshot(), events=events).run() == []
    assert events.events[-1].severity == "info"


def test_failing_event_sink_does_not_break_run(tmp_path):
    issues = make_engine(tmp_path, busy_snapshot(), events=BrokenSink()).run()
    assert issues


def test_run_diagnostics_envelope(tmp_path):
    response = make_engine(tmp_path, busy_snapshot()).run_diagnostics()
    assert response.success
    assert response.error is None
    assert len(response.issues) == 4


def test_run_diagnostics_reports_provider_crash(tmp_path):
    engine = make_engine(tmp_path, make_snapshot())

    def broken():
        raise OSError("ps not found")

    engine.metrics.snapshot = broken
    response = engine.run_diagnostics()
    assert response.success is False
    assert response.issues == []
    assert "ps not found" in response.error


def test_fix_issue_envelope_for_suggestion(tmp_path):
    control = FakeProcessControl(alive={100})
    engine = make_engine(tmp_path, busy_snapshot(), control=control)
    response = engine.fix_issue("high_cpu_usage")
    assert response.success
    assert response.result.outcome is Outcome.SUGGESTION
    assert response.result.process_info.pid == 100
    assert control.terminated == []

    closed = engine.close_process(response.result.process_info.pid)
    assert closed.outcome is Outcome.FIXED
    assert control.terminated == [100]


def test_fix_issue_envelope_for_unknown_id(tmp_path):
    response = make_engine(tmp_path, make_snapshot()).fix_issue("unknown_id")
    assert response.success is False
    assert response.result.outcome is Outcome.UNSUPPORTED
    assert "unknown_id" in response.error


def test_async_variants(tmp_path):
    engine = make_engine(tmp_path, busy_snapshot())

    async def scenario():
        diagnostics = await engine.arun_diagnostics()
        fixed = await engine.afix_issue("cleanCache")
        return diagnostics, fixed

    diagnostics, fixed = asyncio.run(scenario())
    assert diagnostics.success
    assert fixed.result.outcome is Outcome.FIXED
