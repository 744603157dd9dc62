from dataclasses import replace

from fakes import GB, MB, make_snapshot, proc

from it_assistant.config import Thresholds
from it_assistant.diagnostics import (
    Category,
    Issue,
    Severity,
    evaluate,
    overall_severity,
    rank,
)
from it_assistant.hardware import BatteryHealth
from it_assistant.security import Vulnerability


def ids(issues):
    return [issue.id for issue in issues]


def test_no_issues_when_normal():
    assert evaluate(make_snapshot()) == []


def test_cpu_threshold_boundary():
    assert "high_cpu_usage" not in ids(evaluate(make_snapshot(load_avg=(0.8, 0.5, 0.5))))
    assert "high_cpu_usage" in ids(evaluate(make_snapshot(load_avg=(0.81, 0.5, 0.5))))


def test_cpu_details_list_top_three_by_cpu():
    processes = [
        proc(1, "idle", cpu=1.0),
        proc(2, "encoder", cpu=95.5),
        proc(3, "browser", cpu=40.0),
        proc(4, "compiler", cpu=60.3),
    ]
    (issue,) = evaluate(make_snapshot(load_avg=(2.0, 1.0, 1.0), processes=processes))
    assert issue.id == "high_cpu_usage"
    assert issue.severity is Severity.HIGH
    assert issue.category is Category.PERFORMANCE
    assert issue.can_fix
    assert issue.details == "Top processes: encoder (95.5%), compiler (60.3%), browser (40.0%)"


def test_low_memory_scenario():
    snapshot = make_snapshot(memory_total=2000 * MB, memory_free=100 * MB)
    issues = evaluate(snapshot)
    assert len(issues) == 1
    (issue,) = issues
    assert issue.id == "low_memory"
    assert issue.severity is Severity.HIGH
    assert issue.can_fix is True


def test_memory_details_list_top_three_by_memory():
    processes = [proc(1, "a", mem=1.0), proc(2, "b", mem=30.0), proc(3, "c", mem=20.0), proc(4, "d", mem=10.0)]
    snapshot = make_snapshot(memory_total=10 * GB, memory_free=GB // 2, processes=processes)
    (issue,) = evaluate(snapshot)
    assert issue.details == "Top memory consumers: b (30.0%), c (20.0%), d (10.0%)"


def test_memory_at_ten_percent_is_not_low():
    assert evaluate(make_snapshot(memory_total=1000, memory_free=100)) == []


def test_disk_usage_detected():
    assert evaluate(make_snapshot(disk_percent=90)) == []
    (issue,) = evaluate(make_snapshot(disk_percent=92))
    assert issue.id == "high_disk_usage"
    assert issue.severity is Severity.MEDIUM
    assert issue.category is Category.STORAGE
    assert issue.can_fix


def test_large_cache_detected():
    (issue,) = evaluate(make_snapshot(cache_sizes=(GB, GB // 5)))
    assert issue.id == "large_cache_files"
    assert issue.severity is Severity.LOW
    assert issue.details == "2 cache locations found"
    assert evaluate(make_snapshot(cache_sizes=(GB,))) == []


def test_security_issue_is_high_when_any_high_vulnerability():
    vulns = [
        Vulnerability("open_port", "low", "Port 22 is open"),
        Vulnerability("exposed_service", "high", "Telnet enabled"),
        Vulnerability("exposed_service", "high", "SMB v1 enabled"),
    ]
    (issue,) = evaluate(make_snapshot(vulnerabilities=vulns))
    assert issue.id == "security_vulnerabilities"
    assert issue.severity is Severity.HIGH
    assert issue.can_fix is False
    assert issue.description.startswith("2 high-severity")
    assert issue.details == "Telnet enabled, SMB v1 enabled"


def test_security_issue_is_single_and_medium_otherwise():
    vulns = [Vulnerability("open_port", "low", f"Port {port} is open") for port in (22, 80, 443)]
    issues = evaluate(make_snapshot(vulnerabilities=vulns))
    assert ids(issues) == ["security_vulnerabilities"]
    assert issues[0].severity is Severity.MEDIUM


def test_no_security_issue_when_scan_empty_or_absent():
    assert evaluate(make_snapshot(vulnerabilities=[])) == []
    assert evaluate(make_snapshot(vulnerabilities=None)) == []


def test_hardware_issues():
    issues = evaluate(make_snapshot(cpu_temperature=85.0, battery_health=BatteryHealth.POOR))
    assert ids(issues) == ["high_cpu_temperature", "poor_battery_health"]
    assert [i.severity for i in issues] == [Severity.HIGH, Severity.MEDIUM]
    assert not any(i.can_fix for i in issues)
    assert issues[1].details == "Battery cycles: 812"
    assert evaluate(make_snapshot(cpu_temperature=80.0)) == []


def test_absent_metrics_produce_no_issues():
    snapshot = replace(make_snapshot(), memory=None, disk=None, hardware=None)
    assert evaluate(snapshot) == []


def test_thresholds_are_injectable():
    strict = Thresholds(cpu_load_high=0.2, disk_percent_high=50)
    snapshot = make_snapshot(load_avg=(0.5, 0.5, 0.5), disk_percent=60)
    assert ids(evaluate(snapshot, strict)) == ["high_cpu_usage", "high_disk_usage"]


def test_explicit_thresholds_win_over_environment(monkeypatch):
    monkeypatch.setenv("IT_ASSISTANT_CPU_LOAD_HIGH", "5.0")
    monkeypatch.setenv("IT_ASSISTANT_DISK_PERCENT_HIGH", "99")

    strict = Thresholds(cpu_load_high=0.2)
    assert strict.cpu_load_high == 0.2
    assert strict.disk_percent_high == 99.0

    snapshot = make_snapshot(load_avg=(0.5, 0.5, 0.5))
    assert ids(evaluate(snapshot, strict)) == ["high_cpu_usage"]
    assert evaluate(snapshot, Thresholds()) == []


def test_thresholds_fall_back_to_defaults(monkeypatch):
    monkeypatch.delenv("IT_ASSISTANT_CPU_LOAD_HIGH", raising=False)
    monkeypatch.setenv("IT_ASSISTANT_MEMORY_FREE_LOW", "")
    limits = Thresholds()
    assert limits.cpu_load_high == 0.8
    assert limits.memory_free_low == 0.10


def _issue(issue_id, severity):
    return Issue(issue_id, Category.PERFORMANCE, severity, "", "", "", False)


def test_rank_is_stable():
    issues = [
        _issue("m", Severity.MEDIUM),
        _issue("h1", Severity.HIGH),
        _issue("l", Severity.LOW),
        _issue("h2", Severity.HIGH),
    ]
    assert ids(rank(issues)) == ["h1", "h2", "m", "l"]


def test_overall_severity():
    assert overall_severity([]) is None
    assert overall_severity([_issue("l", Severity.LOW), _issue("m", Severity.MEDIUM)]) is Severity.MEDIUM
