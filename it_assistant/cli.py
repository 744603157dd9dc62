"""Entry point for the it-assistant command line tool."""

from __future__ import annotations

import argparse
import json
import logging
import sqlite3
from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from .config import Settings
from .diagnostics import Issue, Severity
from .engine import DiagnosticsEngine
from .events import MemoryEventSink, SqliteEventSink
from .formatting import format_bytes, format_issue_table, format_snapshot
from .remediation import Outcome, RemediationResult
from .system_state import PsutilMetricsProvider

SEVERITY_STYLES = {Severity.HIGH: "bold red", Severity.MEDIUM: "yellow", Severity.LOW: "cyan"}


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    console = Console()

    try:
        settings = Settings()
    except ValueError as exc:
        console.print(f"[bold red]Invalid configuration:[/] {exc}")
        return 2

    if args.command == "snapshot":
        snapshot = PsutilMetricsProvider(settings).snapshot()
        print(format_snapshot(snapshot, top=args.top))
        return 0

    if args.no_history:
        sink = MemoryEventSink()
    else:
        try:
            sink = SqliteEventSink(settings.database_path)
        except (OSError, sqlite3.Error) as exc:
            console.print(f"[bold red]Cannot open event history {settings.database_path}:[/] {exc}")
            return 2
    try:
        return _dispatch(args, DiagnosticsEngine.from_settings(settings, events=sink), console, sink)
    finally:
        if isinstance(sink, SqliteEventSink):
            sink.close()


def _dispatch(args: argparse.Namespace, engine: DiagnosticsEngine, console: Console, sink: Any) -> int:
    if args.command == "fix":
        return _fix(engine, console, args.issue_id, assume_yes=args.yes)
    if args.command == "close":
        return _print_result(console, engine.close_process(args.pid))
    if args.command == "clean-cache":
        return _print_result(console, engine.clean_cache(args.path))
    if args.command == "history":
        return _history(console, sink, args.limit)
    return _diagnose(engine, console, as_json=args.json, rich_ui=args.ui)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Diagnose host problems and apply light fixes.")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--no-history", action="store_true", help="do not write events to the local database")
    sub = parser.add_subparsers(dest="command")

    diagnose = sub.add_parser("diagnose", help="run diagnostics and list issues (default)")
    diagnose.add_argument("--json", action="store_true", help="print issues as JSON")
    diagnose.add_argument("--ui", action="store_true", help="render issues with rich")

    snapshot = sub.add_parser("snapshot", help="show the current metrics snapshot")
    snapshot.add_argument("--top", type=int, default=5, help="number of processes to show")

    fix = sub.add_parser("fix", help="apply the fix for an issue id")
    fix.add_argument("issue_id")
    fix.add_argument("-y", "--yes", action="store_true", help="close suggested processes without asking")

    close = sub.add_parser("close", help="terminate a process by pid")
    close.add_argument("pid", type=int)

    clean = sub.add_parser("clean-cache", help="clean all cache locations, or only PATH")
    clean.add_argument("path", nargs="?")

    history = sub.add_parser("history", help="show recent events")
    history.add_argument("--limit", type=int, default=20)

    parser.set_defaults(command="diagnose", json=False, ui=False)
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
    )


def _diagnose(engine: DiagnosticsEngine, console: Console, *, as_json: bool, rich_ui: bool) -> int:
    response = engine.run_diagnostics()
    if not response.success:
        console.print(f"[bold red]Diagnostics failed:[/] {response.error}")
        return 1

    if as_json:
        print(json.dumps({"success": True, "issues": [_jsonable(asdict(i)) for i in response.issues]}, indent=2))
    elif rich_ui:
        _render_issues(console, response.issues)
    else:
        print(format_issue_table(response.issues))
    return 0


def _fix(engine: DiagnosticsEngine, console: Console, issue_id: str, *, assume_yes: bool) -> int:
    response = engine.fix_issue(issue_id)
    if response.result is None:
        console.print(f"[bold red]Fix failed:[/] {response.error}")
        return 1

    result = response.result
    status = _print_result(console, result)
    if result.outcome is not Outcome.SUGGESTION or result.process_info is None:
        return status

    info = result.process_info
    if not assume_yes and not Confirm.ask(f"Close {info.name} (PID {info.pid})?", console=console):
        console.print("Left running.")
        return 0
    return _print_result(console, engine.close_process(info.pid))


def _history(console: Console, sink: Any, limit: int) -> int:
    table = Table(title="Recent events", box=box.SIMPLE_HEAD)
    table.add_column("Time")
    table.add_column("Event", style="bold")
    table.add_column("Severity")
    table.add_column("Description")
    for event in sink.recent(limit):
        table.add_row(f"{event.timestamp:%Y-%m-%d %H:%M:%S}", event.event_type, event.severity, event.description)
    console.print(table)
    return 0


def _print_result(console: Console, result: RemediationResult) -> int:
    style = "green" if result.success else "bold red"
    console.print(f"[{style}]{result.outcome.value}[/]: {result.message}")
    freed = result.details.get("total_bytes_freed")
    if freed is not None:
        console.print(f"Freed {format_bytes(freed)}")
    for large in result.details.get("large_files", []):
        console.print(f"  {format_bytes(large['size_bytes'])}  {large['path']}")
    return 0 if result.success else 1


def _render_issues(console: Console, issues: List[Issue]) -> None:
    if not issues:
        console.print(Panel("No issues found.", style="bold green"))
        return
    table = Table(title="Detected issues", box=box.SIMPLE_HEAD)
    table.add_column("Severity")
    table.add_column("Issue", style="bold")
    table.add_column("Description")
    table.add_column("Details")
    table.add_column("Recommendation")
    for issue in issues:
        fix_hint = f"\nFix: it-assistant fix {issue.id}" if issue.can_fix else ""
        table.add_row(
            f"[{SEVERITY_STYLES[issue.severity]}]{issue.severity.value}[/]",
            issue.id,
            issue.description,
            issue.details,
            issue.recommendation + fix_hint,
        )
    console.print(table)


def _jsonable(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in payload.items()}


if __name__ == "__main__":
    raise SystemExit(main())
