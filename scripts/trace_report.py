#!/usr/bin/env python3
"""Generate a trace report from a persisted workflow execution.

Usage:
    python scripts/trace_report.py <store_path> --workflow-id <id> [--execution-id <run>] [--format report|table|timeline]

Example:
    python scripts/trace_report.py output/traces/ --workflow-id feature-login --format report
"""

import argparse
from pathlib import Path

from rich.console import Console
from rich.table import Table

from agentrelay.application.monitor import WorkflowMonitor
from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType
from agentrelay.infrastructure.persistence.workflow_events import (
    FilesystemWorkflowEventStore,
)
from agentrelay.infrastructure.reporting import render_report

_SYMBOLS = {
    WorkflowEventType.WORKFLOW_START: "[*]",
    WorkflowEventType.STEP_START: "[>]",
    WorkflowEventType.STEP_COMPLETE: "[+]",
    WorkflowEventType.STEP_FAIL: "[-]",
    WorkflowEventType.STEP_SKIPPED: "[ ]",
    WorkflowEventType.GATE_EVALUATED: "[G]",
    WorkflowEventType.RECOVERY_ATTEMPT: "[~]",
    WorkflowEventType.RECOVERY_RESULT: "[=]",
    WorkflowEventType.ESCALATE: "[^]",
    WorkflowEventType.COMPENSATE: "[x]",
    WorkflowEventType.WORKFLOW_END: "[#]",
}


def format_table(console: Console, events: list[WorkflowEvent]) -> None:
    """Format events as a table."""
    table = Table(title="Events")
    for column in ("#", "Event", "Step", "Agent", "Status", "Attempt", "Details"):
        table.add_column(column)

    for event in events:
        status = event.status or (
            "-" if event.passed is None else ("passed" if event.passed else "failed")
        )
        details = event.summary or event.error_type or event.strategy or event.gate_name or ""
        table.add_row(
            str(event.sequence),
            event.event_type.value,
            event.step_id or "-",
            event.agent_name or "-",
            status,
            str(event.attempt) if event.attempt else "-",
            details[:40],
        )
    console.print(table)


def format_timeline(console: Console, events: list[WorkflowEvent]) -> None:
    """Format events as a timeline."""
    for event in events:
        timestamp = event.created_at[:23] if event.created_at else "?"
        line = f"{timestamp} {_SYMBOLS.get(event.event_type, '[?]')} {event.step_id or event.gate_name or event.workflow_id}"
        if event.agent_name:
            line += f" ({event.agent_name})"
        if event.duration is not None:
            line += f" {event.duration:.3f}s"
        if event.strategy:
            line += f" -> {event.strategy}"
        if event.error_type:
            line += f" [{event.error_type}]"
        if event.summary:
            line += f": {event.summary[:50]}"
        console.print(line, highlight=False)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate workflow trace report")
    parser.add_argument("store_path", type=Path, help="Path to the event store directory")
    parser.add_argument("--workflow-id", required=True, help="Workflow ID to report")
    parser.add_argument("--execution-id", help="Run to report (default: latest run)")
    parser.add_argument(
        "--format",
        choices=["report", "table", "timeline"],
        default="report",
        help="Output format (default: report)",
    )
    args = parser.parse_args()

    console = Console()
    store = FilesystemWorkflowEventStore(args.store_path)
    runs = store.execution_ids(args.workflow_id)
    if not runs:
        console.print(f"No runs found for workflow {args.workflow_id}")
        return
    execution_id = args.execution_id or runs[-1]
    events = store.get_events(execution_id)

    if not events:
        console.print(f"No events found for run {execution_id}")
        return

    if args.format == "table":
        format_table(console, events)
    elif args.format == "timeline":
        format_timeline(console, events)
    else:
        monitor = WorkflowMonitor()
        monitor.ingest_all(events)
        render_report(monitor.report(execution_id), console)


if __name__ == "__main__":
    main()
