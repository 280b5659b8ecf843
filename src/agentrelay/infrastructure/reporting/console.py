"""
Console rendering of workflow reports.

Renders a WorkflowReport with rich tables and panels.
"""

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from agentrelay.domain.report import WorkflowReport

_OUTCOME_STYLES = {
    "succeeded": "bold green",
    "succeeded_after_recovery": "bold yellow",
    "failed_compensated": "bold red",
    "escalated": "bold magenta",
    "running": "bold cyan",
}


def _summary_panel(report: WorkflowReport) -> Panel:
    summary = report.summary
    style = _OUTCOME_STYLES.get(summary.status, "bold")
    lines = [
        f"[{style}]{summary.outcome}[/{style}]",
        f"Run: {summary.execution_id}",
        f"Duration: {summary.total_duration:.3f}s",
        f"Steps: {summary.step_count}  Agents: {summary.agent_count}",
        f"Quality score: {report.quality.overall_score:.1f}",
    ]
    return Panel("\n".join(lines), title=f"Workflow {summary.workflow_id}")


def _performance_table(report: WorkflowReport) -> Table:
    perf = report.performance
    table = Table(title="Performance", show_lines=False)
    table.add_column("Agent")
    table.add_column("Duration (s)", justify="right")
    table.add_column("Bottleneck", justify="center")
    for agent, duration in perf.agent_durations:
        flag = "[red]yes[/red]" if agent in perf.bottlenecks else ""
        table.add_row(agent, f"{duration:.3f}", flag)
    path = " -> ".join(perf.critical_path) or "(none)"
    table.caption = (
        f"Parallelization efficiency {perf.parallelization_efficiency:.2f}  "
        f"Critical path {path} ({perf.critical_path_duration:.3f}s)"
    )
    return table


def _quality_table(report: WorkflowReport) -> Table:
    table = Table(title="Quality gates")
    table.add_column("Gate")
    table.add_column("Result", justify="center")
    table.add_column("Failed validators")
    for gate in report.quality.gates:
        result = "[green]PASS[/green]" if gate.passed else "[red]FAIL[/red]"
        table.add_row(gate.gate_name, result, ", ".join(gate.failed_validators))
    return table


def _recovery_table(report: WorkflowReport) -> Table:
    recovery = report.recovery
    table = Table(title="Recovery")
    table.add_column("Item")
    table.add_column("Value")
    table.add_row("Errors", str(recovery.error_count))
    table.add_row("Recovery attempts", str(recovery.recovery_attempts))
    for step_id, strategy in recovery.strategies:
        table.add_row(f"Recovered {step_id}", strategy)
    if recovery.unrecovered_step:
        table.add_row("Unrecovered step", recovery.unrecovered_step)
    if recovery.escalated:
        table.add_row("Escalated", "yes")
    if recovery.compensated:
        table.add_row("Compensated", ", ".join(recovery.compensated))
    if recovery.compensation_failures:
        table.add_row(
            "[red]Compensation failures[/red]", ", ".join(recovery.compensation_failures)
        )
    return table


def render_report(report: WorkflowReport, console: Console | None = None) -> None:
    """Print a report to the console (stdout by default)."""
    console = console or Console()
    parts: list = [
        _summary_panel(report),
        _performance_table(report),
        _quality_table(report),
        _recovery_table(report),
    ]
    if report.recommendations:
        parts.append(
            Panel(
                "\n".join(f"- {r}" for r in report.recommendations),
                title="Recommendations",
            )
        )
    console.print(Group(*parts))
