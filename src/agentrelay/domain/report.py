"""Workflow report produced by the WorkflowMonitor."""

from dataclasses import dataclass

OUTCOME_LABELS = {
    "running": "running",
    "succeeded": "succeeded",
    "succeeded_after_recovery": "succeeded after recovery",
    "failed_compensated": "failed and compensated",
    "escalated": "escalated",
}


@dataclass(frozen=True)
class ReportSummary:
    workflow_id: str
    execution_id: str
    status: str  # ExecutionStatus value
    outcome: str  # human readable label
    success: bool
    total_duration: float
    agent_count: int
    step_count: int


@dataclass(frozen=True)
class PerformanceSection:
    agent_durations: tuple[tuple[str, float], ...]  # sorted by agent name
    step_durations: tuple[tuple[str, float], ...]  # completion order
    bottlenecks: tuple[str, ...]
    parallelization_efficiency: float  # sum(step durations) / wall clock
    critical_path: tuple[str, ...]
    critical_path_duration: float


@dataclass(frozen=True)
class GateReport:
    gate_name: str
    passed: bool
    failed_validators: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class QualitySection:
    gates: tuple[GateReport, ...]
    overall_score: float  # 0..100


@dataclass(frozen=True)
class RecoverySection:
    error_count: int
    recovery_attempts: int
    strategies: tuple[tuple[str, str], ...]  # (step_id, strategy that recovered it)
    unrecovered_step: str | None = None
    escalated: bool = False
    compensated: tuple[str, ...] = ()  # compensation invocation order
    compensation_failures: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowReport:
    """Structured report: summary, performance, quality, recovery, advice."""

    summary: ReportSummary
    performance: PerformanceSection
    quality: QualitySection
    recovery: RecoverySection
    recommendations: tuple[str, ...] = ()
