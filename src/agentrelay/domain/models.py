"""
Domain models for the orchestration engine.

Descriptors, definitions and results are frozen dataclasses. The two
mutable state holders are WorkflowContext (threaded through one execution)
and the execution record types (StepRecord, ExecutionMetrics,
WorkflowExecution) that the orchestrator fills in as steps progress.
"""

import copy
import threading
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

from agentrelay.domain.exceptions import ArtifactOverwriteError, CompensationError

# =============================================================================
# ENUMS
# =============================================================================


class ExecutionStrategy(str, Enum):
    """How the steps of one phase are driven."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    DOMAIN_CHAIN = "domainChain"


class StepStatus(str, Enum):
    """Lifecycle of a step, including the recovery states it may visit."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"
    ALTERNATE_AGENT = "alternate_agent"
    DECOMPOSING = "decomposing"
    ESCALATED = "escalated"
    COMPENSATING = "compensating"
    COMPENSATED = "compensated"
    SKIPPED = "skipped"


TERMINAL_STEP_STATUSES = frozenset(
    {
        StepStatus.COMPLETED,
        StepStatus.FAILED,
        StepStatus.COMPENSATED,
        StepStatus.SKIPPED,
    }
)


class ExecutionStatus(str, Enum):
    """Aggregate outcome of a workflow execution."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    SUCCEEDED_AFTER_RECOVERY = "succeeded_after_recovery"
    FAILED_COMPENSATED = "failed_compensated"
    ESCALATED = "escalated"


class RecoveryStrategy(str, Enum):
    """Recovery strategies, declared in evaluation order."""

    ENHANCED_RETRY = "enhanced_retry"
    ALTERNATE_AGENT = "alternate_agent"
    DECOMPOSITION = "decomposition"
    ESCALATION = "escalation"


class CheckVerdict(str, Enum):
    """Outcome of one validator inside a quality gate."""

    PASSED = "passed"
    FAILED = "failed"
    INDETERMINATE = "indeterminate"  # infrastructure error, never counts as pass


class ContextStatus(str, Enum):
    """Retention state of a WorkflowContext."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    FAILED = "failed"


# =============================================================================
# CAPABILITY CATALOG
# =============================================================================


@dataclass(frozen=True)
class AgentDescriptor:
    """Immutable catalog entry describing what an agent can do."""

    name: str
    capabilities: frozenset[str] = frozenset()
    strengths: frozenset[str] = frozenset()  # task categories it excels at
    limitations: frozenset[str] = frozenset()  # task categories it cannot perform
    output_formats: tuple[str, ...] = ()
    domain_tags: frozenset[str] = frozenset()
    required_inputs: tuple[str, ...] = ()  # context fields the agent needs
    typical_duration: float = 1.0  # seconds, used for critical-path estimates


@dataclass(frozen=True)
class TaskRequirements:
    """Capability query attached to a step."""

    category: str
    outputs: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()

    @property
    def all_tags(self) -> frozenset[str]:
        return frozenset((self.category, *self.tags))


@dataclass(frozen=True)
class AgentSelection:
    """Result of matching a task against the registry."""

    primary_agent: str
    confidence: float
    supporting_agents: tuple[str, ...] = ()
    rationale: str = ""


# =============================================================================
# WORKFLOW DEFINITION
# =============================================================================


@dataclass(frozen=True)
class Subtask:
    """Piece of a decomposed step."""

    requirements: TaskRequirements
    instructions: str = ""


CompensatingAction = Callable[[str, "AgentResult", "WorkflowContext"], None]


@dataclass(frozen=True)
class StepDefinition:
    """Node of the workflow dependency graph."""

    step_id: str
    requirements: TaskRequirements
    depends_on: tuple[str, ...] = ()
    compensate: CompensatingAction | None = field(default=None, compare=False)
    instructions: str = ""
    timeout: float | None = None
    # Domain chain only: (parameter, "stage" or "stage.output") pairs
    inputs: tuple[tuple[str, str], ...] = ()
    subtasks: tuple[Subtask, ...] = ()
    agent: str | None = None  # pin to a registered agent, bypassing matching
    parent_step: str | None = None  # set on decomposed sub-steps

    @property
    def input_sources(self) -> tuple[str, ...]:
        """Step ids referenced by ``inputs``."""
        return tuple(ref.split(".", 1)[0] for _, ref in self.inputs)

    @property
    def predecessors(self) -> tuple[str, ...]:
        """Explicit dependencies plus domain-chain input sources."""
        merged = list(self.depends_on)
        for source in self.input_sources:
            if source not in merged:
                merged.append(source)
        return tuple(merged)


@dataclass(frozen=True)
class Phase:
    """Ordered group of steps sharing one execution strategy."""

    name: str
    steps: tuple[StepDefinition, ...]
    strategy: ExecutionStrategy | None = None  # None: workflow default


@dataclass(frozen=True)
class WorkflowDefinition:
    """Declarative workflow: phases of steps plus a default strategy."""

    workflow_id: str
    phases: tuple[Phase, ...]
    name: str = ""
    default_strategy: ExecutionStrategy | None = None  # None: orchestrator config

    @property
    def steps(self) -> tuple[StepDefinition, ...]:
        return tuple(step for phase in self.phases for step in phase.steps)

    def get_step(self, step_id: str) -> StepDefinition | None:
        """Get a step by ID."""
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def strategy_for(
        self, phase: Phase, fallback: ExecutionStrategy = ExecutionStrategy.SEQUENTIAL
    ) -> ExecutionStrategy:
        return phase.strategy or self.default_strategy or fallback


@dataclass(frozen=True)
class ExecutionPlan:
    """Schedule derived from a definition before any step runs."""

    workflow_id: str
    assignments: Mapping[str, AgentSelection]
    groups: tuple[tuple[str, ...], ...]  # dispatch groups, in execution order
    critical_path: tuple[str, ...]
    estimated_duration: float  # sum of each group's slowest typical duration


# =============================================================================
# QUALITY GATES
# =============================================================================


@dataclass(frozen=True)
class QualityGate:
    """Named multi-validator checkpoint."""

    name: str
    validators: tuple[str, ...]
    criteria: tuple[str, ...] = ()
    concerns: tuple[str, ...] = ()  # cross-cutting categories appended to criteria
    after_phase: str | None = None  # None: evaluated once all phases completed


@dataclass(frozen=True)
class ValidationOutcome:
    """Value returned by a validator."""

    passed: bool
    details: str = ""


@dataclass(frozen=True)
class GateCheckResult:
    """One validator's contribution to a gate."""

    validator: str
    verdict: CheckVerdict
    details: str = ""


@dataclass(frozen=True)
class QualityGateResult:
    """Aggregate gate outcome: logical AND over all checks."""

    gate_name: str
    passed: bool
    checks: tuple[GateCheckResult, ...] = ()
    recommendations: tuple[str, ...] = ()

    @property
    def indeterminate(self) -> tuple[str, ...]:
        return tuple(
            c.validator for c in self.checks if c.verdict is CheckVerdict.INDETERMINATE
        )

    @property
    def failed_checks(self) -> tuple[str, ...]:
        return tuple(c.validator for c in self.checks if c.verdict is not CheckVerdict.PASSED)


# =============================================================================
# AGENT INVOCATION
# =============================================================================


@dataclass(frozen=True)
class AgentTask:
    """What an agent is asked to do for one step."""

    step_id: str
    requirements: TaskRequirements
    agent_name: str
    depends_on: tuple[str, ...] = ()
    inputs: Mapping[str, Any] = field(default_factory=dict)
    attempt: int = 1
    parent_step: str | None = None


@dataclass(frozen=True)
class HandoffNotes:
    """Notes passed from the previous step's agent to the next one."""

    from_step: str | None
    prior_artifact: str | None
    key_decisions: tuple[str, ...] = ()
    constraints: tuple[str, ...] = ()
    expectations: tuple[str, ...] = ()

    def render(self) -> str:
        """Render the notes as plain text for text-driven agents."""
        parts = [f"# HANDOFF FROM\n{self.from_step or '(workflow start)'}"]
        if self.prior_artifact:
            parts.append(f"# PRIOR ARTIFACT\n{self.prior_artifact}")
        if self.key_decisions:
            parts.append("# KEY DECISIONS\n" + "\n".join(f"- {d}" for d in self.key_decisions))
        if self.constraints:
            parts.append("# CONSTRAINTS\n" + "\n".join(f"- {c}" for c in self.constraints))
        if self.expectations:
            parts.append("# EXPECTATIONS\n" + "\n".join(f"- {e}" for e in self.expectations))
        return "\n\n".join(parts)


@dataclass(frozen=True)
class AgentResult:
    """Value returned by an agent and stored as the step's artifact."""

    agent_name: str
    content: Any = None
    outputs: Mapping[str, Any] = field(default_factory=dict)  # named results
    decisions: tuple[str, ...] = ()
    limitations: tuple[str, ...] = ()
    step_id: str = ""  # filled in on commit

    def for_step(self, step_id: str) -> "AgentResult":
        return replace(self, step_id=step_id)


# =============================================================================
# WORKFLOW CONTEXT
# =============================================================================


@dataclass(frozen=True)
class FeatureSpec:
    """Feature under delivery. Immutable after creation."""

    feature_id: str
    description: str
    acceptance_criteria: tuple[str, ...] = ()


_BUILTIN_FIELDS = (
    "feature",
    "acceptance_criteria",
    "domain_constraints",
    "cross_cutting_concerns",
    "quality_gates",
)


@dataclass
class WorkflowContext:
    """
    Mutable state threaded through one workflow execution.

    ``artifacts`` is append-only: each key is written once through
    commit_artifact(). Only the artifact map is guarded by a lock.
    """

    feature: FeatureSpec
    domain_constraints: dict[str, Any] = field(default_factory=dict)
    quality_gates: tuple[QualityGate, ...] = ()
    cross_cutting_concerns: dict[str, tuple[str, ...]] = field(default_factory=dict)
    supplements: dict[str, Any] = field(default_factory=dict)  # enrichment from recovery
    status: ContextStatus = ContextStatus.ACTIVE
    failure_marker: str = ""
    _artifacts: dict[str, AgentResult] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @property
    def artifacts(self) -> Mapping[str, AgentResult]:
        """Read-only view of committed artifacts, in commit order."""
        return MappingProxyType(self._artifacts)

    def commit_artifact(self, key: str, result: AgentResult) -> AgentResult:
        """Write an artifact exactly once.

        Raises:
            ArtifactOverwriteError: If the key was already written
        """
        with self._lock:
            if key in self._artifacts:
                raise ArtifactOverwriteError(key)
            self._artifacts[key] = result
        return result

    def resolve(self, name: str) -> Any:
        """Look up a context field by name.

        Search order: supplements, domain constraints, artifacts, then the
        built-in fields. Built-in fields only count when non-empty.

        Raises:
            KeyError: If the field is absent
        """
        if name in self.supplements:
            return self.supplements[name]
        if name in self.domain_constraints:
            return self.domain_constraints[name]
        if name in self._artifacts:
            return self._artifacts[name]
        if name in _BUILTIN_FIELDS:
            value = (
                self.feature.acceptance_criteria
                if name == "acceptance_criteria"
                else getattr(self, name)
            )
            if value:
                return value
        raise KeyError(name)

    def has_field(self, name: str) -> bool:
        try:
            self.resolve(name)
        except KeyError:
            return False
        return True

    def flattened_concerns(self) -> tuple[str, ...]:
        return tuple(
            f"{category}: {item}"
            for category, items in self.cross_cutting_concerns.items()
            for item in items
        )

    def snapshot(self) -> dict[str, Any]:
        """Deep, detached copy of the context for escalation and archiving."""
        with self._lock:
            artifacts = dict(self._artifacts)
        return {
            "feature": {
                "feature_id": self.feature.feature_id,
                "description": self.feature.description,
                "acceptance_criteria": list(self.feature.acceptance_criteria),
            },
            "domain_constraints": copy.deepcopy(self.domain_constraints),
            "quality_gates": [gate.name for gate in self.quality_gates],
            "cross_cutting_concerns": {
                k: list(v) for k, v in self.cross_cutting_concerns.items()
            },
            "supplements": copy.deepcopy(self.supplements),
            "artifacts": {
                key: {
                    "agent_name": result.agent_name,
                    "content": copy.deepcopy(result.content),
                    "outputs": copy.deepcopy(dict(result.outputs)),
                    "decisions": list(result.decisions),
                    "limitations": list(result.limitations),
                }
                for key, result in artifacts.items()
            },
            "status": self.status.value,
            "failure_marker": self.failure_marker,
        }

    def archive(self) -> None:
        self.status = ContextStatus.ARCHIVED

    def mark_failed(self, marker: str) -> None:
        self.status = ContextStatus.FAILED
        self.failure_marker = marker


# =============================================================================
# RECOVERY & COMPENSATION
# =============================================================================


@dataclass(frozen=True)
class EscalationRecord:
    """Hand-off to the external collaborator when recovery is impossible."""

    step_id: str
    error_type: str
    message: str
    context_snapshot: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of RecoveryManager.handle_failure()."""

    recovered: bool
    strategy_used: RecoveryStrategy | None
    updated_context: WorkflowContext
    result: AgentResult | None = None
    escalation: EscalationRecord | None = None
    attempted: tuple[RecoveryStrategy, ...] = ()


@dataclass(frozen=True)
class CompensationOutcome:
    """Result of a reverse-order compensation sweep."""

    invoked: tuple[str, ...] = ()  # every action invoked, in order
    compensated: tuple[str, ...] = ()  # actions that succeeded
    without_action: tuple[str, ...] = ()
    errors: tuple[CompensationError, ...] = ()

    @property
    def clean(self) -> bool:
        return not self.errors


# =============================================================================
# EXECUTION RECORD
# =============================================================================


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StepRecord:
    """Execution history of one step."""

    step_id: str
    phase: str
    agent_name: str | None = None
    status: StepStatus = StepStatus.PENDING
    history: list[StepStatus] = field(default_factory=lambda: [StepStatus.PENDING])
    attempts: int = 0
    started_at: str | None = None
    ended_at: str | None = None
    duration: float = 0.0  # all attempts
    attempt_duration: float = 0.0  # latest attempt only
    error: str | None = None
    recovery_strategy: RecoveryStrategy | None = None
    compensation_error: str | None = None
    parent_step: str | None = None

    def transition(self, status: StepStatus) -> None:
        if status is StepStatus.RUNNING and self.started_at is None:
            self.started_at = _now()
        if status in TERMINAL_STEP_STATUSES:
            self.ended_at = _now()
        self.status = status
        self.history.append(status)

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES


@dataclass
class ExecutionMetrics:
    """Counters accumulated during one execution."""

    step_durations: dict[str, float] = field(default_factory=dict)
    gate_results: list[QualityGateResult] = field(default_factory=list)
    error_count: int = 0
    recovery_attempts: int = 0


@dataclass
class WorkflowExecution:
    """Everything recorded about one run of a workflow."""

    workflow_id: str
    context: WorkflowContext
    execution_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: str = field(default_factory=_now)
    ended_at: str | None = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    steps: dict[str, StepRecord] = field(default_factory=dict)
    history: list[tuple[str, StepStatus]] = field(default_factory=list)
    completion_order: list[str] = field(default_factory=list)
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    failed_step: str | None = None
    failure_reason: str = ""
    escalation: EscalationRecord | None = None
    compensation: CompensationOutcome | None = None

    def add_step(self, step_id: str, phase: str, parent_step: str | None = None) -> StepRecord:
        record = StepRecord(step_id=step_id, phase=phase, parent_step=parent_step)
        self.steps[step_id] = record
        self.history.append((step_id, StepStatus.PENDING))
        return record

    def transition(self, step_id: str, status: StepStatus) -> None:
        self.steps[step_id].transition(status)
        self.history.append((step_id, status))
        if status is StepStatus.COMPLETED and step_id not in self.completion_order:
            self.completion_order.append(step_id)

    def step_history(self, step_id: str) -> list[StepStatus]:
        return list(self.steps[step_id].history)

    @property
    def recovered(self) -> bool:
        return any(r.recovery_strategy is not None for r in self.steps.values())
