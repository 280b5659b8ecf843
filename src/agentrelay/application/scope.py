"""Per-execution state passed explicitly to every component."""

from collections.abc import Callable
from dataclasses import dataclass, field

from agentrelay.application.workflow_event_emitter import WorkflowEventEmitter
from agentrelay.domain.models import (
    AgentResult,
    StepDefinition,
    Subtask,
    WorkflowContext,
    WorkflowExecution,
)
from agentrelay.domain.saga import SagaLedger

SubgraphRunner = Callable[[StepDefinition, tuple[Subtask, ...], "ExecutionScope"], AgentResult]
# Runs one agent call for a step under that step's deadline
AttemptRunner = Callable[[StepDefinition, Callable[[], AgentResult]], AgentResult]


@dataclass
class ExecutionScope:
    """Everything one workflow run shares between its components."""

    execution: WorkflowExecution
    emitter: WorkflowEventEmitter
    run_subgraph: SubgraphRunner
    run_attempt: AttemptRunner
    ledger: SagaLedger = field(default_factory=SagaLedger)
    depth: int = 0  # decomposition nesting level

    @property
    def workflow_id(self) -> str:
        return self.execution.workflow_id

    @property
    def execution_id(self) -> str:
        return self.execution.execution_id

    @property
    def context(self) -> WorkflowContext:
        return self.execution.context
