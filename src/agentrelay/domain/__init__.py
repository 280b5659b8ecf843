"""
Domain layer for the orchestration engine.

Contains the data model, ports, dependency graph and error taxonomy, with
no dependencies on the application or infrastructure layers.
"""

from agentrelay.domain.exceptions import (
    AgentError,
    AgentRelayError,
    ArtifactOverwriteError,
    CapabilityMismatchError,
    CompensationError,
    ContextInsufficientError,
    CyclicDependencyError,
    NoCapableAgentError,
    RegistryFrozenError,
    Severity,
    StepTimeoutError,
    TaskComplexityError,
    WorkflowDefinitionError,
)
from agentrelay.domain.graph import DependencyGraph
from agentrelay.domain.interfaces import (
    AgentInterface,
    ContextArchiveInterface,
    ValidatorInterface,
    WorkflowEventStoreInterface,
)
from agentrelay.domain.models import (
    AgentDescriptor,
    AgentResult,
    AgentSelection,
    AgentTask,
    CheckVerdict,
    CompensationOutcome,
    ContextStatus,
    EscalationRecord,
    ExecutionPlan,
    ExecutionStatus,
    ExecutionStrategy,
    FeatureSpec,
    GateCheckResult,
    HandoffNotes,
    Phase,
    QualityGate,
    QualityGateResult,
    RecoveryResult,
    RecoveryStrategy,
    StepDefinition,
    StepRecord,
    StepStatus,
    Subtask,
    TaskRequirements,
    ValidationOutcome,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowExecution,
)
from agentrelay.domain.registry import CapabilityRegistry
from agentrelay.domain.report import WorkflowReport
from agentrelay.domain.saga import SagaEntry, SagaLedger
from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType

__all__ = [
    # Models
    "AgentDescriptor",
    "AgentResult",
    "AgentSelection",
    "AgentTask",
    "CheckVerdict",
    "CompensationOutcome",
    "ContextStatus",
    "EscalationRecord",
    "ExecutionPlan",
    "ExecutionStatus",
    "ExecutionStrategy",
    "FeatureSpec",
    "GateCheckResult",
    "HandoffNotes",
    "Phase",
    "QualityGate",
    "QualityGateResult",
    "RecoveryResult",
    "RecoveryStrategy",
    "StepDefinition",
    "StepRecord",
    "StepStatus",
    "Subtask",
    "TaskRequirements",
    "ValidationOutcome",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowReport",
    # Graph, registry, saga
    "DependencyGraph",
    "CapabilityRegistry",
    "SagaEntry",
    "SagaLedger",
    # Events
    "WorkflowEvent",
    "WorkflowEventType",
    # Interfaces
    "AgentInterface",
    "ValidatorInterface",
    "WorkflowEventStoreInterface",
    "ContextArchiveInterface",
    # Exceptions
    "AgentRelayError",
    "AgentError",
    "ArtifactOverwriteError",
    "CapabilityMismatchError",
    "CompensationError",
    "ContextInsufficientError",
    "CyclicDependencyError",
    "NoCapableAgentError",
    "RegistryFrozenError",
    "Severity",
    "StepTimeoutError",
    "TaskComplexityError",
    "WorkflowDefinitionError",
]
