"""
agentrelay: workflow orchestration for multi-agent task pipelines.

Routes each step of a declarative workflow to the best-fit agent, hands
context from step to step, enforces quality gates, recovers failed steps
and compensates completed ones when recovery is impossible.

Example:
    from agentrelay import (
        AgentDescriptor, CapabilityRegistry, FeatureSpec, Phase,
        StepDefinition, TaskRequirements, WorkflowContext,
        WorkflowDefinition, WorkflowOrchestrator,
    )
    from agentrelay.infrastructure import MockAgent

    registry = CapabilityRegistry()
    registry.register(
        AgentDescriptor("designer", strengths=frozenset({"design"})),
        MockAgent("designer"),
    )
    definition = WorkflowDefinition(
        workflow_id="wf-1",
        phases=(Phase("design", (StepDefinition("api", TaskRequirements("design")),)),),
    )
    orchestrator = WorkflowOrchestrator(registry)
    execution = orchestrator.execute(definition, WorkflowContext(FeatureSpec("F-1", "Login")))
    report = orchestrator.monitor.report("wf-1")
"""

# Application layer (orchestration)
from agentrelay.application import (
    CapabilityMatcher,
    ContextPreservationManager,
    QualityGateOrchestrator,
    RecoveryManager,
    WorkflowMonitor,
    WorkflowOrchestrator,
)
from agentrelay.config import (
    MatchingPolicy,
    OrchestratorConfig,
    QualityScorePolicy,
    RecoveryPolicy,
)

# Domain exceptions
from agentrelay.domain.exceptions import (
    AgentError,
    AgentRelayError,
    CapabilityMismatchError,
    CompensationError,
    ContextInsufficientError,
    CyclicDependencyError,
    NoCapableAgentError,
    Severity,
    StepTimeoutError,
    TaskComplexityError,
    WorkflowDefinitionError,
)

# Domain interfaces (for type hints and custom implementations)
from agentrelay.domain.interfaces import (
    AgentInterface,
    ContextArchiveInterface,
    ValidatorInterface,
    WorkflowEventStoreInterface,
)

# Domain models (most commonly used)
from agentrelay.domain.models import (
    AgentDescriptor,
    AgentResult,
    AgentTask,
    ExecutionStatus,
    ExecutionStrategy,
    FeatureSpec,
    HandoffNotes,
    Phase,
    QualityGate,
    StepDefinition,
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

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Domain models
    "AgentDescriptor",
    "AgentResult",
    "AgentTask",
    "ExecutionStatus",
    "ExecutionStrategy",
    "FeatureSpec",
    "HandoffNotes",
    "Phase",
    "QualityGate",
    "StepDefinition",
    "StepStatus",
    "Subtask",
    "TaskRequirements",
    "ValidationOutcome",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowReport",
    "CapabilityRegistry",
    # Domain interfaces
    "AgentInterface",
    "ValidatorInterface",
    "WorkflowEventStoreInterface",
    "ContextArchiveInterface",
    # Exceptions
    "AgentRelayError",
    "AgentError",
    "CapabilityMismatchError",
    "CompensationError",
    "ContextInsufficientError",
    "CyclicDependencyError",
    "NoCapableAgentError",
    "Severity",
    "StepTimeoutError",
    "TaskComplexityError",
    "WorkflowDefinitionError",
    # Configuration
    "OrchestratorConfig",
    "MatchingPolicy",
    "RecoveryPolicy",
    "QualityScorePolicy",
    # Application
    "CapabilityMatcher",
    "ContextPreservationManager",
    "QualityGateOrchestrator",
    "RecoveryManager",
    "WorkflowMonitor",
    "WorkflowOrchestrator",
]
