"""
Domain exceptions for the orchestration engine.

Schedule-time errors (CyclicDependencyError, NoCapableAgentError,
WorkflowDefinitionError) stop a workflow before any step runs.
Step-level errors derive from AgentError and are offered to the
RecoveryManager first.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentrelay.domain.models import Subtask


class Severity(str, Enum):
    """Severity attached to a step-level failure."""

    NORMAL = "normal"
    CRITICAL = "critical"  # skip to escalation once other strategies fail


class AgentRelayError(Exception):
    """Base class for every error raised by agentrelay."""


# =============================================================================
# SCHEDULE-TIME ERRORS (fatal, execution never starts)
# =============================================================================


class WorkflowDefinitionError(AgentRelayError):
    """Raised when a workflow definition is structurally invalid."""


class CyclicDependencyError(WorkflowDefinitionError):
    """Raised when the step dependency graph contains a cycle."""

    def __init__(self, cycle: tuple[str, ...]):
        """
        Args:
            cycle: Step ids forming the cycle, first id repeated at the end
        """
        super().__init__(f"Cyclic dependency detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class NoCapableAgentError(AgentRelayError):
    """Raised when no registered agent reaches the minimum confidence."""

    def __init__(self, message: str, best_agent: str | None = None, best_confidence: float = 0.0):
        super().__init__(message)
        self.best_agent = best_agent
        self.best_confidence = best_confidence


class RegistryFrozenError(AgentRelayError):
    """Raised when registering into a registry after initialization."""


class ArtifactOverwriteError(AgentRelayError):
    """Raised on a second write to an artifact key within one execution."""

    def __init__(self, key: str):
        super().__init__(f"Artifact '{key}' already committed")
        self.key = key


# =============================================================================
# STEP-LEVEL ERRORS (offered to the RecoveryManager)
# =============================================================================


class AgentError(AgentRelayError):
    """
    Failure reported by (or on behalf of) an agent invocation.

    Agents raise AgentError or one of its subclasses. Any other exception
    escaping an agent is wrapped into a plain AgentError by the
    ContextPreservationManager.
    """

    def __init__(self, message: str, severity: Severity = Severity.NORMAL):
        super().__init__(message)
        self.severity = severity

    @property
    def error_type(self) -> str:
        return type(self).__name__

    @property
    def critical(self) -> bool:
        return self.severity is Severity.CRITICAL


class ContextInsufficientError(AgentError):
    """Raised when the context lacks fields an agent requires."""

    def __init__(
        self,
        message: str,
        missing_fields: tuple[str, ...] = (),
        severity: Severity = Severity.NORMAL,
    ):
        super().__init__(message, severity)
        self.missing_fields = missing_fields


class CapabilityMismatchError(AgentError):
    """Raised when the assigned agent cannot perform the task."""


class TaskComplexityError(AgentError):
    """Raised when a task must be split before it can be performed."""

    def __init__(
        self,
        message: str,
        subtasks: tuple["Subtask", ...] = (),
        severity: Severity = Severity.NORMAL,
    ):
        super().__init__(message, severity)
        self.subtasks = subtasks


class StepTimeoutError(AgentError, TimeoutError):
    """Raised when a step exceeds its timeout."""

    def __init__(self, step_id: str, timeout: float):
        super().__init__(f"Step '{step_id}' timed out after {timeout:.3f}s")
        self.step_id = step_id
        self.timeout = timeout


# =============================================================================
# COMPENSATION (recorded, never raised out of the sweep)
# =============================================================================


class CompensationError(AgentRelayError):
    """A compensating action failed. Logged and recorded only."""

    def __init__(self, step_id: str, cause: BaseException):
        super().__init__(f"Compensation for '{step_id}' failed: {cause}")
        self.step_id = step_id
        self.cause = cause
