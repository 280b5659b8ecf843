"""
Domain interfaces (Ports) for the orchestration engine.

These abstract base classes define the contracts that agents, validators
and persistence adapters must satisfy.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from agentrelay.domain.models import (
        AgentResult,
        AgentTask,
        HandoffNotes,
        ValidationOutcome,
        WorkflowContext,
        WorkflowExecution,
    )
    from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType


class AgentInterface(ABC):
    """
    Port for task execution.

    The sole boundary with what agents actually do. An invocation is
    treated as a potentially long-running blocking call and may run on a
    worker thread.

    Implementations signal failure by raising AgentError or one of its
    subclasses (ContextInsufficientError, CapabilityMismatchError,
    TaskComplexityError) with a severity.
    """

    @abstractmethod
    def execute(
        self,
        task: "AgentTask",
        context: "WorkflowContext",
        instructions: str,
        handoff_notes: "HandoffNotes",
    ) -> "AgentResult":
        """
        Perform one step.

        Args:
            task: Step identity, requirements and resolved named inputs
            context: Shared workflow context (read-only for agents)
            instructions: Step instructions
            handoff_notes: Notes from the previous step

        Returns:
            The step's result, committed as its artifact
        """
        pass


class ValidatorInterface(ABC):
    """Port for quality validation used by quality gates."""

    @abstractmethod
    def validate(
        self, criteria: tuple[str, ...], artifacts: "Mapping[str, AgentResult]"
    ) -> "ValidationOutcome":
        """
        Check artifacts against pass/fail criteria.

        Raising signals an infrastructure error, reported as indeterminate.
        """
        pass


class WorkflowEventStoreInterface(ABC):
    """Port for workflow event persistence."""

    @abstractmethod
    def store_event(self, event: "WorkflowEvent") -> str:
        """Store event, return event_id."""
        pass

    @abstractmethod
    def get_events(
        self,
        execution_id: str,
        event_type: "WorkflowEventType | None" = None,
        step_id: str | None = None,
    ) -> list["WorkflowEvent"]:
        """Get events for one run in emission order, optionally filtered."""
        pass

    @abstractmethod
    def execution_ids(self, workflow_id: str) -> list[str]:
        """Runs recorded for a workflow, oldest first."""
        pass


class ContextArchiveInterface(ABC):
    """Port for retaining workflow contexts after a terminal outcome."""

    @abstractmethod
    def store(self, execution: "WorkflowExecution") -> None:
        """Store a finished run's context under its execution id."""
        pass

    @abstractmethod
    def get(self, execution_id: str) -> dict[str, Any]:
        """
        Retrieve a stored context snapshot.

        Raises:
            KeyError: If nothing was stored for the run
        """
        pass
