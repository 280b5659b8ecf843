"""Workflow execution trace models."""

from dataclasses import dataclass
from enum import Enum


class WorkflowEventType(str, Enum):
    """Types of workflow execution events."""

    WORKFLOW_START = "WORKFLOW_START"
    STEP_START = "STEP_START"
    STEP_COMPLETE = "STEP_COMPLETE"
    STEP_FAIL = "STEP_FAIL"
    STEP_SKIPPED = "STEP_SKIPPED"
    GATE_EVALUATED = "GATE_EVALUATED"
    RECOVERY_ATTEMPT = "RECOVERY_ATTEMPT"
    RECOVERY_RESULT = "RECOVERY_RESULT"
    ESCALATE = "ESCALATE"
    COMPENSATE = "COMPENSATE"
    WORKFLOW_END = "WORKFLOW_END"


@dataclass(frozen=True)
class WorkflowEvent:
    """Single state transition in a workflow execution trace.

    One flat record type covers every event; fields that do not apply to
    an event type are left at their defaults.
    """

    event_id: str
    event_type: WorkflowEventType
    workflow_id: str  # definition the run belongs to
    execution_id: str  # one run of that definition
    sequence: int  # emission order within the run
    step_id: str | None = None
    agent_name: str | None = None
    status: str | None = None  # step status or execution status
    attempt: int | None = None
    duration: float | None = None  # seconds
    gate_name: str | None = None
    passed: bool | None = None
    strategy: str | None = None  # recovery strategy
    error_type: str | None = None  # exception class of a failed attempt
    depends_on: tuple[str, ...] = ()
    failed_validators: tuple[str, ...] = ()
    indeterminate: tuple[str, ...] = ()
    details: tuple[str, ...] = ()  # gate recommendations
    summary: str = ""
    created_at: str = ""  # ISO 8601
