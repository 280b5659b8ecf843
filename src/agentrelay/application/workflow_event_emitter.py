"""Workflow event emission service."""

import itertools
import queue
import uuid
from datetime import datetime, timezone

from agentrelay.domain.interfaces import WorkflowEventStoreInterface
from agentrelay.domain.models import QualityGateResult
from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType


class WorkflowEventEmitter:
    """Posts workflow events onto a message channel.

    The channel is drained by the WorkflowMonitor; an optional store
    persists every event as well. Events carry the run id and a per-run
    sequence number so their order survives persistence.
    """

    def __init__(
        self,
        channel: "queue.Queue[WorkflowEvent]",
        workflow_id: str,
        event_store: WorkflowEventStoreInterface | None = None,
        execution_id: str | None = None,
    ) -> None:
        self._channel = channel
        self._workflow_id = workflow_id
        self._execution_id = execution_id or uuid.uuid4().hex
        self._store = event_store
        self._sequence = itertools.count(1)

    @property
    def workflow_id(self) -> str:
        return self._workflow_id

    @property
    def execution_id(self) -> str:
        return self._execution_id

    def _emit(self, event_type: WorkflowEventType, **fields: object) -> WorkflowEvent:
        event = WorkflowEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            workflow_id=self._workflow_id,
            execution_id=self._execution_id,
            sequence=next(self._sequence),
            created_at=self._now(),
            **fields,  # type: ignore[arg-type]
        )
        if self._store is not None:
            self._store.store_event(event)
        self._channel.put(event)
        return event

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def workflow_start(self, summary: str = "") -> None:
        """Emit WORKFLOW_START once the schedule has been built."""
        self._emit(WorkflowEventType.WORKFLOW_START, status="running", summary=summary)

    def step_start(
        self, step_id: str, agent_name: str, attempt: int, depends_on: tuple[str, ...]
    ) -> None:
        """Emit STEP_START when a step is dispatched to its agent."""
        self._emit(
            WorkflowEventType.STEP_START,
            step_id=step_id,
            agent_name=agent_name,
            attempt=attempt,
            depends_on=depends_on,
            status="running",
        )

    def step_complete(
        self, step_id: str, agent_name: str, duration: float, attempt: int
    ) -> None:
        """Emit STEP_COMPLETE when a step's result has been committed."""
        self._emit(
            WorkflowEventType.STEP_COMPLETE,
            step_id=step_id,
            agent_name=agent_name,
            duration=duration,
            attempt=attempt,
            status="completed",
        )

    def step_fail(
        self, step_id: str, agent_name: str | None, duration: float, error: Exception
    ) -> None:
        """Emit STEP_FAIL when a step raised or timed out."""
        self._emit(
            WorkflowEventType.STEP_FAIL,
            step_id=step_id,
            agent_name=agent_name,
            duration=duration,
            status="failed",
            error_type=type(error).__name__,
            summary=str(error)[:500],
        )

    def step_skipped(self, step_id: str) -> None:
        """Emit STEP_SKIPPED when a pending step is cancelled."""
        self._emit(WorkflowEventType.STEP_SKIPPED, step_id=step_id, status="skipped")

    def gate_evaluated(self, result: QualityGateResult) -> None:
        """Emit GATE_EVALUATED with failed validators and recommendations."""
        self._emit(
            WorkflowEventType.GATE_EVALUATED,
            gate_name=result.gate_name,
            passed=result.passed,
            details=result.recommendations,
            failed_validators=result.failed_checks,
            indeterminate=result.indeterminate,
        )

    def recovery_attempt(self, step_id: str, strategy: str, attempt: int) -> None:
        """Emit RECOVERY_ATTEMPT each time a strategy is tried."""
        self._emit(
            WorkflowEventType.RECOVERY_ATTEMPT,
            step_id=step_id,
            strategy=strategy,
            attempt=attempt,
        )

    def recovery_result(self, step_id: str, strategy: str | None, recovered: bool) -> None:
        """Emit RECOVERY_RESULT once the RecoveryManager settled a failure."""
        self._emit(
            WorkflowEventType.RECOVERY_RESULT,
            step_id=step_id,
            strategy=strategy,
            passed=recovered,
        )

    def escalate(self, step_id: str, summary: str) -> None:
        """Emit ESCALATE when control returns to the external collaborator."""
        self._emit(WorkflowEventType.ESCALATE, step_id=step_id, summary=summary[:500])

    def compensate(self, step_id: str, succeeded: bool, summary: str = "") -> None:
        """Emit COMPENSATE for each compensating action invoked."""
        self._emit(
            WorkflowEventType.COMPENSATE,
            step_id=step_id,
            passed=succeeded,
            summary=summary[:500],
        )

    def workflow_end(self, status: str, duration: float, failed_step: str | None) -> None:
        """Emit WORKFLOW_END with the aggregate execution status."""
        self._emit(
            WorkflowEventType.WORKFLOW_END,
            status=status,
            duration=duration,
            step_id=failed_step,
        )
