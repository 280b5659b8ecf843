"""Workflow event store implementations."""

import json
import threading
from pathlib import Path
from typing import Any

from agentrelay.domain.interfaces import WorkflowEventStoreInterface
from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType


class InMemoryWorkflowEventStore(WorkflowEventStoreInterface):
    """In-memory implementation for testing."""

    def __init__(self) -> None:
        self._events: list[WorkflowEvent] = []
        self._lock = threading.Lock()

    def store_event(self, event: WorkflowEvent) -> str:
        with self._lock:
            self._events.append(event)
        return event.event_id

    def get_events(
        self,
        execution_id: str,
        event_type: WorkflowEventType | None = None,
        step_id: str | None = None,
    ) -> list[WorkflowEvent]:
        with self._lock:
            events = list(self._events)
        return sorted(
            [
                e
                for e in events
                if e.execution_id == execution_id
                and (event_type is None or e.event_type == event_type)
                and (step_id is None or e.step_id == step_id)
            ],
            key=lambda e: e.sequence,
        )

    def execution_ids(self, workflow_id: str) -> list[str]:
        with self._lock:
            events = list(self._events)
        runs: list[str] = []
        for event in events:
            if event.workflow_id == workflow_id and event.execution_id not in runs:
                runs.append(event.execution_id)
        return runs

    def get_escalation_events(self, execution_id: str) -> list[WorkflowEvent]:
        return self.get_events(execution_id, WorkflowEventType.ESCALATE)


class FilesystemWorkflowEventStore(WorkflowEventStoreInterface):
    """Filesystem implementation storing one JSONL file per run.

    Layout: ``<base>/events/<workflow_id>/<execution_id>.jsonl``
    """

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.events_dir = base_path / "events"
        self.events_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _get_run_file(self, workflow_id: str, execution_id: str) -> Path:
        return self.events_dir / workflow_id / f"{execution_id}.jsonl"

    def _find_run_file(self, execution_id: str) -> Path | None:
        matches = sorted(self.events_dir.glob(f"*/{execution_id}.jsonl"))
        return matches[0] if matches else None

    def store_event(self, event: WorkflowEvent) -> str:
        path = self._get_run_file(event.workflow_id, event.execution_id)
        line = json.dumps(self._event_to_dict(event))
        with self._lock:
            path.parent.mkdir(exist_ok=True)
            with open(path, "a") as f:
                f.write(line + "\n")
        return event.event_id

    def get_events(
        self,
        execution_id: str,
        event_type: WorkflowEventType | None = None,
        step_id: str | None = None,
    ) -> list[WorkflowEvent]:
        path = self._find_run_file(execution_id)
        if path is None:
            return []
        events: list[WorkflowEvent] = []
        with open(path) as f:
            for line in f:
                if not line.strip():
                    continue
                event = self._dict_to_event(json.loads(line))
                if event_type and event.event_type != event_type:
                    continue
                if step_id and event.step_id != step_id:
                    continue
                events.append(event)
        return sorted(events, key=lambda e: e.sequence)

    def execution_ids(self, workflow_id: str) -> list[str]:
        """Runs of a workflow ordered by their first recorded event."""
        started: list[tuple[str, str]] = []
        for path in (self.events_dir / workflow_id).glob("*.jsonl"):
            with open(path) as f:
                first = next((line for line in f if line.strip()), None)
            created_at = json.loads(first).get("created_at", "") if first else ""
            started.append((created_at, path.stem))
        return [execution_id for _, execution_id in sorted(started)]

    def get_escalation_events(self, execution_id: str) -> list[WorkflowEvent]:
        return self.get_events(execution_id, WorkflowEventType.ESCALATE)

    def workflow_ids(self) -> list[str]:
        """Workflows with a trace on disk, by name."""
        return sorted(path.name for path in self.events_dir.iterdir() if path.is_dir())

    def _event_to_dict(self, event: WorkflowEvent) -> dict[str, Any]:
        """Serialize event to dict."""
        return {
            "event_id": event.event_id,
            "event_type": event.event_type.value,
            "workflow_id": event.workflow_id,
            "execution_id": event.execution_id,
            "sequence": event.sequence,
            "step_id": event.step_id,
            "agent_name": event.agent_name,
            "status": event.status,
            "attempt": event.attempt,
            "duration": event.duration,
            "gate_name": event.gate_name,
            "passed": event.passed,
            "strategy": event.strategy,
            "error_type": event.error_type,
            "depends_on": list(event.depends_on),
            "failed_validators": list(event.failed_validators),
            "indeterminate": list(event.indeterminate),
            "details": list(event.details),
            "summary": event.summary,
            "created_at": event.created_at,
        }

    def _dict_to_event(self, data: dict[str, Any]) -> WorkflowEvent:
        """Deserialize dict to event."""
        return WorkflowEvent(
            event_id=data["event_id"],
            event_type=WorkflowEventType(data["event_type"]),
            workflow_id=data["workflow_id"],
            execution_id=data["execution_id"],
            sequence=data["sequence"],
            step_id=data.get("step_id"),
            agent_name=data.get("agent_name"),
            status=data.get("status"),
            attempt=data.get("attempt"),
            duration=data.get("duration"),
            gate_name=data.get("gate_name"),
            passed=data.get("passed"),
            strategy=data.get("strategy"),
            error_type=data.get("error_type"),
            depends_on=tuple(data.get("depends_on", ())),
            failed_validators=tuple(data.get("failed_validators", ())),
            indeterminate=tuple(data.get("indeterminate", ())),
            details=tuple(data.get("details", ())),
            summary=data.get("summary", ""),
            created_at=data.get("created_at", ""),
        )
