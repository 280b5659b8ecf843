"""
In-memory context archive.

Useful for testing and ephemeral workflows.
"""

import threading
from datetime import datetime, timezone
from typing import Any

from agentrelay.domain.interfaces import ContextArchiveInterface
from agentrelay.domain.models import WorkflowExecution


class InMemoryContextArchive(ContextArchiveInterface):
    """Simple in-memory archive for testing."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def store(self, execution: WorkflowExecution) -> None:
        record = {
            "execution_id": execution.execution_id,
            "workflow_id": execution.workflow_id,
            "outcome": execution.status.value,
            "started_at": execution.started_at,
            "ended_at": execution.ended_at,
            "stored_at": datetime.now(timezone.utc).isoformat(),
            "context": execution.context.snapshot(),
        }
        with self._lock:
            self._records[execution.execution_id] = record

    def get(self, execution_id: str) -> dict[str, Any]:
        with self._lock:
            if execution_id not in self._records:
                raise KeyError(f"Context not found: {execution_id}")
            return self._records[execution_id]

    def execution_ids(self, workflow_id: str) -> list[str]:
        """Archived runs of a workflow, in storage order."""
        with self._lock:
            return [
                execution_id
                for execution_id, record in self._records.items()
                if record["workflow_id"] == workflow_id
            ]

    def __contains__(self, execution_id: object) -> bool:
        return execution_id in self._records
