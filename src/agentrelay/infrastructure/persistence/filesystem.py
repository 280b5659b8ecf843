"""
Filesystem context archive.

One JSON document per run, written atomically. Artifact content that is
not JSON-native is stored as its string representation.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from agentrelay.domain.interfaces import ContextArchiveInterface
from agentrelay.domain.models import WorkflowExecution


class FilesystemContextArchive(ContextArchiveInterface):
    """Persistent archive of final workflow contexts."""

    def __init__(self, base_dir: str | Path):
        self._base_dir = Path(base_dir)
        self._contexts_dir = self._base_dir / "contexts"
        self._contexts_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, execution_id: str) -> Path:
        return self._contexts_dir / f"{execution_id}.json"

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
        path = self._path(execution.execution_id)
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(record, f, indent=2, default=str)
        temp_path.replace(path)  # Atomic on POSIX

    def get(self, execution_id: str) -> dict[str, Any]:
        path = self._path(execution_id)
        if not path.exists():
            raise KeyError(f"Context not found: {execution_id}")
        with open(path) as f:
            result: dict[str, Any] = json.load(f)
        return result

    def execution_ids(self, workflow_id: str | None = None) -> list[str]:
        """Archived runs, optionally of one workflow, oldest first."""
        stored: list[tuple[str, str]] = []
        for path in self._contexts_dir.glob("*.json"):
            with open(path) as f:
                record = json.load(f)
            if workflow_id is None or record.get("workflow_id") == workflow_id:
                stored.append((record.get("started_at", ""), path.stem))
        return [execution_id for _, execution_id in sorted(stored)]
