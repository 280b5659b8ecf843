"""
Persistence adapters for workflow events and archived contexts.
"""

from agentrelay.infrastructure.persistence.filesystem import FilesystemContextArchive
from agentrelay.infrastructure.persistence.memory import InMemoryContextArchive
from agentrelay.infrastructure.persistence.workflow_events import (
    FilesystemWorkflowEventStore,
    InMemoryWorkflowEventStore,
)

__all__ = [
    "InMemoryContextArchive",
    "FilesystemContextArchive",
    "InMemoryWorkflowEventStore",
    "FilesystemWorkflowEventStore",
]
