"""
Infrastructure layer for agentrelay.

Contains adapters for external concerns (persistence, agents, plugin
discovery, report rendering).
"""

from agentrelay.infrastructure.agents import MockAgent, MockValidator
from agentrelay.infrastructure.persistence import (
    FilesystemContextArchive,
    FilesystemWorkflowEventStore,
    InMemoryContextArchive,
    InMemoryWorkflowEventStore,
)
from agentrelay.infrastructure.registry import (
    AgentPluginRegistry,
    build_capability_registry,
)
from agentrelay.infrastructure.reporting import render_report

__all__ = [
    # Persistence
    "InMemoryWorkflowEventStore",
    "FilesystemWorkflowEventStore",
    "InMemoryContextArchive",
    "FilesystemContextArchive",
    # Agents
    "MockAgent",
    "MockValidator",
    # Registry
    "AgentPluginRegistry",
    "build_capability_registry",
    # Reporting
    "render_report",
]
