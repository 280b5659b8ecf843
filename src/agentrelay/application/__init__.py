"""
Application layer for agentrelay.

Contains the components that coordinate domain objects: matching,
handoffs, quality gates, recovery, monitoring and orchestration.
"""

from agentrelay.application.capability_matcher import CapabilityMatcher
from agentrelay.application.context_manager import ContextPreservationManager
from agentrelay.application.monitor import WorkflowMonitor
from agentrelay.application.orchestrator import WorkflowOrchestrator
from agentrelay.application.quality_gates import QualityGateOrchestrator
from agentrelay.application.recovery import RecoveryManager
from agentrelay.application.scope import ExecutionScope
from agentrelay.application.workflow_event_emitter import WorkflowEventEmitter

__all__ = [
    "CapabilityMatcher",
    "ContextPreservationManager",
    "ExecutionScope",
    "QualityGateOrchestrator",
    "RecoveryManager",
    "WorkflowEventEmitter",
    "WorkflowMonitor",
    "WorkflowOrchestrator",
]
