"""
Agent adapters.
"""

from agentrelay.infrastructure.agents.mock import AgentCall, MockAgent, MockValidator

__all__ = [
    "AgentCall",
    "MockAgent",
    "MockValidator",
]
