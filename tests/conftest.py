"""Shared pytest fixtures for agentrelay tests."""

from collections.abc import Callable

import pytest

from agentrelay.domain.interfaces import AgentInterface
from agentrelay.domain.models import (
    AgentDescriptor,
    FeatureSpec,
    WorkflowContext,
)
from agentrelay.domain.registry import CapabilityRegistry
from agentrelay.infrastructure.agents.mock import MockAgent

RegistryFactory = Callable[..., CapabilityRegistry]


@pytest.fixture
def sample_feature() -> FeatureSpec:
    """Create a sample FeatureSpec for testing."""
    return FeatureSpec(
        feature_id="F-001",
        description="Password login",
        acceptance_criteria=("Users can log in", "Lockout after 5 failures"),
    )


@pytest.fixture
def context(sample_feature: FeatureSpec) -> WorkflowContext:
    """Create a fresh WorkflowContext for testing."""
    return WorkflowContext(
        feature=sample_feature,
        domain_constraints={"language": "python"},
        cross_cutting_concerns={"security": ("Hash passwords",)},
    )


@pytest.fixture
def make_registry() -> RegistryFactory:
    """Build a frozen registry from (descriptor, agent) pairs.

    A bare AgentDescriptor gets a default MockAgent of the same name.
    """

    def _make(*entries: AgentDescriptor | tuple[AgentDescriptor, AgentInterface]) -> CapabilityRegistry:
        registry = CapabilityRegistry()
        for entry in entries:
            if isinstance(entry, AgentDescriptor):
                registry.register(entry, MockAgent(entry.name))
            else:
                registry.register(*entry)
        return registry.freeze()

    return _make
