"""Tests for AgentPluginRegistry - entry points-based agent discovery."""

import pytest

from agentrelay.domain.models import AgentDescriptor
from agentrelay.infrastructure import (
    AgentPluginRegistry,
    MockAgent,
    build_capability_registry,
)


@pytest.fixture(autouse=True)
def clean_registry():
    AgentPluginRegistry.clear()
    yield
    AgentPluginRegistry.clear()


class TestEntryPointsLoading:
    """Tests for entry points discovery and loading."""

    def test_available_includes_builtin(self) -> None:
        """available() lists the built-in MockAgent."""
        assert "MockAgent" in AgentPluginRegistry.available()

    def test_load_idempotent(self) -> None:
        """Multiple _load_entry_points() calls don't duplicate entries."""
        AgentPluginRegistry._load_entry_points()
        count_after_first = len(AgentPluginRegistry._agents)

        AgentPluginRegistry._load_entry_points()

        assert len(AgentPluginRegistry._agents) == count_after_first

    def test_lazy_loading(self) -> None:
        """Entry points are only loaded on first access."""
        assert AgentPluginRegistry._loaded is False

        AgentPluginRegistry.available()

        assert AgentPluginRegistry._loaded is True


class TestRegistryOperations:
    """Tests for registry get/create/register operations."""

    def test_get_returns_agent_class(self) -> None:
        assert AgentPluginRegistry.get("MockAgent") is MockAgent

    def test_get_unknown_raises(self) -> None:
        with pytest.raises(KeyError, match="not found"):
            AgentPluginRegistry.get("NoSuchAgent")

    def test_create_with_config(self) -> None:
        agent = AgentPluginRegistry.create("MockAgent", name="coder", delay=0.0)

        assert isinstance(agent, MockAgent)
        assert agent.name == "coder"

    def test_create_with_bad_config(self) -> None:
        with pytest.raises(TypeError):
            AgentPluginRegistry.create("MockAgent", model="gpt")

    def test_manual_register(self) -> None:
        class ReviewAgent(MockAgent):
            pass

        AgentPluginRegistry.register("ReviewAgent", ReviewAgent)

        assert AgentPluginRegistry.get("ReviewAgent") is ReviewAgent

    def test_clear_resets_manual_registrations(self) -> None:
        AgentPluginRegistry.register("Extra", MockAgent)

        AgentPluginRegistry.clear()

        assert "Extra" not in AgentPluginRegistry.available()


class TestBuildCapabilityRegistry:
    def test_builds_frozen_registry_in_order(self) -> None:
        entries = [
            (AgentDescriptor(name="architect"), "MockAgent", {"name": "architect"}),
            (AgentDescriptor(name="coder"), "MockAgent", {"name": "coder"}),
        ]

        registry = build_capability_registry(entries)

        assert registry.frozen
        assert [d.name for d in registry.descriptors] == ["architect", "coder"]
        assert registry.agent("coder").name == "coder"
