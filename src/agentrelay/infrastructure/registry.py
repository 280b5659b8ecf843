"""
Agent Plugin Registry with Entry Points Discovery.

Provides dynamic agent loading via Python entry points (agentrelay.agents group).
External packages can register agent implementations in their pyproject.toml:

    [project.entry-points."agentrelay.agents"]
    ReviewAgent = "mypackage.agents:ReviewAgent"

Plugins are resolved by name once, when the CapabilityRegistry is built;
the orchestrator itself only ever matches typed descriptors.
"""

import warnings
from collections.abc import Iterable, Mapping
from importlib.metadata import entry_points
from typing import Any

from agentrelay.domain.interfaces import AgentInterface
from agentrelay.domain.models import AgentDescriptor
from agentrelay.domain.registry import CapabilityRegistry
from agentrelay.infrastructure.agents import MockAgent

ENTRY_POINT_GROUP = "agentrelay.agents"


class AgentPluginRegistry:
    """
    Registry for AgentInterface implementations.

    Discovers agents via the 'agentrelay.agents' entry point group.
    Uses lazy loading - entry points are only loaded on first access.

    Example usage:
        agent = AgentPluginRegistry.create("MockAgent", name="reviewer")
    """

    _agents: dict[str, type[AgentInterface]] = {"MockAgent": MockAgent}
    _loaded: bool = False

    @classmethod
    def _load_entry_points(cls) -> None:
        """Load agents from entry points (lazy, called once)."""
        if cls._loaded:
            return

        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                cls._agents[ep.name] = ep.load()
            except Exception as e:
                warnings.warn(
                    f"Failed to load agent '{ep.name}' from entry point: {e}",
                    stacklevel=2,
                )

        cls._loaded = True

    @classmethod
    def register(cls, name: str, agent_class: type[AgentInterface]) -> None:
        """
        Manually register an agent class.

        Args:
            name: Plugin identifier (e.g., "ReviewAgent")
            agent_class: Class implementing AgentInterface
        """
        cls._agents[name] = agent_class

    @classmethod
    def get(cls, name: str) -> type[AgentInterface]:
        """
        Get an agent class by name.

        Raises:
            KeyError: If the plugin is not found
        """
        cls._load_entry_points()
        if name not in cls._agents:
            available = ", ".join(cls._agents.keys()) or "(none)"
            raise KeyError(f"Agent plugin '{name}' not found. Available agents: {available}")
        return cls._agents[name]

    @classmethod
    def create(cls, name: str, **config: Any) -> AgentInterface:
        """
        Create an agent instance by plugin name.

        Raises:
            KeyError: If the plugin is not found
            TypeError: If config doesn't match the constructor signature
        """
        return cls.get(name)(**config)

    @classmethod
    def available(cls) -> list[str]:
        cls._load_entry_points()
        return list(cls._agents.keys())

    @classmethod
    def clear(cls) -> None:
        """
        Reset to the built-in plugins (useful for testing).

        Also resets the loaded flag so entry points can be reloaded.
        """
        cls._agents = {"MockAgent": MockAgent}
        cls._loaded = False


def build_capability_registry(
    entries: Iterable[tuple[AgentDescriptor, str, Mapping[str, Any]]],
) -> CapabilityRegistry:
    """
    Build and freeze a CapabilityRegistry from plugin declarations.

    Args:
        entries: (descriptor, plugin name, constructor config) triples,
            in declaration order

    Returns:
        A frozen registry
    """
    registry = CapabilityRegistry()
    for descriptor, plugin, config in entries:
        registry.register(descriptor, AgentPluginRegistry.create(plugin, **config))
    return registry.freeze()
