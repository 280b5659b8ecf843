"""
Capability Registry: static catalog of agent descriptors.

Each descriptor is bound to the executor implementing it. The registry is
filled once at startup, then frozen; after that it is read-only and safe
for unsynchronized concurrent reads.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from agentrelay.domain.exceptions import RegistryFrozenError
from agentrelay.domain.models import AgentDescriptor

if TYPE_CHECKING:
    from agentrelay.domain.interfaces import AgentInterface


class CapabilityRegistry:
    """
    Catalog of AgentDescriptors in declaration order.

    Example usage:
        registry = CapabilityRegistry()
        registry.register(AgentDescriptor(name="coder", strengths=frozenset({"implementation"})), coder)
        registry.freeze()
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, AgentDescriptor] = {}
        self._agents: dict[str, AgentInterface] = {}
        self._frozen = False

    def register(self, descriptor: AgentDescriptor, agent: AgentInterface) -> CapabilityRegistry:
        """
        Register a descriptor together with its executor.

        Args:
            descriptor: Capability catalog entry
            agent: Executor implementing AgentInterface

        Returns:
            Self for fluent chaining

        Raises:
            RegistryFrozenError: If the registry was already frozen
            ValueError: If the name is already registered
        """
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register '{descriptor.name}': registry is frozen"
            )
        if descriptor.name in self._descriptors:
            raise ValueError(f"Agent '{descriptor.name}' already registered")
        self._descriptors[descriptor.name] = descriptor
        self._agents[descriptor.name] = agent
        return self

    def freeze(self) -> CapabilityRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def descriptors(self) -> tuple[AgentDescriptor, ...]:
        return tuple(self._descriptors.values())

    def get(self, name: str) -> AgentDescriptor:
        """
        Get a descriptor by name.

        Raises:
            KeyError: If the agent is not registered
        """
        if name not in self._descriptors:
            available = ", ".join(self._descriptors) or "(none)"
            raise KeyError(f"Agent '{name}' not found. Available agents: {available}")
        return self._descriptors[name]

    def agent(self, name: str) -> AgentInterface:
        self.get(name)
        return self._agents[name]

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
