"""
CapabilityMatcher: scores registered agents against task requirements.

The fit score is a weighted overlap between the requirement tags
(category plus domain tags) and a descriptor's strengths, capabilities and
output formats, minus a penalty per tag the descriptor declares as a
limitation. Confidence is the score normalised by the best possible score.
"""

import logging
from collections.abc import Iterable

from agentrelay.config import MatchingPolicy
from agentrelay.domain.exceptions import NoCapableAgentError
from agentrelay.domain.models import AgentDescriptor, AgentSelection, TaskRequirements
from agentrelay.domain.registry import CapabilityRegistry

logger = logging.getLogger("agentrelay.matcher")


class CapabilityMatcher:
    """Picks the best-fit agent plus supporting agents for a task."""

    def __init__(self, registry: CapabilityRegistry, policy: MatchingPolicy | None = None):
        """
        Args:
            registry: Catalog of agent descriptors
            policy: Matching weights and minimum confidence
        """
        self._registry = registry
        self._policy = policy or MatchingPolicy()

    @property
    def policy(self) -> MatchingPolicy:
        return self._policy

    def confidence(self, descriptor: AgentDescriptor, requirements: TaskRequirements) -> float:
        """Fit of one descriptor for the requirements, in [0, 1]."""
        policy = self._policy
        tags = requirements.all_tags
        outputs = set(requirements.outputs)

        best = (policy.strength_weight + policy.capability_weight) * len(tags)
        best += policy.output_weight * len(outputs)
        if best == 0:
            return 0.0

        score = policy.strength_weight * len(tags & descriptor.strengths)
        score += policy.capability_weight * len(
            tags & (descriptor.capabilities | descriptor.domain_tags)
        )
        score += policy.output_weight * len(outputs & set(descriptor.output_formats))
        score -= policy.limitation_penalty * len(tags & descriptor.limitations)
        return max(0.0, min(1.0, score / best))

    def select_agent(
        self,
        requirements: TaskRequirements,
        exclude: Iterable[str] = (),
    ) -> AgentSelection:
        """
        Select the primary agent for a task.

        Ties are broken by registry declaration order.

        Args:
            requirements: Category, needed outputs and domain tags
            exclude: Agent names that must not be selected

        Returns:
            AgentSelection with primary agent, confidence, supporting agents
            and rationale

        Raises:
            NoCapableAgentError: If no candidate reaches the minimum confidence
        """
        excluded = frozenset(exclude)
        candidates = [d for d in self._registry.descriptors if d.name not in excluded]

        primary: AgentDescriptor | None = None
        best_score = -1.0
        for descriptor in candidates:
            score = self.confidence(descriptor, requirements)
            if score > best_score:
                primary, best_score = descriptor, score

        if primary is None or best_score < self._policy.min_confidence:
            raise NoCapableAgentError(
                f"No agent can perform '{requirements.category}' "
                f"(best: {primary.name if primary else 'none'} at {max(best_score, 0.0):.2f}, "
                f"minimum {self._policy.min_confidence:.2f})",
                best_agent=primary.name if primary else None,
                best_confidence=max(best_score, 0.0),
            )

        supporting = self._supporting_agents(primary, requirements, candidates)
        selection = AgentSelection(
            primary_agent=primary.name,
            confidence=best_score,
            supporting_agents=supporting,
            rationale=self._rationale(primary, requirements, best_score),
        )
        logger.debug(
            "Selected %s for %s (confidence %.2f)",
            primary.name,
            requirements.category,
            best_score,
        )
        return selection

    def resolve(self, requirements: TaskRequirements, pinned: str | None) -> AgentSelection:
        """Selection for a step, honouring an explicitly pinned agent."""
        if pinned is None:
            return self.select_agent(requirements)
        if pinned not in self._registry:
            raise NoCapableAgentError(f"Pinned agent '{pinned}' is not registered")
        return AgentSelection(
            primary_agent=pinned,
            confidence=1.0,
            rationale=f"{pinned} pinned by the workflow definition",
        )

    @staticmethod
    def _supporting_agents(
        primary: AgentDescriptor,
        requirements: TaskRequirements,
        candidates: list[AgentDescriptor],
    ) -> tuple[str, ...]:
        """Agents whose strengths cover gaps left by the primary agent."""
        covered = primary.strengths | primary.capabilities | primary.domain_tags
        gaps = primary.limitations | (requirements.all_tags - covered)
        if not gaps:
            return ()
        return tuple(
            d.name for d in candidates if d.name != primary.name and d.strengths & gaps
        )

    @staticmethod
    def _rationale(
        primary: AgentDescriptor, requirements: TaskRequirements, confidence: float
    ) -> str:
        tags = requirements.all_tags
        parts = [f"{primary.name} selected for '{requirements.category}'"]
        strengths = sorted(tags & primary.strengths)
        if strengths:
            parts.append(f"strengths {strengths}")
        capabilities = sorted(tags & (primary.capabilities | primary.domain_tags))
        if capabilities:
            parts.append(f"capabilities {capabilities}")
        limitations = sorted(tags & primary.limitations)
        if limitations:
            parts.append(f"despite limitations {limitations}")
        parts.append(f"confidence {confidence:.2f}")
        return "; ".join(parts)
