"""
Step dependency graph.

Builds a DAG from step definitions, rejects cycles with a depth-first
traversal over a visiting set, and derives topological order, parallel
execution groups and critical paths.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from agentrelay.domain.exceptions import CyclicDependencyError, WorkflowDefinitionError
from agentrelay.domain.models import StepDefinition


class DependencyGraph:
    """Directed acyclic graph of workflow steps.

    Edges run from a predecessor to the steps that depend on it. Step
    declaration order is preserved everywhere an order is not forced by
    the edges, so every derived order is deterministic.
    """

    def __init__(
        self,
        steps: Sequence[StepDefinition],
        external: Iterable[str] = (),
    ) -> None:
        """
        Args:
            steps: Step definitions in declaration order
            external: Step ids outside this graph that count as already
                satisfied (e.g. completed parent steps of a sub-graph)

        Raises:
            WorkflowDefinitionError: On duplicate ids or unknown dependencies
            CyclicDependencyError: If the dependencies contain a cycle
        """
        self._order: list[str] = []
        self._steps: dict[str, StepDefinition] = {}
        external_ids = frozenset(external)

        for step in steps:
            if step.step_id in self._steps:
                raise WorkflowDefinitionError(f"Duplicate step id: {step.step_id}")
            self._steps[step.step_id] = step
            self._order.append(step.step_id)

        self._predecessors: dict[str, tuple[str, ...]] = {}
        for step_id in self._order:
            preds = []
            for dep in self._steps[step_id].predecessors:
                if dep in self._steps:
                    preds.append(dep)
                elif dep not in external_ids:
                    raise WorkflowDefinitionError(
                        f"Step '{step_id}' depends on unknown step '{dep}'"
                    )
            self._predecessors[step_id] = tuple(preds)

        self._successors: dict[str, list[str]] = {sid: [] for sid in self._order}
        for step_id in self._order:
            for dep in self._predecessors[step_id]:
                self._successors[dep].append(step_id)

        self._topological = self._sort()

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __len__(self) -> int:
        return len(self._order)

    @property
    def step_ids(self) -> tuple[str, ...]:
        return tuple(self._order)

    def step(self, step_id: str) -> StepDefinition:
        return self._steps[step_id]

    def predecessors(self, step_id: str) -> tuple[str, ...]:
        return self._predecessors[step_id]

    def successors(self, step_id: str) -> tuple[str, ...]:
        return tuple(self._successors[step_id])

    def _sort(self) -> tuple[str, ...]:
        """Depth-first topological sort with a visiting set for cycle detection."""
        result: list[str] = []
        visited: set[str] = set()
        visiting: list[str] = []

        def visit(step_id: str) -> None:
            if step_id in visited:
                return
            if step_id in visiting:
                start = visiting.index(step_id)
                raise CyclicDependencyError((*visiting[start:], step_id))
            visiting.append(step_id)
            for dep in self._predecessors[step_id]:
                visit(dep)
            visiting.pop()
            visited.add(step_id)
            result.append(step_id)

        for step_id in self._order:
            visit(step_id)
        return tuple(result)

    def topological_order(self) -> tuple[str, ...]:
        """Step ids with every predecessor before its dependents."""
        return self._topological

    def transitive_dependents(self, step_id: str) -> set[str]:
        """All steps reachable from ``step_id``."""
        seen: set[str] = set()
        stack = list(self._successors[step_id])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._successors[current])
        return seen

    def independent(self, a: str, b: str) -> bool:
        """True when neither step transitively depends on the other."""
        return (
            a != b
            and b not in self.transitive_dependents(a)
            and a not in self.transitive_dependents(b)
        )

    def parallel_groups(self) -> tuple[tuple[str, ...], ...]:
        """Group steps by longest-path depth.

        Two steps of the same group never have a path between them, so each
        group can run concurrently once the previous groups completed.
        """
        depth: dict[str, int] = {}
        for step_id in self._topological:
            preds = self._predecessors[step_id]
            depth[step_id] = 1 + max((depth[p] for p in preds), default=-1)
        levels: dict[int, list[str]] = {}
        for step_id in self._order:
            levels.setdefault(depth[step_id], []).append(step_id)
        return tuple(tuple(levels[level]) for level in sorted(levels))

    def critical_path(self, durations: Mapping[str, float]) -> tuple[tuple[str, ...], float]:
        """Longest weighted path through the graph.

        Args:
            durations: Per-step duration; missing steps weigh 0

        Returns:
            Tuple of (step ids along the path, total duration)
        """
        return critical_path(
            self._topological, self._predecessors, durations
        )


def critical_path(
    order: Sequence[str],
    predecessors: Mapping[str, Sequence[str]],
    durations: Mapping[str, float],
) -> tuple[tuple[str, ...], float]:
    """Longest weighted path over a topologically ordered step list.

    Predecessors outside ``order`` are ignored.
    """
    best: dict[str, float] = {}
    via: dict[str, str | None] = {}
    for step_id in order:
        prior: str | None = None
        prior_cost = 0.0
        for dep in predecessors.get(step_id, ()):
            if dep in best and best[dep] > prior_cost:
                prior, prior_cost = dep, best[dep]
        best[step_id] = prior_cost + durations.get(step_id, 0.0)
        via[step_id] = prior

    if not best:
        return (), 0.0

    end = max(order, key=lambda sid: best[sid])
    path: list[str] = []
    current: str | None = end
    while current is not None:
        path.append(current)
        current = via[current]
    return tuple(reversed(path)), best[end]
