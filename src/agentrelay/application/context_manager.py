"""
ContextPreservationManager: validates, annotates and commits handoffs.

A handoff moves context and prior results from one step's agent to the
next. The manager checks the receiving agent's input contract, builds
handoff notes, invokes the agent and writes its result into the context
under the single-writer rule.
"""

import logging
from collections.abc import Mapping
from typing import Any

from agentrelay.domain.exceptions import AgentError, ContextInsufficientError
from agentrelay.domain.models import (
    AgentDescriptor,
    AgentResult,
    AgentTask,
    HandoffNotes,
    StepDefinition,
    WorkflowContext,
)
from agentrelay.domain.registry import CapabilityRegistry

logger = logging.getLogger("agentrelay.context")


class ContextPreservationManager:
    """
    Owns every read-before-invoke and write-after-invoke on the context.

    invoke() is safe to run on a worker thread: it only reads the context.
    commit() is the single writer for artifact keys and is called by
    whichever thread observes the step's completion.
    """

    def __init__(self, registry: CapabilityRegistry):
        """
        Args:
            registry: Catalog used to look up input contracts and executors
        """
        self._registry = registry

    def validate(self, descriptor: AgentDescriptor, context: WorkflowContext) -> None:
        """
        Check the context against an agent's declared input contract.

        Raises:
            ContextInsufficientError: If any required field is missing
        """
        missing = tuple(f for f in descriptor.required_inputs if not context.has_field(f))
        if missing:
            raise ContextInsufficientError(
                f"Context missing fields required by {descriptor.name}: {', '.join(missing)}",
                missing_fields=missing,
            )

    def build_notes(
        self,
        from_step: str | None,
        task: AgentTask,
        context: WorkflowContext,
        instructions: str,
    ) -> HandoffNotes:
        """
        Build handoff notes for the receiving agent.

        Only artifacts of the task's own predecessors are consulted, so a
        note never reads a result whose completion the step has not observed.
        """
        artifacts = context.artifacts
        prior = [artifacts[dep] for dep in task.depends_on if dep in artifacts]

        decisions: list[str] = []
        constraints: list[str] = []
        for result in prior:
            decisions.extend(d for d in result.decisions if d not in decisions)
            constraints.extend(c for c in result.limitations if c not in constraints)
        descriptor = self._registry.get(task.agent_name)
        constraints.extend(f"{task.agent_name} cannot: {lim}" for lim in sorted(descriptor.limitations))
        constraints.extend(context.flattened_concerns())

        expectations: list[str] = []
        if instructions:
            expectations.append(instructions)
        expectations.extend(
            f"Acceptance: {criterion}" for criterion in context.feature.acceptance_criteria
        )
        if task.requirements.outputs:
            expectations.append(f"Produce: {', '.join(task.requirements.outputs)}")
        if descriptor.output_formats:
            expectations.append(f"Output formats: {', '.join(descriptor.output_formats)}")

        return HandoffNotes(
            from_step=from_step,
            prior_artifact=from_step if from_step in artifacts else None,
            key_decisions=tuple(decisions),
            constraints=tuple(constraints),
            expectations=tuple(expectations),
        )

    def invoke(
        self,
        from_step: str | None,
        task: AgentTask,
        context: WorkflowContext,
        instructions: str,
    ) -> AgentResult:
        """
        Validate, annotate and invoke, without committing.

        Raises:
            ContextInsufficientError: If the input contract is not met
            AgentError: If the agent fails; other exceptions are wrapped
        """
        descriptor = self._registry.get(task.agent_name)
        self.validate(descriptor, context)
        notes = self.build_notes(from_step, task, context, instructions)
        agent = self._registry.agent(task.agent_name)
        try:
            result = agent.execute(task, context, instructions, notes)
        except AgentError:
            raise
        except Exception as e:
            raise AgentError(f"{task.agent_name} raised {type(e).__name__}: {e}") from e
        if not isinstance(result, AgentResult):
            raise AgentError(
                f"{task.agent_name} returned {type(result).__name__}, expected AgentResult"
            )
        return result

    def commit(self, step_id: str, result: AgentResult, context: WorkflowContext) -> AgentResult:
        """
        Write a result as the step's artifact.

        Raises:
            ArtifactOverwriteError: If the step already has an artifact
        """
        committed = context.commit_artifact(step_id, result.for_step(step_id))
        logger.debug("Committed artifact for %s from %s", step_id, result.agent_name)
        return committed

    def handoff(
        self,
        from_step: str | None,
        to_step: AgentTask,
        context: WorkflowContext,
        instructions: str,
    ) -> AgentResult:
        """
        Transfer context to the next step's agent and commit its result.

        Args:
            from_step: Step whose artifact is handed over (None at start)
            to_step: Task for the receiving step
            context: Workflow context
            instructions: Instructions for the receiving agent

        Returns:
            The committed AgentResult
        """
        result = self.invoke(from_step, to_step, context, instructions)
        return self.commit(to_step.step_id, result, context)

    def task_for(
        self,
        step: StepDefinition,
        agent_name: str,
        context: WorkflowContext,
        attempt: int = 1,
    ) -> AgentTask:
        """Build the task for one attempt at a step, resolving stage inputs."""
        inputs = self.resolve_inputs(step.inputs, context) if step.inputs else {}
        return AgentTask(
            step_id=step.step_id,
            requirements=step.requirements,
            agent_name=agent_name,
            depends_on=step.predecessors,
            inputs=inputs,
            attempt=attempt,
            parent_step=step.parent_step,
        )

    @staticmethod
    def source_step(task: AgentTask, context: WorkflowContext) -> str | None:
        """Most recently committed predecessor of the task."""
        committed = [key for key in context.artifacts if key in task.depends_on]
        return committed[-1] if committed else None

    @staticmethod
    def resolve_inputs(
        inputs: tuple[tuple[str, str], ...], context: WorkflowContext
    ) -> Mapping[str, Any]:
        """
        Resolve domain-chain inputs from committed artifacts.

        A reference is either ``stage`` (the stage's content) or
        ``stage.output`` (one named output of the stage).

        Raises:
            ContextInsufficientError: If a referenced result is unavailable
        """
        artifacts = context.artifacts
        resolved: dict[str, Any] = {}
        missing: list[str] = []
        for param, ref in inputs:
            stage, _, output = ref.partition(".")
            if stage not in artifacts:
                missing.append(ref)
                continue
            result = artifacts[stage]
            if not output:
                resolved[param] = result.content
            elif output in result.outputs:
                resolved[param] = result.outputs[output]
            else:
                missing.append(ref)
        if missing:
            raise ContextInsufficientError(
                f"Unresolved stage inputs: {', '.join(missing)}",
                missing_fields=tuple(missing),
            )
        return resolved
